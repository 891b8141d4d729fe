from pathlib import Path

from invoice_lab.documents.exceptions import DocumentNotFoundError, InvalidFilenameError


def document_file_path(files_root: Path, filename: str) -> Path:
    """Build path to document file: {files_root}/{filename}"""
    return files_root / filename


class DocumentLoader:
    """Reads uploaded document bytes by filename."""

    def __init__(self, files_root: Path) -> None:
        self._files_root = files_root

    def read_document_bytes(self, filename: str) -> bytes:
        """Read document bytes from disk.

        Raises:
            InvalidFilenameError: if the name contains path separators or '..'.
            DocumentNotFoundError: if the file does not exist.
        """
        if not filename or ".." in filename or "/" in filename or "\\" in filename:
            raise InvalidFilenameError(f"Invalid filename: {filename!r}")
        path = document_file_path(self._files_root, filename)
        if not path.is_file():
            raise DocumentNotFoundError(f"File not found: {path}")
        return path.read_bytes()
