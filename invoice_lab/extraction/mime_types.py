from pathlib import PurePath

from invoice_lab.extraction.exceptions import UnsupportedFileTypeError

TASK_POLL_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}

TRANSACTION_POLL_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "tif": "image/tiff",
    "gif": "image/gif",
    "heif": "image/heif",
    "heic": "image/heic",
}

JSONRPC_TOOL_TYPES: dict[str, str] = {
    "pdf": "application/pdf",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
}


def file_extension(filename: str) -> str:
    """Return the lower-cased extension without the dot, or ''."""
    return PurePath(filename).suffix.lower().lstrip(".")


def resolve_mime_type(filename: str, supported: dict[str, str]) -> str:
    """Map a filename to the MIME type a back-end expects.

    Raises:
        UnsupportedFileTypeError: if the extension is not in ``supported``.
    """
    extension = file_extension(filename)
    mime_type = supported.get(extension)
    if mime_type is None:
        raise UnsupportedFileTypeError(
            f"Unsupported file type: {extension or '<none>'}. "
            f"Supported types: {', '.join(supported)}"
        )
    return mime_type
