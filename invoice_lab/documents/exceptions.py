class DocumentError(Exception):
    """Base exception for raw document storage errors."""


class DocumentNotFoundError(DocumentError, FileNotFoundError):
    """Raised when a document does not exist in the file store."""


class InvalidFilenameError(DocumentError):
    """Raised when a filename would escape the file store directory."""
