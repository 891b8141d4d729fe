class ExtractionError(Exception):
    """Base exception for all extraction-related errors."""


class ExtractionValidationError(ExtractionError):
    """Raised before any network call when a request cannot be submitted."""


class UnsupportedFileTypeError(ExtractionValidationError):
    """Raised when a document extension is not accepted by a back-end."""


class MissingCallerMetadataError(ExtractionValidationError):
    """Raised when a back-end requires caller metadata that was not supplied."""


class TransportError(ExtractionError):
    """Raised when a back-end call fails at the network or envelope level."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class JsonRpcError(TransportError):
    """Raised when a JSON-RPC response carries an error object."""

    def __init__(self, message: str, *, code: int | None = None, data: object = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


class ProviderFailedError(ExtractionError):
    """Raised when a back-end explicitly reports that extraction failed."""


class PollingCancelledError(ExtractionError):
    """Raised when polling is cancelled through its cancellation token."""
