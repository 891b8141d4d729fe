class ResultStoreError(Exception):
    """Raised when a stored job record cannot be read or written."""
