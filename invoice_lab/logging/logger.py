import logging
import sys


class Log:
    """Centralized logging with structured format."""

    _logger: logging.Logger = logging.getLogger("invoice_lab")

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Configure the logger with the specified level and stdout handler."""
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
            )
            cls._logger.addHandler(handler)

    @classmethod
    def bind(cls, **context: object) -> "BoundLog":
        """Return a logger that tags every message with the given context."""
        return BoundLog(cls._logger, context)

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        """Log an info message."""
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        """Log an error message."""
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        """Log a warning message."""
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        """Log a debug message."""
        cls._logger.debug(message, extra=kwargs)


class BoundLog:
    """Logger handle carrying fixed context, injected into components."""

    def __init__(self, logger: logging.Logger, context: dict[str, object]) -> None:
        self._logger = logger
        self._context = dict(context)

    @property
    def context(self) -> dict[str, object]:
        return dict(self._context)

    def bind(self, **context: object) -> "BoundLog":
        return BoundLog(self._logger, {**self._context, **context})

    def info(self, message: str) -> None:
        self._logger.info(self._format(message), extra={"context": self._context})

    def error(self, message: str) -> None:
        self._logger.error(self._format(message), extra={"context": self._context})

    def warning(self, message: str) -> None:
        self._logger.warning(self._format(message), extra={"context": self._context})

    def debug(self, message: str) -> None:
        self._logger.debug(self._format(message), extra={"context": self._context})

    def _format(self, message: str) -> str:
        if not self._context:
            return message
        tags = " ".join(f"{key}={value}" for key, value in self._context.items())
        return f"[{tags}] {message}"


def mask_secret(secret: str) -> str:
    """Show only the first four characters of a credential."""
    if not secret:
        return "NOT SET"
    return f"{secret[:4]}..."
