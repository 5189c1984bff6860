"""
Collector exceptions.

Every error raised by the collector carries an ErrorKind so the poll loop
can decide between retrying a tick and shutting the process down.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Whether a failure may clear up on its own."""
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class CollectorError(Exception):
    """
    Base exception for all collector errors.

    Attributes:
        message: Human readable description.
        code: Stable error code, defaults to the class name.
        details: Extra context for logging.
        kind: Transient or permanent.
    """

    default_kind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        kind: Optional[ErrorKind] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        self.kind = kind or self.default_kind

    @property
    def transient(self) -> bool:
        return self.kind == ErrorKind.TRANSIENT

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error": self.code,
            "message": self.message,
            "kind": self.kind.value,
            "details": self.details,
        }


class ConfigError(CollectorError):
    """Configuration file is missing, malformed or incomplete."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class InfluxWriteConfigError(ConfigError):
    """Neither a bucket nor a database/retention policy pair is configured."""

    def __init__(self):
        super().__init__(
            "must configure at least one of bucket or database/retention policy"
        )


class AuthError(CollectorError):
    """Initial login to the Litter Robot API failed."""

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code="AUTH_ERROR", details=details, kind=kind)


class AuthRefreshError(CollectorError):
    """Refreshing an existing session failed."""

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message, code="AUTH_REFRESH_ERROR", details=details, kind=kind
        )


class FetchError(CollectorError):
    """Fetching robot states from the Litter Robot API failed."""

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, code="FETCH_ERROR", details=details, kind=kind)


class StorageConnectionError(CollectorError):
    """InfluxDB could not be reached at startup."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="STORAGE_CONNECTION_ERROR", details=details)


class WriteError(CollectorError):
    """
    A batch of points failed to persist.

    Reported asynchronously by the write buffer. Never fatal.
    """

    default_kind = ErrorKind.TRANSIENT

    def __init__(
        self,
        message: str,
        destination: Optional[str] = None,
        payload_bytes: int = 0,
    ):
        super().__init__(
            message,
            code="WRITE_ERROR",
            details={"destination": destination, "payload_bytes": payload_bytes},
        )
        self.destination = destination
        self.payload_bytes = payload_bytes
