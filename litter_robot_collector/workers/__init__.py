"""
Background workers.

Write error reporting and shutdown coordination.
"""
from .error_drain import ErrorDrain
from .shutdown import SHUTDOWN_SIGNALS, ShutdownCoordinator

__all__ = [
    "ErrorDrain",
    "SHUTDOWN_SIGNALS",
    "ShutdownCoordinator",
]
