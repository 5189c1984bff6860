"""
Robot state handling.

Parses API payloads and normalizes them for storage.
"""
from .robot import RobotState
from .state import (
    MISSING_VALUE,
    NormalizedMeasurement,
    RawDeviceState,
    normalize,
)

__all__ = [
    "MISSING_VALUE",
    "NormalizedMeasurement",
    "RawDeviceState",
    "RobotState",
    "normalize",
]
