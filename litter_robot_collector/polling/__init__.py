"""
Telemetry polling module.

Handles scheduled polling of the Litter Robot API.
"""
from .scheduler import PollLoop

__all__ = [
    "PollLoop",
]
