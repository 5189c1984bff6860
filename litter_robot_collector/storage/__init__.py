"""
Storage integration module.

Handles writing robot measurements to InfluxDB.
"""
from .influx_writer import MEASUREMENT_NAME, InfluxWriter, build_point

__all__ = [
    "MEASUREMENT_NAME",
    "InfluxWriter",
    "build_point",
]
