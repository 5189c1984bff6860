"""
Litter Robot stats collector.

Polls the Litter Robot API and writes robot stats to InfluxDB.
"""
from .config import CollectorSettings, load_configuration
from .main import Collector, get_build_version

__all__ = [
    "CollectorSettings",
    "load_configuration",
    "Collector",
    "get_build_version",
]
