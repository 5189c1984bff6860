"""
Robot state normalization.

Converts a raw robot state, whatever client produced it, into the fixed
integer/boolean/string record that is written to InfluxDB.
"""
import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable

# Written in place of any counter that has no usable value.
MISSING_VALUE = -1

# InfluxDB integer fields are signed 64-bit.
INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1


@runtime_checkable
class RawDeviceState(Protocol):
    """
    Anything that exposes the robot attributes the collector stores.

    Counters may be floats and may be NaN.
    """
    litter_robot_id: str
    litter_robot_serial: str
    name: str
    power_status: str
    cycle_count: float
    cycles_until_full: float
    dfi_cycle_count: float
    cycles_after_drawer_full: float
    cycle_capacity: float
    clean_cycle_wait_time_minutes: float
    unit_status: float
    dfi_triggered: bool
    night_light_active: bool
    panel_lock_active: bool
    did_notify_offline: bool
    sleep_mode_active: bool


@dataclass(frozen=True)
class NormalizedMeasurement:
    """Canonical robot measurement for a single tick."""
    # Identity
    litter_robot_serial: str
    name: str
    litter_robot_id: str

    power_status: str

    # Counters
    cycle_count: int
    cycles_until_full: int
    dfi_cycle_count: int
    cycles_after_drawer_full: int
    cycle_capacity: int
    clean_cycle_wait_time_minutes: int
    unit_status: int

    # Flags
    dfi_triggered: bool
    night_light_active: bool
    panel_lock_active: bool
    did_notify_offline: bool
    sleep_mode_active: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def float_to_int(value: Optional[float]) -> int:
    """
    Truncate a counter toward zero.

    NaN, infinities, None and values outside the signed 64-bit range
    become MISSING_VALUE.
    """
    if value is None:
        return MISSING_VALUE
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MISSING_VALUE
    if math.isnan(number) or math.isinf(number):
        return MISSING_VALUE
    result = int(number)
    if not INT64_MIN <= result <= INT64_MAX:
        return MISSING_VALUE
    return result


def normalize(state: RawDeviceState) -> NormalizedMeasurement:
    """
    Normalize one raw robot state.

    Args:
        state: Raw state from the API client.

    Returns:
        The canonical measurement.
    """
    return NormalizedMeasurement(
        litter_robot_serial=str(state.litter_robot_serial),
        name=str(state.name),
        litter_robot_id=str(state.litter_robot_id),
        power_status=str(state.power_status),
        cycle_count=float_to_int(state.cycle_count),
        cycles_until_full=float_to_int(state.cycles_until_full),
        dfi_cycle_count=float_to_int(state.dfi_cycle_count),
        cycles_after_drawer_full=float_to_int(state.cycles_after_drawer_full),
        cycle_capacity=float_to_int(state.cycle_capacity),
        clean_cycle_wait_time_minutes=float_to_int(state.clean_cycle_wait_time_minutes),
        unit_status=float_to_int(state.unit_status),
        dfi_triggered=bool(state.dfi_triggered),
        night_light_active=bool(state.night_light_active),
        panel_lock_active=bool(state.panel_lock_active),
        did_notify_offline=bool(state.did_notify_offline),
        sleep_mode_active=bool(state.sleep_mode_active),
    )
