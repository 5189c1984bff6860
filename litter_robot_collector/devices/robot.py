"""
Robot state as reported by the Litter Robot API.

The API reports most values as strings. Counters are parsed leniently to
floats, so anything missing or unparseable arrives as NaN.
"""
import math
from dataclasses import dataclass
from typing import Any, Mapping, Optional

# Order defines the numeric unit status written to InfluxDB.
UNIT_STATUS_CODES = (
    "RDY",      # ready
    "CCP",      # clean cycle in progress
    "CCC",      # clean cycle complete
    "CSF",      # cat sensor fault
    "DF1",      # drawer almost full, 2 cycles left
    "DF2",      # drawer almost full, 1 cycle left
    "CST",      # cat sensor timing
    "CSI",      # cat sensor interrupted
    "BR",       # bonnet removed
    "P",        # paused
    "OFF",      # off
    "SDF",      # drawer full at startup
    "DFS",      # drawer full
    "EC",       # empty cycle
    "PD",       # pinch detect
    "OFFLINE",  # offline
)


def parse_float(value: Any) -> float:
    """Parse a decimal counter, NaN when not a number."""
    if value is None or isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def parse_hex(value: Any) -> float:
    """Parse a single hex digit counter such as the clean cycle wait time."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        return float(int(str(value).strip(), 16))
    except (TypeError, ValueError):
        return math.nan


def parse_flag(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip() == "1"


def parse_unit_status(value: Any) -> float:
    code = str(value or "").strip().upper()
    try:
        return float(UNIT_STATUS_CODES.index(code))
    except ValueError:
        return math.nan


@dataclass(frozen=True)
class RobotState:
    """Raw robot state, one per robot per fetch."""
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
    unit_status_code: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RobotState":
        """
        Build a state from one robot object of the API response.

        Args:
            payload: Robot JSON object.

        Returns:
            The parsed state.
        """
        cycle_count = parse_float(payload.get("cycleCount"))
        cycle_capacity = parse_float(payload.get("cycleCapacity"))
        sleep_mode = str(payload.get("sleepModeActive") or "")

        return cls(
            litter_robot_id=str(payload.get("litterRobotId", "")),
            litter_robot_serial=str(payload.get("litterRobotSerial", "")),
            name=str(payload.get("litterRobotNickname", "")),
            power_status=str(payload.get("powerStatus", "")),
            cycle_count=cycle_count,
            cycles_until_full=cycle_capacity - cycle_count,
            dfi_cycle_count=parse_float(payload.get("DFICycleCount")),
            cycles_after_drawer_full=parse_float(payload.get("cyclesAfterDrawerFull")),
            cycle_capacity=cycle_capacity,
            clean_cycle_wait_time_minutes=parse_hex(payload.get("cleanCycleWaitTimeMinutes")),
            unit_status=parse_unit_status(payload.get("unitStatus")),
            dfi_triggered=parse_flag(payload.get("DFITriggered")),
            night_light_active=parse_flag(payload.get("nightLightActive")),
            panel_lock_active=parse_flag(payload.get("panelLockActive")),
            did_notify_offline=parse_flag(payload.get("didNotifyOffline")),
            sleep_mode_active=sleep_mode.startswith("1"),
            unit_status_code=payload.get("unitStatus"),
        )
