"""
Shared pytest fixtures for collector tests.

Provides fixtures for:
- Settings sections with test defaults
- Raw robot payloads and states
- A controllable wall clock
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import pytest

from litter_robot_collector.config import (
    CollectorSettings,
    InfluxDBSettings,
    LitterRobotSettings,
    PollingSettings,
)
from litter_robot_collector.devices.robot import RobotState


# ============================================================================
# Settings Fixtures
# ============================================================================

@pytest.fixture
def litter_robot_settings() -> LitterRobotSettings:
    return LitterRobotSettings(
        email="cat@example.com",
        password="hunter2",
        auth_endpoint="https://auth.test/oauth/token",
        api_endpoint="https://api.test",
        api_key="test-key",
    )


@pytest.fixture
def influxdb_settings() -> InfluxDBSettings:
    return InfluxDBSettings(
        address="http://influx.test:8086",
        token="influx-token",
        organization="home",
        bucket="mybucket",
        measurement_prefix="test_",
    )


@pytest.fixture
def polling_settings() -> PollingSettings:
    return PollingSettings(
        interval=60,
        max_retries=2,
        retry_delay=0,
        backoff_multiplier=2,
        max_backoff=0,
    )


@pytest.fixture
def collector_settings(
    litter_robot_settings, influxdb_settings, polling_settings
) -> CollectorSettings:
    return CollectorSettings(
        litter_robot=litter_robot_settings,
        influxdb=influxdb_settings,
        polling=polling_settings,
    )


# ============================================================================
# Robot Fixtures
# ============================================================================

@pytest.fixture
def robot_payload() -> Dict[str, Any]:
    """One robot object as returned by the robots endpoint."""
    return {
        "litterRobotId": "a0b1c2d3e4f5",
        "litterRobotSerial": "LR3C012345",
        "litterRobotNickname": "Upstairs",
        "powerStatus": "AC",
        "cycleCount": "12",
        "cycleCapacity": "30",
        "cyclesAfterDrawerFull": "0",
        "cleanCycleWaitTimeMinutes": "F",
        "unitStatus": "RDY",
        "DFICycleCount": "3",
        "DFITriggered": "0",
        "nightLightActive": "1",
        "panelLockActive": "0",
        "sleepModeActive": "102:00:00",
        "didNotifyOffline": False,
    }


@pytest.fixture
def robot_state(robot_payload) -> RobotState:
    return RobotState.from_payload(robot_payload)


def make_robot_state(**overrides: Any) -> RobotState:
    """Build a RobotState with sensible defaults."""
    values: Dict[str, Any] = {
        "litter_robot_id": "robot-1",
        "litter_robot_serial": "LR3C000001",
        "name": "Downstairs",
        "power_status": "AC",
        "cycle_count": 10.0,
        "cycles_until_full": 20.0,
        "dfi_cycle_count": 1.0,
        "cycles_after_drawer_full": 0.0,
        "cycle_capacity": 30.0,
        "clean_cycle_wait_time_minutes": 7.0,
        "unit_status": 0.0,
        "dfi_triggered": False,
        "night_light_active": True,
        "panel_lock_active": False,
        "did_notify_offline": False,
        "sleep_mode_active": False,
    }
    values.update(overrides)
    return RobotState(**values)


@pytest.fixture
def robot_factory():
    return make_robot_state


@pytest.fixture
def nan() -> float:
    return math.nan


# ============================================================================
# Clock Fixtures
# ============================================================================

class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))
