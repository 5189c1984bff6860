"""
Unit tests for robot state normalization.

Tests NaN handling, truncation and pass-through of flags and identity.
"""
import math

import pytest

from litter_robot_collector.devices.state import (
    MISSING_VALUE,
    NormalizedMeasurement,
    RawDeviceState,
    float_to_int,
    normalize,
)


class TestFloatToInt:
    """Test counter conversion."""

    def test_nan_maps_to_missing_value(self):
        assert float_to_int(math.nan) == MISSING_VALUE == -1

    @pytest.mark.parametrize(
        "value, expected",
        [
            (42.9, 42),
            (42.1, 42),
            (-3.7, -3),
            (-0.5, 0),
            (0.0, 0),
            (7, 7),
            (1e12, 1_000_000_000_000),
        ],
    )
    def test_truncates_toward_zero(self, value, expected):
        """Test values are truncated, not rounded."""
        assert float_to_int(value) == expected

    @pytest.mark.parametrize(
        "value", [math.inf, -math.inf, None, "abc", 1e30, -1e30, 2.0 ** 63]
    )
    def test_unusable_values_map_to_missing_value(self, value):
        assert float_to_int(value) == MISSING_VALUE


class TestNormalize:
    """Test full record normalization."""

    def test_out_of_range_counter_is_missing(self, robot_factory):
        """Test a counter too large for an InfluxDB integer field."""
        measurement = normalize(robot_factory(cycle_count=1e30, cycle_capacity=30.0))

        assert measurement.cycle_count == MISSING_VALUE
        assert measurement.cycle_capacity == 30

    def test_nan_cycle_count_and_fractional_cycles_until_full(self, robot_factory):
        """Test a NaN counter and a fractional counter in the same record."""
        robot = robot_factory(cycle_count=math.nan, cycles_until_full=42.9)

        measurement = normalize(robot)

        assert measurement.cycle_count == -1
        assert measurement.cycles_until_full == 42

    def test_identity_and_flags_pass_through(self, robot_factory):
        robot = robot_factory(
            litter_robot_id="id-9",
            litter_robot_serial="LR3C999",
            name="Garage",
            power_status="DC",
            dfi_triggered=True,
            night_light_active=False,
            panel_lock_active=True,
            did_notify_offline=True,
            sleep_mode_active=True,
        )

        measurement = normalize(robot)

        assert measurement.litter_robot_id == "id-9"
        assert measurement.litter_robot_serial == "LR3C999"
        assert measurement.name == "Garage"
        assert measurement.power_status == "DC"
        assert measurement.dfi_triggered is True
        assert measurement.night_light_active is False
        assert measurement.panel_lock_active is True
        assert measurement.did_notify_offline is True
        assert measurement.sleep_mode_active is True

    def test_all_counters_are_ints(self, robot_factory, nan):
        robot = robot_factory(
            cycle_count=nan,
            cycles_until_full=nan,
            dfi_cycle_count=nan,
            cycles_after_drawer_full=nan,
            cycle_capacity=nan,
            clean_cycle_wait_time_minutes=nan,
            unit_status=nan,
        )

        measurement = normalize(robot)
        counters = [
            measurement.cycle_count,
            measurement.cycles_until_full,
            measurement.dfi_cycle_count,
            measurement.cycles_after_drawer_full,
            measurement.cycle_capacity,
            measurement.clean_cycle_wait_time_minutes,
            measurement.unit_status,
        ]

        assert all(type(value) is int for value in counters)
        assert counters == [-1] * 7

    def test_is_deterministic(self, robot_factory):
        robot = robot_factory(cycle_count=-0.0, cycle_capacity=-12.5)
        assert normalize(robot) == normalize(robot)
        assert normalize(robot).cycle_capacity == -12

    def test_accepts_any_object_with_the_right_attributes(self, robot_factory):
        """Test the normalizer is not tied to RobotState."""

        class OtherClientRobot:
            litter_robot_id = "x"
            litter_robot_serial = "y"
            name = "z"
            power_status = "AC"
            cycle_count = 1.5
            cycles_until_full = 2.5
            dfi_cycle_count = 0.0
            cycles_after_drawer_full = 0.0
            cycle_capacity = 4.0
            clean_cycle_wait_time_minutes = 3.0
            unit_status = 2.0
            dfi_triggered = False
            night_light_active = False
            panel_lock_active = False
            did_notify_offline = False
            sleep_mode_active = False

        robot = OtherClientRobot()

        assert isinstance(robot, RawDeviceState)
        measurement = normalize(robot)
        assert isinstance(measurement, NormalizedMeasurement)
        assert measurement.cycle_count == 1
        assert measurement.unit_status == 2
