"""Tests for telemetry setup."""

from ropa_core.settings import OTelSettings
from ropa_core.telemetry import init_telemetry, shutdown_telemetry


class TestTelemetry:
    def test_disabled_is_noop(self) -> None:
        assert init_telemetry(settings=OTelSettings(enabled=False)) is False
        shutdown_telemetry()
