"""OpenTelemetry tracing integration for the compliance core."""

from ropa_core.telemetry.setup import init_telemetry, shutdown_telemetry

__all__ = ["init_telemetry", "shutdown_telemetry"]
