from evoi.middleware.telemetry import TelemetryMiddleware

__all__ = ["TelemetryMiddleware"]
