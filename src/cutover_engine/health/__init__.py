"""Health check execution."""

from cutover_engine.health.checker import HealthChecker, HealthCheckError

__all__ = ["HealthCheckError", "HealthChecker"]
