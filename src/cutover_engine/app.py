"""Orchestrator assembly."""

from __future__ import annotations

from collections.abc import Iterable
from functools import lru_cache

from cutover_engine.config import Settings, load_settings
from cutover_engine.dns.registry import DNSProviderRegistry
from cutover_engine.domain.dns import DNSProvider
from cutover_engine.engine.orchestrator import CutoverOrchestrator
from cutover_engine.health.checker import HealthChecker
from cutover_engine.logging_utils import get_logger


def build_orchestrator(
    settings: Settings | None = None,
    providers: Iterable[DNSProvider] = (),
) -> CutoverOrchestrator:
    """Wire a health checker, provider registry and settings into an orchestrator.

    Providers are registered in addition to the built-in manual provider.
    """
    settings = settings or load_settings()
    registry = DNSProviderRegistry(providers)
    if settings.dns.default_provider not in registry:
        raise RuntimeError(
            f"Invalid configuration: default DNS provider '{settings.dns.default_provider}' "
            f"is not registered (available: {', '.join(registry.names())})"
        )

    logger = get_logger(__name__)
    logger.info("DNS providers available: %s", ", ".join(registry.names()))
    return CutoverOrchestrator(
        health_checker=HealthChecker(settings.health),
        providers=registry,
        settings=settings,
    )


@lru_cache(maxsize=1)
def get_orchestrator() -> CutoverOrchestrator:
    """Get or create the process-wide orchestrator with the built-in providers."""
    return build_orchestrator()
