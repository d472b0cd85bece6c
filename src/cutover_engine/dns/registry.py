"""DNS provider registry."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from cutover_engine.dns.manual import ManualDNSProvider
from cutover_engine.domain.dns import DNSProvider, ProviderNotFoundError

logger = logging.getLogger(__name__)


class DNSProviderRegistry:
    """Providers available to an orchestrator, keyed by lower-case name.

    The manual provider is always registered.
    """

    def __init__(self, providers: Iterable[DNSProvider] = ()) -> None:
        self._providers: dict[str, DNSProvider] = {}
        self.register(ManualDNSProvider())
        for provider in providers:
            self.register(provider)

    def register(self, provider: DNSProvider, name: str | None = None) -> None:
        key = (name or provider.name).strip().lower()
        if not key:
            raise ValueError("DNS provider name is required")
        if key in self._providers:
            logger.debug("Replacing DNS provider %s", key)
        self._providers[key] = provider

    def get(self, name: str) -> DNSProvider:
        provider = self._providers.get(name.strip().lower())
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._providers
