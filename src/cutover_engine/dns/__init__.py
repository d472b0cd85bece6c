"""DNS providers available to the orchestrator."""

from cutover_engine.dns.manual import ManualDNSProvider, render_instructions
from cutover_engine.dns.registry import DNSProviderRegistry

__all__ = ["DNSProviderRegistry", "ManualDNSProvider", "render_instructions"]
