"""Manual DNS provider.

Performs no I/O. Changes are recorded as applied so that the plan can
proceed, and the operator applies them at the registrar using the text
from ``render_instructions``.
"""

from __future__ import annotations

import logging

from cutover_engine.domain.dns import (
    MANUAL_PROVIDER,
    DNSChange,
    DNSProvider,
    DNSRecord,
    DNSRecordNotFoundError,
)

logger = logging.getLogger(__name__)


class ManualDNSProvider(DNSProvider):
    name = MANUAL_PROVIDER

    async def list_records(self, domain: str) -> list[DNSRecord]:
        return []

    async def get_record(self, domain: str, record_id: str) -> DNSRecord:
        raise DNSRecordNotFoundError(
            f"manual provider does not track records (requested {record_id} in {domain})",
            self.name,
        )

    async def create_record(self, change: DNSChange) -> None:
        logger.info(
            "Manual DNS create: %s %s -> %s", change.record_type, change.full_name, change.new_value
        )
        change.mark_applied()

    async def update_record(self, change: DNSChange) -> None:
        logger.info(
            "Manual DNS update: %s %s %s -> %s",
            change.record_type,
            change.full_name,
            change.old_value or "(none)",
            change.new_value,
        )
        change.mark_applied()

    async def delete_record(self, domain: str, record_id: str) -> None:
        logger.info("Manual DNS delete: %s in %s", record_id, domain)

    async def validate_credentials(self) -> None:
        return None


def render_instructions(changes: list[DNSChange]) -> str:
    """Describe ``changes`` as operator steps, followed by the steps to undo them."""
    lines = ["Apply the following DNS changes at your DNS provider:", ""]
    for index, change in enumerate(changes, start=1):
        lines.extend(_describe(index, change))

    lines.extend(["To roll back, apply these changes in order:", ""])
    for index, change in enumerate(reversed(changes), start=1):
        lines.extend(_describe(index, change.reversed()))
    return "\n".join(lines).rstrip() + "\n"


def _describe(index: int, change: DNSChange) -> list[str]:
    lines = [
        f"{index}. {change.record_type} record for {change.full_name}",
        f"   Current value: {change.old_value or '(none)'}",
        f"   New value:     {change.new_value or '(remove record)'}",
        f"   TTL:           {change.ttl}",
    ]
    if change.priority is not None:
        lines.append(f"   Priority:      {change.priority}")
    lines.append("")
    return lines
