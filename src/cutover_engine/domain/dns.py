"""DNS change models and the DNS provider contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from cutover_engine.utils.time import utc_now

MANUAL_PROVIDER = "manual"


class DNSRecordType(str, Enum):
    A = "A"
    AAAA = "AAAA"
    CNAME = "CNAME"
    MX = "MX"
    TXT = "TXT"
    NS = "NS"
    SRV = "SRV"
    CAA = "CAA"
    PTR = "PTR"


_RECORD_TYPES = frozenset(t.value for t in DNSRecordType)


class DNSChangeStatus(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


def _fqdn(name: str, domain: str) -> str:
    if not name or name == "@":
        return domain
    return f"{name}.{domain}"


class DNSChange(BaseModel):
    """One DNS record mutation, carrying the old value so it can be reverted."""

    id: str
    domain: str
    record_type: str
    name: str = "@"
    old_value: str = ""
    new_value: str
    ttl: int = 300
    priority: int | None = None
    weight: int | None = None
    port: int | None = None
    provider: str = MANUAL_PROVIDER
    provider_record_id: str = ""
    proxy_enabled: bool = False
    status: DNSChangeStatus = DNSChangeStatus.PENDING
    applied_at: datetime | None = None
    rolled_back_at: datetime | None = None
    error: str = ""

    @property
    def full_name(self) -> str:
        return _fqdn(self.name, self.domain)

    def is_applied(self) -> bool:
        return self.status == DNSChangeStatus.APPLIED

    def can_rollback(self) -> bool:
        return self.status == DNSChangeStatus.APPLIED

    def reversed(self) -> "DNSChange":
        """Return the change that undoes this one (old and new values swapped)."""
        return self.model_copy(
            update={
                "id": f"{self.id}-rollback",
                "old_value": self.new_value,
                "new_value": self.old_value,
                "status": DNSChangeStatus.PENDING,
                "applied_at": None,
                "rolled_back_at": None,
                "error": "",
            }
        )

    def mark_applied(self) -> None:
        self.status = DNSChangeStatus.APPLIED
        self.applied_at = utc_now()
        self.error = ""

    def mark_failed(self, error: str) -> None:
        self.status = DNSChangeStatus.FAILED
        self.error = error

    def mark_rolled_back(self) -> None:
        self.status = DNSChangeStatus.ROLLED_BACK
        self.rolled_back_at = utc_now()

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.id:
            errors.append("DNS change ID is required")
        if not self.domain:
            errors.append("domain is required")
        if not self.record_type:
            errors.append("record type is required")
        elif self.record_type not in _RECORD_TYPES:
            errors.append(f"unsupported record type: {self.record_type}")
        if not self.name:
            errors.append("name is required (use @ for root)")
        if not self.new_value:
            errors.append("new value is required")
        if self.ttl <= 0:
            errors.append("TTL must be positive")

        if self.record_type == DNSRecordType.MX and self.priority is None:
            errors.append("MX records require priority")
        if self.record_type == DNSRecordType.SRV:
            if self.priority is None:
                errors.append("SRV records require priority")
            if self.weight is None:
                errors.append("SRV records require weight")
            if self.port is None:
                errors.append("SRV records require port")
        return errors


class DNSRecord(BaseModel):
    """A record as reported by a DNS provider."""

    id: str
    domain: str
    type: str
    name: str
    value: str
    ttl: int = 300
    priority: int | None = None
    weight: int | None = None
    port: int | None = None
    proxy_enabled: bool = False
    created_at: datetime | None = None
    modified_at: datetime | None = None

    @property
    def full_name(self) -> str:
        return _fqdn(self.name, self.domain)

    def to_change(self, change_id: str, new_value: str, provider: str = MANUAL_PROVIDER) -> DNSChange:
        return DNSChange(
            id=change_id,
            domain=self.domain,
            record_type=self.type,
            name=self.name,
            old_value=self.value,
            new_value=new_value,
            ttl=self.ttl,
            priority=self.priority,
            weight=self.weight,
            port=self.port,
            provider=provider,
            provider_record_id=self.id,
            proxy_enabled=self.proxy_enabled,
        )


class DNSProviderError(Exception):
    """Raised by a DNS provider when an operation fails."""

    def __init__(self, message: str, provider: str = "") -> None:
        super().__init__(message)
        self.provider = provider


class DNSRecordNotFoundError(DNSProviderError):
    pass


class ProviderNotFoundError(DNSProviderError):
    """Raised when no provider is registered under the requested name."""

    def __init__(self, provider: str) -> None:
        super().__init__(f"DNS provider not found: {provider}", provider)


class DNSProvider(ABC):
    """Capability set the orchestrator needs from a DNS provider.

    Implementations must be safe to share between concurrently running
    plans: they may hold credentials and HTTP clients but no plan state.
    """

    name: str = ""

    @abstractmethod
    async def list_records(self, domain: str) -> list[DNSRecord]:
        """Return every record in ``domain``."""

    @abstractmethod
    async def get_record(self, domain: str, record_id: str) -> DNSRecord:
        """Return one record; raise ``DNSRecordNotFoundError`` when missing."""

    @abstractmethod
    async def create_record(self, change: DNSChange) -> None:
        """Create the record described by ``change.new_value``."""

    @abstractmethod
    async def update_record(self, change: DNSChange) -> None:
        """Point the record at ``change.new_value``.

        Must create the record when ``change.provider_record_id`` is empty
        and no matching record exists.
        """

    @abstractmethod
    async def delete_record(self, domain: str, record_id: str) -> None:
        """Delete a record by provider id."""

    @abstractmethod
    async def validate_credentials(self) -> None:
        """Raise ``DNSProviderError`` when the configured credentials are unusable."""
