"""Domain models for cutover plans."""

from cutover_engine.domain.dns import (
    DNSChange,
    DNSChangeStatus,
    DNSProvider,
    DNSProviderError,
    DNSRecord,
    DNSRecordNotFoundError,
    DNSRecordType,
    ProviderNotFoundError,
)
from cutover_engine.domain.health import (
    CommandHealthCheck,
    DatabaseHealthCheck,
    DNSHealthCheck,
    HealthCheck,
    HealthCheckResult,
    HealthCheckType,
    HTTPHealthCheck,
    TCPHealthCheck,
)
from cutover_engine.domain.plan import (
    CutoverPlan,
    CutoverStatus,
    CutoverStep,
    CutoverStepStatus,
    CutoverStepType,
    InvalidTransitionError,
)
from cutover_engine.domain.triggers import RollbackConditionType, RollbackTrigger

__all__ = [
    "CommandHealthCheck",
    "CutoverPlan",
    "CutoverStatus",
    "CutoverStep",
    "CutoverStepStatus",
    "CutoverStepType",
    "DNSChange",
    "DNSChangeStatus",
    "DNSHealthCheck",
    "DNSProvider",
    "DNSProviderError",
    "DNSRecord",
    "DNSRecordNotFoundError",
    "DNSRecordType",
    "DatabaseHealthCheck",
    "HTTPHealthCheck",
    "HealthCheck",
    "HealthCheckResult",
    "HealthCheckType",
    "InvalidTransitionError",
    "ProviderNotFoundError",
    "RollbackConditionType",
    "RollbackTrigger",
    "TCPHealthCheck",
]
