"""Health check models.

Health checks run before DNS changes (pre-checks, to prove the target is
ready) and after them (post-checks, to prove the cutover worked). Each
check kind is its own model; ``HealthCheck`` is the tagged union of all of
them, discriminated on ``type``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field

from cutover_engine.utils.time import utc_now


class HealthCheckType(str, Enum):
    HTTP = "http"
    TCP = "tcp"
    DNS = "dns"
    DATABASE = "database"
    COMMAND = "command"

    @property
    def display_name(self) -> str:
        return _CHECK_DISPLAY_NAMES[self]


_CHECK_DISPLAY_NAMES = {
    HealthCheckType.HTTP: "HTTP",
    HealthCheckType.TCP: "TCP",
    HealthCheckType.DNS: "DNS",
    HealthCheckType.DATABASE: "Database",
    HealthCheckType.COMMAND: "Command",
}


class HealthCheckBase(BaseModel):
    id: str
    name: str
    description: str = ""
    endpoint: str
    timeout_seconds: float = Field(default=30.0)
    retries: int = Field(default=3)
    retry_delay_seconds: float = Field(default=5.0)
    critical: bool = Field(
        default=True,
        description="A failing critical check aborts (pre) or rolls back (post) the cutover.",
    )
    enabled: bool = True
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.id:
            errors.append("health check ID is required")
        if not self.name:
            errors.append("health check name is required")
        if not self.endpoint:
            errors.append("endpoint is required")
        if self.timeout_seconds <= 0:
            errors.append("timeout must be positive")
        if self.retries < 0:
            errors.append("retries must be non-negative")
        if self.retry_delay_seconds < 0:
            errors.append("retry delay must be non-negative")
        errors.extend(self._type_errors())
        return errors

    def _type_errors(self) -> list[str]:
        return []


class HTTPHealthCheck(HealthCheckBase):
    type: Literal["http"] = "http"
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    expected_status: int | None = None
    expected_body: str = ""
    expected_body_is_regex: bool = False
    skip_tls_verify: bool = False

    def _type_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.expected_status and not self.expected_body:
            errors.append("HTTP check requires expected status or body")
        if self.expected_body_is_regex and self.expected_body:
            try:
                re.compile(self.expected_body)
            except re.error as exc:
                errors.append(f"invalid regex pattern: {exc}")
        return errors


class TCPHealthCheck(HealthCheckBase):
    type: Literal["tcp"] = "tcp"


class DNSHealthCheck(HealthCheckBase):
    type: Literal["dns"] = "dns"
    expected_dns_value: str = ""

    def _type_errors(self) -> list[str]:
        if not self.expected_dns_value:
            return ["DNS check requires expected value"]
        return []


class DatabaseHealthCheck(HealthCheckBase):
    """Database reachability check.

    ``query`` is carried for operators and runbooks; execution only
    verifies that the database port accepts connections.
    """

    type: Literal["database"] = "database"
    query: str = "SELECT 1"


class CommandHealthCheck(HealthCheckBase):
    type: Literal["command"] = "command"
    command: str = ""
    expected_output: str = ""

    def _type_errors(self) -> list[str]:
        if not self.command:
            return ["command check requires a command"]
        return []


HealthCheck = Annotated[
    Union[
        HTTPHealthCheck,
        TCPHealthCheck,
        DNSHealthCheck,
        DatabaseHealthCheck,
        CommandHealthCheck,
    ],
    Field(discriminator="type"),
]


@dataclass
class HealthCheckResult:
    check_id: str
    check_name: str
    passed: bool = False
    status_code: int | None = None
    response: str = ""
    duration_seconds: float = 0.0
    attempts: int = 1
    error: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    details: dict[str, Any] = field(default_factory=dict)

    def mark_passed(self, duration_seconds: float) -> None:
        self.passed = True
        self.duration_seconds = duration_seconds
        self.error = ""

    def mark_failed(self, duration_seconds: float, error: str) -> None:
        self.passed = False
        self.duration_seconds = duration_seconds
        self.error = error


def new_http_health_check(
    id: str, name: str, url: str, expected_status: int = 200, **kwargs: Any
) -> HTTPHealthCheck:
    return HTTPHealthCheck(
        id=id, name=name, endpoint=url, expected_status=expected_status, **kwargs
    )


def new_tcp_health_check(id: str, name: str, host_port: str, **kwargs: Any) -> TCPHealthCheck:
    return TCPHealthCheck(id=id, name=name, endpoint=host_port, **kwargs)


def new_dns_health_check(
    id: str, name: str, domain: str, expected_value: str, **kwargs: Any
) -> DNSHealthCheck:
    return DNSHealthCheck(
        id=id, name=name, endpoint=domain, expected_dns_value=expected_value, **kwargs
    )


def new_database_health_check(
    id: str, name: str, connection_string: str, **kwargs: Any
) -> DatabaseHealthCheck:
    return DatabaseHealthCheck(id=id, name=name, endpoint=connection_string, **kwargs)


def new_command_health_check(
    id: str, name: str, command: str, expected_output: str = "", **kwargs: Any
) -> CommandHealthCheck:
    # Command checks have no network target; the command doubles as the endpoint.
    kwargs.setdefault("endpoint", command)
    return CommandHealthCheck(
        id=id, name=name, command=command, expected_output=expected_output, **kwargs
    )
