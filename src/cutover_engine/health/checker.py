"""Health check execution.

``HealthChecker.execute`` runs one check with its retry policy and always
returns a fresh ``HealthCheckResult``; protocol failures never escape as
exceptions. The checker holds no per-plan state and is shared across
concurrently executing plans.
"""

from __future__ import annotations

import asyncio
import logging
import re
import socket
import time
from collections.abc import Awaitable, Callable

import httpx

from cutover_engine.config import HealthCheckSettings
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
from cutover_engine.utils.cancellation import CancelToken, OperationCancelled

logger = logging.getLogger(__name__)

_DATABASE_DEFAULT_PORTS = (
    ("postgres", 5432),
    ("mysql", 3306),
    ("redis", 6379),
)
_FALLBACK_DATABASE_PORT = 5432


class HealthCheckError(Exception):
    """A single health check attempt failed."""


class HealthChecker:
    def __init__(
        self,
        settings: HealthCheckSettings | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or HealthCheckSettings()
        self._http_transport = http_transport
        self._strategies: dict[
            HealthCheckType, Callable[[HealthCheck, HealthCheckResult], Awaitable[None]]
        ] = {
            HealthCheckType.HTTP: self._check_http,
            HealthCheckType.TCP: self._check_tcp,
            HealthCheckType.DNS: self._check_dns,
            HealthCheckType.DATABASE: self._check_database,
            HealthCheckType.COMMAND: self._check_command,
        }

    async def execute(
        self, check: HealthCheck, cancel: CancelToken | None = None
    ) -> HealthCheckResult:
        cancel = cancel or CancelToken()
        result = HealthCheckResult(check_id=check.id, check_name=check.name)
        started = time.monotonic()

        strategy = self._strategies.get(HealthCheckType(check.type))
        if strategy is None:
            result.mark_failed(0.0, f"unsupported health check type: {check.type}")
            return result

        last_error = ""
        attempts = check.retries + 1
        for attempt in range(1, attempts + 1):
            result.attempts = attempt
            try:
                await cancel.guard(strategy(check, result))
            except OperationCancelled as exc:
                result.mark_failed(time.monotonic() - started, exc.reason)
                return result
            except HealthCheckError as exc:
                last_error = str(exc)
                logger.debug(
                    "Health check %s attempt %d/%d failed: %s",
                    check.id,
                    attempt,
                    attempts,
                    last_error,
                )
            else:
                result.mark_passed(time.monotonic() - started)
                return result

            if attempt < attempts:
                if await cancel.sleep(check.retry_delay_seconds):
                    result.mark_failed(time.monotonic() - started, cancel.reason or "cancelled")
                    return result

        result.mark_failed(time.monotonic() - started, last_error)
        return result

    async def _check_http(self, check: HTTPHealthCheck, result: HealthCheckResult) -> None:
        timeout = check.timeout_seconds or self._settings.http_timeout_seconds
        client_kwargs: dict[str, object] = {
            "timeout": httpx.Timeout(timeout),
            "verify": not check.skip_tls_verify,
        }
        if self._http_transport is not None:
            client_kwargs["transport"] = self._http_transport

        limit = self._settings.max_response_bytes
        try:
            async with httpx.AsyncClient(**client_kwargs) as client:
                async with client.stream(
                    check.method or "GET",
                    check.endpoint,
                    headers=check.headers or None,
                    content=check.body or None,
                ) as response:
                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk[: limit - len(body)])
                        if len(body) >= limit:
                            break
        except httpx.HTTPError as exc:
            raise HealthCheckError(f"request failed: {exc}") from exc

        result.status_code = response.status_code
        result.response = body.decode("utf-8", errors="replace")
        result.details["status_code"] = response.status_code
        result.details["headers"] = dict(response.headers)

        if check.expected_status and response.status_code != check.expected_status:
            raise HealthCheckError(
                f"unexpected status: got {response.status_code}, expected {check.expected_status}"
            )

        if check.expected_body:
            if check.expected_body_is_regex:
                try:
                    pattern = re.compile(check.expected_body)
                except re.error as exc:
                    raise HealthCheckError(f"invalid regex pattern: {exc}") from exc
                if not pattern.search(result.response):
                    raise HealthCheckError(
                        f"response body does not match pattern: {check.expected_body}"
                    )
            elif check.expected_body not in result.response:
                raise HealthCheckError("response body does not contain expected text")

    async def _check_tcp(self, check: TCPHealthCheck, result: HealthCheckResult) -> None:
        await self._connect(check.endpoint, check.timeout_seconds, result)

    async def _connect(self, endpoint: str, timeout: float, result: HealthCheckResult) -> None:
        host, port = _split_host_port(endpoint)
        if port is None:
            raise HealthCheckError(f"TCP connection failed: missing port in address {endpoint}")

        timeout = timeout or self._settings.tcp_timeout_seconds
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=timeout
            )
        except asyncio.TimeoutError as exc:
            raise HealthCheckError(f"TCP connection to {endpoint} timed out") from exc
        except OSError as exc:
            raise HealthCheckError(f"TCP connection failed: {exc}") from exc

        peer = writer.get_extra_info("peername")
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

        result.response = f"TCP connection to {endpoint} successful"
        if peer:
            result.details["remote_addr"] = f"{peer[0]}:{peer[1]}"

    async def _check_dns(self, check: DNSHealthCheck, result: HealthCheckResult) -> None:
        hostname = hostname_from_endpoint(check.endpoint)
        loop = asyncio.get_running_loop()
        try:
            infos = await asyncio.wait_for(
                loop.getaddrinfo(hostname, None, proto=socket.IPPROTO_TCP),
                timeout=check.timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise HealthCheckError(f"DNS lookup for {hostname} timed out") from exc
        except OSError as exc:
            raise HealthCheckError(f"DNS lookup failed: {exc}") from exc

        addresses: list[str] = []
        for _, _, _, _, sockaddr in infos:
            address = str(sockaddr[0])
            if address not in addresses:
                addresses.append(address)

        result.response = ", ".join(addresses)
        result.details["resolved_addresses"] = addresses

        if check.expected_dns_value and check.expected_dns_value not in addresses:
            raise HealthCheckError(
                f"DNS lookup did not return expected value: {check.expected_dns_value} "
                f"(got: {result.response})"
            )

    async def _check_command(self, check: CommandHealthCheck, result: HealthCheckResult) -> None:
        timeout = check.timeout_seconds or self._settings.command_timeout_seconds
        try:
            process = await asyncio.create_subprocess_exec(
                self._settings.command_shell,
                "-c",
                check.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            raise HealthCheckError(f"command failed to start: {exc}") from exc

        try:
            output, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            await _terminate(process)
            raise HealthCheckError(f"command timed out after {timeout:g}s") from exc
        except asyncio.CancelledError:
            await _terminate(process)
            raise

        result.response = output.decode("utf-8", errors="replace")
        result.details["exit_code"] = process.returncode

        if process.returncode != 0:
            raise HealthCheckError(f"command failed: exit status {process.returncode}")
        if check.expected_output and check.expected_output not in result.response:
            raise HealthCheckError(
                f"command output does not contain expected text: {check.expected_output}"
            )

    async def _check_database(self, check: DatabaseHealthCheck, result: HealthCheckResult) -> None:
        # Reachability only: the query is not executed.
        address = database_address(check.endpoint)
        result.details["address"] = address
        await self._connect(address, check.timeout_seconds, result)


async def _terminate(process: asyncio.subprocess.Process) -> None:
    if process.returncode is None:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()


def hostname_from_endpoint(endpoint: str) -> str:
    """Strip scheme, path and port from an endpoint, leaving the hostname."""
    hostname = endpoint
    if "://" in hostname:
        hostname = hostname.split("://", 1)[1]
    hostname = hostname.split("/", 1)[0]
    if "@" in hostname:
        hostname = hostname.rsplit("@", 1)[1]
    if hostname.startswith("["):
        return hostname[1:].split("]", 1)[0]
    return hostname.split(":", 1)[0]


def database_address(endpoint: str) -> str:
    """Resolve ``host:port`` from a connection string such as ``postgres://u:p@db/app``."""
    host = endpoint
    if "://" in endpoint:
        host = endpoint.split("://", 1)[1]
        if "@" in host:
            host = host.rsplit("@", 1)[1]
        host = host.split("/", 1)[0]
        host = host.split("?", 1)[0]

    _, port = _split_host_port(host)
    if port is not None:
        return host

    scheme = endpoint.lower()
    for prefix, default_port in _DATABASE_DEFAULT_PORTS:
        if scheme.startswith(prefix):
            return f"{host}:{default_port}"
    return f"{host}:{_FALLBACK_DATABASE_PORT}"


def _split_host_port(address: str) -> tuple[str, int | None]:
    if address.startswith("["):
        host, _, rest = address[1:].partition("]")
        port_text = rest[1:] if rest.startswith(":") else ""
    elif address.count(":") == 1:
        host, _, port_text = address.partition(":")
    else:
        host, port_text = address, ""

    if not port_text:
        return host, None
    try:
        return host, int(port_text)
    except ValueError:
        return host, None
