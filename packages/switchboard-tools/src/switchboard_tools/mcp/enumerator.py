"""Bounded-concurrency tool enumeration for stdio MCP servers."""
from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING

from fastmcp import Client
from fastmcp.client.transports import StdioTransport
from switchboard_core.logging import get_logger
from switchboard_core.types import EnumerationResult

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from switchboard_core.types import ServerSpec

    ProbeFn = Callable[[ServerSpec], Awaitable[set[str]]]

logger = get_logger("mcp.enumerator")


async def probe_stdio_server(spec: ServerSpec) -> set[str]:
    """Launch *spec*, list its tools, and shut it down.

    The transport is closed on every path, including cancellation by an
    enclosing timeout, so the child process never outlives the probe.
    """
    transport = StdioTransport(
        command=spec.command,
        args=list(spec.args),
        env=dict(spec.env) or None,
    )
    client = Client(transport)
    try:
        async with client:
            tools = await client.list_tools()
    finally:
        await transport.close()
    return {tool.name for tool in tools}


class ServerEnumerator:
    """Probes servers for their advertised tools.

    At most ``max_concurrency`` probes run at once and each one is bounded
    by ``timeout_s``. Results are cached by server fingerprint, so a server
    shared by several agents is launched once per enumerator.
    """

    def __init__(
        self,
        timeout_s: float = 4.0,
        max_concurrency: int = 8,
        probe: ProbeFn | None = None,
    ) -> None:
        self._timeout_s = timeout_s
        self._max_concurrency = max(1, max_concurrency)
        self._probe = probe_stdio_server if probe is None else probe
        self._results: dict[str, EnumerationResult] = {}

    @property
    def results(self) -> dict[str, EnumerationResult]:
        return dict(self._results)

    async def enumerate(
        self, servers: Iterable[ServerSpec],
    ) -> dict[str, EnumerationResult]:
        """Probe every server not probed yet; return results by fingerprint.

        Returns only after all probes have settled.
        """
        pending: dict[str, ServerSpec] = {}
        for spec in servers:
            if spec.fingerprint not in self._results:
                pending.setdefault(spec.fingerprint, spec)

        if pending:
            semaphore = asyncio.Semaphore(self._max_concurrency)
            outcomes = await asyncio.gather(*(
                self._probe_one(spec, semaphore) for spec in pending.values()
            ))
            for fingerprint, result in zip(pending, outcomes, strict=True):
                self._results[fingerprint] = result

            failed = sum(1 for r in outcomes if not r.ok)
            logger.info(
                "Enumerated %d MCP server(s), %d failed", len(outcomes), failed,
            )

        return dict(self._results)

    async def _probe_one(
        self, spec: ServerSpec, semaphore: asyncio.Semaphore,
    ) -> EnumerationResult:
        async with semaphore:
            t0 = time.monotonic()
            try:
                tools = await asyncio.wait_for(self._probe(spec), timeout=self._timeout_s)
            except TimeoutError:
                elapsed_ms = (time.monotonic() - t0) * 1000
                logger.warning(
                    "Enumeration of '%s' timed out after %.0f ms", spec.key, elapsed_ms,
                )
                return EnumerationResult(
                    key=spec.key,
                    error="timed out",
                    elapsed_ms=elapsed_ms,
                    timed_out=True,
                )
            except Exception as exc:
                elapsed_ms = (time.monotonic() - t0) * 1000
                logger.warning(
                    "Enumeration of '%s' failed: %s: %s",
                    spec.key, type(exc).__name__, exc,
                )
                return EnumerationResult(
                    key=spec.key,
                    error=f"{type(exc).__name__}: {exc}",
                    elapsed_ms=elapsed_ms,
                )

            elapsed_ms = (time.monotonic() - t0) * 1000
            logger.debug(
                "Server '%s' advertises %d tool(s) in %.0f ms",
                spec.key, len(tools), elapsed_ms,
            )
            return EnumerationResult(
                key=spec.key,
                tools=frozenset(tools),
                elapsed_ms=elapsed_ms,
            )
