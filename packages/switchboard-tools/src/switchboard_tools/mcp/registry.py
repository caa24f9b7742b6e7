"""Server attachment: merge, gate and enumerate MCP servers per agent."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from switchboard_core.config import ProbeFailurePolicy
from switchboard_core.errors import ServerAttachError
from switchboard_core.logging import get_logger
from switchboard_core.types import (
    BareToolRef,
    NamespacedToolRef,
    ServerOrigin,
)

from switchboard_tools.mcp.enumerator import ServerEnumerator

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from switchboard_agent.definitions.types import CanonicalAgent
    from switchboard_core.config import EnumerationConfig
    from switchboard_core.diagnostics import Diagnostics
    from switchboard_core.types import EnumerationResult, ServerSpec, ToolRef

logger = get_logger("mcp.registry")


def merge_servers(
    embedded: Iterable[ServerSpec],
    discovered: Iterable[ServerSpec],
) -> list[ServerSpec]:
    """Union by key; an embedded server wins over a discovered one.

    Embedded servers come first in declaration order, followed by the
    remaining discovered servers in discovery order.
    """
    merged: dict[str, ServerSpec] = {}
    for spec in embedded:
        merged.setdefault(spec.key, spec)
    for spec in discovered:
        merged.setdefault(spec.key, spec)
    return list(merged.values())


@dataclass(frozen=True, slots=True)
class AttachSettings:
    enumerate: bool = True
    referenced_only: bool = True
    max_servers: int = 128
    policy: ProbeFailurePolicy = ProbeFailurePolicy.FALLBACK_NONE

    @classmethod
    def from_config(cls, config: EnumerationConfig) -> AttachSettings:
        return cls(
            enumerate=config.enabled,
            referenced_only=config.referenced_only,
            max_servers=config.max_servers,
            policy=config.policy,
        )


def _namespaced_keys(agent: CanonicalAgent) -> set[str]:
    return {r.server for r in agent.tool_refs if isinstance(r, NamespacedToolRef)}


def _has_bare(agent: CanonicalAgent) -> bool:
    return any(isinstance(r, BareToolRef) for r in agent.tool_refs)


class ServerRegistry:
    """Decides which MCP servers each agent gets.

    All probing for all agents happens in one enumeration pass; decisions
    are made only after every probe has settled, and each agent's server
    set is replaced in one step.
    """

    def __init__(
        self,
        settings: AttachSettings | None = None,
        enumerator: ServerEnumerator | None = None,
    ) -> None:
        self._settings = AttachSettings() if settings is None else settings
        self._enumerator = ServerEnumerator() if enumerator is None else enumerator

    def candidates(
        self,
        agent: CanonicalAgent,
        discovered: Sequence[ServerSpec],
    ) -> list[ServerSpec]:
        """Merged, reference-gated and capped candidate servers for *agent*.

        With enumeration on, an agent with bare references keeps every
        discovered server as a candidate: the references are resolved by
        probing, and only servers that end up referenced are attached.
        """
        merged = merge_servers(agent.servers, discovered)
        resolves_bare = self._settings.enumerate and _has_bare(agent)
        if self._settings.referenced_only and not resolves_bare:
            wanted = _namespaced_keys(agent)
            merged = [
                s for s in merged
                if s.origin is ServerOrigin.EMBEDDED or s.key in wanted
            ]
        if len(merged) > self._settings.max_servers:
            logger.info(
                "Agent %s has %d candidate servers; keeping the first %d",
                agent.identifier, len(merged), self._settings.max_servers,
            )
            merged = merged[: self._settings.max_servers]
        return merged

    @staticmethod
    def _needs_probe(agent: CanonicalAgent, candidates: list[ServerSpec]) -> list[ServerSpec]:
        if _has_bare(agent):
            return candidates
        wanted = _namespaced_keys(agent)
        return [s for s in candidates if s.key in wanted]

    async def attach(
        self,
        agents: Sequence[CanonicalAgent],
        discovered: Sequence[ServerSpec],
        diagnostics: Diagnostics,
    ) -> list[CanonicalAgent]:
        plans = [(agent, self.candidates(agent, discovered)) for agent in agents]

        if not self._settings.enumerate:
            attached = []
            for agent, candidates in plans:
                self._report_missing(agent, candidates, diagnostics)
                attached.append(replace(agent, servers=tuple(candidates)))
            return attached

        results = await self._enumerator.enumerate(
            spec for agent, candidates in plans
            for spec in self._needs_probe(agent, candidates)
        )
        return [
            self._gate(agent, candidates, results, diagnostics)
            for agent, candidates in plans
        ]

    def _report_missing(
        self,
        agent: CanonicalAgent,
        candidates: list[ServerSpec],
        diagnostics: Diagnostics,
    ) -> None:
        keys = {s.key for s in candidates}
        for key in sorted(_namespaced_keys(agent) - keys):
            diagnostics.report(
                ServerAttachError,
                agent.identifier,
                f"no MCP server named '{key}' is configured",
            )

    def _gate(
        self,
        agent: CanonicalAgent,
        candidates: list[ServerSpec],
        results: dict[str, EnumerationResult],
        diagnostics: Diagnostics,
    ) -> CanonicalAgent:
        policy = self._settings.policy
        by_key = {s.key: s for s in candidates}
        probed = [s for s in candidates if s.fingerprint in results]
        selected: set[str] = set()
        failed: list[ServerSpec] = []

        for spec in probed:
            result = results[spec.fingerprint]
            if result.ok:
                continue
            failed.append(spec)
            if spec.origin is ServerOrigin.DISCOVERED:
                if policy is ProbeFailurePolicy.FALLBACK_ALL:
                    selected.add(spec.key)
                else:
                    logger.debug(
                        "Dropping '%s' for %s: enumeration failed (%s)",
                        spec.key, agent.identifier, result.error,
                    )

        def advertises(spec: ServerSpec, tool: str) -> bool:
            result = results.get(spec.fingerprint)
            return result is not None and result.ok and tool in result.tools

        def unsatisfied(ref: ToolRef, suspects: list[ServerSpec]) -> None:
            if policy is ProbeFailurePolicy.STRICT and suspects:
                errors = ", ".join(
                    f"{s.key}: {results[s.fingerprint].error}" for s in suspects
                )
                diagnostics.report(
                    ServerAttachError,
                    agent.identifier,
                    f"reference '{ref}' is unsatisfied ({errors})",
                )
            else:
                logger.debug("Reference '%s' of %s is unsatisfied", ref, agent.identifier)

        refs: list[ToolRef] = []
        satisfied = 0
        for ref in agent.tool_refs:
            if isinstance(ref, NamespacedToolRef):
                refs.append(ref)
                spec = by_key.get(ref.server)
                if spec is None:
                    diagnostics.report(
                        ServerAttachError,
                        agent.identifier,
                        f"no MCP server named '{ref.server}' is configured",
                    )
                elif advertises(spec, ref.tool):
                    selected.add(spec.key)
                    satisfied += 1
                elif spec in failed:
                    unsatisfied(ref, [spec])
                else:
                    diagnostics.report(
                        ServerAttachError,
                        agent.identifier,
                        f"server '{spec.key}' does not advertise tool '{ref.tool}'",
                        level=logging.INFO,
                    )
                continue

            matches = [s for s in candidates if advertises(s, ref.tool)]
            if not matches:
                refs.append(ref)
                unsatisfied(ref, failed)
                continue
            if len(matches) > 1:
                logger.info(
                    "Tool '%s' of %s is offered by %s; using '%s'",
                    ref.tool, agent.identifier,
                    ", ".join(s.key for s in matches), matches[0].key,
                )
            selected.add(matches[0].key)
            refs.append(NamespacedToolRef(server=matches[0].key, tool=ref.tool))
            satisfied += 1

        servers = tuple(
            s for s in candidates
            if s.origin is ServerOrigin.EMBEDDED or s.key in selected
        )
        logger.info(
            "Agent %s: %d server(s) attached, %d/%d tool reference(s) satisfied",
            agent.identifier, len(servers), satisfied, len(agent.tool_refs),
        )
        return replace(agent, tool_refs=tuple(dict.fromkeys(refs)), servers=servers)
