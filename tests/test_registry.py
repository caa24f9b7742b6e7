from __future__ import annotations

import pytest
from conftest import FakeProbe, server
from switchboard_core.config import ProbeFailurePolicy
from switchboard_core.diagnostics import Diagnostics
from switchboard_core.errors import ServerAttachError
from switchboard_core.types import BareToolRef, NamespacedToolRef, ServerOrigin, ServerSpec
from switchboard_tools.mcp.enumerator import ServerEnumerator
from switchboard_tools.mcp.registry import AttachSettings, ServerRegistry, merge_servers

EMBEDDED = ServerOrigin.EMBEDDED


def _registry(probe: FakeProbe | None = None, **settings) -> ServerRegistry:
    return ServerRegistry(
        AttachSettings(**settings),
        ServerEnumerator(timeout_s=1.0, probe=probe or FakeProbe()),
    )


def _keys(agent) -> list[str]:
    return [s.key for s in agent.servers]


class TestMergeServers:
    def test_embedded_wins(self):
        own = server("fs", origin=EMBEDDED, command="own-fs")
        merged = merge_servers([own], [server("git"), server("fs")])
        assert [s.key for s in merged] == ["fs", "git"]
        assert merged[0] is own

    def test_order(self):
        merged = merge_servers([server("b", origin=EMBEDDED)], [server("c"), server("a")])
        assert [s.key for s in merged] == ["b", "c", "a"]

    def test_records_with_env_are_hashable(self, make_agent):
        spec = ServerSpec(key="fs", command="fs-server", env={"ROOT": "/srv"})
        agent = make_agent(servers=(spec,))
        assert hash(spec) == hash(ServerSpec(key="fs", command="fs-server", env={"ROOT": "/srv"}))
        assert {agent, agent} == {agent}


class TestCandidates:
    def test_referenced_only(self, make_agent):
        agent = make_agent(
            tool_refs=(NamespacedToolRef(server="fs", tool="read_file"),),
            servers=(server("local", origin=EMBEDDED),),
        )
        candidates = _registry().candidates(agent, [server("fs"), server("git")])
        assert [s.key for s in candidates] == ["local", "fs"]

    def test_bare_refs_keep_discovered_servers(self, make_agent):
        agent = make_agent(tool_refs=(BareToolRef("search_docs"),))
        candidates = _registry().candidates(agent, [server("docs"), server("git")])
        assert [s.key for s in candidates] == ["docs", "git"]

    def test_bare_refs_gated_without_enumeration(self, make_agent):
        agent = make_agent(tool_refs=(BareToolRef("search_docs"),))
        candidates = _registry(enumerate=False).candidates(agent, [server("docs")])
        assert candidates == []

    def test_all_servers(self, make_agent):
        candidates = _registry(referenced_only=False).candidates(
            make_agent(), [server("fs"), server("git")],
        )
        assert [s.key for s in candidates] == ["fs", "git"]

    def test_cap(self, make_agent):
        candidates = _registry(referenced_only=False, max_servers=2).candidates(
            make_agent(), [server("a"), server("b"), server("c")],
        )
        assert [s.key for s in candidates] == ["a", "b"]


class TestAttachWithoutEnumeration:
    async def test_attaches_candidates_unprobed(self, make_agent):
        probe = FakeProbe()
        agent = make_agent(tool_refs=(BareToolRef("read_file"),))
        (attached,) = await _registry(probe, enumerate=False, referenced_only=False).attach(
            [agent], [server("fs"), server("git")], Diagnostics(),
        )
        assert _keys(attached) == ["fs", "git"]
        assert attached.tool_refs == agent.tool_refs
        assert probe.calls == []

    async def test_missing_server_reported(self, make_agent):
        agent = make_agent(tool_refs=(NamespacedToolRef(server="db", tool="query"),))
        diagnostics = Diagnostics()
        (attached,) = await _registry(enumerate=False).attach([agent], [server("fs")], diagnostics)
        assert attached.servers == ()
        assert diagnostics.count(ServerAttachError) == 1


class TestAttachWithEnumeration:
    async def test_bare_ref_resolved_with_default_settings(self, make_agent):
        probe = FakeProbe(tools={"docs": {"search_docs"}, "git": {"log"}})
        agent = make_agent(tool_refs=(BareToolRef("search_docs"),))
        registry = ServerRegistry(
            AttachSettings(), ServerEnumerator(timeout_s=1.0, probe=probe),
        )
        (attached,) = await registry.attach(
            [agent], [server("docs"), server("git")], Diagnostics(),
        )
        assert sorted(probe.calls) == ["docs", "git"]
        assert _keys(attached) == ["docs"]
        assert attached.tool_refs == (NamespacedToolRef(server="docs", tool="search_docs"),)

    async def test_bare_ref_resolved(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}, "git": {"log"}})
        agent = make_agent(tool_refs=(BareToolRef("read_file"),))
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs"), server("git")], Diagnostics(),
        )
        assert attached.tool_refs == (NamespacedToolRef(server="fs", tool="read_file"),)
        assert _keys(attached) == ["fs"]

    async def test_ambiguous_bare_ref_uses_first(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}, "fs2": {"read_file"}})
        agent = make_agent(tool_refs=(BareToolRef("read_file"),))
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs2"), server("fs")], Diagnostics(),
        )
        assert attached.tool_refs == (NamespacedToolRef(server="fs2", tool="read_file"),)
        assert _keys(attached) == ["fs2"]

    async def test_unsatisfied_bare_ref_kept(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}})
        agent = make_agent(tool_refs=(BareToolRef("deploy"),))
        diagnostics = Diagnostics()
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs")], diagnostics,
        )
        assert attached.tool_refs == (BareToolRef("deploy"),)
        assert attached.servers == ()
        assert diagnostics.count() == 0

    async def test_namespaced_ref_probes_only_its_server(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}})
        agent = make_agent(tool_refs=(NamespacedToolRef(server="fs", tool="read_file"),))
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs"), server("git")], Diagnostics(),
        )
        assert _keys(attached) == ["fs"]
        assert probe.calls == ["fs"]

    async def test_tool_not_advertised(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}})
        ref = NamespacedToolRef(server="fs", tool="write_file")
        diagnostics = Diagnostics()
        (attached,) = await _registry(probe).attach(
            [make_agent(tool_refs=(ref,))], [server("fs")], diagnostics,
        )
        assert attached.servers == ()
        assert attached.tool_refs == (ref,)
        assert diagnostics.count(ServerAttachError) == 1

    async def test_agent_without_refs_gets_embedded_only(self, make_agent):
        probe = FakeProbe(tools={"local": {"x"}, "fs": {"read_file"}})
        agent = make_agent(servers=(server("local", origin=EMBEDDED),))
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs")], Diagnostics(),
        )
        assert _keys(attached) == ["local"]
        assert probe.calls == []

    async def test_probe_shared_between_agents(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}})
        ref = NamespacedToolRef(server="fs", tool="read_file")
        agents = [
            make_agent("Reviewer", tool_refs=(ref,)),
            make_agent("Writer", tool_refs=(ref,)),
        ]
        attached = await _registry(probe).attach(agents, [server("fs")], Diagnostics())
        assert [_keys(a) for a in attached] == [["fs"], ["fs"]]
        assert probe.calls == ["fs"]

    async def test_resolved_duplicate_refs_collapse(self, make_agent):
        probe = FakeProbe(tools={"fs": {"read_file"}})
        agent = make_agent(tool_refs=(
            NamespacedToolRef(server="fs", tool="read_file"),
            BareToolRef("read_file"),
        ))
        (attached,) = await _registry(probe, referenced_only=False).attach(
            [agent], [server("fs")], Diagnostics(),
        )
        assert attached.tool_refs == (NamespacedToolRef(server="fs", tool="read_file"),)


class TestProbeFailurePolicies:
    REF = NamespacedToolRef(server="fs", tool="read_file")

    async def _attach(self, make_agent, policy):
        diagnostics = Diagnostics()
        probe = FakeProbe(fail={"fs"})
        (attached,) = await _registry(probe, policy=policy).attach(
            [make_agent(tool_refs=(self.REF,))],
            [server("fs")],
            diagnostics,
        )
        return attached, diagnostics

    async def test_fallback_none_drops(self, make_agent):
        attached, diagnostics = await self._attach(make_agent, ProbeFailurePolicy.FALLBACK_NONE)
        assert attached.servers == ()
        assert diagnostics.count() == 0

    async def test_fallback_all_keeps(self, make_agent):
        attached, diagnostics = await self._attach(make_agent, ProbeFailurePolicy.FALLBACK_ALL)
        assert _keys(attached) == ["fs"]
        assert diagnostics.count() == 0

    async def test_strict_reports(self, make_agent):
        attached, diagnostics = await self._attach(make_agent, ProbeFailurePolicy.STRICT)
        assert attached.servers == ()
        (diagnostic,) = diagnostics.by_kind(ServerAttachError)
        assert "fs::read_file" in diagnostic.message
        assert "fs crashed" in diagnostic.message

    @pytest.mark.parametrize("policy", list(ProbeFailurePolicy))
    async def test_embedded_always_attached(self, make_agent, policy):
        probe = FakeProbe(fail={"local"})
        agent = make_agent(
            tool_refs=(BareToolRef("read_file"),),
            servers=(server("local", origin=EMBEDDED),),
        )
        (attached,) = await _registry(probe, policy=policy).attach(
            [agent], [], Diagnostics(),
        )
        assert _keys(attached) == ["local"]
        assert probe.calls == ["local"]
