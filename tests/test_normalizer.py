from __future__ import annotations

from pathlib import Path

import pytest
from conftest import write
from switchboard_agent.definitions.naming import safe_name, tool_identifier
from switchboard_agent.definitions.normalizer import normalize_record, normalize_records
from switchboard_agent.definitions.parser import (
    parse_claude_agent,
    parse_codex_toml,
    parse_vscode_chatmode,
)
from switchboard_agent.definitions.types import AgentFormat, RawAgentRecord
from switchboard_core.diagnostics import Diagnostics
from switchboard_core.errors import IdentifierCollisionError, NormalizationError
from switchboard_core.types import (
    BareToolRef,
    NamespacedToolRef,
    RunProfile,
    ServerOrigin,
)


def _record(
    fields: dict,
    fmt: AgentFormat = AgentFormat.CODEX,
    path: Path = Path("/agents/reviewer.toml"),
    body: str | None = None,
    search_rank: int = 0,
    prompt_path: Path | None = None,
) -> RawAgentRecord:
    return RawAgentRecord(
        format=fmt,
        source_path=path,
        fields=fields,
        body=body,
        search_rank=search_rank,
        prompt_path=prompt_path,
    )


class TestIdentifier:
    def test_safe_name(self):
        assert safe_name("Code Reviewer (v2)") == "code_reviewer_v2"
        assert safe_name("__Docs--Writer__") == "docs_writer"
        assert safe_name("!!!") == ""

    def test_tool_identifier(self):
        assert tool_identifier("agent_", "Code Reviewer") == "agent_code_reviewer"
        assert tool_identifier("agent_", "???") == ""

    @pytest.mark.parametrize(("fmt", "expected"), [
        (AgentFormat.CODEX, "agent_code_reviewer"),
        (AgentFormat.CLAUDE, "anth_code_reviewer"),
        (AgentFormat.VSCODE, "vsc_code_reviewer"),
    ])
    def test_default_prefixes(self, fmt, expected):
        agent = normalize_record(_record({"name": "Code Reviewer"}, fmt=fmt))
        assert agent.identifier == expected
        assert agent.safe_name == "code_reviewer"

    def test_custom_prefix(self):
        agent = normalize_record(
            _record({"name": "Reviewer"}), {AgentFormat.CODEX: "x_"},
        )
        assert agent.identifier == "x_reviewer"

    def test_missing_name(self):
        with pytest.raises(NormalizationError, match="name"):
            normalize_record(_record({"description": "nameless"}))

    def test_name_without_usable_characters(self):
        with pytest.raises(NormalizationError, match="empty identifier"):
            normalize_record(_record({"name": "???"}))

    def test_default_description(self):
        agent = normalize_record(_record({"name": "Reviewer", "description": "  "}))
        assert agent.description == "Agent 'Reviewer': Execute tasks via Codex"


class TestInstructions:
    def test_instructions_file_wins(self, tmp_path):
        write(tmp_path / "prompts" / "review.md", "From file.\n")
        prompt = write(tmp_path / "reviewer.prompt.md", "From sibling.\n")
        record = _record(
            {
                "name": "Reviewer",
                "instructions_file": "prompts/review.md",
                "instructions": "Inline.",
            },
            path=tmp_path / "reviewer.toml",
            prompt_path=prompt,
        )
        assert normalize_record(record).instructions == "From file."

    def test_unreadable_file_falls_back_to_inline(self, tmp_path):
        record = _record(
            {"name": "Reviewer", "instructions_file": "missing.md", "instructions": " Inline. "},
            path=tmp_path / "reviewer.toml",
        )
        assert normalize_record(record).instructions == "Inline."

    def test_inline_beats_sibling_prompt(self, tmp_path):
        prompt = write(tmp_path / "reviewer.prompt.md", "From sibling.\n")
        record = _record(
            {"name": "Reviewer", "instructions": "Inline."},
            path=tmp_path / "reviewer.toml",
            prompt_path=prompt,
        )
        assert normalize_record(record).instructions == "Inline."

    def test_sibling_prompt(self, tmp_path):
        prompt = write(tmp_path / "reviewer.prompt.md", "From sibling.\n")
        record = _record({"name": "Reviewer"}, path=tmp_path / "reviewer.toml", prompt_path=prompt)
        assert normalize_record(record).instructions == "From sibling."

    def test_no_instructions(self):
        assert normalize_record(_record({"name": "Reviewer"})).instructions == ""

    def test_front_matter_body(self):
        record = _record({"name": "Writer"}, fmt=AgentFormat.CLAUDE, body="Write clearly.")
        assert normalize_record(record).instructions == "Write clearly."


class TestRunProfile:
    def test_copied_verbatim(self):
        agent = normalize_record(_record({
            "name": "Reviewer",
            "run": {"model": "gpt-5", "sandbox_mode": "read-only", "include_plan_tool": False},
        }))
        assert agent.run.explicit() == {
            "model": "gpt-5",
            "sandbox_mode": "read-only",
            "include_plan_tool": False,
        }

    def test_unset_fields_stay_unset(self):
        agent = normalize_record(_record({"name": "Reviewer"}))
        assert agent.run == RunProfile()

    def test_invalid_table_dropped_whole(self):
        diagnostics = Diagnostics()
        agent = normalize_record(
            _record({
                "name": "Reviewer",
                "run": {"model": "gpt-5", "approval_policy": "sometimes"},
            }),
            diagnostics=diagnostics,
        )
        assert agent.run.is_empty()
        assert diagnostics.count(NormalizationError) == 1

    def test_invalid_boolean(self):
        diagnostics = Diagnostics()
        agent = normalize_record(
            _record({"name": "Reviewer", "run": {"include_plan_tool": "yes"}}),
            diagnostics=diagnostics,
        )
        assert agent.run.is_empty()
        assert diagnostics.count() == 1

    def test_front_matter_model(self):
        agent = normalize_record(_record(
            {"name": "Writer", "model": "sonnet", "model_provider": "anthropic"},
            fmt=AgentFormat.CLAUDE,
        ))
        assert agent.run.explicit() == {"model": "sonnet", "model_provider": "anthropic"}


class TestEmbeddedServers:
    def test_servers_from_table(self):
        agent = normalize_record(_record({
            "name": "Reviewer",
            "mcp_servers": {
                "fs": {"command": "npx", "args": ["-y", "fs"], "env": {"DEBUG": 1}},
            },
        }))
        (spec,) = agent.servers
        assert spec.key == "fs"
        assert spec.command == "npx"
        assert spec.args == ("-y", "fs")
        assert spec.env == {"DEBUG": "1"}
        assert spec.origin is ServerOrigin.EMBEDDED

    def test_entry_without_command_skipped(self):
        diagnostics = Diagnostics()
        agent = normalize_record(
            _record({
                "name": "Reviewer",
                "mcp_servers": {"broken": {"args": []}, "fs": {"command": "fs"}},
            }),
            diagnostics=diagnostics,
        )
        assert [s.key for s in agent.servers] == ["fs"]
        assert diagnostics.count(NormalizationError) == 1


class TestToolRefs:
    def test_refs_parsed_and_deduplicated(self):
        agent = normalize_record(_record({
            "name": "Reviewer",
            "tools": ["plan", "fs::read_file", "plan"],
            "tags": ["review", "review"],
        }))
        assert agent.tool_refs == (
            BareToolRef("plan"),
            NamespacedToolRef(server="fs", tool="read_file"),
        )
        assert agent.tags == frozenset({"review"})

    @pytest.mark.parametrize("parse", [
        lambda meta: parse_codex_toml(meta, Path("/agents/reviewer.toml")),
        lambda meta: parse_claude_agent(meta, "", Path("/agents/reviewer.agent.md")),
        lambda meta: parse_vscode_chatmode(meta, "", Path("/chatmodes/reviewer.chatmode.md")),
    ], ids=["codex", "claude", "vscode"])
    def test_string_and_list_tags_agree(self, parse):
        as_string = normalize_record(parse({"name": "Reviewer", "tags": "a, b ,c"}))
        as_list = normalize_record(parse({"name": "Reviewer", "tags": ["a", "b", "c"]}))
        assert as_string.tags == as_list.tags == frozenset({"a", "b", "c"})


class TestNormalizeRecords:
    def test_collision_keeps_first(self):
        first = _record({"name": "Reviewer"}, path=Path("/ws/.agents/reviewer.toml"))
        second = _record(
            {"name": "reviewer!"}, path=Path("/home/.agents/reviewer.toml"), search_rank=2,
        )
        diagnostics = Diagnostics()
        agents = normalize_records([second, first], None, diagnostics)

        assert [a.source_path for a in agents] == [first.source_path]
        assert diagnostics.count(IdentifierCollisionError) == 1

    def test_one_diagnostic_per_dropped_record(self):
        records = [
            _record({"name": "Reviewer"}, path=Path(f"/agents/{i}.toml")) for i in range(3)
        ]
        diagnostics = Diagnostics()
        agents = normalize_records(records, None, diagnostics)
        assert len(agents) == 1
        assert diagnostics.count(IdentifierCollisionError) == 2

    def test_formats_do_not_collide(self):
        records = [
            _record({"name": "Reviewer"}),
            _record({"name": "Reviewer"}, fmt=AgentFormat.CLAUDE, path=Path("/a/r.agent.md")),
        ]
        agents = normalize_records(records, None, Diagnostics())
        assert [a.identifier for a in agents] == ["agent_reviewer", "anth_reviewer"]

    def test_order_independent(self):
        records = [
            _record({"name": "Planner"}, fmt=AgentFormat.VSCODE, path=Path("/c/p.chatmode.md")),
            _record({"name": "Reviewer"}, path=Path("/b/reviewer.toml"), search_rank=1),
            _record({"name": "Reviewer"}, path=Path("/a/reviewer.toml")),
            _record({"name": "Writer"}, fmt=AgentFormat.CLAUDE, path=Path("/a/w.agent.md")),
        ]
        forward = normalize_records(records, None, Diagnostics())
        backward = normalize_records(list(reversed(records)), None, Diagnostics())

        assert forward == backward
        assert [a.identifier for a in forward] == [
            "agent_reviewer", "anth_writer", "vsc_planner",
        ]
        assert forward[0].source_path == Path("/a/reviewer.toml")

    def test_failures_skipped(self):
        diagnostics = Diagnostics()
        agents = normalize_records(
            [_record({}, path=Path("/a/x.toml")), _record({"name": "Reviewer"})],
            None,
            diagnostics,
        )
        assert [a.identifier for a in agents] == ["agent_reviewer"]
        assert diagnostics.count(NormalizationError) == 1

    def test_idempotent(self):
        records = [_record({"name": "Reviewer", "tools": ["plan"]})]
        assert normalize_records(records, None, Diagnostics()) == normalize_records(
            records, None, Diagnostics(),
        )
