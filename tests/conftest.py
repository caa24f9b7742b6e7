from __future__ import annotations

import asyncio
import logging
import textwrap
from pathlib import Path

import pytest
from switchboard_agent.definitions.types import AgentFormat, CanonicalAgent
from switchboard_core.config import SwitchboardConfig
from switchboard_core.types import RunProfile, ServerOrigin, ServerSpec


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text).lstrip(), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def _reset_switchboard_logger():
    yield
    logger = logging.getLogger("switchboard")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def workspace(tmp_path):
    path = tmp_path / "workspace"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def user_home(tmp_path):
    path = tmp_path / "home"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def load_config(workspace, user_home):
    def _load(**env: str) -> SwitchboardConfig:
        return SwitchboardConfig.load(workspace, env={"HOME": str(user_home), **env})
    return _load


@pytest.fixture
def make_agent():
    def _make(
        name: str = "Reviewer",
        fmt: AgentFormat = AgentFormat.CODEX,
        tool_refs: tuple = (),
        servers: tuple[ServerSpec, ...] = (),
        run: RunProfile | None = None,
        tags: frozenset[str] = frozenset(),
        identifier: str | None = None,
    ) -> CanonicalAgent:
        slug = name.lower().replace(" ", "_")
        return CanonicalAgent(
            name=name,
            identifier=identifier or f"agent_{slug}",
            safe_name=slug,
            description=f"{name} agent",
            format=fmt,
            tags=tags,
            instructions=f"You are {name}.",
            tool_refs=tool_refs,
            run=run or RunProfile(),
            servers=servers,
        )
    return _make


def server(
    key: str,
    origin: ServerOrigin = ServerOrigin.DISCOVERED,
    command: str | None = None,
) -> ServerSpec:
    return ServerSpec(key=key, command=command or f"{key}-server", origin=origin)


class FakeProbe:
    """Stands in for launching a stdio server and listing its tools."""

    def __init__(
        self,
        tools: dict[str, set[str]] | None = None,
        fail: set[str] | None = None,
        hang: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.tools = tools or {}
        self.fail = fail or set()
        self.hang = hang or set()
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.max_active = 0

    async def __call__(self, spec: ServerSpec) -> set[str]:
        self.calls.append(spec.key)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if spec.key in self.hang:
                await asyncio.sleep(3600)
            await asyncio.sleep(self.delay)
            if spec.key in self.fail:
                raise RuntimeError(f"{spec.key} crashed")
            return set(self.tools.get(spec.key, set()))
        finally:
            self.active -= 1
