"""Execution engines that run one agent task.

An engine receives a fully assembled :class:`ExecutionProfile` and reports
an :class:`EngineResult`. Engines raise :class:`EngineError` when the agent
could not be run at all; a run that completes unsuccessfully is reported
through ``EngineResult.ok``.
"""
from __future__ import annotations

import asyncio
import json
import re
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from switchboard_core.errors import EngineError
from switchboard_core.logging import get_logger
from switchboard_core.types import RunProfile

if TYPE_CHECKING:
    from switchboard_core.types import ServerSpec

logger = get_logger("engine")

_MAX_OUTPUT_BYTES = 1024 * 1024  # 1 MiB

# RunProfile fields passed as dedicated CLI flags rather than -c overrides
_FLAG_FIELDS = {"model": "--model", "sandbox_mode": "--sandbox"}
# RunProfile fields whose config key differs from the field name
_CONFIG_KEYS = {"tools_web_search_request": "tools.web_search"}
_BARE_KEY = re.compile(r"[A-Za-z0-9_-]+")


@dataclass(frozen=True, slots=True)
class ExecutionProfile:
    """Everything the engine needs for one call."""
    identifier: str
    profile_name: str
    task: str
    cwd: Path
    instructions: str = ""
    run: RunProfile = field(default_factory=RunProfile)
    servers: tuple[ServerSpec, ...] = ()


@dataclass(frozen=True, slots=True)
class EngineResult:
    ok: bool
    output: str
    stderr: str = ""
    exit_code: int = 0
    duration_ms: float = 0.0


@runtime_checkable
class ExecutionEngine(Protocol):
    """Runs an agent task to completion."""

    async def execute(self, profile: ExecutionProfile) -> EngineResult: ...


def toml_value(value: Any) -> str:
    """Render a Python value as an inline TOML value."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, str):
        # JSON string escapes are valid in TOML basic strings
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, list | tuple):
        return "[" + ", ".join(toml_value(v) for v in value) + "]"
    if isinstance(value, dict):
        items = (f"{toml_key(str(k))} = {toml_value(v)}" for k, v in value.items())
        return "{" + ", ".join(items) + "}"
    msg = f"Cannot encode {type(value).__name__} as TOML"
    raise TypeError(msg)


def toml_key(key: str) -> str:
    return key if _BARE_KEY.fullmatch(key) else json.dumps(key)


def build_codex_args(profile: ExecutionProfile, last_message: Path | None = None) -> list[str]:
    """Translate a profile into ``codex exec`` arguments.

    Only explicitly set run fields are passed; everything else is left to
    the engine's own configuration.
    """
    args = ["exec", "--skip-git-repo-check", "--cd", str(profile.cwd)]
    overrides: list[str] = []

    for name, value in profile.run.explicit().items():
        flag = _FLAG_FIELDS.get(name)
        if flag is not None:
            args += [flag, str(value)]
        else:
            overrides.append(f"{_CONFIG_KEYS.get(name, name)}={toml_value(value)}")

    if profile.instructions:
        overrides.append(f"instructions={toml_value(profile.instructions)}")

    for spec in profile.servers:
        prefix = f"mcp_servers.{toml_key(spec.key)}"
        overrides.append(f"{prefix}.command={toml_value(spec.command)}")
        overrides.append(f"{prefix}.args={toml_value(list(spec.args))}")
        if spec.env:
            overrides.append(f"{prefix}.env={toml_value(spec.env)}")

    for override in overrides:
        args += ["-c", override]
    if last_message is not None:
        args += ["--output-last-message", str(last_message)]
    args += ["--", profile.task]
    return args


def _decode(data: bytes) -> str:
    return data[:_MAX_OUTPUT_BYTES].decode("utf-8", errors="replace")


class CodexExecEngine:
    """Runs agents through the ``codex exec`` command line."""

    def __init__(self, command: str = "codex", timeout_seconds: float = 1800) -> None:
        self._command = command
        self._timeout = timeout_seconds

    async def execute(self, profile: ExecutionProfile) -> EngineResult:
        with tempfile.TemporaryDirectory(prefix="switchboard_") as tmp:
            last_message = Path(tmp) / "last_message.txt"
            args = build_codex_args(profile, last_message)

            logger.info(
                "Running %s (profile %s) in %s",
                profile.identifier, profile.profile_name, profile.cwd,
            )
            t0 = time.monotonic()
            try:
                proc = await asyncio.create_subprocess_exec(
                    self._command, *args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(profile.cwd),
                )
            except OSError as exc:
                msg = f"Cannot launch {self._command!r} for {profile.identifier}: {exc}"
                raise EngineError(msg) from exc

            try:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    proc.communicate(), timeout=self._timeout,
                )
            except TimeoutError as exc:
                # Kill the child and reap it to avoid zombies.
                proc.kill()
                await proc.wait()
                msg = f"{profile.identifier} timed out after {self._timeout}s"
                raise EngineError(msg) from exc
            except asyncio.CancelledError:
                proc.kill()
                await proc.wait()
                raise

            duration_ms = (time.monotonic() - t0) * 1000
            stdout = _decode(stdout_bytes)
            if last_message.is_file():
                stdout = last_message.read_text(encoding="utf-8", errors="replace")

        return EngineResult(
            ok=proc.returncode == 0,
            output=stdout.strip(),
            stderr=_decode(stderr_bytes),
            exit_code=proc.returncode or 0,
            duration_ms=duration_ms,
        )


def render_dry_run(profile: ExecutionProfile) -> str:
    """Assemble a readable prompt/profile dump without calling a model."""
    sections: list[str] = [f"# Agent: {profile.identifier} (profile {profile.profile_name})"]
    sections.append(f"\nWorking directory: {profile.cwd}\n")

    run = profile.run.explicit()
    if run:
        sections.append("## Run Profile\n")
        for key, value in run.items():
            sections.append(f"- {key} = {toml_value(value)}")
        sections.append("")

    if profile.servers:
        sections.append("## MCP Servers\n")
        for spec in profile.servers:
            sections.append(f"- {spec.key}: {' '.join([spec.command, *spec.args])}")
        sections.append("")

    if profile.instructions:
        sections.append("## Instructions\n")
        sections.append(profile.instructions)
        sections.append("")

    sections.append("## Task\n")
    sections.append(profile.task)
    return "\n".join(sections)


class DryRunEngine:
    """Returns the assembled prompt instead of running anything."""

    async def execute(self, profile: ExecutionProfile) -> EngineResult:
        return EngineResult(ok=True, output=render_dry_run(profile))
