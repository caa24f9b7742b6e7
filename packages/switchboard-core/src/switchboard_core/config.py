from __future__ import annotations

import enum
import os
import tomllib
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from switchboard_core.errors import ConfigError

if TYPE_CHECKING:
    from collections.abc import Mapping

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _load_toml(path: Path) -> dict:
    """Load a TOML file, returning empty dict if missing or unreadable."""
    if not path.is_file():
        return {}
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except OSError:
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"{path}: {exc}") from exc


def _deep_merge(base: dict, override: dict) -> dict:
    """Merge override into base (1 level deep for TOML sections)."""
    merged = dict(base)
    for key, val in override.items():
        if (
            key in merged
            and isinstance(merged[key], dict)
            and isinstance(val, dict)
        ):
            merged[key] = {**merged[key], **val}
        else:
            merged[key] = val
    return merged


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in value.replace(",", " ").split() if part.strip()]


def _coerce(where: str, value: Any, annotation: str) -> Any:
    """Check or convert *value* to the type named by a field annotation.

    Env values arrive as strings and are converted; TOML values already
    carry a type and are only checked.
    """
    if annotation == "bool":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE:
            return True
        if isinstance(value, str) and value.strip().lower() in _FALSE:
            return False
        raise ConfigError(f"{where}: expected a boolean, got {value!r}")
    if annotation == "int":
        if isinstance(value, bool):
            raise ConfigError(f"{where}: expected an integer, got {value!r}")
        if isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError as exc:
            raise ConfigError(f"{where}: expected an integer, got {value!r}") from exc
    if annotation == "list[str]":
        if isinstance(value, str):
            return _split_list(value)
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return list(value)
        raise ConfigError(f"{where}: expected a list of strings, got {value!r}")
    if not isinstance(value, str):
        raise ConfigError(f"{where}: expected a string, got {value!r}")
    if annotation == "str | None" and not value.strip():
        return None
    return value


class ProbeFailurePolicy(enum.Enum):
    """What to do with a server whose tool enumeration failed or timed out."""
    STRICT = "strict"
    FALLBACK_ALL = "all"
    FALLBACK_NONE = "none"


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    level: str = "INFO"
    json: bool = False
    to_file: bool = False
    dir: str | None = None


@dataclass(frozen=True, slots=True)
class AgentSourcesConfig:
    enable_codex: bool = True
    enable_anthropic: bool = True
    enable_vscode: bool = True
    codex_dirs: list[str] = field(default_factory=list)
    anthropic_dirs: list[str] = field(default_factory=list)
    vscode_dirs: list[str] = field(default_factory=list)
    prefix_codex: str = "agent_"
    prefix_anthropic: str = "anth_"
    prefix_vscode: str = "vsc_"
    filter: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class DiscoveryConfig:
    enabled: bool = True
    vscode_user_mcp: str | None = None
    skip_self: bool = True


@dataclass(frozen=True, slots=True)
class EnumerationConfig:
    enabled: bool = True
    referenced_only: bool = True
    timeout_ms: int = 4000
    max_concurrency: int = 8
    max_servers: int = 128
    strict: bool = False
    fallback: str = "none"  # none | all

    @property
    def policy(self) -> ProbeFailurePolicy:
        if self.strict:
            return ProbeFailurePolicy.STRICT
        return ProbeFailurePolicy(self.fallback)


@dataclass(frozen=True, slots=True)
class ToolMapConfig:
    enabled: bool = True
    allow_custom_servers: bool = True


@dataclass(frozen=True, slots=True)
class ModelMapConfig:
    enabled: bool = True
    file: str | None = None
    strict: bool = False
    override_provider: bool = False
    normalize_provider: bool = True


@dataclass(frozen=True, slots=True)
class ServerConfig:
    name: str = "switchboard"
    transport: str = "stdio"  # stdio | http
    host: str = "127.0.0.1"
    port: int = 8081


@dataclass(frozen=True, slots=True)
class EngineConfig:
    kind: str = "codex"  # codex | dry-run
    command: str = "codex"
    timeout_seconds: int = 1800


_SECTIONS: dict[str, type] = {
    "logging": LoggingConfig,
    "agents": AgentSourcesConfig,
    "discovery": DiscoveryConfig,
    "enumeration": EnumerationConfig,
    "toolmap": ToolMapConfig,
    "model_map": ModelMapConfig,
    "server": ServerConfig,
    "engine": EngineConfig,
}

# Environment variable -> (section, field)
_ENV_KEYS: dict[str, tuple[str, str]] = {
    "LOG_LEVEL": ("logging", "level"),
    "LOG_JSON": ("logging", "json"),
    "LOG_TO_FILE": ("logging", "to_file"),
    "LOG_DIR": ("logging", "dir"),
    "AGENTS_ENABLE_CODEX": ("agents", "enable_codex"),
    "AGENTS_ENABLE_ANTHROPIC": ("agents", "enable_anthropic"),
    "AGENTS_ENABLE_VSCODE": ("agents", "enable_vscode"),
    "AGENTS_DIRS": ("agents", "codex_dirs"),
    "ANTHROPIC_AGENTS_DIRS": ("agents", "anthropic_dirs"),
    "VSCODE_CHATMODES_DIRS": ("agents", "vscode_dirs"),
    "AGENTS_PREFIX_CODEX": ("agents", "prefix_codex"),
    "AGENTS_PREFIX_ANTHROPIC": ("agents", "prefix_anthropic"),
    "AGENTS_PREFIX_VSCODE": ("agents", "prefix_vscode"),
    "AGENTS_FILTER": ("agents", "filter"),
    "AGENTS_MCP_DISCOVERY": ("discovery", "enabled"),
    "VSCODE_USER_MCP": ("discovery", "vscode_user_mcp"),
    "SWITCHBOARD_SKIP_SELF": ("discovery", "skip_self"),
    "AGENTS_MCP_ENUMERATE": ("enumeration", "enabled"),
    "AGENTS_MCP_LIMIT_REFERENCED": ("enumeration", "referenced_only"),
    "AGENTS_MCP_ENUM_TIMEOUT_MS": ("enumeration", "timeout_ms"),
    "AGENTS_MCP_ENUM_CONCURRENCY": ("enumeration", "max_concurrency"),
    "AGENTS_MCP_MAX_SERVERS": ("enumeration", "max_servers"),
    "AGENTS_MCP_ENUM_STRICT": ("enumeration", "strict"),
    "AGENTS_MCP_ENUM_FALLBACK": ("enumeration", "fallback"),
    "AGENTS_TOOLMAP_ENABLE": ("toolmap", "enabled"),
    "AGENTS_TOOLMAP_ALLOW_CUSTOM_SERVERS": ("toolmap", "allow_custom_servers"),
    "AGENTS_MODEL_MAP_ENABLE": ("model_map", "enabled"),
    "AGENTS_MODEL_MAP_FILE": ("model_map", "file"),
    "AGENTS_MODEL_MAP_STRICT": ("model_map", "strict"),
    "AGENTS_MODEL_MAP_OVERRIDE_PROVIDER": ("model_map", "override_provider"),
    "AGENTS_MODEL_MAP_NORMALIZE_PROVIDER": ("model_map", "normalize_provider"),
    "TRANSPORT": ("server", "transport"),
    "HOST": ("server", "host"),
    "PORT": ("server", "port"),
    "SWITCHBOARD_ENGINE": ("engine", "kind"),
    "CODEX_BIN": ("engine", "command"),
    "ENGINE_TIMEOUT_S": ("engine", "timeout_seconds"),
}


def _env_overrides(env: Mapping[str, str]) -> dict:
    raw: dict[str, dict[str, str]] = {}
    for var, (section, key) in _ENV_KEYS.items():
        if var in env:
            raw.setdefault(section, {})[key] = env[var]
    return raw


def _build_section(name: str, dc: type, section: Any) -> Any:
    if not isinstance(section, dict):
        raise ConfigError(f"[{name}]: expected a table, got {section!r}")
    annotations = {f.name: f.type for f in fields(dc)}
    values = {
        key: _coerce(f"{name}.{key}", val, annotations[key])
        for key, val in section.items()
        if key in annotations
    }
    return dc(**values)


@dataclass(frozen=True, slots=True)
class SwitchboardConfig:
    """Top-level configuration snapshot, built once at startup."""
    workspace_dir: Path = field(default_factory=Path.cwd)
    home_dir: Path = field(default_factory=lambda: Path.home() / ".switchboard")
    user_home: Path = field(default_factory=Path.home)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    agents: AgentSourcesConfig = field(default_factory=AgentSourcesConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    enumeration: EnumerationConfig = field(default_factory=EnumerationConfig)
    toolmap: ToolMapConfig = field(default_factory=ToolMapConfig)
    model_map: ModelMapConfig = field(default_factory=ModelMapConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    engine: EngineConfig = field(default_factory=EngineConfig)

    @classmethod
    def from_toml(
        cls,
        path: Path | str,
        workspace_dir: Path | str | None = None,
    ) -> SwitchboardConfig:
        raw = _load_toml(Path(path))
        workspace = Path.cwd() if workspace_dir is None else Path(workspace_dir)
        return cls._from_raw(
            raw,
            workspace_dir=workspace,
            home_dir=Path.home() / ".switchboard",
            user_home=Path.home(),
        )

    @classmethod
    def load(
        cls,
        workspace_dir: Path | str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> SwitchboardConfig:
        """Load config with global → project → environment layering.

        Resolution order (later wins):
        1. Built-in defaults
        2. $SWITCHBOARD_HOME/config.toml (global, ~/.switchboard by default)
        3. <workspace>/.switchboard/config.toml (project)
        4. Environment variables
        """
        env = os.environ if env is None else env

        user_home = Path(env.get("HOME") or Path.home()).expanduser()
        if workspace_dir is None:
            workspace_dir = env.get("WORKSPACE_DIR") or Path.cwd()
        workspace = Path(workspace_dir).expanduser().resolve()
        home_dir = Path(
            env.get("SWITCHBOARD_HOME") or user_home / ".switchboard"
        ).expanduser()

        global_raw = _load_toml(home_dir / "config.toml")
        project_raw = _load_toml(workspace / ".switchboard" / "config.toml")
        merged = _deep_merge(global_raw, project_raw)
        merged = _deep_merge(merged, _env_overrides(env))

        return cls._from_raw(
            merged,
            workspace_dir=workspace,
            home_dir=home_dir,
            user_home=user_home,
        )

    @classmethod
    def _from_raw(
        cls,
        raw: dict,
        *,
        workspace_dir: Path,
        home_dir: Path,
        user_home: Path,
    ) -> SwitchboardConfig:
        """Build SwitchboardConfig from a raw (TOML-shaped) dict."""
        sections = {
            name: _build_section(name, dc, raw.get(name, {}))
            for name, dc in _SECTIONS.items()
        }
        enumeration = sections["enumeration"]
        fallback = enumeration.fallback.strip().lower()
        sections["enumeration"] = replace(enumeration, fallback=fallback)
        if fallback not in {p.value for p in ProbeFailurePolicy} - {"strict"}:
            raise ConfigError(
                f"enumeration.fallback: expected 'none' or 'all', got {fallback!r}"
            )
        if sections["server"].transport not in {"stdio", "http"}:
            raise ConfigError(
                f"server.transport: expected 'stdio' or 'http', "
                f"got {sections['server'].transport!r}"
            )
        if sections["engine"].kind not in {"codex", "dry-run"}:
            raise ConfigError(
                f"engine.kind: expected 'codex' or 'dry-run', "
                f"got {sections['engine'].kind!r}"
            )
        for name in ("timeout_ms", "max_concurrency", "max_servers"):
            if getattr(sections["enumeration"], name) < 1:
                raise ConfigError(f"enumeration.{name}: must be at least 1")
        return cls(
            workspace_dir=workspace_dir,
            home_dir=home_dir,
            user_home=user_home,
            **sections,
        )

    # ── Resolved paths ──────────────────────────────────────────────

    def _resolve(self, entries: list[str], defaults: list[Path]) -> list[Path]:
        if not entries:
            return defaults
        paths = []
        for entry in entries:
            path = Path(entry).expanduser()
            paths.append(path if path.is_absolute() else self.workspace_dir / path)
        return paths

    @property
    def codex_dirs(self) -> list[Path]:
        return self._resolve(self.agents.codex_dirs, [
            self.workspace_dir / ".agents",
            self.home_dir / "agents",
            self.user_home / ".agents",
        ])

    @property
    def anthropic_dirs(self) -> list[Path]:
        return self._resolve(self.agents.anthropic_dirs, [
            self.workspace_dir / ".claude" / "agents",
            self.home_dir / "agents",
            self.user_home / ".claude" / "agents",
        ])

    @property
    def vscode_dirs(self) -> list[Path]:
        return self._resolve(self.agents.vscode_dirs, [
            self.workspace_dir / ".github" / "chatmodes",
            self.home_dir / "chatmodes",
            self.user_home / ".chatmodes",
        ])

    @property
    def model_map_path(self) -> Path:
        if self.model_map.file:
            path = Path(self.model_map.file).expanduser()
            return path if path.is_absolute() else self.workspace_dir / path
        return self.workspace_dir / ".agents" / "model-map.toml"

    @property
    def vscode_user_mcp_path(self) -> Path | None:
        if not self.discovery.vscode_user_mcp:
            return None
        return Path(self.discovery.vscode_user_mcp).expanduser()

    @property
    def log_file(self) -> Path | None:
        if not self.logging.to_file:
            return None
        log_dir = (
            Path(self.logging.dir).expanduser()
            if self.logging.dir
            else self.home_dir / "logs"
        )
        return log_dir / "switchboard.log"
