"""Model token mapping: rewrites vendor model names into engine model ids.

The built-in table covers the model names the supported ecosystems write
in their agent files. A user table (``model-map.toml``) can extend or
replace it::

    mode = "extend"

    [[mappings]]
    token = "sonnet"
    aliases = ["claude-sonnet"]
    to_model = "gpt-5"
    to_provider = "openai"

    [provider_aliases]
    OpenAI = "openai"
"""
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

from switchboard_core.errors import ConfigError, MappingWarning

if TYPE_CHECKING:
    from pathlib import Path

    from switchboard_core.diagnostics import Diagnostics

    from switchboard_agent.definitions.types import CanonicalAgent

logger = logging.getLogger("switchboard.agent.model_mapping")

# ── Built-in table ────────────────────────────────────────────

_GPT5 = ("gpt-5", "openai")
_GPT5_MINI = ("gpt-5-mini", "openai")

BUILTIN_MODEL_MAP: dict[str, tuple[str, str]] = {
    "sonnet": _GPT5,
    "opus": _GPT5,
    "claude opus 4": _GPT5,
    "claude opus 4.1": _GPT5,
    "claude sonnet 4": _GPT5,
    "claude sonnet 3.7": _GPT5,
    "claude 3.7": _GPT5,
    "claude 3.7 thinking": _GPT5,
    "claude sonnet 3.5": _GPT5,
    "gemini 2.5 pro": _GPT5,
    "auto": _GPT5,
    "gpt-5": _GPT5,
    "haiku": _GPT5_MINI,
    "claude haiku 3": _GPT5_MINI,
    "claude haiku 3.5": _GPT5_MINI,
    "gpt-5 mini": _GPT5_MINI,
    "gpt-5 mini (preview)": _GPT5_MINI,
    "gpt-5-mini": _GPT5_MINI,
    "gpt-4.1": ("gpt-4.1", "openai"),
    "gpt-4o": ("gpt-4o", "openai"),
    "o3-mini": ("o3-mini", "openai"),
}

BUILTIN_PROVIDER_ALIASES: dict[str, str] = {
    "openai": "openai",
    "anthropic": "anthropic",
    "claude": "anthropic",
}


@dataclass(frozen=True, slots=True)
class ModelMapEntry:
    """One lookup row: a token and its aliases map to a model/provider."""
    token: str
    model: str
    provider: str | None = None
    aliases: frozenset[str] = frozenset()

    @property
    def keys(self) -> frozenset[str]:
        """Every lower-cased spelling this entry answers to."""
        return frozenset({self.token.lower(), *(a.lower() for a in self.aliases)})


def _parse_entry(raw: Any, index: int) -> ModelMapEntry:
    where = f"mappings[{index}]"
    if not isinstance(raw, dict):
        msg = f"{where}: expected a table"
        raise ConfigError(msg)
    token, model = raw.get("token"), raw.get("to_model")
    if not isinstance(token, str) or not token.strip():
        msg = f"{where}: 'token' must be a non-empty string"
        raise ConfigError(msg)
    if not isinstance(model, str) or not model.strip():
        msg = f"{where}: 'to_model' must be a non-empty string"
        raise ConfigError(msg)
    provider = raw.get("to_provider")
    if provider is not None and not isinstance(provider, str):
        msg = f"{where}: 'to_provider' must be a string"
        raise ConfigError(msg)
    aliases = raw.get("aliases", [])
    if not isinstance(aliases, list) or not all(isinstance(a, str) for a in aliases):
        msg = f"{where}: 'aliases' must be a list of strings"
        raise ConfigError(msg)
    return ModelMapEntry(
        token=token.strip(),
        model=model.strip(),
        provider=provider.strip() if provider else None,
        aliases=frozenset(a.strip() for a in aliases if a.strip()),
    )


@dataclass(frozen=True, slots=True)
class ModelMap:
    """Ordered model lookup table plus provider aliases.

    Lookups are exact and case-insensitive; the first matching entry wins.
    """
    entries: tuple[ModelMapEntry, ...] = ()
    provider_aliases: dict[str, str] = field(default_factory=dict)

    @classmethod
    def default(cls) -> ModelMap:
        return cls(
            entries=tuple(
                ModelMapEntry(token=token, model=model, provider=provider)
                for token, (model, provider) in BUILTIN_MODEL_MAP.items()
            ),
            provider_aliases=dict(BUILTIN_PROVIDER_ALIASES),
        )

    @classmethod
    def from_mapping(cls, raw: dict[str, Any], base: ModelMap | None = None) -> ModelMap:
        """Build a map from a decoded user table layered over *base*.

        In ``extend`` mode (the default) a user entry removes every base
        entry that answers to one of its spellings, then all user entries
        follow the remaining base entries. ``replace`` drops the base
        entries altogether. Provider aliases are always merged key by key.

        Raises:
            ConfigError: If the table is malformed.
        """
        base = cls.default() if base is None else base
        mode = raw.get("mode", "extend")
        if mode not in {"extend", "replace"}:
            msg = f"mode: expected 'extend' or 'replace', got {mode!r}"
            raise ConfigError(msg)

        mappings = raw.get("mappings", [])
        if not isinstance(mappings, list):
            msg = "'mappings' must be an array of tables"
            raise ConfigError(msg)
        user_entries = tuple(_parse_entry(item, i) for i, item in enumerate(mappings))

        if mode == "replace":
            entries = user_entries
        else:
            claimed = frozenset().union(*(e.keys for e in user_entries))
            kept = tuple(e for e in base.entries if not (e.keys & claimed))
            entries = kept + user_entries

        aliases_raw = raw.get("provider_aliases", {})
        if not isinstance(aliases_raw, dict) or not all(
            isinstance(v, str) for v in aliases_raw.values()
        ):
            msg = "'provider_aliases' must be a table of strings"
            raise ConfigError(msg)
        provider_aliases = {
            **base.provider_aliases,
            **{k.lower(): v for k, v in aliases_raw.items()},
        }
        return cls(entries=entries, provider_aliases=provider_aliases)

    @classmethod
    def from_toml(cls, text: str, base: ModelMap | None = None) -> ModelMap:
        try:
            raw = tomllib.loads(text)
        except tomllib.TOMLDecodeError as exc:
            msg = f"invalid TOML: {exc}"
            raise ConfigError(msg) from exc
        return cls.from_mapping(raw, base)

    def lookup(self, token: str) -> ModelMapEntry | None:
        key = token.strip().lower()
        for entry in self.entries:
            if key in entry.keys:
                return entry
        return None

    def canonical_provider(self, token: str) -> str | None:
        return self.provider_aliases.get(token.strip().lower())


def load_model_map(
    path: Path,
    base: ModelMap | None = None,
    diagnostics: Diagnostics | None = None,
) -> ModelMap:
    """Load a user model map from *path*, or return *base* when absent.

    A malformed file is reported as a mapping warning and ignored.
    """
    base = ModelMap.default() if base is None else base
    if not path.is_file():
        logger.debug("No model map at %s; using built-in table", path)
        return base
    try:
        model_map = ModelMap.from_toml(path.read_text(encoding="utf-8"), base)
    except (OSError, UnicodeDecodeError, ConfigError) as exc:
        if diagnostics is not None:
            diagnostics.report(MappingWarning, str(path), f"ignoring model map: {exc}")
        else:
            logger.warning("Ignoring model map %s: %s", path, exc)
        return base
    logger.info("Loaded model map from %s (%d entries)", path, len(model_map.entries))
    return model_map


class ModelMapper:
    """Rewrites an agent's model and provider tokens through a ModelMap."""

    def __init__(
        self,
        model_map: ModelMap | None = None,
        *,
        strict: bool = False,
        override_provider: bool = False,
        normalize_provider: bool = True,
    ) -> None:
        self._map = ModelMap.default() if model_map is None else model_map
        self._strict = strict
        self._override_provider = override_provider
        self._normalize_provider = normalize_provider

    @property
    def model_map(self) -> ModelMap:
        return self._map

    def apply(
        self,
        agent: CanonicalAgent,
        diagnostics: Diagnostics | None = None,
    ) -> CanonicalAgent:
        """Return a copy of *agent* with its model tokens mapped.

        A mapped model always replaces the original token. The mapped
        provider is only written when the agent set none, unless
        provider override is enabled.
        """
        run = agent.run
        if run.model is None and run.model_provider is None:
            return agent

        provider = run.model_provider
        if provider is not None and self._normalize_provider:
            provider = self._map.canonical_provider(provider) or provider

        model = run.model
        if model is not None:
            entry = self._map.lookup(model)
            if entry is not None:
                model = entry.model
                if entry.provider and (provider is None or self._override_provider):
                    provider = entry.provider
            elif self._strict:
                message = f"unknown model token {model!r}; leaving it unchanged"
                if diagnostics is not None:
                    diagnostics.report(MappingWarning, agent.identifier, message)
                else:
                    logger.warning("%s: %s", agent.identifier, message)
            else:
                logger.debug("No mapping for model '%s' in %s", model, agent.identifier)

        if model == run.model and provider == run.model_provider:
            return agent
        return replace(agent, run=replace(run, model=model, model_provider=provider))
