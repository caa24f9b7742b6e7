from __future__ import annotations


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors."""


# ── Config Errors ────────────────────────────────────────────────────

class ConfigError(SwitchboardError):
    """Invalid or unreadable configuration."""


# ── Agent Definition Errors ─────────────────────────────────────────

class DefinitionError(SwitchboardError):
    """Base for agent-definition errors."""


class ParseError(DefinitionError):
    """A source document is malformed for its schema."""


class NormalizationError(DefinitionError):
    """A parsed record is missing a required field."""


class IdentifierCollisionError(DefinitionError):
    """Two agents derive the same tool identifier."""


# ── Mapping / Attachment Errors ─────────────────────────────────────

class MappingWarning(SwitchboardError):
    """A tool or model token could not be mapped."""


class ServerAttachError(SwitchboardError):
    """An MCP server could not be enumerated or attached."""


# ── Engine Errors ────────────────────────────────────────────────────

class EngineError(SwitchboardError):
    """The execution engine could not run an agent."""
