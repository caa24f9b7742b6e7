"""Switchboard Core: shared types, config, errors, diagnostics, and logging."""
from __future__ import annotations

from switchboard_core._version import __version__
from switchboard_core.config import (
    AgentSourcesConfig,
    DiscoveryConfig,
    EngineConfig,
    EnumerationConfig,
    LoggingConfig,
    ModelMapConfig,
    ProbeFailurePolicy,
    ServerConfig,
    SwitchboardConfig,
    ToolMapConfig,
)
from switchboard_core.diagnostics import Diagnostic, Diagnostics
from switchboard_core.errors import (
    ConfigError,
    DefinitionError,
    EngineError,
    IdentifierCollisionError,
    MappingWarning,
    NormalizationError,
    ParseError,
    ServerAttachError,
    SwitchboardError,
)
from switchboard_core.logging import get_logger, setup_logging
from switchboard_core.types import (
    BareToolRef,
    EnumerationResult,
    NamespacedToolRef,
    RunProfile,
    ServerOrigin,
    ServerSpec,
    ToolRef,
    parse_tool_ref,
)

__all__ = [
    # Config
    "AgentSourcesConfig",
    # Types
    "BareToolRef",
    # Errors
    "ConfigError",
    "DefinitionError",
    # Diagnostics
    "Diagnostic",
    "Diagnostics",
    "DiscoveryConfig",
    "EngineConfig",
    "EngineError",
    "EnumerationConfig",
    "EnumerationResult",
    "IdentifierCollisionError",
    "LoggingConfig",
    "MappingWarning",
    "ModelMapConfig",
    "NamespacedToolRef",
    "NormalizationError",
    "ParseError",
    "ProbeFailurePolicy",
    "RunProfile",
    "ServerAttachError",
    "ServerConfig",
    "ServerOrigin",
    "ServerSpec",
    "SwitchboardConfig",
    "SwitchboardError",
    "ToolMapConfig",
    "ToolRef",
    # Version
    "__version__",
    # Logging
    "get_logger",
    "parse_tool_ref",
    "setup_logging",
]
