"""Identifier derivation for agent tool names."""
from __future__ import annotations

import re

_NON_ALNUM_RUN = re.compile(r"[^a-z0-9]+")


def safe_name(name: str) -> str:
    """Lower-case *name* and collapse every non-alphanumeric run into ``_``.

    >>> safe_name("Code Reviewer (v2)")
    'code_reviewer_v2'
    """
    return _NON_ALNUM_RUN.sub("_", name.lower()).strip("_")


def tool_identifier(prefix: str, name: str) -> str:
    """The MCP tool name an agent is exposed under."""
    slug = safe_name(name)
    return f"{prefix}{slug}" if slug else ""
