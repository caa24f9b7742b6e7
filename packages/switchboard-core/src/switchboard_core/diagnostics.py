"""Side channel for non-fatal problems found while building the agent surface.

Every stage reports what it skipped, dropped or could not map here instead
of failing the whole run. A report is logged once; identical reports are
collapsed so repeated passes over the same input stay quiet.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field

from switchboard_core.errors import SwitchboardError
from switchboard_core.logging import get_logger

logger = get_logger("diagnostics")


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """One reported problem."""
    kind: type[SwitchboardError]
    subject: str
    message: str

    def __str__(self) -> str:
        return f"{self.kind.__name__}: {self.subject}: {self.message}"


@dataclass(slots=True)
class Diagnostics:
    """Collects and logs diagnostics for one build."""
    items: list[Diagnostic] = field(default_factory=list)
    _seen: set[Diagnostic] = field(default_factory=set)

    def report(
        self,
        kind: type[SwitchboardError],
        subject: str,
        message: str,
        level: int = logging.WARNING,
    ) -> Diagnostic:
        diagnostic = Diagnostic(kind=kind, subject=subject, message=message)
        if diagnostic in self._seen:
            return diagnostic
        self._seen.add(diagnostic)
        self.items.append(diagnostic)
        logger.log(level, "%s", diagnostic)
        return diagnostic

    def report_error(self, subject: str, exc: SwitchboardError) -> Diagnostic:
        """Record a caught switchboard exception under its own class."""
        return self.report(type(exc), subject, str(exc))

    def by_kind(self, kind: type[SwitchboardError]) -> list[Diagnostic]:
        return [d for d in self.items if issubclass(d.kind, kind)]

    def count(self, kind: type[SwitchboardError] | None = None) -> int:
        if kind is None:
            return len(self.items)
        return len(self.by_kind(kind))
