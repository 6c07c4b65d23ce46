"""Error taxonomy and the setup session that collects registration problems.

Registration errors are raised where they originate (catalog lookup,
spawner construction, the AO's zone check) and caught at the AO's
registration seam.  They are never fatal: the AO logs them, records them
in the session's SetupReport and moves on to the next template.  Once
setup is finished the report is logged as one consolidated summary.
"""

from __future__ import annotations

import itertools
from collections import Counter
from dataclasses import dataclass, field

from loguru import logger


class OpsError(Exception):
    """Base class for area/mission errors."""


class RegistrationError(OpsError):
    """A template could not be registered with an area of operations."""

    reason = "invalid"

    def __init__(self, template_name: str, message: str = "", category: str | None = None) -> None:
        self.template_name = template_name
        self.category = category
        super().__init__(message or f"{self.reason}: {template_name}")


class TemplateNotFound(RegistrationError):
    reason = "missing"


class TemplateInvalid(RegistrationError):
    reason = "invalid"


class OutsideZone(RegistrationError):
    reason = "outside zone"


class DuplicateRegistration(RegistrationError):
    reason = "duplicate"


class ZoneMissing(OpsError):
    """An operation needs a zone that was never set or cannot be found."""


class ZoneBusy(OpsError):
    """A second watch was started on a zone that is already being watched."""


class GoalNotImplemented(OpsError, NotImplementedError):
    """The requested mission goal has no defined semantics."""


# Plural nouns for the summary lines, keyed by template category value.
_CATEGORY_NOUNS = {
    "ground": "vehicle group templates",
    "air": "aircraft group templates",
    "ship": "ship group templates",
    "static": "static templates",
    "effect": "effect templates",
    "set": "template sets",
    None: "templates",
}


@dataclass
class SetupReport:
    """Aggregated registration problems for one setup session."""

    errors: list[RegistrationError] = field(default_factory=list)

    def record(self, error: RegistrationError) -> None:
        self.errors.append(error)

    @property
    def counts(self) -> Counter:
        """Counter keyed by (reason, category)."""
        return Counter((e.reason, e.category) for e in self.errors)

    def count(self, reason: str, category: str | None = None) -> int:
        return sum(1 for e in self.errors
                   if e.reason == reason and (category is None or e.category == category))

    @property
    def has_errors(self) -> bool:
        """True when anything other than a duplicate notice was recorded."""
        return any(not isinstance(e, DuplicateRegistration) for e in self.errors)

    def summary(self) -> list[str]:
        lines = []
        for (reason, category), n in sorted(self.counts.items(), key=lambda kv: (kv[0][0], str(kv[0][1]))):
            noun = _CATEGORY_NOUNS.get(category, f"{category} templates")
            if reason == "missing":
                lines.append(f"Missing {n} {noun}")
            elif reason == "outside zone":
                lines.append(f"{n} {noun} outside their area's zone")
            elif reason == "duplicate":
                lines.append(f"Ignored {n} duplicate {noun}")
            else:
                lines.append(f"{n} invalid {noun}")
        return lines

    def log_summary(self, title: str = "Setup") -> bool:
        """Log the consolidated report. Returns True if setup had errors."""
        if not self.errors:
            logger.info(f"{title}: all templates registered")
            return False
        for line in self.summary():
            if self.has_errors:
                logger.warning(f"{title}: {line}")
            else:
                logger.info(f"{title}: {line}")
        if self.has_errors:
            logger.error(f"{title} initialization: FAILURE")
        return self.has_errors


class SequenceSource:
    """Injectable unique-id generator."""

    def __init__(self, start: int = 1) -> None:
        self._counter = itertools.count(start)

    def next(self) -> int:
        return next(self._counter)


@dataclass
class SetupSession:
    """State shared by every registration call in one setup pass."""

    report: SetupReport = field(default_factory=SetupReport)
    ids: SequenceSource = field(default_factory=SequenceSource)
