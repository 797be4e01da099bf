"""Error taxonomy shared by the persistence core.

Startup problems are reported as :class:`StepOutcome` values and only logged;
errors from domain writes are raised to the caller as one of the
:class:`ClinicDBError` subclasses below.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence


class ClinicDBError(Exception):
    """Base class for errors surfaced by :mod:`clinicdb`."""

    default_message = "The operation could not be completed."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)


class StartupNonFatal(ClinicDBError):
    """A migration or repair step failed; startup continued."""

    default_message = "A database maintenance step failed and was skipped."


class ConstraintViolation(ClinicDBError):
    """A write violated a structural check or a uniqueness rule."""

    default_message = "A conflicting record already exists or a value is not allowed."


class NotFound(ClinicDBError):
    """The update or delete target does not exist."""

    default_message = "The requested record no longer exists."


class MalformedReorder(ClinicDBError):
    """The ids supplied to a reorder are not a permutation of the group."""

    default_message = "The treatment list changed while it was being reordered; reload and try again."


class IOFailure(ClinicDBError):
    """The database file could not be opened or written."""

    default_message = "The clinic database is unavailable. Check disk space and file permissions."


def translate_integrity_error(exc: sqlite3.IntegrityError) -> ConstraintViolation:
    """Return a user-facing :class:`ConstraintViolation` for ``exc``."""

    text = str(exc)
    lowered = text.lower()
    if "unique" in lowered or "primary key" in lowered:
        message = "A conflicting record already exists."
    elif "check constraint" in lowered:
        message = "One of the values is outside the allowed range."
    elif "foreign key" in lowered:
        message = "The record refers to an entry that does not exist."
    elif "not null" in lowered:
        message = "A required value is missing."
    else:
        message = None
    return ConstraintViolation(message, detail=text)


@dataclass
class StepOutcome:
    """Result of one startup step (migration, repair or guard group)."""

    name: str
    ok: bool = True
    changed: bool = False
    error: Optional[str] = None

    @classmethod
    def failed(cls, name: str, exc: BaseException) -> "StepOutcome":
        return cls(name=name, ok=False, error=f"{type(exc).__name__}: {exc}")


@dataclass
class StartupReport:
    """Aggregated outcomes of a store start."""

    schema_version: int = 0
    steps: List[StepOutcome] = field(default_factory=list)

    def extend(self, outcomes: Iterable[StepOutcome]) -> None:
        self.steps.extend(outcomes)

    @property
    def failures(self) -> Sequence[StepOutcome]:
        return [step for step in self.steps if not step.ok]

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_errors(self) -> List[StartupNonFatal]:
        return [
            StartupNonFatal(f"Startup step {step.name} failed.", detail=step.error)
            for step in self.failures
        ]


__all__ = [
    "ClinicDBError",
    "StartupNonFatal",
    "ConstraintViolation",
    "NotFound",
    "MalformedReorder",
    "IOFailure",
    "StepOutcome",
    "StartupReport",
    "translate_integrity_error",
]
