"""Persistence, migration and balance core for the dental clinic database."""

from clinicdb.errors import (
    ClinicDBError,
    ConstraintViolation,
    IOFailure,
    MalformedReorder,
    NotFound,
    StartupNonFatal,
    StartupReport,
)
from clinicdb.store import ClinicStore

__version__ = "0.1.0"

__all__ = [
    "ClinicDBError",
    "ClinicStore",
    "ConstraintViolation",
    "IOFailure",
    "MalformedReorder",
    "NotFound",
    "StartupNonFatal",
    "StartupReport",
    "__version__",
]
