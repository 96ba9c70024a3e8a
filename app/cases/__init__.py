"""Anonymous case records, their persistence and lifecycle."""

from . import schemas
from .repository import (
    CaseNotFoundError,
    CaseRepository,
    DuplicateCaseKeyError,
    InMemoryCaseRepository,
    PersistenceError,
    PostgresCaseRepository,
    RestCaseRepository,
)
from .service import CaseControllerRegistry, CaseLifecycleController

__all__ = [
    "CaseControllerRegistry",
    "CaseLifecycleController",
    "CaseNotFoundError",
    "CaseRepository",
    "DuplicateCaseKeyError",
    "InMemoryCaseRepository",
    "PersistenceError",
    "PostgresCaseRepository",
    "RestCaseRepository",
    "schemas",
]
