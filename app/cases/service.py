"""Case lifecycle orchestration.

:class:`CaseLifecycleController` keeps the cases of one tenant in process
memory and treats that local state as authoritative: replies and status
changes are applied locally first and only then forwarded to the
persistence backend. A backend failure is logged and the local change is
kept, so a case can temporarily diverge from its stored copy until the next
:meth:`CaseLifecycleController.refresh`.

Status rules:

- a user reply always moves the case to ``ACTION_REQUIRED``;
- an admin reply moves it to ``IN_REVIEW`` unless the admin picks another
  status explicitly;
- an admin may set any status directly, ``RESOLVED`` included.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from . import keys, schemas
from .repository import CaseNotFoundError, CaseRepository, DuplicateCaseKeyError

if TYPE_CHECKING:  # pragma: no cover - typing only
    from app.classification import Attachment, Classifier

logger = logging.getLogger(__name__)

USER_REPLY_STATUS: schemas.CaseStatus = "ACTION_REQUIRED"
ADMIN_REPLY_STATUS: schemas.CaseStatus = "IN_REVIEW"
KEY_ATTEMPTS = 5
MAX_CACHED_TENANTS = 256


class CaseLifecycleController:
    """Apply submissions, replies and status changes for a single tenant."""

    def __init__(
        self,
        repository: CaseRepository,
        *,
        tenant_id: str,
        classifier: Optional["Classifier"] = None,
    ) -> None:
        self._repository = repository
        self._tenant_id = tenant_id
        self._classifier = classifier
        self._cases: Dict[str, schemas.Case] = {}
        self._password_hashes: Dict[str, str] = {}

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    # ------------------------------------------------------------------
    # Intake

    def submit(
        self, message: str, attachment: Optional["Attachment"] = None
    ) -> schemas.Case:
        """Classify ``message`` and register the resulting case.

        Returns the case including its plain access password; later reads
        never expose it again.
        """

        if self._classifier is None:
            raise RuntimeError("No classifier configured for submissions")
        case = self._classifier.classify(message, attachment, tenant_id=self._tenant_id)
        case.tenant_id = self._tenant_id
        stored = self._create_with_unique_key(case)
        local = self._remember(case)
        if stored is not None:
            local.timestamp = stored.timestamp
            local.updated_at = stored.updated_at
        return local.model_copy(update={"access_password": case.access_password}, deep=True)

    def _create_with_unique_key(self, case: schemas.Case) -> Optional[schemas.Case]:
        """Persist ``case``, drawing a new key whenever the current one is taken.

        Returns the stored copy, or ``None`` when the backend failed for any
        other reason (the case then lives only in local state).
        """

        for attempt in range(1, KEY_ATTEMPTS + 1):
            if case.submission_id in self._cases:
                case.submission_id = keys.generate_case_key()
                continue
            try:
                return self._repository.create_case(case)
            except DuplicateCaseKeyError:
                logger.warning("Case key collision on attempt %d", attempt)
                case.submission_id = keys.generate_case_key()
            except Exception:
                logger.exception("Failed to persist case %s", case.submission_id)
                return None
        raise DuplicateCaseKeyError(
            f"No unused case key after {KEY_ATTEMPTS} attempts"
        )

    # ------------------------------------------------------------------
    # Replies and status changes

    def reply_as_admin(
        self,
        key: str,
        message: str,
        status: Optional[schemas.CaseStatus] = None,
    ) -> schemas.Case:
        return self._reply(key, "ADMIN", message, status or ADMIN_REPLY_STATUS)

    def reply_as_user(self, key: str, message: str) -> schemas.Case:
        return self._reply(key, "USER", message, USER_REPLY_STATUS)

    def set_status(self, key: str, status: schemas.CaseStatus) -> schemas.Case:
        if status not in schemas.CASE_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        case = self._require(key)
        case.status = status
        self._persist(key, {"status": status})
        return case.model_copy(deep=True)

    def _reply(
        self,
        key: str,
        sender: schemas.SenderRole,
        message: str,
        status: schemas.CaseStatus,
    ) -> schemas.Case:
        text = (message or "").strip()
        if not text:
            raise ValueError("Reply must not be empty")
        if status not in schemas.CASE_STATUSES:
            raise ValueError(f"Unknown status: {status}")
        case = self._require(key)
        case.history.append(
            schemas.CaseHistoryItem(
                id=keys.generate_message_id(),
                sender=sender,
                message=text,
                timestamp=datetime.now(timezone.utc),
            )
        )
        case.status = status
        self._persist(key, {"status": status, "history": case.history})
        return case.model_copy(deep=True)

    def _persist(self, key: str, fields: Dict[str, Any]) -> None:
        try:
            stored = self._repository.update_case(key, fields)
        except Exception:
            logger.exception("Failed to persist update for case %s", key)
            return
        local = self._cases.get(key)
        if local is not None:
            local.updated_at = stored.updated_at

    # ------------------------------------------------------------------
    # Reads

    def refresh(self) -> List[schemas.Case]:
        """Reload the tenant's cases from the backend into local state.

        Stored copies replace local ones, so changes made by other processes
        become visible. Cases only known locally are kept. Backend failures
        are logged and the current local state is returned unchanged.
        """

        try:
            stored = self._repository.list_cases(self._tenant_id)
        except Exception:
            logger.exception("Failed to refresh cases for tenant %s", self._tenant_id)
            return self.cases()
        for case in stored:
            self._cases[case.submission_id] = case
        return self.cases()

    def cases(self) -> List[schemas.Case]:
        ordered = sorted(self._cases.values(), key=lambda c: c.timestamp, reverse=True)
        return [case.model_copy(deep=True) for case in ordered]

    def get(self, key: str) -> schemas.Case:
        return self._require(key).model_copy(deep=True)

    def dashboard(
        self,
        *,
        view: schemas.DashboardFilter = "ALL",
        priority: Optional[schemas.Priority] = None,
        intent: Optional[schemas.Intent] = None,
        search: Optional[str] = None,
    ) -> List[schemas.Case]:
        """Return the admin list view, newest first."""

        predicates: List[Callable[[schemas.Case], bool]] = []
        if view == "URGENT":
            predicates.append(lambda c: c.analysis.priority == "Urgent")
        elif view == "HIGH":
            predicates.append(lambda c: c.analysis.priority in {"High", "Urgent"})
        elif view == "BUG":
            predicates.append(lambda c: c.analysis.intent == "Bug Report")
        if priority:
            predicates.append(lambda c: c.analysis.priority == priority)
        if intent:
            predicates.append(lambda c: c.analysis.intent == intent)
        if search and search.strip():
            needle = search.strip().lower()
            predicates.append(lambda c: needle in c.content.subject_line.lower())
        return [case for case in self.refresh() if all(p(case) for p in predicates)]

    def lookup(self, key: str, password: str) -> Optional[schemas.Case]:
        """Return the case for ``key`` when ``password`` matches, else ``None``.

        Local state is consulted first; on a miss the backend decides. Both
        "unknown key" and "wrong password" yield ``None``.
        """

        key = (key or "").strip()
        password = keys.normalize_password(password or "")
        if not key or not password:
            return None
        password_hash = keys.hash_access_password(password)
        if key in self._cases and self._password_hashes.get(key) == password_hash:
            return self._cases[key].model_copy(deep=True)
        try:
            stored = self._repository.get_by_key(key, password)
        except Exception:
            logger.exception("Case lookup failed for key %s", key)
            return None
        if stored is None:
            return None
        if stored.tenant_id is not None and stored.tenant_id != self._tenant_id:
            return None
        local = self._cases.setdefault(key, stored)
        self._password_hashes[key] = password_hash
        return local.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Helpers

    def _remember(self, case: schemas.Case) -> schemas.Case:
        """Keep ``case`` locally without its plain access password."""

        local = case.model_copy(update={"access_password": None}, deep=True)
        self._cases[case.submission_id] = local
        if case.access_password:
            self._password_hashes[case.submission_id] = keys.hash_access_password(
                case.access_password
            )
        return local

    def _require(self, key: str) -> schemas.Case:
        case = self._cases.get(key)
        if case is None:
            self.refresh()
            case = self._cases.get(key)
        if case is None:
            raise CaseNotFoundError(f"Case {key} not found")
        return case


class CaseControllerRegistry:
    """Hand out one :class:`CaseLifecycleController` per tenant.

    At most ``max_tenants`` controllers are cached; the least recently used
    one is dropped when a new tenant arrives at the limit.
    """

    def __init__(
        self,
        repository_factory: Callable[[str], CaseRepository],
        *,
        classifier: Optional["Classifier"] = None,
        max_tenants: int = MAX_CACHED_TENANTS,
    ) -> None:
        if max_tenants < 1:
            raise ValueError("max_tenants must be at least 1")
        self._repository_factory = repository_factory
        self._classifier = classifier
        self._max_tenants = max_tenants
        self._controllers: OrderedDict[str, CaseLifecycleController] = OrderedDict()

    def __len__(self) -> int:
        return len(self._controllers)

    def for_tenant(self, tenant_id: str) -> CaseLifecycleController:
        controller = self._controllers.get(tenant_id)
        if controller is not None:
            self._controllers.move_to_end(tenant_id)
            return controller
        controller = CaseLifecycleController(
            self._repository_factory(tenant_id),
            tenant_id=tenant_id,
            classifier=self._classifier,
        )
        self._controllers[tenant_id] = controller
        if len(self._controllers) > self._max_tenants:
            evicted, _ = self._controllers.popitem(last=False)
            logger.info("Dropped cached case controller for tenant %s", evicted)
        return controller


__all__ = [
    "ADMIN_REPLY_STATUS",
    "KEY_ATTEMPTS",
    "MAX_CACHED_TENANTS",
    "USER_REPLY_STATUS",
    "CaseControllerRegistry",
    "CaseLifecycleController",
]
