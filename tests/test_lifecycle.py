"""Tests for reply ordering, status transitions and optimistic persistence."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from app.cases import DuplicateCaseKeyError, InMemoryCaseRepository, PersistenceError
from app.cases.repository import CaseNotFoundError
from app.cases.service import CaseControllerRegistry, CaseLifecycleController
from app.classification import ClassificationAdapter, build_case


class FailingRepository(InMemoryCaseRepository):
    """Creates cases but refuses every later write."""

    def update_case(self, key, fields):
        raise PersistenceError("database unavailable")


def test_submit_returns_password_once(controller):
    case = controller.submit("The export button is broken and crashes the whole app")

    assert case.status == "RECEIVED"
    assert case.access_password
    assert [item.sender for item in case.history] == ["USER"]
    assert case.history[0].message.startswith("The export button")
    assert controller.get(case.submission_id).access_password is None


def test_user_reply_requires_action(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    updated = controller.reply_as_user(case.submission_id, "Any news on this?")

    assert updated.status == "ACTION_REQUIRED"
    assert updated.history[-1].sender == "USER"
    assert updated.history[-1].message == "Any news on this?"


def test_admin_reply_defaults_to_in_review(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    updated = controller.reply_as_admin(case.submission_id, "We are looking into it.")

    assert updated.status == "IN_REVIEW"
    assert updated.history[-1].sender == "ADMIN"


def test_admin_reply_with_explicit_status(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    updated = controller.reply_as_admin(case.submission_id, "Shipped.", "RESOLVED")

    assert updated.status == "RESOLVED"


def test_conversation_sequence_is_append_only(controller):
    case = controller.submit("My manager keeps leaking customer data to a competitor")
    key = case.submission_id

    controller.reply_as_admin(key, "Can you share which team?")
    controller.reply_as_user(key, "The sales team.")
    final = controller.reply_as_admin(key, "Thank you, escalated.", "RESOLVED")

    assert [item.sender for item in final.history] == ["USER", "ADMIN", "USER", "ADMIN"]
    assert [item.message for item in final.history][1:] == [
        "Can you share which team?",
        "The sales team.",
        "Thank you, escalated.",
    ]
    assert final.status == "RESOLVED"
    assert len({item.id for item in final.history}) == 4


def test_status_override_accepts_any_status(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    assert controller.set_status(case.submission_id, "RESOLVED").status == "RESOLVED"
    assert controller.set_status(case.submission_id, "RECEIVED").status == "RECEIVED"


def test_empty_reply_is_rejected(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    with pytest.raises(ValueError):
        controller.reply_as_user(case.submission_id, "   ")
    assert len(controller.get(case.submission_id).history) == 1


def test_unknown_case_raises(controller):
    with pytest.raises(CaseNotFoundError):
        controller.reply_as_admin("ZZZZZZZZZZ", "hello")


def test_persistence_failure_keeps_local_state(caplog):
    repository = FailingRepository()
    controller = CaseLifecycleController(
        repository, tenant_id="acme", classifier=ClassificationAdapter()
    )
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")
    caplog.set_level(logging.ERROR, logger="app.cases.service")

    updated = controller.reply_as_admin(case.submission_id, "On it.")

    assert updated.status == "IN_REVIEW"
    assert controller.get(case.submission_id).history[-1].message == "On it."
    stored = repository.get_by_key(case.submission_id, case.access_password)
    assert stored.status == "RECEIVED"
    assert len(stored.history) == 1
    assert any("Failed to persist update" in r.message for r in caplog.records)


def test_create_failure_still_returns_receipt(caplog):
    class Unavailable(InMemoryCaseRepository):
        def create_case(self, case):
            raise PersistenceError("offline")

    controller = CaseLifecycleController(
        Unavailable(), tenant_id="acme", classifier=ClassificationAdapter()
    )
    caplog.set_level(logging.ERROR, logger="app.cases.service")

    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    assert case.access_password
    assert controller.lookup(case.submission_id, case.access_password) is not None
    assert any("Failed to persist case" in r.message for r in caplog.records)


def test_lookup_checks_password(controller):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    assert controller.lookup(case.submission_id, case.access_password.lower()) is not None
    assert controller.lookup(case.submission_id, "WRONG123") is None
    assert controller.lookup("", case.access_password) is None


def test_lookup_falls_back_to_repository():
    repository = InMemoryCaseRepository()
    writer = CaseLifecycleController(
        repository, tenant_id="acme", classifier=ClassificationAdapter()
    )
    case = writer.submit("Please add dark mode to the dashboard, it would be nice")
    reader = CaseLifecycleController(repository, tenant_id="acme")

    found = reader.lookup(case.submission_id, case.access_password)

    assert found is not None
    assert found.submission_id == case.submission_id
    other_tenant = CaseLifecycleController(repository, tenant_id="globex")
    assert other_tenant.lookup(case.submission_id, case.access_password) is None


def _seed(monkeypatch, repository, tenant, *, intent, priority, subject, minutes_ago):
    raw = {
        "content": {"subject_line": subject, "summary": subject, "topics": []},
        "analysis": {"intent": intent, "priority": priority, "sentiment_score": 0},
    }
    now = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    monkeypatch.setattr("app.cases.repository._utcnow", lambda: now)
    return repository.create_case(build_case(raw, subject, tenant_id=tenant, now=now))


def test_dashboard_filters_newest_first(monkeypatch):
    repository = InMemoryCaseRepository()
    _seed(monkeypatch, repository, "acme", intent="Bug Report", priority="High", subject="Login broken", minutes_ago=3)
    _seed(monkeypatch, repository, "acme", intent="Complaint", priority="Urgent", subject="Data leak", minutes_ago=2)
    _seed(monkeypatch, repository, "acme", intent="Feature Request", priority="Low", subject="Dark mode", minutes_ago=1)
    _seed(monkeypatch, repository, "globex", intent="Bug Report", priority="Urgent", subject="Other tenant", minutes_ago=0)
    controller = CaseLifecycleController(repository, tenant_id="acme")

    everything = controller.dashboard()
    assert [c.content.subject_line for c in everything] == ["Dark mode", "Data leak", "Login broken"]
    assert [c.content.subject_line for c in controller.dashboard(view="URGENT")] == ["Data leak"]
    assert [c.content.subject_line for c in controller.dashboard(view="HIGH")] == [
        "Data leak",
        "Login broken",
    ]
    assert [c.content.subject_line for c in controller.dashboard(view="BUG")] == ["Login broken"]
    assert [c.content.subject_line for c in controller.dashboard(search="dark")] == ["Dark mode"]
    assert controller.dashboard(view="BUG", priority="Urgent") == []


def test_registry_reuses_controller_per_tenant():
    created: list[str] = []

    def factory(tenant_id):
        created.append(tenant_id)
        return InMemoryCaseRepository()

    registry = CaseControllerRegistry(factory)

    assert registry.for_tenant("acme") is registry.for_tenant("acme")
    assert registry.for_tenant("globex").tenant_id == "globex"
    assert created == ["acme", "globex"]


def test_login_button_example(controller):
    case = controller.submit("the login button is broken")
    key = case.submission_id
    assert (case.status, len(case.history), case.history[0].sender) == ("RECEIVED", 1, "USER")

    after_admin = controller.reply_as_admin(key, "thanks, fixed")
    assert (after_admin.status, len(after_admin.history)) == ("IN_REVIEW", 2)

    after_user = controller.reply_as_user(key, "still broken")
    assert (after_user.status, len(after_user.history)) == ("ACTION_REQUIRED", 3)


class FixedKeyClassifier:
    """Keyword classifier that always proposes the same case key."""

    def __init__(self, key="abc123XYZ9"):
        self._adapter = ClassificationAdapter()
        self._key = key

    def classify(self, message, attachment=None, *, tenant_id=None):
        case = self._adapter.classify(message, attachment, tenant_id=tenant_id)
        case.submission_id = self._key
        return case


def test_colliding_keys_get_fresh_keys_locally():
    controller = CaseLifecycleController(
        InMemoryCaseRepository(), tenant_id="acme", classifier=FixedKeyClassifier()
    )

    alice = controller.submit("Alice reports broken badge readers at the north gate")
    bob = controller.submit("Bob reports an unrelated payroll delay this month")

    assert alice.submission_id != bob.submission_id
    seen_by_alice = controller.lookup(alice.submission_id, alice.access_password)
    assert seen_by_alice.content.original_message.startswith("Alice")
    assert controller.lookup(bob.submission_id, alice.access_password) is None


def test_colliding_keys_across_processes_get_fresh_keys():
    repository = InMemoryCaseRepository()
    first = CaseLifecycleController(repository, tenant_id="acme", classifier=FixedKeyClassifier())
    second = CaseLifecycleController(repository, tenant_id="acme", classifier=FixedKeyClassifier())

    alice = first.submit("Alice reports broken badge readers at the north gate")
    bob = second.submit("Bob reports an unrelated payroll delay this month")

    assert alice.submission_id != bob.submission_id
    stored_alice = repository.get_by_key(alice.submission_id, alice.access_password)
    stored_bob = repository.get_by_key(bob.submission_id, bob.access_password)
    assert stored_alice.content.original_message.startswith("Alice")
    assert stored_bob.content.original_message.startswith("Bob")


def test_submit_gives_up_when_no_key_is_free():
    class AlwaysTaken(InMemoryCaseRepository):
        def create_case(self, case):
            raise DuplicateCaseKeyError("taken")

    controller = CaseLifecycleController(
        AlwaysTaken(), tenant_id="acme", classifier=ClassificationAdapter()
    )

    with pytest.raises(DuplicateCaseKeyError):
        controller.submit("Please add dark mode to the dashboard, it would be nice")
    assert controller.cases() == []


def test_refresh_picks_up_changes_from_other_controllers():
    repository = InMemoryCaseRepository()
    writer = CaseLifecycleController(
        repository, tenant_id="acme", classifier=ClassificationAdapter()
    )
    reader = CaseLifecycleController(repository, tenant_id="acme")
    case = writer.submit("Please add dark mode to the dashboard, it would be nice")
    assert reader.refresh()[0].status == "RECEIVED"

    writer.reply_as_user(case.submission_id, "Any update?")
    refreshed = reader.refresh()

    assert refreshed[0].status == "ACTION_REQUIRED"
    assert [item.sender for item in refreshed[0].history] == ["USER", "USER"]
    assert reader.get(case.submission_id).history[-1].message == "Any update?"


def test_refresh_keeps_cases_only_known_locally():
    class Unavailable(InMemoryCaseRepository):
        def create_case(self, case):
            raise PersistenceError("offline")

    controller = CaseLifecycleController(
        Unavailable(), tenant_id="acme", classifier=ClassificationAdapter()
    )
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")

    assert [c.submission_id for c in controller.refresh()] == [case.submission_id]


@pytest.mark.parametrize("start", ["RECEIVED", "IN_REVIEW", "ACTION_REQUIRED", "RESOLVED"])
def test_user_reply_forces_action_required_from_any_status(controller, start):
    case = controller.submit("Please add dark mode to the dashboard, it would be nice")
    controller.set_status(case.submission_id, start)

    updated = controller.reply_as_user(case.submission_id, "Following up.")

    assert updated.status == "ACTION_REQUIRED"
    assert updated.history[-1].sender == "USER"


def test_registry_drops_least_recently_used_tenant():
    created: list[str] = []

    def factory(tenant_id):
        created.append(tenant_id)
        return InMemoryCaseRepository()

    registry = CaseControllerRegistry(factory, max_tenants=2)
    acme = registry.for_tenant("acme")
    registry.for_tenant("globex")
    assert registry.for_tenant("acme") is acme

    registry.for_tenant("initech")

    assert len(registry) == 2
    assert registry.for_tenant("acme") is acme
    registry.for_tenant("globex")
    assert created == ["acme", "globex", "initech", "globex"]
