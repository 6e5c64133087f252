"""
Tests for the submission review state machine.
"""

import re
import threading

import pytest

from common.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    IdentityProviderError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from common.locks import LocalKeyedLock
from common.schemas import SubmissionStatus
from modules.kv_store import KeyValueStore
from modules.submission_service import SubmissionService, approved_key, pending_key

from conftest import ADMIN_SECRET

ID_PATTERN = re.compile(r"^submission_cheatsheet_\d+$")


class TestSubmit:
    def test_submit_stores_pending_record_and_indexes_it(self, service, store):
        submission_id = service.submit("cheatsheet", {"title": "T"}, "Alice")

        assert ID_PATTERN.match(submission_id)
        record = store.get(submission_id)
        assert record["type"] == "cheatsheet"
        assert record["data"] == {"title": "T"}
        assert record["submittedBy"] == "Alice"
        assert record["status"] == "pending"
        assert record["reviewedBy"] is None
        assert record["reviewedAt"] is None
        assert store.get(pending_key("cheatsheet")) == {
            "submissions": [submission_id]
        }

    def test_default_attribution(self, service, admin):
        service.submit("template", {"name": "x"})

        [submission] = service.list_pending(admin)
        assert submission.submitted_by == "Anonymous"

    def test_blank_attribution_defaults_to_anonymous(self, service, admin):
        service.submit("template", {"name": "x"}, "   ")

        [submission] = service.list_pending(admin)
        assert submission.submitted_by == "Anonymous"

    @pytest.mark.parametrize(
        "content_type,data",
        [
            (None, {"title": "T"}),
            ("", {"title": "T"}),
            ("cheatsheet", None),
            ("cheatsheet", {}),
            ("cheatsheet", ""),
            ("cheatsheet", 0),
            ("cheatsheet", False),
        ],
    )
    def test_missing_fields_write_nothing(self, service, store, content_type, data):
        with pytest.raises(ValidationError):
            service.submit(content_type, data)

        assert store.keys() == []

    @pytest.mark.parametrize("data", [True, 1, "text", [0]])
    def test_non_empty_scalar_payloads_are_accepted(self, service, store, data):
        submission_id = service.submit("cheatsheet", data)

        assert store.get(submission_id)["data"] == data

    def test_unknown_type_is_accepted_at_submit(self, service, store, admin):
        submission_id = service.submit("poster", {"a": 1})

        assert store.get(submission_id)["type"] == "poster"
        assert store.get(pending_key("poster")) == {"submissions": [submission_id]}
        # Only the known types are scanned
        assert service.list_pending(admin) == []

    def test_ids_are_unique_for_rapid_submissions(self, service, store):
        ids = [service.submit("testcase", {"n": n}) for n in range(25)]

        assert len(set(ids)) == 25
        assert store.get(pending_key("testcase")) == {"submissions": ids}

    def test_concurrent_submits_keep_every_id_indexed(self, service, store):
        ids: list[str] = []
        errors: list[Exception] = []

        def submit(n: int) -> None:
            try:
                ids.append(service.submit("testscript", {"n": n}))
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=submit, args=(n,)) for n in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        indexed = store.get(pending_key("testscript"))["submissions"]
        assert sorted(indexed) == sorted(ids)
        assert len(set(indexed)) == 10


class TestListPending:
    def test_requires_credentials(self, service):
        with pytest.raises(AuthenticationError):
            service.list_pending(None)

    def test_requires_admin(self, service, user):
        with pytest.raises(AuthorizationError):
            service.list_pending(user)

    def test_empty_queue(self, service, admin):
        assert service.list_pending(admin) == []

    def test_orders_by_type_then_index_order(self, service, admin):
        boilerplate = service.submit("boilerplate", {"b": 1})
        template_1 = service.submit("template", {"t": 1})
        cheatsheet = service.submit("cheatsheet", {"c": 1})
        template_2 = service.submit("template", {"t": 2})

        pending = service.list_pending(admin)

        assert [s.id for s in pending] == [
            cheatsheet,
            template_1,
            template_2,
            boilerplate,
        ]

    def test_skips_stale_and_dangling_entries(self, service, store, admin):
        live = service.submit("cheatsheet", {"title": "live"})
        stale = service.submit("cheatsheet", {"title": "stale"})

        # Simulate a review interrupted before the pending index write
        record = store.get(stale)
        record["status"] = "approved"
        store.set(stale, record)
        index = store.get(pending_key("cheatsheet"))
        index["submissions"].append("submission_cheatsheet_0")
        store.set(pending_key("cheatsheet"), index)

        assert [s.id for s in service.list_pending(admin)] == [live]

    def test_skips_malformed_records(self, service, store, admin):
        live = service.submit("template", {"title": "live"})
        store.set("submission_template_5", {"id": "submission_template_5"})
        index = store.get(pending_key("template"))
        index["submissions"].insert(0, "submission_template_5")
        store.set(pending_key("template"), index)

        assert [s.id for s in service.list_pending(admin)] == [live]


class TestReview:
    def test_concrete_scenario(self, service, admin):
        submission_id = service.submit("cheatsheet", {"title": "T"}, "Alice")
        assert ID_PATTERN.match(submission_id)

        pending = service.list_pending(admin)
        assert len(pending) == 1
        assert pending[0].id == submission_id
        assert pending[0].status == SubmissionStatus.PENDING

        reviewed = service.review(admin, submission_id, "approve")
        assert reviewed.status == SubmissionStatus.APPROVED
        assert reviewed.reviewed_by == "admin@example.com"
        assert reviewed.reviewed_at is not None
        assert reviewed.submitted_at == pending[0].submitted_at

        assert {"title": "T"} in service.list_approved("cheatsheet")

    def test_approve_publishes_once_and_dequeues(self, service, store, admin):
        submission_id = service.submit("template", {"name": "api"})

        service.review(admin, submission_id, "approve")

        assert service.list_approved("template") == [{"name": "api"}]
        assert store.get(pending_key("template")) == {"submissions": []}
        assert service.list_pending(admin) == []
        assert store.get(submission_id)["status"] == "approved"

    def test_reject_does_not_publish(self, service, store, admin):
        submission_id = service.submit("testcase", {"case": "login"})

        reviewed = service.review(admin, submission_id, "reject")

        assert reviewed.status == SubmissionStatus.REJECTED
        assert service.list_approved("testcase") == []
        assert store.get(approved_key("testcase")) is None
        assert store.get(pending_key("testcase")) == {"submissions": []}

    def test_second_review_is_a_conflict(self, service, store, admin):
        submission_id = service.submit("cheatsheet", {"title": "T"})
        service.review(admin, submission_id, "approve")

        with pytest.raises(ConflictError):
            service.review(admin, submission_id, "approve")
        with pytest.raises(ConflictError):
            service.review(admin, submission_id, "reject")

        assert service.list_approved("cheatsheet") == [{"title": "T"}]
        assert store.get(submission_id)["status"] == "approved"

    def test_repeated_reject_does_not_break_the_service(self, service, admin):
        submission_id = service.submit("cheatsheet", {"title": "T"})
        service.review(admin, submission_id, "reject")

        with pytest.raises(ConflictError):
            service.review(admin, submission_id, "reject")

        assert service.list_pending(admin) == []

    def test_unknown_submission(self, service, admin):
        with pytest.raises(NotFoundError):
            service.review(admin, "submission_cheatsheet_1", "approve")

    @pytest.mark.parametrize(
        "key",
        ["pending_cheatsheet", "approved_cheatsheet", "submission_cheatsheet_7"],
    )
    def test_keys_that_are_not_submissions_are_not_found(self, service, store, admin, key):
        approved = service.submit("cheatsheet", {"title": "A"})
        service.review(admin, approved, "approve")
        service.submit("cheatsheet", {"title": "B"})
        store.set("submission_cheatsheet_7", {"type": "cheatsheet"})
        before = {k: store.get(k) for k in store.keys()}

        with pytest.raises(NotFoundError):
            service.review(admin, key, "approve")
        with pytest.raises(NotFoundError):
            service.get_submission(admin, key)

        assert {k: store.get(k) for k in store.keys()} == before

    def test_approved_index_records_source_ids(self, service, store, admin):
        submission_id = service.submit("template", {"name": "api"})

        service.review(admin, submission_id, "approve")

        assert store.get(approved_key("template")) == {
            "items": [{"name": "api"}],
            "submissionIds": [submission_id],
        }

    @pytest.mark.parametrize("action", ["publish", "", None, "APPROVE"])
    def test_invalid_action(self, service, store, admin, action):
        submission_id = service.submit("cheatsheet", {"title": "T"})

        with pytest.raises(ValidationError):
            service.review(admin, submission_id, action)

        assert store.get(submission_id)["status"] == "pending"

    def test_missing_submission_id(self, service, admin):
        with pytest.raises(ValidationError):
            service.review(admin, None, "approve")

    def test_requires_credentials(self, service):
        submission_id = service.submit("cheatsheet", {"title": "T"})

        with pytest.raises(AuthenticationError):
            service.review(None, submission_id, "approve")

    def test_requires_admin(self, service, store, user):
        submission_id = service.submit("cheatsheet", {"title": "T"})

        with pytest.raises(AuthorizationError):
            service.review(user, submission_id, "approve")

        assert store.get(submission_id)["status"] == "pending"

    def test_dequeue_when_already_missing_from_index(self, service, store, admin):
        submission_id = service.submit("boilerplate", {"stack": "fastapi"})
        store.set(pending_key("boilerplate"), {"submissions": []})

        reviewed = service.review(admin, submission_id, "approve")

        assert reviewed.status == SubmissionStatus.APPROVED
        assert store.get(pending_key("boilerplate")) == {"submissions": []}

    def test_get_submission(self, service, admin, user):
        submission_id = service.submit("cheatsheet", {"title": "T"})
        service.review(admin, submission_id, "reject")

        assert service.get_submission(admin, submission_id).status == SubmissionStatus.REJECTED
        with pytest.raises(AuthorizationError):
            service.get_submission(user, submission_id)
        with pytest.raises(NotFoundError):
            service.get_submission(admin, "submission_cheatsheet_2")


class TestListApproved:
    def test_unknown_type_is_empty(self, service):
        assert service.list_approved("nonexistent-type") == []

    def test_keeps_approval_order(self, service, admin):
        first = service.submit("testscript", {"n": 1})
        second = service.submit("testscript", {"n": 2})

        service.review(admin, second, "approve")
        service.review(admin, first, "approve")

        assert service.list_approved("testscript") == [{"n": 2}, {"n": 1}]


def fail_writes_to(monkeypatch, failing_key):
    """Make KeyValueStore.set raise StoreError for one key."""
    original_set = KeyValueStore.set

    def set_or_fail(self, key, value):
        if key == failing_key:
            raise StoreError("Failed to write key-value data")
        original_set(self, key, value)

    monkeypatch.setattr(KeyValueStore, "set", set_or_fail)


class TestInterruptedReview:
    def test_approved_index_write_fails(self, service, store, admin, monkeypatch):
        submission_id = service.submit("template", {"name": "api"})
        fail_writes_to(monkeypatch, approved_key("template"))

        with pytest.raises(StoreError):
            service.review(admin, submission_id, "approve")
        monkeypatch.undo()

        # Only the record write went through
        assert store.get(submission_id)["status"] == "approved"
        assert store.get(approved_key("template")) is None
        assert store.get(pending_key("template")) == {"submissions": [submission_id]}
        assert service.list_pending(admin) == []
        with pytest.raises(ConflictError):
            service.review(admin, submission_id, "approve")

        service.reconcile_pending_indices()

        assert service.list_approved("template") == [{"name": "api"}]
        assert store.get(pending_key("template")) == {"submissions": []}

    def test_pending_index_write_fails(self, service, store, admin, monkeypatch):
        submission_id = service.submit("testcase", {"case": "login"})
        fail_writes_to(monkeypatch, pending_key("testcase"))

        with pytest.raises(StoreError):
            service.review(admin, submission_id, "approve")
        monkeypatch.undo()

        assert store.get(submission_id)["status"] == "approved"
        assert service.list_approved("testcase") == [{"case": "login"}]
        assert store.get(pending_key("testcase")) == {"submissions": [submission_id]}
        assert service.list_pending(admin) == []

        service.reconcile_pending_indices()

        assert store.get(pending_key("testcase")) == {"submissions": []}
        assert service.list_approved("testcase") == [{"case": "login"}]

    def test_record_write_fails(self, service, store, admin, monkeypatch):
        submission_id = service.submit("boilerplate", {"stack": "django"})
        original_set = KeyValueStore.set

        def fail_record(self, key, value):
            if key == submission_id and value["status"] != "pending":
                raise StoreError("Failed to write key-value data")
            original_set(self, key, value)

        monkeypatch.setattr(KeyValueStore, "set", fail_record)

        with pytest.raises(StoreError):
            service.review(admin, submission_id, "approve")
        monkeypatch.undo()

        assert store.get(submission_id)["status"] == "pending"
        assert store.get(approved_key("boilerplate")) is None
        assert [s.id for s in service.list_pending(admin)] == [submission_id]


class TestReconcile:
    def test_restores_dropped_entries_and_removes_stale_ones(self, service, store, admin):
        kept = service.submit("cheatsheet", {"n": 1})
        dropped = service.submit("cheatsheet", {"n": 2})
        reviewed = service.submit("template", {"n": 3})

        # Lost update on the cheatsheet index, stale entry on the template one
        store.set(pending_key("cheatsheet"), {"submissions": [kept]})
        record = store.get(reviewed)
        record["status"] = "rejected"
        store.set(reviewed, record)

        counts = service.reconcile_pending_indices()

        assert counts["cheatsheet"] == 2
        assert counts["template"] == 0
        assert store.get(pending_key("cheatsheet")) == {
            "submissions": [kept, dropped]
        }
        assert store.get(pending_key("template")) == {"submissions": []}
        assert [s.id for s in service.list_pending(admin)] == [kept, dropped]

    def test_covers_types_outside_the_known_list(self, service, store):
        submission_id = service.submit("poster", {"n": 1})
        store.delete(pending_key("poster"))

        counts = service.reconcile_pending_indices()

        assert counts["poster"] == 1
        assert store.get(pending_key("poster")) == {"submissions": [submission_id]}

    def test_is_a_noop_on_consistent_store(self, service, store):
        service.submit("testcase", {"n": 1})
        before = store.get(pending_key("testcase"))

        counts = service.reconcile_pending_indices()

        assert counts == {
            "cheatsheet": 0,
            "template": 0,
            "testcase": 1,
            "testscript": 0,
            "boilerplate": 0,
        }
        assert store.get(pending_key("testcase")) == before

    def test_republishes_missing_approvals_once(self, service, store, admin):
        first = service.submit("testscript", {"n": 1})
        second = service.submit("testscript", {"n": 2})
        service.review(admin, first, "approve")
        service.review(admin, second, "approve")

        # Lose the second approval from the approved index
        store.set(approved_key("testscript"), {
            "items": [{"n": 1}],
            "submissionIds": [first],
        })

        service.reconcile_pending_indices()
        service.reconcile_pending_indices()

        assert store.get(approved_key("testscript")) == {
            "items": [{"n": 1}, {"n": 2}],
            "submissionIds": [first, second],
        }

    def test_rejected_submissions_are_not_published(self, service, admin):
        submission_id = service.submit("cheatsheet", {"n": 1})
        service.review(admin, submission_id, "reject")

        service.reconcile_pending_indices()

        assert service.list_approved("cheatsheet") == []

    def test_untracked_approved_index_is_left_alone(self, service, store, admin):
        submission_id = service.submit("template", {"n": 1})
        service.review(admin, submission_id, "approve")
        legacy = {"items": [{"n": 1}, {"n": 0}]}
        store.set(approved_key("template"), legacy)

        service.reconcile_pending_indices()

        assert store.get(approved_key("template")) == legacy

    def test_skips_malformed_records(self, service, store):
        submission_id = service.submit("cheatsheet", {"n": 1})
        store.set("submission_cheatsheet_3", {"status": "pending"})

        counts = service.reconcile_pending_indices()

        assert counts["cheatsheet"] == 1
        assert store.get(pending_key("cheatsheet")) == {"submissions": [submission_id]}


class TestWithoutIdentityProvider:
    @pytest.fixture
    def maintenance_service(self, store) -> SubmissionService:
        return SubmissionService(store, LocalKeyedLock())

    def test_reconciles(self, maintenance_service, store):
        submission_id = maintenance_service.submit("cheatsheet", {"n": 1})
        store.delete(pending_key("cheatsheet"))

        counts = maintenance_service.reconcile_pending_indices()

        assert counts["cheatsheet"] == 1
        assert store.get(pending_key("cheatsheet")) == {"submissions": [submission_id]}

    def test_token_resolution_is_unavailable(self, maintenance_service):
        assert maintenance_service.resolve_caller(None) is None
        with pytest.raises(IdentityProviderError):
            maintenance_service.resolve_caller("admin-token")

    def test_signup_is_refused_without_admin_secret(self, maintenance_service):
        with pytest.raises(AuthorizationError):
            maintenance_service.signup_admin("a@example.com", "pw", "A", "")


class TestSignupAdmin:
    def test_wrong_secret(self, service, identity_provider):
        with pytest.raises(AuthorizationError):
            service.signup_admin("a@example.com", "pw", "A", "wrong")

        assert identity_provider.created == []

    def test_missing_secret(self, service):
        with pytest.raises(AuthorizationError):
            service.signup_admin("a@example.com", "pw", "A", None)

    def test_missing_credentials(self, service):
        with pytest.raises(ValidationError):
            service.signup_admin("", "pw", "A", ADMIN_SECRET)

    def test_creates_admin(self, service, identity_provider):
        user = service.signup_admin("a@example.com", "pw", "A", ADMIN_SECRET)

        assert user["email"] == "a@example.com"
        assert user["user_metadata"]["isAdmin"] is True
        assert len(identity_provider.created) == 1


class TestResolveCaller:
    def test_no_token(self, service):
        assert service.resolve_caller(None) is None
        assert service.resolve_caller("") is None

    def test_bad_token(self, service):
        with pytest.raises(AuthenticationError):
            service.resolve_caller("nope")
