"""
Tests for the request repositories.

Both implementations run the same contract tests:
- get / save round trip, RequestNotFoundError on unknown ids
- optimistic concurrency: only version N+1 may overwrite version N
- stored actions and comments may only be appended to, never rewritten
- list filters and ordering, request numbering
"""

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from approval_engines.lifecycle import RequestLifecycle
from approval_kernel.db import session_scope
from approval_kernel.domain.approval import (
    ApprovalConfig,
    ApprovalDecision,
    ApprovalMode,
    ApproverSpec,
    RequestState,
)
from approval_kernel.domain.audit_trail import AuditTrail
from approval_kernel.domain.request import CommentType
from approval_kernel.exceptions import (
    ImmutabilityViolationError,
    OptimisticLockError,
    RequestNotFoundError,
)
from approval_services.repository import (
    InMemoryRequestRepository,
    SqlAlchemyRequestRepository,
)

T0 = datetime(2025, 8, 10, 10, 0, tzinfo=UTC)

CONFIG = ApprovalConfig(
    mode=ApprovalMode.SEQUENTIAL,
    approvers=(
        ApproverSpec(id="mgr", principal_id="jane", order=1),
        ApproverSpec(id="cto", principal_id="moses", order=2),
    ),
)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


def make_draft(number: str = "REQ-00001", requester: str = "alice", minute: int = 0) -> RequestLifecycle:
    return RequestLifecycle.draft(
        request_id=uuid4(),
        request_number=number,
        template_id="it-access-request",
        title="Server Room Access",
        requester_id=requester,
        config=CONFIG,
        created_at=at(minute),
        form_data={"room": "SR-1"},
    )


@pytest.fixture(params=["memory", "sqlalchemy"])
def repository(request):
    if request.param == "memory":
        return InMemoryRequestRepository()
    return SqlAlchemyRequestRepository(request.getfixturevalue("session"))


def save_through_approval(repository) -> RequestLifecycle:
    """Save draft (v1), submitted (v2) and first approval (v3)."""
    lc = make_draft()
    repository.save(lc)
    lc = lc.submit(at=at(1)).unwrap()
    repository.save(lc)
    lc = lc.record_action("jane", ApprovalDecision.APPROVED, "ok", at=at(2)).unwrap()
    repository.save(lc)
    return lc


# =========================================================================
# get / save
# =========================================================================


class TestGetAndSave:

    def test_round_trip(self, repository):
        lc = save_through_approval(repository)

        loaded = repository.get(lc.request.request_id)

        assert loaded == lc
        assert loaded.version == 3
        assert loaded.trail.entries[0].comment == "ok"

    def test_unknown_id_raises(self, repository):
        missing = uuid4()

        with pytest.raises(RequestNotFoundError) as exc_info:
            repository.get(missing)
        assert exc_info.value.request_id == str(missing)

    def test_comments_round_trip(self, repository):
        lc = save_through_approval(repository)
        question_id = uuid4()
        lc = lc.add_comment(
            "moses", "Which badge reader?", at=at(3), comment_id=question_id,
            comment_type=CommentType.QUESTION, is_internal=True,
        ).unwrap()
        repository.save(lc)
        lc = lc.add_comment(
            "alice", "North door", at=at(4), comment_id=uuid4(),
            comment_type=CommentType.RESPONSE, parent_comment_id=question_id,
        ).unwrap()
        repository.save(lc)

        loaded = repository.get(lc.request.request_id)

        assert loaded == lc
        assert [c.body for c in loaded.comments] == ["Which badge reader?", "North door"]
        assert loaded.comments[0].is_internal is True
        assert loaded.comments[1].parent_comment_id == question_id

    def test_resolved_request_is_stored(self, repository):
        lc = save_through_approval(repository)
        lc = lc.record_action("moses", ApprovalDecision.APPROVED, at=at(3)).unwrap()

        repository.save(lc)

        loaded = repository.get(lc.request.request_id)
        assert loaded.state == RequestState.APPROVED
        assert [a.approver_spec_id for a in loaded.trail] == ["mgr", "cto"]


# =========================================================================
# Optimistic concurrency
# =========================================================================


class TestOptimisticConcurrency:

    def test_new_request_must_be_version_one(self, repository):
        submitted = make_draft().submit(at=at(1)).unwrap()

        with pytest.raises(OptimisticLockError) as exc_info:
            repository.save(submitted)
        assert exc_info.value.actual_version == 0

    def test_draft_cannot_be_saved_twice(self, repository):
        lc = make_draft()
        repository.save(lc)

        with pytest.raises(OptimisticLockError):
            repository.save(lc)

    def test_second_writer_from_same_snapshot_loses(self, repository):
        lc = make_draft()
        repository.save(lc)
        submitted = lc.submit(at=at(1)).unwrap()
        repository.save(submitted)

        first = submitted.record_action("jane", ApprovalDecision.APPROVED, at=at(2)).unwrap()
        second = submitted.record_action("jane", ApprovalDecision.REJECTED, at=at(2)).unwrap()
        repository.save(first)

        with pytest.raises(OptimisticLockError) as exc_info:
            repository.save(second)
        assert exc_info.value.expected_version == 2
        assert exc_info.value.actual_version == 3
        assert repository.get(lc.request.request_id).state == RequestState.PENDING

    def test_skipping_a_version_is_refused(self, repository):
        lc = make_draft()
        repository.save(lc)
        v3 = (
            lc.submit(at=at(1)).unwrap()
            .record_action("jane", ApprovalDecision.APPROVED, at=at(2)).unwrap()
        )

        with pytest.raises(OptimisticLockError):
            repository.save(v3)

    def test_trail_cannot_shrink(self, repository):
        lc = save_through_approval(repository)
        truncated = replace(
            lc,
            trail=AuditTrail.empty(),
            request=replace(lc.request, version=lc.version + 1),
        )

        with pytest.raises(ImmutabilityViolationError):
            repository.save(truncated)

    def test_stored_action_cannot_be_rewritten(self, repository):
        lc = save_through_approval(repository)
        rewritten = replace(
            lc.trail.entries[0], decision=ApprovalDecision.REJECTED, comment="changed my mind",
        )
        tampered = replace(
            lc,
            trail=AuditTrail.of(rewritten),
            request=replace(lc.request, version=lc.version + 1),
        )

        with pytest.raises(ImmutabilityViolationError):
            repository.save(tampered)

        stored = repository.get(lc.request.request_id)
        assert [a.decision for a in stored.trail] == [ApprovalDecision.APPROVED]
        assert stored.version == lc.version

    def test_stored_comment_cannot_be_rewritten(self, repository):
        lc = save_through_approval(repository)
        lc = lc.add_comment("jane", "ok by me", at=at(3), comment_id=uuid4()).unwrap()
        repository.save(lc)
        tampered = replace(
            lc,
            comments=(replace(lc.comments[0], body="never mind"),),
            request=replace(lc.request, version=lc.version + 1),
        )

        with pytest.raises(ImmutabilityViolationError):
            repository.save(tampered)


# =========================================================================
# Listing and numbering
# =========================================================================


class TestListAndNumbering:

    def test_list_filters_and_orders(self, repository):
        later = make_draft("REQ-00002", requester="bob", minute=5)
        earlier = make_draft("REQ-00001", requester="alice", minute=1)
        repository.save(later)
        repository.save(earlier)
        submitted = later.submit(at=at(6)).unwrap()
        repository.save(submitted)

        assert [lc.request.request_number for lc in repository.list()] == [
            "REQ-00001",
            "REQ-00002",
        ]
        assert [lc.request.requester_id for lc in repository.list(state=RequestState.PENDING)] == ["bob"]
        assert [lc.request.requester_id for lc in repository.list(requester_id="alice")] == ["alice"]
        assert repository.list(state=RequestState.APPROVED, requester_id="alice") == []

    def test_in_memory_numbers_are_sequential(self):
        repository = InMemoryRequestRepository()
        assert repository.next_request_number() == "REQ-00001"
        assert repository.next_request_number() == "REQ-00002"

    def test_sql_number_follows_stored_rows(self, session):
        repository = SqlAlchemyRequestRepository(session)
        assert repository.next_request_number() == "REQ-00001"

        repository.save(make_draft("REQ-00001"))

        assert repository.next_request_number() == "REQ-00002"


# =========================================================================
# Transaction scope
# =========================================================================


class TestSessionScope:

    def test_commit_is_visible_to_a_new_session(self, session):
        lc = make_draft()

        with session_scope() as scoped:
            SqlAlchemyRequestRepository(scoped).save(lc)

        assert SqlAlchemyRequestRepository(session).get(lc.request.request_id) == lc

    def test_failure_rolls_back_the_whole_scope(self, session):
        lc = make_draft()

        with pytest.raises(OptimisticLockError):
            with session_scope() as scoped:
                repository = SqlAlchemyRequestRepository(scoped)
                repository.save(lc)
                repository.save(lc)

        with pytest.raises(RequestNotFoundError):
            SqlAlchemyRequestRepository(session).get(lc.request.request_id)
