"""
Tests for Approval Domain Types (``approval_kernel.domain.approval``).

Covers the request lifecycle transition table, decision/outcome enums,
approver slots and chain configuration helpers, config validation, the
Result value, and the frozen guarantee on all dataclasses.
"""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime

import pytest

from approval_kernel.domain.approval import (
    REQUEST_TRANSITIONS,
    TERMINAL_REQUEST_STATES,
    ApprovalAction,
    ApprovalConfig,
    ApprovalDecision,
    ApprovalMode,
    ApprovalOutcome,
    ApprovalProgress,
    ApproverSpec,
    RequestState,
    can_transition,
    validate_config,
)
from approval_kernel.domain.request import format_request_number
from approval_kernel.domain.results import Result
from approval_kernel.exceptions import ConfigurationError, RequestNotFoundError


def make_spec(spec_id: str, order: int, required: bool = True) -> ApproverSpec:
    return ApproverSpec(
        id=spec_id, principal_id=f"user-{spec_id}", order=order, is_required=required,
    )


# =========================================================================
# RequestState and REQUEST_TRANSITIONS
# =========================================================================


class TestRequestTransitions:
    """Tests for the REQUEST_TRANSITIONS state machine dict."""

    def test_every_state_has_transition_entry(self):
        for state in RequestState:
            assert state in REQUEST_TRANSITIONS

    def test_draft_transitions(self):
        assert REQUEST_TRANSITIONS[RequestState.DRAFT] == {
            RequestState.PENDING,
            RequestState.CANCELLED,
        }

    def test_pending_transitions(self):
        assert REQUEST_TRANSITIONS[RequestState.PENDING] == {
            RequestState.APPROVED,
            RequestState.REJECTED,
            RequestState.CANCELLED,
        }

    def test_terminal_states_have_no_outgoing_transitions(self):
        for state in TERMINAL_REQUEST_STATES:
            assert REQUEST_TRANSITIONS[state] == frozenset()

    def test_draft_cannot_be_approved_directly(self):
        assert can_transition(RequestState.DRAFT, RequestState.APPROVED) is False
        assert can_transition(RequestState.DRAFT, RequestState.PENDING) is True

    def test_str_enum_identity(self):
        assert RequestState.CANCELLED == "cancelled"


class TestDecisionEnums:

    def test_skipped_is_not_terminal(self):
        assert ApprovalDecision.APPROVED.is_terminal
        assert ApprovalDecision.REJECTED.is_terminal
        assert not ApprovalDecision.SKIPPED.is_terminal

    def test_outcome_maps_to_request_state(self):
        assert ApprovalOutcome.APPROVED.request_state == RequestState.APPROVED
        assert ApprovalOutcome.REJECTED.request_state == RequestState.REJECTED

    def test_any_mode_wire_value(self):
        assert ApprovalMode("any") == ApprovalMode.ANY_ONE


# =========================================================================
# ApproverSpec / ApprovalConfig
# =========================================================================


class TestApprovalConfig:

    def test_defaults(self):
        spec = ApproverSpec(id="1", principal_id="2", order=1)
        assert spec.is_required is True
        assert spec.can_delegate is True
        assert spec.delegated_from is None

    def test_ordered_and_required_views(self):
        config = ApprovalConfig(
            mode=ApprovalMode.SEQUENTIAL,
            approvers=(make_spec("c", 3), make_spec("a", 1), make_spec("b", 2, required=False)),
        )

        assert [s.id for s in config.ordered_approvers()] == ["a", "b", "c"]
        assert [s.id for s in config.required_approvers()] == ["a", "c"]

    def test_lookup_by_id_and_principal(self):
        config = ApprovalConfig(mode=ApprovalMode.ANY_ONE, approvers=(make_spec("a", 1),))

        assert config.spec_by_id("a").principal_id == "user-a"
        assert config.spec_for_principal("user-a").id == "a"
        assert config.spec_by_id("missing") is None
        assert config.spec_for_principal("nobody") is None

    def test_with_substituted_keeps_position(self):
        config = ApprovalConfig(
            mode=ApprovalMode.SEQUENTIAL,
            approvers=(make_spec("a", 1), make_spec("b", 2)),
        )
        swapped = config.with_substituted(config.approvers[0].delegated_to("zoe", "Zoe"))

        assert [s.principal_id for s in swapped.approvers] == ["zoe", "user-b"]
        assert swapped.approvers[0].delegated_from == "user-a"
        assert swapped.approvers[0].display_name == "Zoe"
        assert config.approvers[0].principal_id == "user-a"

    def test_delegated_to_keeps_role_unless_replaced(self):
        spec = ApproverSpec(id="a", principal_id="user-a", order=1, role="Security")

        assert spec.delegated_to("zoe").role == "Security"
        assert spec.delegated_to("zoe", role="Deputy").role == "Deputy"

    def test_immutability(self):
        spec = make_spec("a", 1)
        with pytest.raises(FrozenInstanceError):
            spec.order = 2  # type: ignore[misc]


class TestValidateConfig:

    def test_valid_config(self):
        config = ApprovalConfig(
            mode=ApprovalMode.SEQUENTIAL,
            approvers=(make_spec("a", 1), make_spec("b", 2)),
        )
        assert validate_config(config).value is config

    def test_empty_chain(self):
        result = validate_config(ApprovalConfig(mode=ApprovalMode.ANY_ONE))

        assert isinstance(result.error, ConfigurationError)
        assert result.error.field == "approvers"

    def test_duplicate_principal_message(self):
        config = ApprovalConfig(
            mode=ApprovalMode.ANY_ONE,
            approvers=(
                ApproverSpec(id="a", principal_id="u", order=1),
                ApproverSpec(id="b", principal_id="u", order=2),
            ),
        )
        result = validate_config(config)
        assert "duplicate approvers are not allowed" in str(result.error)

    def test_tied_order_only_matters_in_sequential_mode(self):
        approvers = (make_spec("a", 1), make_spec("b", 1))

        assert validate_config(ApprovalConfig(ApprovalMode.ANY_ONE, approvers)).ok
        result = validate_config(ApprovalConfig(ApprovalMode.SEQUENTIAL, approvers))
        assert result.error.field == "order"


# =========================================================================
# Actions, progress, numbering
# =========================================================================


class TestApprovalAction:

    def test_defaults(self):
        action = ApprovalAction(
            approver_spec_id="a",
            decision=ApprovalDecision.APPROVED,
            acted_at=datetime(2025, 8, 7, 14, 30, tzinfo=UTC),
        )
        assert action.comment is None
        assert action.signature_present is False
        assert action.is_terminal


class TestApprovalProgress:

    @pytest.mark.parametrize(
        ("current", "total", "percent"),
        [(0, 2, 0), (1, 3, 33), (2, 3, 67), (3, 3, 100), (0, 0, 0)],
    )
    def test_percent(self, current, total, percent):
        assert ApprovalProgress(current_level=current, total_levels=total).percent == percent


class TestRequestNumber:

    def test_zero_padded(self):
        assert format_request_number(7) == "REQ-00007"
        assert format_request_number(123456) == "REQ-123456"


# =========================================================================
# Result
# =========================================================================


class TestResult:

    def test_success(self):
        result = Result.success(3)
        assert result.ok and bool(result)
        assert result.code is None
        assert result.unwrap() == 3
        assert result.map(lambda v: v + 1).value == 4

    def test_failure_unwrap_raises_carried_error(self):
        error = RequestNotFoundError("r-1")
        result = Result.failure(error)

        assert not result
        assert result.code == "REQUEST_NOT_FOUND"
        assert result.map(lambda v: v + 1).error is error
        with pytest.raises(RequestNotFoundError):
            result.unwrap()
