"""
ARN lifecycle tests.

Verifies:
- Only direct edges of the status graph are accepted
- Entering a status stamps its timestamp exactly once
- Bulk state delivery is all-or-nothing and writes one history row
- Store receipt and SHQ pickup report per-item results
"""

import pytest

from enbic.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
)
from enbic.models import Arn, AuditLogEntry, DeliveryHistory
from enbic.services import lifecycle_service as ls
from enbic.services.hooks import HOOK_REGENERATE_REMINDERS, PostCommitHooks


def _arn(db_session, operator, value="ARN-001", state="Lagos", status=None):
    row = ls.create_arn(value, state, actor=operator)
    if status:
        path = {
            ls.STATUS_SUBMITTED: [ls.STATUS_SUBMITTED],
            ls.STATUS_PENDING_DELIVERY: [ls.STATUS_SUBMITTED, ls.STATUS_PENDING_DELIVERY],
        }[status]
        for step in path:
            ls.transition_arn(value, step, actor=operator)
    db_session.commit()
    return row


class TestCreateArn:
    def test_creates_at_awaiting_capture(self, db_session, operator, states):
        hooks = PostCommitHooks()
        row = ls.create_arn("ARN-100", "Lagos", actor=operator, name="Jane Doe", hooks=hooks)

        assert row.status == ls.STATUS_AWAITING_CAPTURE
        assert row.created_at is not None
        assert hooks.events == [HOOK_REGENERATE_REMINDERS]
        entry = db_session.query(AuditLogEntry).filter_by(arn="ARN-100").one()
        assert entry.action == "ARN_CREATED"
        assert entry.operator == "Oscar Operator"

    def test_duplicate_is_conflict(self, db_session, operator, states):
        _arn(db_session, operator, "ARN-100")
        with pytest.raises(ConflictError):
            ls.create_arn("ARN-100", "Kano", actor=operator)

    def test_unknown_state_rejected(self, db_session, operator, states):
        with pytest.raises(InvalidArgumentError):
            ls.create_arn("ARN-100", "Atlantis", actor=operator)

    def test_supervisor_cannot_create(self, db_session, supervisor, states):
        with pytest.raises(ForbiddenError):
            ls.create_arn("ARN-100", "Lagos", actor=supervisor)


class TestTransitions:
    def test_happy_path_stamps_each_timestamp(self, db_session, operator, states):
        _arn(db_session, operator)

        row = ls.transition_arn("ARN-001", ls.STATUS_SUBMITTED, actor=operator)
        assert row.submitted_at is not None
        assert row.pending_delivery_at is None

        row = ls.transition_arn("ARN-001", ls.STATUS_PENDING_DELIVERY, actor=operator)
        assert row.pending_delivery_at is not None

        row = ls.transition_arn("ARN-001", ls.STATUS_DELIVERED, actor=operator)
        assert row.status == ls.STATUS_DELIVERED
        assert row.delivered_at is not None

    def test_skipping_a_step_is_rejected(self, db_session, operator, states):
        _arn(db_session, operator)
        with pytest.raises(InvalidTransitionError) as exc:
            ls.transition_arn("ARN-001", ls.STATUS_PENDING_DELIVERY, actor=operator)
        assert exc.value.details["current_status"] == ls.STATUS_AWAITING_CAPTURE

    def test_backwards_move_is_rejected(self, db_session, operator, states):
        _arn(db_session, operator, status=ls.STATUS_PENDING_DELIVERY)
        with pytest.raises(InvalidTransitionError):
            ls.transition_arn("ARN-001", ls.STATUS_SUBMITTED, actor=operator)

    def test_terminal_status_never_changes(self, db_session, operator, states):
        _arn(db_session, operator, status=ls.STATUS_PENDING_DELIVERY)
        ls.transition_arn("ARN-001", ls.STATUS_COLLECTED, actor=operator)
        for target in (ls.STATUS_DELIVERED, ls.STATUS_PENDING_DELIVERY, ls.STATUS_COLLECTED):
            with pytest.raises(InvalidTransitionError):
                ls.transition_arn("ARN-001", target, actor=operator)

    def test_unknown_status_value(self, db_session, operator, states):
        _arn(db_session, operator)
        with pytest.raises(InvalidArgumentError):
            ls.transition_arn("ARN-001", "Lost in transit", actor=operator)

    def test_unknown_arn(self, db_session, operator, states):
        with pytest.raises(NotFoundError):
            ls.transition_arn("NOPE", ls.STATUS_SUBMITTED, actor=operator)

    def test_can_transition_graph(self):
        assert ls.can_transition(ls.STATUS_STORED, ls.STATUS_PENDING_DELIVERY)
        assert not ls.can_transition(ls.STATUS_STORED, ls.STATUS_DELIVERED)
        assert not ls.can_transition(ls.STATUS_SUBMITTED, ls.STATUS_SUBMITTED)


class TestDocumentNumber:
    def test_set_while_submitted(self, db_session, operator, states):
        _arn(db_session, operator, status=ls.STATUS_SUBMITTED)
        row = ls.set_document_number("ARN-001", " DOC-77 ", actor=operator)
        assert row.document_number == "DOC-77"
        assert row.document_number_set_by == "Oscar Operator"

    def test_rejected_while_awaiting_capture(self, db_session, operator, states):
        _arn(db_session, operator)
        with pytest.raises(InvalidStateError):
            ls.set_document_number("ARN-001", "DOC-77", actor=operator)


class TestConfirmDeliveryForState:
    def test_delivers_all_pending_in_state(self, db_session, operator, states):
        for i in range(3):
            _arn(db_session, operator, f"L-{i}", "Lagos", status=ls.STATUS_PENDING_DELIVERY)
        _arn(db_session, operator, "K-1", "Kano", status=ls.STATUS_PENDING_DELIVERY)
        _arn(db_session, operator, "L-new", "Lagos")

        hooks = PostCommitHooks()
        result = ls.confirm_delivery_for_state("Lagos", actor=operator, notes="van 2", hooks=hooks)
        db_session.commit()

        assert result["count"] == 3
        assert sorted(result["arns"]) == ["L-0", "L-1", "L-2"]
        assert result["history"].arn_count == 3
        assert result["history"].operator_notes == "van 2"
        assert hooks.events == [HOOK_REGENERATE_REMINDERS]

        statuses = dict(db_session.query(Arn.arn, Arn.status).all())
        assert statuses["K-1"] == ls.STATUS_PENDING_DELIVERY
        assert statuses["L-new"] == ls.STATUS_AWAITING_CAPTURE
        assert all(statuses[f"L-{i}"] == ls.STATUS_DELIVERED for i in range(3))

    def test_nothing_pending_writes_no_history(self, db_session, operator, states):
        result = ls.confirm_delivery_for_state("Kano", actor=operator)
        assert result == {"count": 0, "arns": [], "history": None}
        assert db_session.query(DeliveryHistory).count() == 0

    def test_deliver_arns_is_all_or_nothing(self, db_session, operator, states):
        _arn(db_session, operator, "L-1", status=ls.STATUS_PENDING_DELIVERY)
        _arn(db_session, operator, "L-2")
        rows = db_session.query(Arn).order_by(Arn.arn).all()

        with pytest.raises(InvalidTransitionError):
            ls.deliver_arns(rows, state="Lagos", actor=operator)
        assert rows[0].status == ls.STATUS_PENDING_DELIVERY


class TestReceiveAndPickup:
    def test_receive_into_store_per_item(self, db_session, operator, states):
        _arn(db_session, operator, "S-1", status=ls.STATUS_SUBMITTED)
        _arn(db_session, operator, "A-1")

        results = ls.receive_into_store(["S-1", "A-1", "S-1", "NEW-1"], actor=operator, state="Kano")
        db_session.commit()

        by_arn = {r["arn"]: r for r in results}
        assert len(results) == 3
        assert by_arn["S-1"]["success"] is True
        assert by_arn["S-1"]["status"] == ls.STATUS_PENDING_DELIVERY
        assert by_arn["A-1"]["success"] is False
        assert by_arn["A-1"]["error"] == "InvalidTransition"
        assert by_arn["NEW-1"]["status"] == ls.STATUS_STORED

        stored = ls.get_arn("S-1")
        assert stored.stored_at is not None
        assert ls.get_arn("A-1").status == ls.STATUS_AWAITING_CAPTURE

    def test_unknown_arn_without_state_fails_item(self, db_session, operator, states):
        results = ls.receive_into_store(["GHOST"], actor=operator)
        assert results[0]["success"] is False
        assert results[0]["error"] == "NotFound"

    def test_pickup_requires_collector_detail(self, db_session, operator, states):
        _arn(db_session, operator, status=ls.STATUS_PENDING_DELIVERY)
        with pytest.raises(InvalidArgumentError):
            ls.record_pickup(["ARN-001"], actor=operator)

    def test_pickup_records_collector(self, db_session, operator, states):
        _arn(db_session, operator, "P-1", status=ls.STATUS_PENDING_DELIVERY)
        _arn(db_session, operator, "P-2", status=ls.STATUS_SUBMITTED)

        results = ls.record_pickup(
            ["P-1", "P-2"], actor=operator, collector_name="Musa", phone="0801"
        )
        db_session.commit()

        assert [r["success"] for r in results] == [True, False]
        row = ls.get_arn("P-1")
        assert row.status == ls.STATUS_COLLECTED
        assert row.collected_at is not None
        assert row.collector_name == "Musa"
        assert row.collector_phone == "0801"
        entry = db_session.query(AuditLogEntry).filter_by(arn="P-1", action="SHQ_PICKUP").one()
        assert "Musa" in entry.new_value

    def test_empty_list_rejected(self, db_session, operator, states):
        with pytest.raises(InvalidArgumentError):
            ls.record_pickup([], actor=operator, collector_name="Musa")
