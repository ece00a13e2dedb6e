"""
Dispatch batch tests.

Verifies:
- Signer slots are role-gated and re-signing needs overwrite
- Both signatures make a batch ready; dispatch requires both
- Uploading the confirmation note delivers every covered ARN
- A rolled back signature leaves no file behind
"""

import os

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import PDF_PAYLOAD, PNG_DATA_URL
from enbic.errors import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
)
from enbic.models import DeliveryHistory, State
from enbic.services import dispatch_service as ds
from enbic.services import lifecycle_service as ls


def _pending(db_session, operator, value, state="Lagos"):
    ls.create_arn(value, state, actor=operator)
    ls.transition_arn(value, ls.STATUS_SUBMITTED, actor=operator)
    ls.transition_arn(value, ls.STATUS_PENDING_DELIVERY, actor=operator)
    db_session.commit()


def _signed_batch(db_session, operator, officer, batch_id="B-1", **kwargs):
    ds.create_batch(batch_id, "Lagos", 2, actor=operator, **kwargs)
    ds.sign_batch(batch_id, "operator", "Oscar", actor=operator)
    ds.sign_batch(batch_id, "officer", "Olu", actor=officer)
    db_session.commit()
    return ds.get_batch(batch_id)


class TestCreateBatch:
    def test_create_prepared(self, db_session, operator, states):
        batch = ds.create_batch("B-1", "Lagos", 5, actor=operator)
        assert batch.status == ds.BATCH_STATUS_PREPARED
        assert batch.created_by == "Oscar Operator"

    def test_duplicate_batch_id(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 5, actor=operator)
        with pytest.raises(ConflictError):
            ds.create_batch("B-1", "Kano", 1, actor=operator)

    def test_negative_count_rejected(self, db_session, operator, states):
        with pytest.raises(InvalidArgumentError):
            ds.create_batch("B-1", "Lagos", -1, actor=operator)

    def test_batch_arn_must_exist_in_state(self, db_session, operator, states):
        with pytest.raises(NotFoundError):
            ds.create_batch("B-1", "Lagos", 1, actor=operator, batch_arn="GHOST")

        _pending(db_session, operator, "K-1", "Kano")
        with pytest.raises(InvalidArgumentError):
            ds.create_batch("B-1", "Lagos", 1, actor=operator, batch_arn="K-1")


class TestSigning:
    def test_both_signatures_make_batch_ready(self, db_session, operator, officer, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)

        batch = ds.sign_batch("B-1", "operator", "Oscar", actor=operator)
        assert batch.status == ds.BATCH_STATUS_PREPARED
        assert batch.operator_signed_at is not None

        batch = ds.sign_batch("B-1", "officer", "Olu", actor=officer)
        assert batch.status == ds.BATCH_STATUS_READY

    def test_officer_cannot_take_operator_slot(self, db_session, operator, officer, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        with pytest.raises(ForbiddenError):
            ds.sign_batch("B-1", "operator", "Olu", actor=officer)

    def test_operator_cannot_take_officer_slot(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        with pytest.raises(ForbiddenError):
            ds.sign_batch("B-1", "officer", "Oscar", actor=operator)

    def test_admin_can_sign_either_slot(self, db_session, admin, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        ds.sign_batch("B-1", "officer", "Ada", actor=admin)
        batch = ds.sign_batch("B-1", "operator", "Ada", actor=admin)
        assert batch.status == ds.BATCH_STATUS_READY

    def test_resign_requires_overwrite(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        ds.sign_batch("B-1", "operator", "Oscar", actor=operator)

        with pytest.raises(ConflictError):
            ds.sign_batch("B-1", "operator", "Someone Else", actor=operator)

        batch = ds.sign_batch("B-1", "operator", "Someone Else", actor=operator, overwrite=True)
        assert batch.operator_name == "Someone Else"

    def test_unknown_signer(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        with pytest.raises(InvalidArgumentError):
            ds.sign_batch("B-1", "courier", "X", actor=operator)

    def test_signature_file_is_stored(self, app, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        batch = ds.sign_batch("B-1", "operator", "Oscar", actor=operator, file_data=PNG_DATA_URL)

        assert batch.delivery_note_path.startswith("dispatch/")
        assert batch.delivery_note_path.endswith(".png")
        assert os.path.isfile(os.path.join(app.config["UPLOAD_FOLDER"], batch.delivery_note_path))

    def test_bad_file_leaves_slot_unsigned(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        with pytest.raises(InvalidArgumentError):
            ds.sign_batch("B-1", "operator", "Oscar", actor=operator, file_data="not-a-data-url")
        assert ds.get_batch("B-1").operator_name is None

    def test_failed_commit_removes_signature_file(self, app, db_session, operator, states):
        ds.create_batch("B-7", "Lagos", 2, actor=operator)
        db_session.commit()
        batch = ds.sign_batch("B-7", "operator", "Oscar", actor=operator, file_data=PNG_DATA_URL)
        stored = os.path.join(app.config["UPLOAD_FOLDER"], batch.delivery_note_path)
        assert os.path.isfile(stored)

        # Duplicate state name fails the commit
        db_session.add(State(name="Lagos"))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

        assert not os.path.exists(stored)
        batch = ds.get_batch("B-7")
        assert batch.operator_name is None
        assert batch.delivery_note_path is None

    def test_committed_file_survives_later_rollback(self, app, db_session, operator, states):
        ds.create_batch("B-8", "Lagos", 2, actor=operator)
        batch = ds.sign_batch("B-8", "operator", "Oscar", actor=operator, file_data=PNG_DATA_URL)
        stored = os.path.join(app.config["UPLOAD_FOLDER"], batch.delivery_note_path)
        db_session.commit()

        ds.sign_batch("B-8", "operator", "Other", actor=operator, overwrite=True)
        db_session.rollback()

        assert os.path.isfile(stored)
        assert ds.get_batch("B-8").operator_name == "Oscar"


class TestDispatchAndDelivery:
    def test_dispatch_requires_both_signatures(self, db_session, operator, states):
        ds.create_batch("B-1", "Lagos", 2, actor=operator)
        ds.sign_batch("B-1", "operator", "Oscar", actor=operator)

        with pytest.raises(PreconditionFailedError):
            ds.confirm_dispatch("B-1", actor=operator)

    def test_confirmation_delivers_pending_arns(self, db_session, operator, officer, states):
        _pending(db_session, operator, "L-1")
        _pending(db_session, operator, "L-2")
        _pending(db_session, operator, "K-1", "Kano")
        _signed_batch(db_session, operator, officer)

        batch = ds.confirm_dispatch("B-1", actor=operator)
        assert batch.status == ds.BATCH_STATUS_DISPATCHED
        assert batch.dispatched_at is not None

        result = ds.upload_confirmation("B-1", PDF_PAYLOAD, actor=officer, notes="received")
        db_session.commit()

        assert sorted(result["arns"]) == ["L-1", "L-2"]
        assert result["batch"].status == ds.BATCH_STATUS_DELIVERED
        assert result["batch"].confirmation_note_path.endswith(".pdf")
        assert ls.get_arn("L-1").status == ls.STATUS_DELIVERED
        assert ls.get_arn("L-1").delivered_at is not None
        assert ls.get_arn("K-1").status == ls.STATUS_PENDING_DELIVERY

        history = db_session.query(DeliveryHistory).one()
        assert history.batch_id == "B-1"
        assert history.arn_count == 2

    def test_single_arn_batch_fails_whole_if_not_pending(self, db_session, operator, officer, states):
        ls.create_arn("L-9", "Lagos", actor=operator)
        db_session.commit()
        _signed_batch(db_session, operator, officer, batch_arn="L-9")
        ds.confirm_dispatch("B-1", actor=operator)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            ds.upload_confirmation("B-1", PDF_PAYLOAD, actor=operator)
        db_session.rollback()
        assert ds.get_batch("B-1").status == ds.BATCH_STATUS_DISPATCHED

    def test_confirmation_before_dispatch_rejected(self, db_session, operator, officer, states):
        _signed_batch(db_session, operator, officer)
        with pytest.raises(InvalidTransitionError):
            ds.upload_confirmation("B-1", PDF_PAYLOAD, actor=operator)

    def test_delivered_batch_is_immutable(self, db_session, operator, officer, states):
        _pending(db_session, operator, "L-1")
        _signed_batch(db_session, operator, officer)
        ds.confirm_dispatch("B-1", actor=operator)
        ds.upload_confirmation("B-1", PDF_PAYLOAD, actor=operator)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            ds.sign_batch("B-1", "operator", "Late", actor=operator, overwrite=True)
        with pytest.raises(InvalidTransitionError):
            ds.confirm_dispatch("B-1", actor=operator)
        with pytest.raises(InvalidTransitionError):
            ds.generate_delivery_note("B-1", actor=operator)


class TestDeliveryNote:
    def test_generate_renders_covered_arns(self, app, db_session, operator, states):
        _pending(db_session, operator, "L-1")
        ds.create_batch("B-1", "Lagos", 1, actor=operator)

        batch = ds.generate_delivery_note("B-1", actor=operator)

        assert batch.delivery_note_path == "dispatch/B-1_delivery_note.html"
        with open(os.path.join(app.config["UPLOAD_FOLDER"], batch.delivery_note_path), encoding="utf-8") as fh:
            html = fh.read()
        assert "L-1" in html
        assert "Oscar Operator" in html
