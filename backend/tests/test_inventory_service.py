"""
Blank-card ledger tests.

Verifies:
- Balances are derived from movements per partition
- Issues never overdraw (nothing is posted on failure)
- Transfers conserve total stock
- Reconciliation formula and low-stock check
- Concurrent issues cannot overdraw a partition
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from threading import Barrier

import pytest

from enbic import create_app
from enbic.errors import ForbiddenError, InsufficientStockError, InvalidArgumentError
from enbic.extensions import db
from enbic.models import Setting, StockMovement
from enbic.services import inventory_service as inv
from enbic.services.access import ROLE_OPERATOR, Actor
from enbic.services.concurrency import commit_with_retry
from enbic.services.settings_service import LOW_STOCK_THRESHOLD_KEY, set_setting
from enbic.time_utils import utcnow


STORE_OPERATOR = Actor(user_id=None, role=ROLE_OPERATOR, name="Store Operator")


class TestReceiveAndIssue:
    def test_receive_books_into_central(self, db_session, operator):
        inv.receive_stock(30, actor=operator, reference="PO-1")
        db_session.commit()

        assert inv.get_balance() == 30
        movement = db_session.query(StockMovement).one()
        assert movement.type == inv.MOVEMENT_RECEIVED
        assert movement.user_id is None

    def test_officer_books_into_own_partition(self, db_session, officer, operator):
        inv.receive_stock(10, actor=officer)
        db_session.commit()

        assert inv.get_balance(officer.user_id) == 10
        assert inv.get_balance() == 0

    def test_insufficient_stock_posts_nothing(self, db_session, operator):
        inv.receive_stock(30, actor=operator)
        db_session.commit()

        with pytest.raises(InsufficientStockError) as exc:
            inv.issue_to_personalization(50, actor=operator)
        assert exc.value.available == 30
        assert exc.value.requested == 50
        db_session.rollback()

        assert inv.get_balance() == 30
        assert db_session.query(StockMovement).filter_by(type=inv.MOVEMENT_ISSUED).count() == 0

    def test_issue_reduces_balance(self, db_session, operator):
        inv.receive_stock(30, actor=operator)
        movement = inv.issue_to_personalization(12, actor=operator, issued_to="Perso line 1")
        db_session.commit()

        assert movement.qty == -12
        assert movement.notes == "Issued to Perso line 1"
        assert inv.get_balance() == 18

    @pytest.mark.parametrize("qty", [0, -5, "10", True])
    def test_quantity_must_be_positive_int(self, db_session, operator, qty):
        with pytest.raises(InvalidArgumentError):
            inv.receive_stock(qty, actor=operator)

    def test_supervisor_cannot_post(self, db_session, supervisor):
        with pytest.raises(ForbiddenError):
            inv.receive_stock(5, actor=supervisor)


class TestAdjustments:
    def test_damaged_and_lost_always_reduce(self, db_session, operator):
        inv.receive_stock(20, actor=operator)
        inv.adjust_stock(3, inv.MOVEMENT_DAMAGED, actor=operator)
        inv.adjust_stock(-2, inv.MOVEMENT_LOST, actor=operator)
        db_session.commit()

        assert inv.get_balance() == 15

    def test_adjustment_keeps_sign_and_may_go_negative(self, db_session, operator):
        inv.adjust_stock(-4, inv.MOVEMENT_ADJUSTMENT, actor=operator)
        db_session.commit()
        assert inv.get_balance() == -4

    def test_unknown_adjustment_type(self, db_session, operator):
        with pytest.raises(InvalidArgumentError):
            inv.adjust_stock(1, inv.MOVEMENT_RECEIVED, actor=operator)


class TestTransfer:
    def test_transfer_conserves_total(self, db_session, admin, operator, officer):
        inv.receive_stock(100, actor=operator)
        db_session.commit()
        before = inv.balance_summary()["total"]

        out_leg, in_leg = inv.transfer_to_officer(40, officer.user_id, actor=admin, reference="REQ-1")
        db_session.commit()

        assert out_leg.qty == -40 and out_leg.user_id is None
        assert in_leg.qty == 40 and in_leg.user_id == officer.user_id
        summary = inv.balance_summary()
        assert summary["central"] == 60
        assert summary["officers"] == [{"user_id": officer.user_id, "name": "Olu Officer", "balance": 40}]
        assert summary["total"] == before

    def test_transfer_never_overdraws_central(self, db_session, admin, operator, officer):
        inv.receive_stock(10, actor=operator)
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            inv.transfer_to_officer(11, officer.user_id, actor=admin)


class TestReconcile:
    def test_unbounded_window(self, db_session, operator):
        inv.receive_stock(100, actor=operator)
        inv.issue_to_personalization(30, actor=operator)
        inv.adjust_stock(5, inv.MOVEMENT_DAMAGED, actor=operator)
        inv.adjust_stock(2, inv.MOVEMENT_ADJUSTMENT, actor=operator)
        db_session.commit()

        report = inv.reconcile()

        assert report["opening"] == 0
        assert report["received"] == 100
        assert report["issued"] == 30
        assert report["damaged"] == 5
        assert report["lost"] == 0
        assert report["adjustments"] == 2
        assert report["expected"] == 67 == inv.get_balance()

    def test_movements_before_window_become_opening(self, db_session, operator):
        inv.receive_stock(50, actor=operator)
        db_session.commit()

        report = inv.reconcile(date_from=utcnow() + timedelta(minutes=1))

        assert report["opening"] == 50
        assert report["received"] == 0
        assert report["expected"] == 50

    def test_inverted_window_rejected(self, db_session):
        now = utcnow()
        with pytest.raises(InvalidArgumentError):
            inv.reconcile(date_from=now, date_to=now - timedelta(days=1))


class TestLowStock:
    def test_uses_configured_threshold(self, db_session, operator):
        inv.receive_stock(99, actor=operator)
        db_session.commit()
        assert inv.low_stock_check() == {"total": 99, "threshold": 100, "low": True}

    def test_setting_overrides_config(self, db_session, admin, operator):
        inv.receive_stock(99, actor=operator)
        set_setting(LOW_STOCK_THRESHOLD_KEY, "50", actor=admin)
        db_session.commit()
        assert inv.low_stock_check()["low"] is False


class TestConcurrentIssue:
    """Two sessions issuing against one central balance on a shared SQLite file."""

    @pytest.fixture
    def ledger_app(self, tmp_path):
        app = create_app({
            'TESTING': True,
            'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'ledger.sqlite3'}",
            'UPLOAD_FOLDER': str(tmp_path / "uploads"),
            'POST_COMMIT_HOOKS_ASYNC': False,
            'REMINDER_SCHEDULER_ENABLED': False,
        })
        with app.app_context():
            db.create_all()
            db.session.add(Setting(key=inv.LEDGER_LOCK_KEY, value="0", updated_by="test"))
            inv.receive_stock(100, actor=STORE_OPERATOR)
            db.session.commit()
        yield app
        with app.app_context():
            db.session.remove()
            db.engine.dispose()

    def test_only_one_of_two_issues_succeeds(self, ledger_app):
        barrier = Barrier(2, timeout=10)

        def _issue(reference):
            with ledger_app.app_context():
                barrier.wait()
                try:
                    inv.issue_to_personalization(60, actor=STORE_OPERATOR, reference=reference)
                    commit_with_retry()
                    return "issued"
                except InsufficientStockError:
                    db.session.rollback()
                    return "insufficient"
                finally:
                    db.session.remove()

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(_issue, ref) for ref in ("PERSO-A", "PERSO-B")]
            results = sorted(f.result() for f in futures)

        assert results == ["insufficient", "issued"]
        with ledger_app.app_context():
            assert inv.get_balance() == 40
            assert db.session.query(StockMovement).filter_by(type=inv.MOVEMENT_ISSUED).count() == 1
