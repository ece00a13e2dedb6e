"""
HTTP facade tests: status codes, error bodies and role gating.
"""

import pytest

from conftest import PDF_PAYLOAD
from enbic.models import Reminder
from enbic.services import lifecycle_service as ls


@pytest.fixture
def pending_lagos(db_session, operator, states):
    for value in ("L-1", "L-2"):
        ls.create_arn(value, "Lagos", actor=operator)
        ls.transition_arn(value, ls.STATUS_SUBMITTED, actor=operator)
        ls.transition_arn(value, ls.STATUS_PENDING_DELIVERY, actor=operator)
    db_session.commit()
    return ["L-1", "L-2"]


class TestArnRoutes:
    def test_create_returns_201(self, client, operator_headers, states):
        response = client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})
        assert response.status_code == 201
        data = response.get_json()
        assert data["arn"] == "ARN-1"
        assert data["state"] == "Lagos"
        assert data["status"] == ls.STATUS_AWAITING_CAPTURE
        assert set(data) == {"id", "arn", "state", "status"}

    def test_create_regenerates_reminders(self, client, db_session, operator_headers, states):
        client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})
        reminder = db_session.query(Reminder).filter_by(arn="ARN-1").one()
        assert reminder.reminder_type == "pending_capture"

    def test_duplicate_returns_409(self, client, operator_headers, states):
        client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})
        response = client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})
        assert response.status_code == 409
        assert response.get_json()["error"] == "Conflict"

    def test_missing_fields_return_400(self, client, operator_headers, states):
        response = client.post('/api/arns', headers=operator_headers, json={"state": "Lagos"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidArgument"

    def test_supervisor_is_read_only(self, client, supervisor_headers, states):
        response = client.post('/api/arns', headers=supervisor_headers, json={"arn": "ARN-1", "state": "Lagos"})
        assert response.status_code == 403
        assert client.get('/api/arns', headers=supervisor_headers).status_code == 200

    def test_status_update(self, client, operator_headers, states):
        client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})

        response = client.put('/api/arns/ARN-1/status', headers=operator_headers,
                              json={"status": ls.STATUS_SUBMITTED})
        assert response.status_code == 200
        assert response.get_json() == {"success": True, "arn": "ARN-1", "status": ls.STATUS_SUBMITTED}

        response = client.put('/api/arns/ARN-1/status', headers=operator_headers,
                              json={"status": ls.STATUS_DELIVERED})
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "InvalidTransition"
        assert body["details"]["current_status"] == ls.STATUS_SUBMITTED

    def test_unknown_arn_is_404(self, client, operator_headers):
        assert client.get('/api/arns/NOPE', headers=operator_headers).status_code == 404

    def test_history(self, client, operator_headers, pending_lagos):
        response = client.get('/api/arns/L-1/history', headers=operator_headers)
        assert response.status_code == 200
        actions = [e["action"] for e in response.get_json()]
        assert "ARN_CREATED" in actions
        assert actions.count("STATUS_UPDATED") == 2

    def test_pickup_per_item_results(self, client, operator_headers, pending_lagos):
        response = client.post('/api/arns/pickup', headers=operator_headers,
                               json={"arns": ["L-1", "GHOST"], "collectorName": "Musa"})
        assert response.status_code == 200
        results = response.get_json()["results"]
        assert results[0] == {"arn": "L-1", "success": True, "status": ls.STATUS_COLLECTED}
        assert results[1]["success"] is False


class TestDeliveryRoutes:
    def test_confirm_state_delivery(self, client, operator_headers, pending_lagos):
        response = client.post('/api/delivery/confirm', headers=operator_headers, json={"state": "Lagos"})
        assert response.status_code == 200
        data = response.get_json()
        assert data["count"] == 2
        assert data["history"]["arn_count"] == 2

    def test_confirm_with_nothing_pending(self, client, operator_headers, states):
        response = client.post('/api/delivery/confirm', headers=operator_headers, json={"state": "Kano"})
        assert response.status_code == 200
        assert response.get_json()["count"] == 0

    def test_stats(self, client, supervisor_headers, pending_lagos):
        response = client.get('/api/delivery/stats', headers=supervisor_headers)
        assert response.status_code == 200
        rows = response.get_json()
        assert rows[0]["state"] == "Lagos"
        assert rows[0]["pending_count"] == 2


class TestDispatchRoutes:
    def test_full_batch_flow(self, client, operator_headers, officer_headers, pending_lagos):
        response = client.post('/api/dispatch/batches', headers=operator_headers,
                               json={"batchId": "B-1", "state": "Lagos", "cardCount": 2})
        assert response.status_code == 201
        assert response.get_json()["arns"] == ["L-1", "L-2"]

        response = client.post('/api/dispatch/B-1/confirm', headers=operator_headers)
        assert response.status_code == 412

        client.post('/api/dispatch/B-1/sign', headers=operator_headers, json={"signer": "operator", "name": "Oscar"})
        response = client.post('/api/dispatch/B-1/sign', headers=officer_headers,
                               json={"signer": "officer", "name": "Olu"})
        assert response.get_json()["status"] == "ready_for_dispatch"

        response = client.post('/api/dispatch/B-1/sign', headers=officer_headers,
                               json={"signer": "officer", "name": "Someone"})
        assert response.status_code == 409

        assert client.post('/api/dispatch/B-1/confirm', headers=operator_headers).status_code == 200

        response = client.post('/api/dispatch/B-1/confirmation', headers=officer_headers,
                               json={"fileData": PDF_PAYLOAD})
        assert response.status_code == 200
        assert sorted(response.get_json()["arns"]) == ["L-1", "L-2"]

        response = client.get('/api/dispatch/B-1/file/confirmation', headers=operator_headers)
        assert response.status_code == 200
        assert response.data.startswith(b"%PDF")
        response.close()

    def test_generate_note_and_download(self, client, operator_headers, pending_lagos):
        client.post('/api/dispatch/batches', headers=operator_headers,
                    json={"batchId": "B-2", "state": "Lagos", "cardCount": 2})
        response = client.post('/api/dispatch/B-2/generate-note', headers=operator_headers)
        assert response.status_code == 200

        response = client.get('/api/dispatch/B-2/file/delivery', headers=operator_headers)
        assert response.status_code == 200
        assert b"L-2" in response.data
        response.close()


class TestInventoryRoutes:
    def test_insufficient_stock_body(self, client, operator_headers):
        client.post('/api/inventory/receive', headers=operator_headers, json={"qty": 30})

        response = client.post('/api/inventory/issue-to-perso', headers=operator_headers, json={"qty": 50})
        assert response.status_code == 402
        body = response.get_json()
        assert body["error"] == "InsufficientStock"
        assert body["details"] == {"available": 30, "requested": 50}

        response = client.get('/api/inventory/balance', headers=operator_headers)
        assert response.get_json()["central"] == 30

    def test_non_integer_quantity(self, client, operator_headers):
        response = client.post('/api/inventory/receive', headers=operator_headers, json={"qty": 1.5})
        assert response.status_code == 400

    def test_supervisor_cannot_post(self, client, supervisor_headers):
        response = client.post('/api/inventory/receive', headers=supervisor_headers, json={"qty": 5})
        assert response.status_code == 403

    def test_officer_sees_own_partition(self, client, officer_headers, officer_user):
        client.post('/api/inventory/receive', headers=officer_headers, json={"qty": 7})
        response = client.get('/api/inventory/balance', headers=officer_headers)
        assert response.get_json() == {"user_id": officer_user.id, "balance": 7}

    def test_request_decision_flow(self, client, admin_headers, operator_headers, officer_headers):
        client.post('/api/inventory/receive', headers=operator_headers, json={"qty": 100})

        response = client.post('/api/inventory/requests', headers=officer_headers, json={"quantity": 40})
        assert response.status_code == 201
        request_id = response.get_json()["id"]

        response = client.post(f'/api/inventory/requests/{request_id}/decide', headers=officer_headers,
                               json={"action": "approve"})
        assert response.status_code == 403

        response = client.post(f'/api/inventory/requests/{request_id}/decide', headers=admin_headers,
                               json={"action": "partial", "approved_qty": 25})
        assert response.status_code == 200
        assert response.get_json()["status"] == "partially_approved"

        response = client.get('/api/inventory/balance', headers=officer_headers)
        assert response.get_json()["balance"] == 25


class TestRemindersAndReports:
    def test_resolve_via_api(self, client, operator_headers, states):
        client.post('/api/arns', headers=operator_headers, json={"arn": "ARN-1", "state": "Lagos"})
        reminders = client.get('/api/reminders', headers=operator_headers).get_json()
        assert len(reminders) == 1

        response = client.post(f'/api/reminders/{reminders[0]["id"]}/resolve', headers=operator_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body["advanced"] is True
        assert body["arn_status"] == ls.STATUS_SUBMITTED

        response = client.post(f'/api/reminders/{reminders[0]["id"]}/resolve', headers=operator_headers)
        assert response.status_code == 400

    def test_pending_delivery_report(self, client, supervisor_headers, pending_lagos):
        response = client.get('/api/reports/pending-delivery?state=Lagos', headers=supervisor_headers)
        assert response.status_code == 200
        rows = response.get_json()
        assert [r["arn"] for r in rows] == ["L-1", "L-2"]
        assert all("age_days" in r for r in rows)

    def test_unknown_report_type(self, client, supervisor_headers):
        response = client.get('/api/reports/everything', headers=supervisor_headers)
        assert response.status_code == 400

    def test_bad_date_range(self, client, supervisor_headers):
        response = client.get('/api/reports/delivered?start=2026-02-01&end=2026-01-01', headers=supervisor_headers)
        assert response.status_code == 400

    def test_dashboard(self, client, supervisor_headers, pending_lagos):
        data = client.get('/api/reports/dashboard', headers=supervisor_headers).get_json()
        assert data["total"] == 2
        assert data["by_status"][ls.STATUS_PENDING_DELIVERY] == 2


class TestSystemRoutes:
    def test_health(self, client, db_session):
        response = client.get('/health')
        assert response.status_code == 200
        data = response.get_json()
        assert data["status"] == "ok"
        assert data["scheduler"] == {"running": False}
