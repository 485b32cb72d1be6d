"""
API tests for the offline order sync endpoints.
"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.main import app
from core.auth import User, create_access_token, get_current_user
from core.database import get_db
from modules.orders.exceptions.sync_exceptions import LockTimeoutError
from modules.orders.models.order_models import Order
from modules.orders.models.sync_models import ConflictResolution
from modules.orders.tests.factories import ConflictResolutionFactory, OrderFactory


class TestSyncEndpoint:
    """POST /orders/sync"""

    def test_partial_success_is_200(self, client, make_offline_order):
        response = client.post(
            "/orders/sync",
            json={
                "orders": [
                    make_offline_order(clientGeneratedId="offline-a"),
                    make_offline_order(clientGeneratedId="offline-b", items=[]),
                ]
            },
        )

        assert response.status_code == 200
        body = response.json()
        assert len(body["synced"]) == 1
        assert body["synced"][0]["client_generated_id"] == "offline-a"
        assert body["errors"][0]["order"]["clientGeneratedId"] == "offline-b"
        assert "items" in body["errors"][0]["reason"]
        assert body["conflicts"] == []
        assert body["message"] == (
            "Sync completed. 1 orders synced, 1 errors, 0 conflicts resolved."
        )

    def test_conflicts_are_returned_as_ledger_rows(self, client, make_offline_order):
        OrderFactory(
            client_generated_id="offline-0001",
            client_name="Ana Lopez",
            client_phone="123456789",
            client_address="Calle 1 #23",
            notes="b",
            last_modified_at=datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc),
        )

        response = client.post("/orders/sync", json={"orders": [make_offline_order()]})

        body = response.json()
        assert response.status_code == 200
        assert body["synced"] == []
        conflict = body["conflicts"][0]
        assert conflict["resolution_type"] == "local"
        assert conflict["resolved_by"] == 7
        assert conflict["conflict_fields"] == ["notes"]
        assert conflict["local_version"]["notes"] == "a"
        assert conflict["server_version"]["notes"] == "b"
        assert body["message"].endswith("1 conflicts resolved.")

    def test_empty_batch(self, client):
        response = client.post("/orders/sync", json={"orders": []})

        assert response.status_code == 200
        assert response.json()["message"] == (
            "Sync completed. 0 orders synced, 0 errors, 0 conflicts resolved."
        )

    def test_non_object_row_is_a_per_item_error(self, client, make_offline_order):
        response = client.post(
            "/orders/sync", json={"orders": ["junk", make_offline_order()]}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["errors"][0]["order"] == {"value": "'junk'"}
        assert len(body["synced"]) == 1

    def test_oversized_batch_is_rejected(self, client):
        response = client.post("/orders/sync", json={"orders": [{}] * 501})

        assert response.status_code == 400
        assert response.json()["error_code"] == "BATCH_TOO_LARGE"

    def test_orders_are_scoped_to_callers_business(self, client, db_session, make_offline_order):
        client.post("/orders/sync", json={"orders": [make_offline_order()]})

        assert db_session.query(Order).one().business_id == 1


class TestResolveConflictEndpoint:
    """POST /orders/resolve-conflict/{order_id}"""

    @pytest.fixture
    def server_order(self, db_session):
        return OrderFactory(client_name="Ana Lopez", notes="from office")

    def _body(self, server_order, **extra):
        base = {
            "client_generated_id": server_order.client_generated_id,
            "client_name": "Ana Lopez",
            "total": 150,
            "delivery_date": "2024-01-20",
            "delivery_time": "14:00",
            "status": "pending",
        }
        body = {
            "localOrder": dict(base, notes="from device",
                               last_modified_at="2024-01-15T12:00:00Z"),
            "serverOrder": dict(base, notes="from office",
                                last_modified_at="2024-01-15T11:00:00Z"),
        }
        body.update(extra)
        return body

    def test_last_writer_wins_by_default(self, client, server_order):
        response = client.post(
            f"/orders/resolve-conflict/{server_order.id}", json=self._body(server_order)
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["resolution"]["action"] == "local_wins"
        assert body["resolution"]["resolved_data"]["notes"] == "from device"
        assert body["conflict"]["resolution_type"] == "local"
        assert body["conflict"]["order_id"] == server_order.id
        assert body["message"].startswith("Conflict resolved")

    def test_operator_forced_server(self, client, server_order):
        response = client.post(
            f"/orders/resolve-conflict/{server_order.id}",
            json=self._body(server_order, resolution_action="server_wins"),
        )

        assert response.status_code == 200
        assert response.json()["conflict"]["resolution_type"] == "server"

    def test_merge_requires_merged_order(self, client, server_order):
        response = client.post(
            f"/orders/resolve-conflict/{server_order.id}",
            json=self._body(server_order, resolution_action="merge_required"),
        )

        assert response.status_code == 422

    def test_merge_with_merged_order(self, client, server_order):
        body = self._body(server_order, resolution_action="merge_required")
        body["mergedOrder"] = dict(body["serverOrder"], notes="both")

        response = client.post(f"/orders/resolve-conflict/{server_order.id}", json=body)

        assert response.status_code == 200
        assert response.json()["conflict"]["resolution_type"] == "merge"

    def test_unknown_order_is_404(self, client, server_order):
        response = client.post("/orders/resolve-conflict/9999", json=self._body(server_order))

        assert response.status_code == 404
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"

    def test_order_of_another_business_is_404(self, client, db_session):
        foreign = OrderFactory(business_id=2)

        response = client.post(
            f"/orders/resolve-conflict/{foreign.id}", json=self._body(foreign)
        )

        assert response.status_code == 404

    @pytest.mark.parametrize(
        "side, field, value",
        [
            ("localOrder", "delivery_date", "someday"),
            ("localOrder", "status", "not-a-real-status"),
            ("localOrder", "client_name", "x" * 101),
            ("serverOrder", "client_phone", "1" * 21),
            ("localOrder", "items", [1, 2]),
            ("serverOrder", "total", "-1"),
        ],
    )
    def test_unstorable_snapshot_is_422(
        self, client, server_order, db_session, side, field, value
    ):
        body = self._body(server_order)
        body[side][field] = value

        response = client.post(f"/orders/resolve-conflict/{server_order.id}", json=body)

        assert response.status_code == 422
        assert db_session.query(ConflictResolution).count() == 0
        db_session.expire_all()
        stored = db_session.get(Order, server_order.id)
        assert stored.notes == "from office"
        assert stored.status == "pending"

    def test_merged_order_is_validated(self, client, server_order, db_session):
        body = self._body(server_order, resolution_action="merge_required")
        body["mergedOrder"] = dict(body["serverOrder"], status="not-a-real-status")

        response = client.post(f"/orders/resolve-conflict/{server_order.id}", json=body)

        assert response.status_code == 422
        assert db_session.query(ConflictResolution).count() == 0

    def test_sub_cent_total_is_rounded_to_cents(self, client, server_order, db_session):
        body = self._body(server_order)
        body["localOrder"]["total"] = "150.125"

        response = client.post(f"/orders/resolve-conflict/{server_order.id}", json=body)

        assert response.status_code == 200
        assert response.json()["resolution"]["resolved_data"]["total"] == 150.13
        db_session.expire_all()
        assert str(db_session.get(Order, server_order.id).total) == "150.13"

    def test_lock_timeout_is_503(self, client, server_order):
        with patch(
            "modules.orders.services.resolution_applier.ResolutionApplier.apply_resolution",
            side_effect=LockTimeoutError("1:offline-0001", 10),
        ):
            response = client.post(
                f"/orders/resolve-conflict/{server_order.id}",
                json=self._body(server_order),
            )

        assert response.status_code == 503
        assert response.json()["error_code"] == "LOCK_TIMEOUT"
        assert response.json()["details"]["lock_key"] == "1:offline-0001"
        assert response.headers["Retry-After"] == "5"


class TestReportingEndpoints:
    """GET /orders/conflict-history and /orders/conflict-stats"""

    def test_stats_defaults(self, client):
        response = client.get("/orders/conflict-stats")

        assert response.status_code == 200
        assert response.json() == {
            "stats": {
                "total_conflicts": 0,
                "local_wins": 0,
                "server_wins": 0,
                "merge_required": 0,
                "avg_resolution_time": None,
            }
        }

    def test_stats_counts(self, client):
        order = OrderFactory(business_id=1)
        ConflictResolutionFactory(order=order, resolution_type="local")
        ConflictResolutionFactory(order=order, resolution_type="server")

        stats = client.get("/orders/conflict-stats").json()["stats"]

        assert stats["total_conflicts"] == 2
        assert stats["local_wins"] == 1
        assert stats["server_wins"] == 1
        assert stats["avg_resolution_time"] == pytest.approx(2.0, abs=0.01)

    def test_history(self, client):
        order = OrderFactory(business_id=1, client_name="Ana Lopez")
        entry = ConflictResolutionFactory(order=order)

        response = client.get("/orders/conflict-history")

        assert response.status_code == 200
        body = response.json()
        assert body["limit"] == 50
        assert body["offset"] == 0
        assert body["conflicts"][0]["id"] == entry.id
        assert body["conflicts"][0]["order"]["client_name"] == "Ana Lopez"

    def test_history_limit_is_capped(self, client):
        response = client.get("/orders/conflict-history", params={"limit": 500})

        assert response.status_code == 200
        assert response.json()["limit"] == 50

    def test_history_rejects_negative_offset(self, client):
        response = client.get("/orders/conflict-history", params={"offset": -1})

        assert response.status_code == 422

    def test_database_failure_is_503(self, client):
        failure = OperationalError("SELECT", {}, Exception("connection refused"))
        with patch(
            "modules.orders.services.conflict_report_service."
            "ConflictReportService.get_conflict_stats",
            side_effect=failure,
        ):
            response = client.get("/orders/conflict-stats")

        assert response.status_code == 503
        assert response.json()["error_code"] == "STORAGE_ERROR"
        assert "Retry-After" in response.headers


class TestAuthentication:
    """Bearer token handling on the sync endpoints"""

    @pytest.fixture
    def raw_client(self, db_session):
        def override_get_db():
            yield db_session

        app.dependency_overrides[get_db] = override_get_db
        with TestClient(app) as test_client:
            yield test_client
        app.dependency_overrides.clear()

    def test_missing_token_is_401(self, raw_client):
        assert raw_client.get("/orders/conflict-stats").status_code == 401

    def test_invalid_token_is_401(self, raw_client):
        response = raw_client.get(
            "/orders/conflict-stats", headers={"Authorization": "Bearer not-a-jwt"}
        )

        assert response.status_code == 401

    def test_valid_token_is_accepted(self, raw_client):
        token = create_access_token({"sub": "7", "tenant_ids": [1]})

        response = raw_client.get(
            "/orders/conflict-stats", headers={"Authorization": f"Bearer {token}"}
        )

        assert response.status_code == 200

    def test_token_without_business_is_403(self, raw_client):
        app.dependency_overrides[get_current_user] = lambda: User(
            id=7, username="nobody", roles=[], tenant_ids=[]
        )

        assert raw_client.get("/orders/conflict-stats").status_code == 403
