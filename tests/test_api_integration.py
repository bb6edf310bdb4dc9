"""
API Integration Tests

Drive the FastAPI application end to end with an in-memory system:
group creation, joining, turn order, the payment workflow, round
advancement and the error mapping.
"""

import random
import pytest
from fastapi.testclient import TestClient

import arisan.config
from arisan.api import create_app
from arisan.api.auth import get_system
from arisan.config import ArisanConfig
from arisan.identity import Identity, JWTIdentityProvider
from arisan.storage import InMemoryStorage
from arisan.system import ArisanSystem


JWT_SECRET = "arisan-api-test-secret-0123456789"

KETUA = {"X-User-Id": "user-ketua"}
SITI = {"X-User-Id": "user-siti"}
BUDI = {"X-User-Id": "user-budi"}
DEWI = {"X-User-Id": "user-dewi"}


def make_client(monkeypatch, auth_enabled: bool = False):
    config = ArisanConfig(storage_backend="memory", auth_enabled=auth_enabled, jwt_secret=JWT_SECRET)
    monkeypatch.setattr(arisan.config, "config", config)

    system = ArisanSystem(storage=InMemoryStorage(), config=config, rng=random.Random(1))
    app = create_app()
    app.dependency_overrides[get_system] = lambda: system
    return TestClient(app), system


@pytest.fixture
def client(monkeypatch):
    test_client, system = make_client(monkeypatch)
    yield test_client
    system.close()


def create_group(client, **overrides):
    payload = {
        "name": "Arisan RT 05",
        "nominal": {"amount": "100000", "currency": "IDR"},
        "period": "bulanan",
        "total_members": 4,
        "creator_name": "Ibu Ketua",
        "members": [
            {"name": "Siti", "user_id": "user-siti"},
            {"name": "Budi", "user_id": "user-budi"},
        ],
    }
    payload.update(overrides)
    response = client.post("/groups", json=payload, headers=KETUA)
    assert response.status_code == 201, response.text
    return response.json()


def round_payments(client, group_id, round_number=1):
    response = client.get(f"/groups/{group_id}/rounds/{round_number}/payments", headers=KETUA)
    assert response.status_code == 200
    return {p["member_name"]: p for p in response.json()["payments"]}


class TestServiceEndpoints:

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "arisan_api"

    def test_api_info(self, client):
        data = client.get("/").json()
        assert data["name"] == "Arisan Ledger API"
        assert "groups" in data["endpoints"]


class TestGroupEndpoints:

    def test_create_group(self, client):
        data = create_group(client)
        group = data["group"]

        assert group["status"] == "aktif"
        assert group["current_round"] == 1
        assert group["member_count"] == 3
        assert group["members"][0]["name"] == "Ibu Ketua"
        assert group["members"][0]["role"] == "ketua"
        assert group["members"][0]["user_id"] == "user-ketua"
        assert group["nominal"]["amount"] == "100000"
        assert data["invite_code"] == group["invite_code"]

    def test_create_group_with_bad_currency(self, client):
        response = client.post("/groups", json={
            "name": "Arisan",
            "nominal": {"amount": "100000", "currency": "XYZ"},
            "total_members": 3,
            "creator_name": "Ibu Ketua",
        }, headers=KETUA)
        assert response.status_code == 400
        assert "Unsupported currency" in response.json()["detail"]

    def test_create_group_validation_error(self, client):
        response = client.post("/groups", json={
            "name": "Arisan",
            "nominal": {"amount": "100000"},
            "total_members": 1,
            "creator_name": "Ibu Ketua",
        }, headers=KETUA)
        assert response.status_code == 400

    def test_join_and_list_groups(self, client):
        data = create_group(client)
        code = data["invite_code"]

        preview = client.get(f"/groups/invite/{code.lower()}", headers=DEWI)
        assert preview.status_code == 200
        assert preview.json()["is_full"] is False

        joined = client.post("/groups/join", json={"invite_code": code, "name": "Dewi"}, headers=DEWI)
        assert joined.status_code == 200
        assert joined.json()["member"]["turn_order"] == 4

        groups = client.get("/groups", headers=DEWI).json()["groups"]
        assert [g["id"] for g in groups] == [data["group_id"]]
        assert "Dewi" in round_payments(client, data["group_id"])

        full = client.post("/groups/join", json={"invite_code": code, "name": "Eka"},
                           headers={"X-User-Id": "user-eka"})
        assert full.status_code == 400

    def test_join_with_unknown_code(self, client):
        response = client.post("/groups/join", json={"invite_code": "NOPE00", "name": "Eka"}, headers=DEWI)
        assert response.status_code == 404

    def test_unknown_group(self, client):
        assert client.get("/groups/missing", headers=KETUA).status_code == 404
        assert client.get("/groups/missing/schedule", headers=KETUA).status_code == 404
        assert client.delete("/groups/missing", headers=KETUA).status_code == 404

    def test_declining_schedule(self, client):
        data = create_group(
            client,
            nominal={"amount": "0", "currency": "IDR"},
            total_members=3,
            members=[{"name": "Siti"}, {"name": "Budi"}],
            mode="menurun",
            target_amount="300000",
            gaps=["50000"],
        )
        schedule = client.get(f"/groups/{data['group_id']}/schedule", headers=KETUA).json()

        assert schedule["mode"] == "menurun"
        assert [e["contribution"]["amount"] for e in schedule["schedule"]] == ["150000", "100000", "50000"]
        assert schedule["verification"]["valid"] is True

        turn = client.get(f"/groups/{data['group_id']}/contributions/2", headers=KETUA).json()
        assert turn["contribution"] == {"amount": "100000", "currency": "IDR"}

    def test_update_requires_admin(self, client):
        data = create_group(client)
        url = f"/groups/{data['group_id']}"

        assert client.patch(url, json={"name": "Arisan Baru"}, headers=SITI).status_code == 403

        response = client.patch(url, json={"name": "Arisan Baru"}, headers=KETUA)
        assert response.status_code == 200
        assert response.json()["group"]["name"] == "Arisan Baru"

    def test_settings_and_reminders(self, client):
        data = create_group(client)
        group_id = data["group_id"]

        response = client.put(f"/groups/{group_id}/settings", json={
            "penalty_enabled": True, "penalty_type": "fixed", "penalty_amount": "5000",
            "reminder_days": [-1, 0],
        }, headers=KETUA)
        assert response.status_code == 200
        assert response.json()["settings"]["penalty_type"] == "fixed"

        reminders = client.get(f"/groups/{group_id}/reminders", headers=KETUA).json()["reminders"]
        assert len(reminders) == 2

    def test_payment_accounts(self, client):
        data = create_group(client)
        url = f"/groups/{data['group_id']}/payment-accounts"
        body = {"type": "bank", "bank_name": "BRI", "account_number": "0011", "account_holder": "Ibu Ketua"}

        created = client.post(url, json=body, headers=KETUA)
        assert created.status_code == 201
        account_id = created.json()["account"]["id"]

        assert client.delete(f"{url}/{account_id}", headers=KETUA).status_code == 200
        assert client.delete(f"{url}/{account_id}", headers=KETUA).status_code == 404

    def test_delete_group(self, client):
        data = create_group(client)
        url = f"/groups/{data['group_id']}"
        assert client.delete(url, headers=SITI).status_code == 403
        assert client.delete(url, headers=KETUA).status_code == 200
        assert client.get(url, headers=KETUA).status_code == 404


class TestTurnEndpoints:

    def test_draw_and_history(self, client):
        data = create_group(client)
        group_id = data["group_id"]

        drawn = client.post(f"/groups/{group_id}/turns/draw", headers=KETUA)
        assert drawn.status_code == 200
        assert len(drawn.json()["result"]) == 3

        draws = client.get(f"/groups/{group_id}/turns/draws", headers=KETUA).json()["draws"]
        assert len(draws) == 1

        assert client.post(f"/groups/{group_id}/turns/draw", headers=SITI).status_code == 403

    def test_move_and_set_order(self, client):
        data = create_group(client)
        group_id = data["group_id"]
        members = data["group"]["members"]

        moved = client.post(f"/groups/{group_id}/turns/move",
                            json={"member_id": members[2]["id"], "direction": "up"}, headers=KETUA)
        assert [m["name"] for m in moved.json()["members"]] == ["Ibu Ketua", "Budi", "Siti"]

        bad = client.post(f"/groups/{group_id}/turns/move",
                          json={"member_id": members[0]["id"], "direction": "left"}, headers=KETUA)
        assert bad.status_code == 400

        order = [m["id"] for m in reversed(members)]
        reordered = client.put(f"/groups/{group_id}/turns", json={"order": order}, headers=KETUA)
        assert [m["name"] for m in reordered.json()["members"]] == ["Budi", "Siti", "Ibu Ketua"]

    def test_remove_member(self, client):
        data = create_group(client)
        group_id = data["group_id"]
        siti = data["group"]["members"][1]

        response = client.delete(f"/groups/{group_id}/members/{siti['id']}", headers=KETUA)
        assert response.status_code == 200
        assert [(m["name"], m["turn_order"]) for m in response.json()["members"]] == [
            ("Ibu Ketua", 1), ("Budi", 2)
        ]
        assert "Siti" not in round_payments(client, group_id)

        missing = client.delete(f"/groups/{group_id}/members/{siti['id']}", headers=KETUA)
        assert missing.status_code == 404


class TestPaymentAndRoundFlow:

    def test_full_round_cycle(self, client):
        data = create_group(client, total_members=3)
        group_id = data["group_id"]

        current = client.get(f"/groups/{group_id}/rounds/current", headers=KETUA).json()
        assert current["round_number"] == 1
        assert current["winner_name"] == "Ibu Ketua"

        payments = round_payments(client, group_id)
        siti_id = payments["Siti"]["id"]

        forbidden = client.post(f"/payments/{siti_id}/submit", json={}, headers=BUDI)
        assert forbidden.status_code == 403

        submitted = client.post(f"/payments/{siti_id}/submit", json={"note": "Transfer"}, headers=SITI)
        assert submitted.json()["payment"]["status"] == "submitted"

        rejected = client.post(f"/payments/{siti_id}/reject", json={"reason": "Bukti buram"}, headers=KETUA)
        assert rejected.json()["payment"]["status"] == "rejected"

        client.post(f"/payments/{siti_id}/submit", json={}, headers=SITI)
        approved = client.post(f"/payments/{siti_id}/approve", headers=KETUA)
        assert approved.json()["payment"]["status"] == "paid"

        blocked = client.post(f"/groups/{group_id}/rounds/advance", json={}, headers=KETUA)
        assert blocked.status_code == 400

        for name in ("Ibu Ketua", "Budi"):
            confirmed = client.post(f"/payments/{payments[name]['id']}/confirm", headers=KETUA)
            assert confirmed.status_code == 200

        summary = client.get(f"/groups/{group_id}/rounds/1/summary", headers=KETUA).json()
        assert summary["settled"] is True
        assert summary["collected_amount"]["amount"] == "300000"

        advanced = client.post(f"/groups/{group_id}/rounds/advance", json={}, headers=KETUA)
        assert advanced.status_code == 200
        assert advanced.json()["round"]["winner_name"] == "Siti"
        assert advanced.json()["group_status"] == "aktif"

        for round_number in (2, 3):
            result = client.post(f"/groups/{group_id}/rounds/advance", json={"force": True}, headers=KETUA)
            assert result.status_code == 200

        assert result.json()["group_status"] == "selesai"
        group = client.get(f"/groups/{group_id}", headers=KETUA).json()
        assert group["status"] == "selesai"
        assert group["current_round"] == 3

        history = client.get(f"/groups/{group_id}/rounds", headers=KETUA).json()["rounds"]
        assert [r["winner_name"] for r in history] == ["Ibu Ketua", "Siti", "Budi"]
        assert client.get(f"/groups/{group_id}/rounds/current", headers=KETUA).status_code == 404

    def test_illegal_transition_is_400(self, client):
        data = create_group(client)
        payment_id = round_payments(client, data["group_id"])["Budi"]["id"]
        response = client.post(f"/payments/{payment_id}/approve", headers=KETUA)
        assert response.status_code == 400
        assert "Cannot approve" in response.json()["detail"]

    def test_payment_details_and_penalty(self, client):
        data = create_group(client)
        payment_id = round_payments(client, data["group_id"])["Budi"]["id"]

        payment = client.get(f"/payments/{payment_id}", headers=BUDI).json()
        assert payment["status"] == "pending"
        assert payment["amount"]["amount"] == "100000"

        penalty = client.get(f"/payments/{payment_id}/penalty", headers=BUDI).json()
        assert penalty["penalty"]["amount"] == "0"

    def test_unknown_payment_is_404(self, client):
        assert client.get("/payments/missing", headers=KETUA).status_code == 404
        assert client.post("/payments/missing/confirm", headers=KETUA).status_code == 404

    def test_start_round_later(self, client):
        data = create_group(client, start=False)
        group_id = data["group_id"]
        assert data["group"]["due_date"] is None

        assert client.post(f"/groups/{group_id}/rounds/start", headers=SITI).status_code == 403
        started = client.post(f"/groups/{group_id}/rounds/start", headers=KETUA)
        assert started.status_code == 201
        assert started.json()["round"]["round_number"] == 1

        again = client.post(f"/groups/{group_id}/rounds/start", headers=KETUA)
        assert again.status_code == 400


class TestAuditEndpoints:

    def test_group_audit_and_integrity(self, client):
        data = create_group(client)
        events = client.get(f"/groups/{data['group_id']}/audit", headers=KETUA).json()["events"]
        assert events[0]["event_type"] == "group_created"

        integrity = client.get("/admin/audit/integrity", headers=KETUA).json()
        assert integrity["valid"] is True
        assert integrity["total_events"] >= len(events)


class TestJWTAuthentication:

    def test_missing_token_is_rejected(self, monkeypatch):
        client, _ = make_client(monkeypatch, auth_enabled=True)
        assert client.get("/groups").status_code == 401

    def test_invalid_token_is_rejected(self, monkeypatch):
        client, _ = make_client(monkeypatch, auth_enabled=True)
        response = client.get("/groups", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_valid_token(self, monkeypatch):
        client, _ = make_client(monkeypatch, auth_enabled=True)
        token = JWTIdentityProvider(JWT_SECRET).issue_token(Identity(user_id="user-ketua", name="Ibu Ketua"))
        headers = {"Authorization": f"Bearer {token}"}

        create_response = client.post("/groups", json={
            "name": "Arisan Kantor",
            "nominal": {"amount": "50.000", "currency": "IDR"},
            "total_members": 2,
            "creator_name": "Ibu Ketua",
        }, headers=headers)
        assert create_response.status_code == 201
        assert create_response.json()["group"]["nominal"]["amount"] == "50000"

        groups = client.get("/groups", headers=headers).json()["groups"]
        assert len(groups) == 1
        assert groups[0]["created_by"] == "user-ketua"

    def test_header_identity_is_ignored_when_auth_enabled(self, monkeypatch):
        client, _ = make_client(monkeypatch, auth_enabled=True)
        assert client.get("/groups", headers=KETUA).status_code == 401
