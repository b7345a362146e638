"""
Redemption QR endpoint tests
Acceptance: a QR verified once is claimed; the same QR replayed gets 409
"""
import json
from datetime import datetime, timedelta, timezone

from laudato.schemas.records import RedemptionRecord, RedemptionStatus


def request_qr(client, auth, redemption_id="d1", email="student@campus.edu"):
    return client.post("/api/rewards/qr", json={"redemptionId": redemption_id}, headers=auth(email))


class TestGenerateQR:

    def test_owner_gets_signed_payload(self, client, auth):
        response = request_qr(client, auth)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["redemptionCode"] == "ABC123"
        payload = json.loads(body["qrData"])
        assert payload["redemptionId"] == "d1"
        assert payload["userId"] == "u-student"
        assert payload["version"] == "1.0"

    def test_requires_authentication(self, client):
        response = client.post("/api/rewards/qr", json={"redemptionId": "d1"})
        assert response.status_code == 401

    def test_other_users_redemption_not_found(self, client, auth):
        response = request_qr(client, auth, email="sa@campus.edu")
        assert response.status_code == 404

    def test_completed_redemption_rejected(self, client, auth, datastore):
        datastore.add_redemption(RedemptionRecord(
            id="d2", redemption_code="XYZ789", user_id="u-student", reward_id="r1",
            status=RedemptionStatus.COMPLETED,
        ))
        response = request_qr(client, auth, redemption_id="d2")
        assert response.status_code == 400
        assert "completed" in response.json()["message"]

    def test_expired_redemption_rejected(self, client, auth, datastore):
        datastore.add_redemption(RedemptionRecord(
            id="d3", redemption_code="OLD000", user_id="u-student", reward_id="r1",
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        ))
        response = request_qr(client, auth, redemption_id="d3")
        assert response.status_code == 400
        assert response.json()["message"] == "This redemption has expired"

    def test_banned_user_rejected(self, client, auth, datastore):
        datastore.update_user("u-student", is_banned=True)
        assert request_qr(client, auth).status_code == 403


class TestRefreshCheck:

    def test_refresh_after_four_minutes(self, client, auth, clock):
        qr = request_qr(client, auth).json()["qrData"]
        headers = auth("student@campus.edu")

        clock.advance(239_000)
        assert client.post("/api/rewards/qr/refresh", json={"qrData": qr}, headers=headers).json() == {"needsRefresh": False}

        clock.advance(2_000)
        assert client.post("/api/rewards/qr/refresh", json={"qrData": qr}, headers=headers).json() == {"needsRefresh": True}

    def test_garbage_needs_refresh(self, client, auth):
        response = client.post("/api/rewards/qr/refresh", json={"qrData": "ABC123"}, headers=auth("student@campus.edu"))
        assert response.json() == {"needsRefresh": True}


class TestVerifyQR:

    def verify(self, client, auth, qr, email="canteen@campus.edu"):
        return client.post("/api/rewards/verify", json={"qrData": qr}, headers=auth(email))

    def test_canteen_admin_claims_reward(self, client, auth, clock, datastore):
        qr = request_qr(client, auth).json()["qrData"]
        clock.advance(2 * 60 * 1000)

        response = self.verify(client, auth, qr)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["redemption"]["rewardName"] == "Reusable Tumbler"
        assert body["redemption"]["userName"] == "Sam Student"
        assert body["redemption"]["status"] == "completed"

        stored = datastore.get_redemption("d1")
        assert stored.status is RedemptionStatus.COMPLETED
        assert stored.verified_by == "u-canteen"

    def test_claim_is_audited(self, client, auth, datastore):
        qr = request_qr(client, auth).json()["qrData"]
        self.verify(client, auth, qr)

        entries, total = datastore.query_audit_logs(action="redemption_verified")
        assert total == 1
        assert entries[0].actor_id == "u-canteen"
        assert entries[0].entity_id == "d1"

    def test_replay_rejected_by_status(self, client, auth, tokens):
        qr = request_qr(client, auth).json()["qrData"]
        assert self.verify(client, auth, qr).status_code == 200

        # The token alone still checks out
        assert tokens.verify(qr).ok

        replay = self.verify(client, auth, qr)
        assert replay.status_code == 409
        assert replay.json()["message"] == "This reward has already been claimed"
        assert replay.json()["error"] == "already_claimed"
        assert replay.json()["details"]["redemption_id"] == "d1"
        assert replay.json()["details"]["status"] == "completed"
        assert replay.json()["details"]["claimed_at"] is not None

    def test_expired_qr(self, client, auth, clock):
        qr = request_qr(client, auth).json()["qrData"]
        clock.advance(301_000)

        response = self.verify(client, auth, qr)
        assert response.status_code == 400
        details = response.json()["details"]
        assert details["reason"] == "expired"
        assert details["expired"] is True
        assert details["tampered"] is False

    def test_tampered_qr(self, client, auth, datastore):
        datastore.add_redemption(RedemptionRecord(
            id="d9", redemption_code="ZZZ999", user_id="u-sa", reward_id="r1",
        ))
        payload = json.loads(request_qr(client, auth).json()["qrData"])
        payload["redemptionId"] = "d9"

        response = self.verify(client, auth, json.dumps(payload))
        assert response.status_code == 400
        assert response.json()["details"]["reason"] == "invalid_signature"
        assert response.json()["details"]["tampered"] is True
        assert datastore.get_redemption("d9").status is RedemptionStatus.PENDING

    def test_legacy_code_is_malformed(self, client, auth):
        response = self.verify(client, auth, "ABC123")
        assert response.status_code == 400
        assert response.json()["details"]["reason"] == "malformed_format"

    def test_cancelled_redemption(self, client, auth, datastore):
        qr = request_qr(client, auth).json()["qrData"]
        datastore.add_redemption(datastore.get_redemption("d1").model_copy(
            update={"status": RedemptionStatus.CANCELLED}
        ))
        response = self.verify(client, auth, qr)
        assert response.status_code == 400
        assert response.json()["message"] == "This redemption has been cancelled"

    def test_finance_admin_cannot_verify(self, client, auth, datastore):
        qr = request_qr(client, auth).json()["qrData"]
        response = self.verify(client, auth, qr, email="finance@campus.edu")

        assert response.status_code == 403
        assert datastore.get_redemption("d1").status is RedemptionStatus.PENDING

    def test_student_cannot_verify(self, client, auth):
        qr = request_qr(client, auth).json()["qrData"]
        response = self.verify(client, auth, qr, email="student@campus.edu")
        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    def test_empty_payload(self, client, auth):
        assert self.verify(client, auth, "").status_code == 400
