import hashlib
import hmac
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch
from uuid import uuid4

from imperium.models import Activity, ChannelAccount, Lead, Message
from imperium.services.inbox_service import StoredMessage
from imperium.services.lead_service import IntakeOutcome
from imperium.services.result import Result
from imperium.services.webhook_service import IngestOutcome


def _ig_payload(*mids):
    return {
        "object": "instagram",
        "entry": [
            {
                "id": "IG_1",
                "messaging": [
                    {
                        "sender": {"id": "111"},
                        "recipient": {"id": "IG_1"},
                        "timestamp": 1700000000000,
                        "message": {"mid": mid, "text": "Price of the Marina unit?"},
                    }
                    for mid in mids
                ],
            }
        ],
    }


def _signed(payload, secret="app-secret"):
    body = json.dumps(payload).encode()
    signature = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return body, {"X-Hub-Signature-256": signature, "Content-Type": "application/json"}


def _processed(mid="m_1", account=None):
    message = Message(
        channel="instagram",
        message_id=mid,
        sender_id="111",
        recipient_id="IG_1",
        body="Price of the Marina unit?",
        timestamp=datetime(2023, 11, 14, tzinfo=timezone.utc),
        direction="incoming",
    )
    return Result.success(
        IngestOutcome(
            status="processed",
            stored=StoredMessage(message=message, created=True),
            account=account,
            lead=Lead(id=uuid4(), name="Instagram User"),
        )
    )


class TestMetaVerification:
    def test_handshake_echoes_challenge(self, client):
        response = client.get(
            "/webhooks/meta",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-token", "hub.challenge": "12345"},
        )
        assert response.status_code == 200
        assert response.text == "12345"

    def test_wrong_token(self, client):
        response = client.get(
            "/webhooks/meta",
            params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "12345"},
        )
        assert response.status_code == 403


class TestMetaDelivery:
    def test_bad_signature_rejected(self, client, db_session):
        body, headers = _signed(_ig_payload("m_1"), secret="wrong")

        response = client.post("/webhooks/meta", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json()["error_code"] == "unauthorized"
        db_session.commit.assert_not_called()

    def test_invalid_json(self, client):
        body = b"{not json"
        signature = "sha256=" + hmac.new(b"app-secret", body, hashlib.sha256).hexdigest()

        response = client.post("/webhooks/meta", content=body, headers={"X-Hub-Signature-256": signature})

        assert response.status_code == 400

    @patch("imperium.routers.webhooks.ingest_event")
    def test_counts_outcomes(self, mock_ingest, client, db_session):
        mock_ingest.side_effect = [
            _processed("m_1"),
            Result.success(IngestOutcome(status="duplicate")),
            Result.failure("boom", "validation_error"),
        ]
        body, headers = _signed(_ig_payload("m_1", "m_2", "m_3"))

        response = client.post("/webhooks/meta", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json() == {"success": True, "processed": 1, "duplicates": 1, "skipped": 1}
        assert [c[0][1].external_id for c in mock_ingest.call_args_list] == ["m_1", "m_2", "m_3"]
        db_session.commit.assert_called_once()

    @patch("imperium.routers.webhooks.auto_reply", new_callable=AsyncMock, return_value=True)
    @patch("imperium.routers.webhooks.ingest_event")
    def test_auto_reply_when_enabled(self, mock_ingest, mock_auto_reply, client, container):
        container.settings.auto_reply_enabled = True
        account = ChannelAccount(channel="instagram", external_account_id="IG_1", status="connected", user_id="u1")
        mock_ingest.return_value = _processed(account=account)
        body, headers = _signed(_ig_payload("m_1"))

        client.post("/webhooks/meta", content=body, headers=headers)

        mock_auto_reply.assert_awaited_once()

    @patch("imperium.routers.webhooks.auto_reply", new_callable=AsyncMock)
    @patch("imperium.routers.webhooks.ingest_event")
    def test_no_auto_reply_by_default(self, mock_ingest, mock_auto_reply, client):
        account = ChannelAccount(channel="instagram", external_account_id="IG_1", status="connected", user_id="u1")
        mock_ingest.return_value = _processed(account=account)
        body, headers = _signed(_ig_payload("m_1"))

        client.post("/webhooks/meta", content=body, headers=headers)

        mock_auto_reply.assert_not_awaited()


INTAKE_HEADERS = {"X-Imperium-Secret": "intake-secret"}


@patch("imperium.routers.leads.record_audit")
@patch("imperium.routers.leads.intake_lead")
class TestLeadIntake:
    def test_missing_secret(self, mock_intake, _mock_audit, client):
        response = client.post("/leads/intake", json={"name": "Omar", "phone": "0501234567"})

        assert response.status_code == 401
        mock_intake.assert_not_called()

    def test_invalid_payload_lists_details(self, mock_intake, _mock_audit, client):
        response = client.post(
            "/leads/intake",
            json={"name": "O", "phone": "0501234567", "email": "not-an-email"},
            headers=INTAKE_HEADERS,
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "validation_error"
        assert {tuple(d["loc"]) for d in body["details"]} == {("name",), ("email",)}
        mock_intake.assert_not_called()

    def test_accepts_camel_case_and_fills_request_metadata(self, mock_intake, mock_audit, client, db_session):
        lead = Lead(id=uuid4(), name="Omar")
        mock_intake.return_value = Result.success(IntakeOutcome(lead=lead, is_new=True))

        response = client.post(
            "/leads/intake",
            json={
                "name": "Omar",
                "phone": "+971 50 123 4567",
                "email": "",
                "language": "ar",
                "utmSource": "google",
                "pageSlug": "marina",
                "isWhatsappPreferred": True,
            },
            headers={**INTAKE_HEADERS, "User-Agent": "landing/1.0"},
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "lead_id": str(lead.id), "is_new": True}
        submission = mock_intake.call_args[0][1]
        assert mock_intake.call_args[1]["source"] == "WEBSITE"
        assert submission.email is None
        assert submission.marketing["utm_source"] == "google"
        assert submission.marketing["page_slug"] == "marina"
        assert submission.marketing["user_agent"] == "landing/1.0"
        assert submission.marketing["ip_address"]
        assert submission.profile == {"language": "ar", "is_whatsapp_preferred": True}
        mock_audit.assert_called_once()
        db_session.commit.assert_called_once()

    def test_intake_failure_maps_to_status(self, mock_intake, _mock_audit, client, db_session):
        mock_intake.return_value = Result.failure("Phone or email is required", "validation_error")

        response = client.post("/leads/intake", json={"name": "Omar", "phone": "n/a n/a"}, headers=INTAKE_HEADERS)

        assert response.status_code == 400
        db_session.commit.assert_not_called()


SHEETS_HEADERS = {"Authorization": "Bearer sheets-secret"}


@patch("imperium.routers.leads.intake_lead")
class TestSheetsWebhook:
    def test_requires_bearer(self, mock_intake, client):
        response = client.post("/integrations/google-sheets/webhook", json={"Name": "Lina", "Phone": "0501"})
        assert response.status_code == 401

        response = client.post(
            "/integrations/google-sheets/webhook",
            json={"Name": "Lina", "Phone": "0501"},
            headers={"Authorization": "Bearer wrong"},
        )
        assert response.status_code == 401
        mock_intake.assert_not_called()

    def test_row_without_name(self, mock_intake, client):
        response = client.post(
            "/integrations/google-sheets/webhook",
            json={"Phone": "0501234567"},
            headers=SHEETS_HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Name is required"

    def test_row_with_notes_adds_activity(self, mock_intake, client, db_session):
        lead = Lead(id=uuid4(), name="Lina")
        mock_intake.return_value = Result.success(IntakeOutcome(lead=lead, is_new=False))

        response = client.post(
            "/integrations/google-sheets/webhook",
            json={"Full Name": "Lina", "Mobile": "0501234567", "Notes": "Call after 6pm"},
            headers=SHEETS_HEADERS,
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "lead_id": str(lead.id), "is_new": False}
        assert mock_intake.call_args[1]["source"] == "GOOGLE_SHEETS"
        notes = [c[0][0] for c in db_session.add.call_args_list if isinstance(c[0][0], Activity)]
        assert len(notes) == 1
        assert notes[0].type == "NOTE"
        assert "Call after 6pm" in notes[0].content
