from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import patch
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from imperium.models import Lead, LeadEvent
from imperium.services.lead_service import (
    backfill_legacy_leads,
    contact_from_event,
    find_existing_lead,
    intake_lead,
    is_placeholder_name,
    legacy_lead_id,
    normalize_email,
    normalize_phone,
)
from imperium.services.normalizers import form
from imperium.services.normalizers.base import ContactSubmission, InboundEvent


def _existing(db_session, lead):
    db_session.query.return_value.filter.return_value.order_by.return_value.first.return_value = lead


def _event(channel="instagram", **overrides):
    values = {
        "channel": channel,
        "external_id": "m_1",
        "sender_id": "111",
        "recipient_id": "222",
        "text": "Hello",
        "timestamp": datetime(2024, 1, 1, tzinfo=timezone.utc),
    }
    values.update(overrides)
    return InboundEvent(**values)


class TestNormalizePhone:
    def test_keeps_digits_only(self):
        assert normalize_phone("+971 (50) 123-4567") == "971501234567"

    def test_empty(self):
        assert normalize_phone(None) == ""
        assert normalize_phone("") == ""
        assert normalize_phone("abc") == ""

    def test_idempotent(self):
        once = normalize_phone("+1 (555) 010-9999")
        assert normalize_phone(once) == once

    def test_email_lower_cased(self):
        assert normalize_email("  Omar@Example.COM ") == "omar@example.com"
        assert normalize_email("") is None


class TestPlaceholderNames:
    def test_known_placeholders(self):
        assert is_placeholder_name("Unknown") is True
        assert is_placeholder_name("instagram user") is True
        assert is_placeholder_name(None) is True

    def test_real_name(self):
        assert is_placeholder_name("Ahmed") is False


class TestFindExistingLead:
    def test_no_criteria_skips_query(self, db_session):
        assert find_existing_lead(db_session, None, None) is None
        db_session.query.assert_not_called()

    def test_long_phone_uses_suffix_match(self, db_session):
        _existing(db_session, None)
        find_existing_lead(db_session, "+971 50 123 4567", None)

        clause = str(db_session.query.return_value.filter.call_args[0][0])
        assert "LIKE" in clause

    def test_short_phone_needs_exact_match(self, db_session):
        _existing(db_session, None)
        find_existing_lead(db_session, "12345", None)

        clause = str(db_session.query.return_value.filter.call_args[0][0])
        assert "LIKE" not in clause
        assert "leads.phone =" in clause

    def test_email_or_phone(self, db_session):
        lead = Lead(name="Omar", phone="971501234567")
        _existing(db_session, lead)

        found = find_existing_lead(db_session, "0501234567", "Omar@X.com")

        assert found is lead
        clause = str(db_session.query.return_value.filter.call_args[0][0])
        assert "lower(leads.email)" in clause
        assert " OR " in clause


class TestIntakeLead:
    def test_creates_new_lead(self, db_session):
        _existing(db_session, None)
        contact = ContactSubmission(
            name="Omar",
            phone="+971 50 123 4567",
            email="Omar@X.com",
            message="Interested in Marina",
            marketing={"utm_source": "google", "page_slug": "marina"},
            profile={"language": "ar"},
        )

        result = intake_lead(db_session, contact, source="WEBSITE")

        assert result.ok is True
        assert result.value.is_new is True
        lead = result.value.lead
        assert lead.phone == "971501234567"
        assert lead.email == "omar@x.com"
        assert lead.status == "new"
        assert lead.source == "WEBSITE"
        assert lead.pipeline_id is None
        assert lead.stage_id is None
        assert lead.utm_source == "google"
        assert lead.language == "ar"

    def test_requires_phone_or_email(self, db_session):
        result = intake_lead(db_session, ContactSubmission(name="Nobody", phone="n/a"), source="WEBSITE")

        assert result.ok is False
        assert result.error_code == "validation_error"
        db_session.add.assert_not_called()

    def test_records_form_submitted_event(self, db_session):
        _existing(db_session, None)
        contact = ContactSubmission(
            name="Omar",
            phone="0501234567",
            marketing={"marketing_channel": "meta", "page_slug": "marina"},
        )

        intake_lead(db_session, contact, source="WEBSITE")

        events = [c[0][0] for c in db_session.add.call_args_list if isinstance(c[0][0], LeadEvent)]
        assert len(events) == 1
        assert events[0].type == "FORM_SUBMITTED"
        assert events[0].description == "Lead submitted from meta/marina"

    def test_event_failure_does_not_fail_intake(self, db_session):
        _existing(db_session, None)
        db_session.begin_nested.side_effect = SQLAlchemyError("savepoint failed")

        result = intake_lead(db_session, ContactSubmission(name="Omar", phone="0501234567"), source="WEBSITE")

        assert result.ok is True

    def test_existing_lead_fills_gaps_only(self, db_session):
        existing = Lead(id=uuid4(), name="Ahmed", phone="971501234567", email=None, budget="2M")
        _existing(db_session, existing)
        contact = ContactSubmission(name="Mohammed", phone="0501234567", email="New@X.com", budget="5M")

        result = intake_lead(db_session, contact, source="WEBSITE")

        assert result.value.is_new is False
        assert result.value.lead is existing
        assert existing.name == "Ahmed"
        assert existing.phone == "971501234567"
        assert existing.email == "new@x.com"
        assert existing.budget == "2M"

    def test_placeholder_name_replaced_by_real_one(self, db_session):
        existing = Lead(id=uuid4(), name="Instagram User", email="111@instagram.com")
        _existing(db_session, existing)

        intake_lead(db_session, ContactSubmission(name="Layla", email="111@instagram.com"), source="INSTAGRAM")

        assert existing.name == "Layla"

    def test_placeholder_never_replaces_real_name(self, db_session):
        existing = Lead(id=uuid4(), name="Layla", email="111@instagram.com")
        _existing(db_session, existing)

        intake_lead(db_session, ContactSubmission(name="Instagram User", email="111@instagram.com"), source="INSTAGRAM")

        assert existing.name == "Layla"

    def test_marketing_fields_follow_latest_touch(self, db_session):
        existing = Lead(id=uuid4(), name="Omar", phone="971501234567", utm_source="facebook", message="old")
        _existing(db_session, existing)
        contact = ContactSubmission(
            name="Omar",
            phone="0501234567",
            message="new message",
            marketing={"utm_source": "google"},
        )

        intake_lead(db_session, contact, source="WEBSITE")

        assert existing.utm_source == "google"
        assert existing.message == "old"

    def test_message_fills_only_when_empty(self, db_session):
        existing = Lead(id=uuid4(), name="Omar", phone="971501234567", message=None)
        _existing(db_session, existing)

        intake_lead(db_session, ContactSubmission(name="Omar", phone="0501234567", message="first"), source="WEBSITE")
        intake_lead(db_session, ContactSubmission(name="Omar", phone="0501234567", message="second"), source="WEBSITE")

        assert existing.message == "first"

    def test_new_lead_defaults_apply_only_to_new_leads(self, db_session):
        _existing(db_session, None)

        result = intake_lead(
            db_session,
            ContactSubmission(name="Instagram User", email="111@instagram.com"),
            source="INSTAGRAM",
            event_type="MESSAGE_RECEIVED",
            new_lead_defaults={"score": 70, "priority": "HIGH"},
        )

        assert result.value.lead.score == 70
        assert result.value.lead.priority == "HIGH"


class TestContactFromEvent:
    def test_whatsapp_sender_becomes_phone(self):
        contact = contact_from_event(_event("whatsapp", sender_id="971501234567", sender_name="Sara"))
        assert contact.phone == "971501234567"
        assert contact.email is None
        assert contact.name == "Sara"
        assert contact.profile["is_whatsapp_preferred"] is True

    def test_instagram_sender_becomes_placeholder_email(self):
        contact = contact_from_event(_event(sender_username="layla.dxb"))
        assert contact.email == "layla.dxb@instagram.com"
        assert contact.phone is None

    def test_instagram_without_username_uses_id(self):
        contact = contact_from_event(_event())
        assert contact.email == "111@instagram.com"
        assert contact.name == "Instagram User"

    def test_form_event_maps_row_fields(self):
        row = {"Name": "Hana", "Mobile": "0501112233", "Email": "hana@x.io", "utm_source": "meta", "notes": "2BR"}
        [event] = form.extract_events(row)

        contact = contact_from_event(event, campaign_id="camp-1")

        assert contact.name == "Hana"
        assert contact.phone == "0501112233"
        assert contact.email == "hana@x.io"
        assert contact.message == "2BR"
        assert contact.marketing == {"utm_source": "meta"}
        assert contact.campaign_id == "camp-1"


class TestBackfillLegacyLeads:
    def _rows(self):
        return [
            {"id": 1, "full_name": "Legacy One", "phone": "+971501111111", "email": None, "payload": {"budget": 2000000}},
            {"id": 2, "full_name": "Legacy Two", "phone": "0502222222", "email": "two@x.com", "payload": {}},
        ]

    @patch("imperium.services.lead_service.get_default_pipeline_stage", return_value=(None, None))
    def test_aborts_without_default_pipeline(self, _mock_stage, db_session):
        result = backfill_legacy_leads(db_session, self._rows())

        assert result.ok is False
        assert result.error_code == "no_default_pipeline"
        db_session.execute.assert_not_called()

    @patch("imperium.services.lead_service.get_default_pipeline_stage")
    def test_aborts_when_pipeline_has_no_stages(self, mock_stage, db_session):
        mock_stage.return_value = (SimpleNamespace(id=uuid4()), None)

        result = backfill_legacy_leads(db_session, self._rows())

        assert result.error_code == "no_default_pipeline"

    @patch("imperium.services.lead_service.store.insert_if_absent", return_value=True)
    @patch("imperium.services.lead_service.find_existing_lead", return_value=None)
    @patch("imperium.services.lead_service.get_default_pipeline_stage")
    def test_inserts_into_first_stage(self, mock_stage, _mock_find, mock_insert, db_session):
        pipeline, stage = SimpleNamespace(id=uuid4()), SimpleNamespace(id=uuid4())
        mock_stage.return_value = (pipeline, stage)

        result = backfill_legacy_leads(db_session, self._rows())

        assert result.ok is True
        assert result.value.created == 2
        values = mock_insert.call_args_list[0][0][2]
        assert values["id"] == legacy_lead_id(1)
        assert values["pipeline_id"] == pipeline.id
        assert values["stage_id"] == stage.id
        assert values["source"] == "LEGACY_SYNC"
        assert values["status"] == "new"
        assert values["phone"] == "971501111111"
        assert values["budget"] == "2000000"

    @patch("imperium.services.lead_service.store.insert_if_absent")
    @patch("imperium.services.lead_service.find_existing_lead")
    @patch("imperium.services.lead_service.get_default_pipeline_stage")
    def test_existing_leads_are_not_touched(self, mock_stage, mock_find, mock_insert, db_session):
        mock_stage.return_value = (SimpleNamespace(id=uuid4()), SimpleNamespace(id=uuid4()))
        mock_find.side_effect = [Lead(name="Already here"), None]
        mock_insert.return_value = False

        result = backfill_legacy_leads(db_session, self._rows())

        assert result.value.skipped_existing == 1
        assert result.value.skipped_conflict == 1
        assert result.value.created == 0
        assert mock_insert.call_count == 1

    @patch("imperium.services.lead_service.store.insert_if_absent")
    @patch("imperium.services.lead_service.find_existing_lead", return_value=None)
    @patch("imperium.services.lead_service.get_default_pipeline_stage")
    def test_rows_without_contact_or_failing_insert_counted(self, mock_stage, _mock_find, mock_insert, db_session):
        mock_stage.return_value = (SimpleNamespace(id=uuid4()), SimpleNamespace(id=uuid4()))
        mock_insert.side_effect = SQLAlchemyError("boom")
        rows = [{"id": 3, "full_name": "No contact"}, self._rows()[0]]

        result = backfill_legacy_leads(db_session, rows)

        assert result.value.failed == 2
        assert result.value.failed_ids == [3, 1]

    def test_legacy_ids_are_deterministic(self):
        assert legacy_lead_id(42) == legacy_lead_id("42")
        assert legacy_lead_id(42) != legacy_lead_id(43)
