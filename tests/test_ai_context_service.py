from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from uuid import uuid4

from sqlalchemy.exc import OperationalError

from imperium.models import Activity, Lead, Message, Stage, User
from imperium.services.ai_context_service import (
    build_general_context,
    build_lead_context,
    days_since,
    neglect_level,
)

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def _route(db, rows_by_model):
    """db.query(Model) returns a chain whose first()/all() yield the rows for that model."""

    def query(model, *args):
        chain = MagicMock()
        rows = rows_by_model.get(model, [])
        for q in (chain, chain.filter.return_value):
            for step in (q, q.order_by.return_value, q.order_by.return_value.limit.return_value):
                step.all.return_value = rows
                step.first.return_value = rows[0] if rows else None
        return chain

    db.query.side_effect = query


class TestNeglect:
    def test_days_since(self):
        assert days_since(NOW - timedelta(days=4, hours=3), NOW) == 4
        assert days_since(None, NOW) is None
        assert days_since(NOW + timedelta(days=1), NOW) == 0

    def test_naive_treated_as_utc(self):
        assert days_since(datetime(2024, 6, 8, 12, 0), NOW) == 2

    def test_levels(self):
        assert neglect_level(None) == "NORMAL"
        assert neglect_level(3) == "NORMAL"
        assert neglect_level(4) == "HIGH"
        assert neglect_level(7) == "HIGH"
        assert neglect_level(8) == "CRITICAL"


class TestLeadContext:
    def test_invalid_id(self, db_session):
        assert build_lead_context(db_session, "not-a-uuid") == "Lead Context: Lead not found."
        db_session.query.assert_not_called()

    def test_unknown_lead(self, db_session):
        _route(db_session, {})
        assert build_lead_context(db_session, uuid4()) == "Lead Context: Lead not found."

    def test_database_error_degrades(self, db_session):
        db_session.query.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        assert build_lead_context(db_session, uuid4()) == "Lead Context: Error retrieving detailed data."

    def test_full_profile(self, db_session):
        pipeline_id = uuid4()
        new_stage, viewing = Stage(id=uuid4(), name="New"), Stage(id=uuid4(), name="Viewing")
        lead = Lead(
            id=uuid4(),
            name="Omar",
            phone="971501234567",
            status="contacted",
            priority="HIGH",
            pipeline_id=pipeline_id,
            stage_id=viewing.id,
            assigned_to="agent-1",
            created_at=NOW - timedelta(days=30),
        )
        activities = [
            Activity(type="CALL", content="Follow up on Marina", is_completed=False, created_at=NOW - timedelta(days=5)),
        ]
        messages = [
            Message(channel="whatsapp", direction="incoming", body="Any news?", timestamp=NOW - timedelta(days=9)),
        ]
        _route(
            db_session,
            {
                Lead: [lead],
                Activity: activities,
                Message: messages,
                Stage: [new_stage, viewing],
                User: [User(id="agent-1", name="Sara", role="user")],
            },
        )

        context = build_lead_context(db_session, str(lead.id), now=NOW)

        assert "Name: Omar" in context
        assert "Days Since Last Interaction: 9" in context
        assert "Days Since Last Activity: 5" in context
        assert "NEGLECT RISK: CRITICAL" in context
        assert "Follow-up: REQUIRED" in context
        assert "Current Stage: Viewing" in context
        assert "Stage Sequence: New -> Viewing" in context
        assert "Assigned To: Sara" in context
        assert '[WHATSAPP/incoming] 2024-06-01: "Any news?"' in context
        assert "[CALL] Follow up on Marina (Due: ASAP)" in context


class TestGeneralContext:
    def test_database_error_degrades(self, db_session):
        db_session.query.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        assert build_general_context(db_session) == "System Context: Unavailable."
