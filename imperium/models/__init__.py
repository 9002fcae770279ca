from imperium.models.activity import Activity
from imperium.models.audit_log import AuditLog
from imperium.models.call import Call
from imperium.models.campaign import Campaign
from imperium.models.channel_account import ChannelAccount
from imperium.models.lead import Lead, LeadEvent
from imperium.models.message import Message
from imperium.models.pipeline import Pipeline, Stage
from imperium.models.user import User

__all__ = [
    "User",
    "Pipeline",
    "Stage",
    "Campaign",
    "Lead",
    "LeadEvent",
    "Activity",
    "ChannelAccount",
    "Message",
    "Call",
    "AuditLog",
]
