from imperium.services.normalizers import form, instagram, whatsapp
from imperium.services.normalizers.base import ContactSubmission, InboundEvent

__all__ = ["ContactSubmission", "InboundEvent", "form", "instagram", "whatsapp"]
