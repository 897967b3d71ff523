from workdesk.models.chat import ChatMessage, ChatParticipant
from workdesk.models.common import (
    PricingGuide,
    ProjectDeliverable,
    ProjectRevision,
    ProjectStatusHistory,
)
from workdesk.models.project import Project
from workdesk.models.user import User

__all__ = [
    "ChatMessage",
    "ChatParticipant",
    "PricingGuide",
    "Project",
    "ProjectDeliverable",
    "ProjectRevision",
    "ProjectStatusHistory",
    "User",
]
