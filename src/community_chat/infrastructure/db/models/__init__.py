"""Import all models so Base.metadata sees every table."""
from community_chat.infrastructure.db.models.conversation import ConversationModel
from community_chat.infrastructure.db.models.message import MessageModel
from community_chat.infrastructure.db.models.participant import ParticipantModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "ParticipantModel",
]
