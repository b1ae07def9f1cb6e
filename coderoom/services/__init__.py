from coderoom.services.ai_service import (
    AiResponseOrchestrator,
    extract_ai_prompt,
    is_ai_mention,
)
from coderoom.services.feed_service import ChangeFeedSubscriber
from coderoom.services.inference_service import ProviderInferenceClient
from coderoom.services.message_store import MessageStore
from coderoom.services.roster import MembershipRoster
from coderoom.services.session_service import RoomSession
from coderoom.services.write_service import OptimisticWriteCoordinator

__all__ = [
    "AiResponseOrchestrator",
    "ChangeFeedSubscriber",
    "MembershipRoster",
    "MessageStore",
    "OptimisticWriteCoordinator",
    "ProviderInferenceClient",
    "RoomSession",
    "extract_ai_prompt",
    "is_ai_mention",
]
