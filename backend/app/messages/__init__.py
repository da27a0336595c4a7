"""Message log and the messaging gate that guards every send."""

from .gate import INTRO_LIMIT_MESSAGE, MessagingGate
from .schemas import ChatStatus, IntroResult, Message
from .service import MessageLog, normalize_content

__all__ = [
    "INTRO_LIMIT_MESSAGE",
    "ChatStatus",
    "IntroResult",
    "Message",
    "MessageLog",
    "MessagingGate",
    "normalize_content",
]
