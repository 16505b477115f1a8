from insight_chat.memory.documents import DocumentStore
from insight_chat.memory.models import ChatRecord, DocumentRecord, MessageRecord
from insight_chat.memory.session_manager import SessionManager
from insight_chat.memory.store import MemoryStore

__all__ = [
    "ChatRecord",
    "DocumentRecord",
    "DocumentStore",
    "MemoryStore",
    "MessageRecord",
    "SessionManager",
]
