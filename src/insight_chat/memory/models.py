from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ChatRecord:
    id: str
    user_id: str
    title: str
    created_at: str
    deleted_at: str | None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


@dataclass(frozen=True)
class MessageRecord:
    id: str
    chat_id: str
    seq: int
    role: str
    content: str | list[dict]
    created_at: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class DocumentRecord:
    id: str
    version: int
    user_id: str
    title: str
    content: str
    created_at: str
