from __future__ import annotations

import json
from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger

from insight_chat.memory.models import ChatRecord, MessageRecord
from insight_chat.memory.store import MemoryStore
from insight_chat.provider import Usage

_ROLES = {"user", "assistant", "tool"}


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds")


class SessionManager:
    def __init__(self, store: MemoryStore):
        self._store = store

    def get_chat(self, chat_id: str) -> ChatRecord | None:
        """Return the chat, including soft-deleted ones; callers check ``is_deleted``."""
        row = self._store.execute(
            "SELECT * FROM chats WHERE id = ? LIMIT 1",
            (chat_id,),
        ).fetchone()
        if row is None:
            return None
        return self._to_chat(row)

    def list_chats(self, user_id: str, *, limit: int = 50) -> list[ChatRecord]:
        rows = self._store.execute(
            """
            SELECT * FROM chats
            WHERE user_id = ? AND deleted_at IS NULL
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (user_id, max(1, limit)),
        ).fetchall()
        return [self._to_chat(row) for row in rows]

    def create_chat(self, chat_id: str, user_id: str, title: str) -> ChatRecord:
        """Insert the chat unless the id is taken; returns the stored row either way.

        Callers compare the returned owner with their own, since a concurrent
        first turn may have created the chat in the meantime.
        """
        now = utc_now()
        title = " ".join(title.split()) or f"Chat {now[:16].replace('T', ' ')}"
        with self._store.transaction() as store:
            cursor = store.execute(
                """
                INSERT INTO chats (id, user_id, title, created_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(id) DO NOTHING
                """,
                (chat_id, user_id, title, now),
            )
            created = cursor.rowcount == 1
        if created:
            logger.info(f"Created chat {chat_id} for user {user_id}: {title!r}")
        return self.get_chat(chat_id)

    def message_chat_id(self, message_id: str) -> str | None:
        """Return the chat holding a message id, or None if the id is unused."""
        row = self._store.execute(
            "SELECT chat_id FROM messages WHERE id = ? LIMIT 1",
            (message_id,),
        ).fetchone()
        return None if row is None else row["chat_id"]

    def save_messages(
        self,
        chat_id: str,
        messages: list[dict],
        usage: Usage | None = None,
    ) -> list[str]:
        """Append messages in order; every row carries the given usage (zeros when unknown)."""
        usage = usage or Usage()
        ids: list[str] = []
        with self._store.transaction() as store:
            row = store.execute(
                "SELECT COALESCE(MAX(seq), 0) AS max_seq FROM messages WHERE chat_id = ?",
                (chat_id,),
            ).fetchone()
            next_seq = int(row["max_seq"]) + 1
            params: list[tuple] = []
            for message in messages:
                role = message["role"]
                if role not in _ROLES:
                    raise ValueError(f"Unsupported message role: {role!r}")
                message_id = message.get("id") or str(uuid4())
                params.append(
                    (
                        message_id,
                        chat_id,
                        next_seq,
                        role,
                        json.dumps(message["content"], ensure_ascii=True),
                        utc_now(),
                        usage.prompt_tokens,
                        usage.completion_tokens,
                        usage.total_tokens,
                    )
                )
                ids.append(message_id)
                next_seq += 1
            store.executemany(
                """
                INSERT INTO messages (
                    id, chat_id, seq, role, content_json, created_at,
                    prompt_tokens, completion_tokens, total_tokens
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                params,
            )
        return ids

    def load_messages(self, chat_id: str) -> list[MessageRecord]:
        rows = self._store.execute(
            """
            SELECT * FROM messages
            WHERE chat_id = ? AND deleted_at IS NULL
            ORDER BY seq ASC
            """,
            (chat_id,),
        ).fetchall()
        return [
            MessageRecord(
                id=row["id"],
                chat_id=row["chat_id"],
                seq=int(row["seq"]),
                role=row["role"],
                content=json.loads(row["content_json"]),
                created_at=row["created_at"],
                prompt_tokens=int(row["prompt_tokens"]),
                completion_tokens=int(row["completion_tokens"]),
                total_tokens=int(row["total_tokens"]),
            )
            for row in rows
        ]

    def delete_chat(self, chat_id: str) -> None:
        now = utc_now()
        with self._store.transaction() as store:
            store.execute(
                "UPDATE chats SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (now, chat_id),
            )
            store.execute(
                "UPDATE messages SET deleted_at = ? WHERE chat_id = ? AND deleted_at IS NULL",
                (now, chat_id),
            )
        logger.info(f"Deleted chat {chat_id}")

    def usage_summary(self, chat_id: str) -> dict:
        # Rows of one turn repeat that turn's usage, so count each turn once
        # by taking the last row of every run of non-user messages.
        rows = self._store.execute(
            """
            SELECT role, prompt_tokens, completion_tokens, total_tokens
            FROM messages
            WHERE chat_id = ? AND deleted_at IS NULL
            ORDER BY seq ASC
            """,
            (chat_id,),
        ).fetchall()
        summary = {"turns": 0, "prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        previous = None
        for row in [*rows, None]:
            closes_turn = previous is not None and previous["role"] != "user" and (
                row is None or row["role"] == "user"
            )
            if closes_turn:
                summary["turns"] += 1
                summary["prompt_tokens"] += int(previous["prompt_tokens"])
                summary["completion_tokens"] += int(previous["completion_tokens"])
                summary["total_tokens"] += int(previous["total_tokens"])
            previous = row
        return summary

    def _to_chat(self, row) -> ChatRecord:
        return ChatRecord(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            created_at=row["created_at"],
            deleted_at=row["deleted_at"],
        )
