from __future__ import annotations

from uuid import uuid4

from insight_chat.memory.models import DocumentRecord
from insight_chat.memory.session_manager import utc_now
from insight_chat.memory.store import MemoryStore


class DocumentStore:
    def __init__(self, store: MemoryStore):
        self._store = store

    def create(self, user_id: str, title: str, content: str) -> DocumentRecord:
        return self._insert(str(uuid4()), 1, user_id, title, content)

    def add_version(self, document: DocumentRecord, content: str) -> DocumentRecord:
        return self._insert(document.id, document.version + 1, document.user_id, document.title, content)

    def get_latest(self, document_id: str) -> DocumentRecord | None:
        row = self._store.execute(
            "SELECT * FROM documents WHERE id = ? ORDER BY version DESC LIMIT 1",
            (document_id,),
        ).fetchone()
        if row is None:
            return None
        return DocumentRecord(
            id=row["id"],
            version=int(row["version"]),
            user_id=row["user_id"],
            title=row["title"],
            content=row["content"],
            created_at=row["created_at"],
        )

    def _insert(self, document_id: str, version: int, user_id: str, title: str, content: str) -> DocumentRecord:
        now = utc_now()
        with self._store.transaction() as store:
            store.execute(
                """
                INSERT INTO documents (id, version, user_id, title, content, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (document_id, version, user_id, title, content, now),
            )
        return DocumentRecord(
            id=document_id,
            version=version,
            user_id=user_id,
            title=title,
            content=content,
            created_at=now,
        )
