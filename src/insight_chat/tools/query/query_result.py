from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

Scalar = str | int | float | bool | None


@dataclass(frozen=True)
class QueryResult:
    rows: list[dict[str, Scalar]] = field(default_factory=list)

    @property
    def columns(self) -> list[str]:
        return list(self.rows[0]) if self.rows else []

    def value(self, row_index: int, column: str) -> Scalar:
        # A row without the column has no matching data for it.
        return self.rows[row_index].get(column)

    def __len__(self) -> int:
        return len(self.rows)

    def to_payload(self) -> dict[str, Any]:
        return {"results": self.rows, "columns": self.columns}
