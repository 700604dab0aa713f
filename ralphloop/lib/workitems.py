"""
Work item store.

Loads requirements.json once and exposes lookup by id. The store is
read-only; reloading it every cycle is harmless.
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ralphloop.lib.validate import validate, ValidationError

__all__ = [
    "WorkItem",
    "WorkItemStore",
    "MalformedStoreError",
    "DuplicateIdError",
    "UnknownIdError",
]

CORE_FIELDS = ("id", "category", "description")


class MalformedStoreError(Exception):
    """Requirements document could not be parsed or has the wrong shape."""
    pass


class DuplicateIdError(MalformedStoreError):
    """Two work items share an id."""

    def __init__(self, item_id: str, first_index: int, second_index: int):
        self.item_id = item_id
        super().__init__(
            f"Duplicate work item id '{item_id}' (records {first_index} and {second_index})"
        )


class UnknownIdError(KeyError):
    """An id referenced by the ledger has no work item (or vice versa)."""

    def __init__(self, item_id: str, where: str = "work item store"):
        self.item_id = item_id
        self.where = where
        super().__init__(item_id)

    def __str__(self):
        return f"Unknown id '{self.item_id}' in {self.where}"


@dataclass(frozen=True)
class WorkItem:
    id: str
    category: str
    description: str
    metadata: dict[str, Any] = field(default_factory=dict)
    # The record exactly as authored, handed to the agent verbatim
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_prompt_json(self) -> str:
        return json.dumps(self.raw or self._rebuild(), indent=2, ensure_ascii=False)

    def _rebuild(self) -> dict[str, Any]:
        return {"id": self.id, "category": self.category,
                "description": self.description, **self.metadata}


class WorkItemStore:
    """Immutable id -> WorkItem mapping that preserves document order."""

    def __init__(self, items: list[WorkItem], source: Path | None = None):
        seen: dict[str, int] = {}
        for index, item in enumerate(items):
            if item.id in seen:
                raise DuplicateIdError(item.id, seen[item.id], index)
            seen[item.id] = index
        self._items = {item.id: item for item in items}
        self.source = source

    @classmethod
    def load(cls, source: Path | str) -> "WorkItemStore":
        """Parse a requirements document.

        Raises:
            FileNotFoundError: source does not exist
            MalformedStoreError: invalid JSON or schema mismatch
            DuplicateIdError: two records share an id
        """
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Requirements file not found: {path}")

        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedStoreError(f"Invalid JSON in {path}: {e}") from None

        return cls.from_data(data, source=path)

    @classmethod
    def from_data(cls, data: Any, source: Path | None = None) -> "WorkItemStore":
        try:
            validate(data, "requirements")
        except ValidationError as e:
            where = f" ({source})" if source else ""
            raise MalformedStoreError(f"Requirements document does not match schema{where}: {e}") from None

        records = data["features"] if isinstance(data, dict) else data
        items = [
            WorkItem(
                id=record["id"],
                category=record["category"],
                description=record["description"],
                metadata={k: v for k, v in record.items() if k not in CORE_FIELDS},
                raw=dict(record),
            )
            for record in records
        ]
        return cls(items, source=source)

    def get(self, item_id: str) -> WorkItem:
        try:
            return self._items[item_id]
        except KeyError:
            raise UnknownIdError(item_id) from None

    def ids(self) -> list[str]:
        return list(self._items)

    def categories(self) -> dict[str, int]:
        """Item count per category, for reporting."""
        return dict(Counter(item.category for item in self._items.values()))

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._items

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items.values())
