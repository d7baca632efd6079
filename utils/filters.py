"""Filter/Pagination Engine for the registration table.

Records are filtered by a FilterState, sorted first-come-first-served
(ascending ``created_at``), then sliced into 1-based pages. Works on
VoterRecord objects or plain mappings with the same field names.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Sequence, TypeVar

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 50


@dataclass
class FilterState:
    """Per-field search strings; empty means "no constraint"."""

    full_name: str = ""
    organization: str = ""
    date_of_birth: str = ""
    gender: str = ""
    region: str = ""
    constituency: str = ""
    identification_type: str = ""
    identification_number: str = ""

    @classmethod
    def field_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in self.field_names())

    def active(self) -> dict[str, str]:
        return {n: getattr(self, n) for n in self.field_names() if getattr(self, n)}


def _contains_ci(value: str, needle: str) -> bool:
    return needle.lower() in value.lower()


def _contains(value: str, needle: str) -> bool:
    return needle in value


def _equals(value: str, needle: str) -> bool:
    return value == needle


# Evaluation order is fixed.
_PREDICATES: list[tuple[str, Callable[[str, str], bool]]] = [
    ("full_name", _contains_ci),
    ("organization", _contains_ci),
    ("date_of_birth", _contains),
    ("gender", _equals),
    ("region", _contains_ci),
    ("constituency", _contains_ci),
    ("identification_type", _contains),
    ("identification_number", _contains),
]


def field_value(record: Any, name: str) -> str:
    """Text value of *name* on a record or mapping ("" when missing)."""
    if isinstance(record, Mapping):
        value = record.get(name)
    else:
        value = getattr(record, name, None)
    if value is None:
        return ""
    if hasattr(value, "value"):
        value = value.value
    return str(value)


def apply_filters(records: Iterable[T], state: FilterState) -> list[T]:
    """Return the records matching every non-empty predicate, in input order.

    Predicates run one after another over a shrinking list; once the list is
    empty the remaining predicates are not evaluated.
    """
    result = list(records)
    if state.is_empty():
        return result
    for name, match in _PREDICATES:
        needle = getattr(state, name)
        if not needle:
            continue
        result = [r for r in result if match(field_value(r, name), needle)]
        if not result:
            return []
    return result


def _created_key(record: Any) -> tuple[int, float]:
    if isinstance(record, Mapping):
        created = record.get("created_at")
    else:
        created = getattr(record, "created_at", None)
    if isinstance(created, str):
        try:
            created = datetime.fromisoformat(created.replace("Z", "+00:00"))
        except ValueError:
            created = None
    if not isinstance(created, datetime):
        return (1, 0.0)
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return (0, created.timestamp())


def sort_first_come_first_served(records: Iterable[T]) -> list[T]:
    """Stable sort by ascending creation time; undated records go last."""
    return sorted(records, key=_created_key)


@dataclass
class Page:
    items: list[Any]
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def page_count(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total else 0


def clamp_page(page: int, total_pages: int) -> int:
    """Keep *page* within ``1..total_pages`` (1 when there are no pages)."""
    return max(1, min(page, total_pages or 1))


def paginate(items: Sequence[T], page: int, page_size: int = DEFAULT_PAGE_SIZE) -> Page:
    """Slice ``items[(page-1)*size : page*size]``.

    Raises:
        ValueError: page < 1 or page_size < 1.
    """
    if page < 1:
        raise ValueError("page must be >= 1")
    if page_size < 1:
        raise ValueError("page_size must be >= 1")
    start = (page - 1) * page_size
    chunk = list(items[start:start + page_size]) if start < len(items) else []
    return Page(
        items=chunk,
        page=page,
        page_size=page_size,
        total=len(items),
        total_pages=page_count(len(items), page_size),
    )


def page_window(current: int, total_pages: int, max_visible: int = 5) -> list[int | None]:
    """Page numbers for a pager; ``None`` marks an ellipsis."""
    if total_pages <= max_visible:
        return list(range(1, total_pages + 1))
    if current <= 3:
        return [1, 2, 3, 4, None, total_pages]
    if current >= total_pages - 2:
        return [1, None] + list(range(total_pages - 3, total_pages + 1))
    return [1, None, current - 1, current, current + 1, None, total_pages]


@dataclass
class TableView:
    """Filter + page state of one registration table."""

    filters: FilterState = field(default_factory=FilterState)
    page: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    def set_filter(self, name: str, value: str) -> None:
        if name not in FilterState.field_names():
            raise ValueError(f"Unknown filter field: {name}")
        setattr(self.filters, name, value or "")
        self.page = 1

    def clear_filters(self) -> None:
        self.filters = FilterState()
        self.page = 1

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.page_size = page_size
        self.page = 1

    def set_page(self, page: int, total_items: int) -> int:
        self.page = clamp_page(page, page_count(total_items, self.page_size))
        return self.page

    def view(self, records: Iterable[T]) -> Page:
        """Filter, order first-come-first-served, and return the current page."""
        rows = sort_first_come_first_served(apply_filters(records, self.filters))
        self.page = clamp_page(self.page, page_count(len(rows), self.page_size))
        return paginate(rows, self.page, self.page_size)
