"""
Remote document store contract.

Documents cross this boundary as plain dicts carrying their store-assigned
``id``. Typed decoding happens one level up, in ``app.repositories``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Tuple,
)


class _ServerTimestamp:
    """Placeholder resolved to the write time by the store."""

    _instance: Optional["_ServerTimestamp"] = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class FilterOp(str, Enum):
    EQ = "=="
    IN = "in"


_MISSING = object()


def get_path(document: Dict[str, Any], path: str) -> Any:
    """Resolve a dotted field path, returning ``None`` when any segment is absent."""
    value: Any = document
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part, _MISSING)
        if value is _MISSING:
            return None
    return value


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: FilterOp
    value: Any

    def __post_init__(self) -> None:
        if self.op == FilterOp.IN:
            object.__setattr__(self, "value", tuple(self.value))

    def matches(self, document: Dict[str, Any]) -> bool:
        actual = get_path(document, self.field)
        if self.op == FilterOp.IN:
            return actual in self.value
        return actual == self.value


def eq(field: str, value: Any) -> FieldFilter:
    return FieldFilter(field, FilterOp.EQ, value)


def is_in(field: str, values: Iterable[Any]) -> FieldFilter:
    return FieldFilter(field, FilterOp.IN, values)


@dataclass(frozen=True)
class SortKey:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class QueryDescriptor:
    """A collection, an equality/membership filter set, a sort key and a limit."""

    collection: str
    filters: Tuple[FieldFilter, ...] = ()
    sort: Optional[SortKey] = None
    limit: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", tuple(self.filters))

    def matches(self, document: Dict[str, Any]) -> bool:
        return all(f.matches(document) for f in self.filters)


def order_documents(
    documents: Iterable[Dict[str, Any]], sort: Optional[SortKey]
) -> List[Dict[str, Any]]:
    """Stable sort by ``sort``; documents missing the key always go last."""
    docs = list(documents)
    if sort is None:
        return docs

    present = [d for d in docs if get_path(d, sort.field) is not None]
    missing = [d for d in docs if get_path(d, sort.field) is None]
    present.sort(key=lambda d: get_path(d, sort.field), reverse=sort.descending)
    return present + missing


class ChangeOp(str, Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeEvent:
    collection: str
    op: ChangeOp
    doc_id: str


ChangeListener = Callable[[ChangeEvent], None]
ErrorListener = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class RemoteStore(Protocol):
    """Operations the dashboard needs from the document store."""

    async def query(self, descriptor: QueryDescriptor) -> List[Dict[str, Any]]:
        ...

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        ...

    async def create(self, collection: str, fields: Dict[str, Any]) -> str:
        ...

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        ...

    async def set(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        ...

    async def listen(
        self,
        collection: str,
        on_change: ChangeListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        """
        Register for change events; events arrive in the order they were emitted.

        Returns only once the registration is live, so a read issued afterwards
        cannot miss a change made after it.
        """
        ...
