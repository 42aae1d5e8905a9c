"""
Result windowing and the result-count policy.

With an explicit, in-range ``max`` the page is simply trimmed to that size.
Without one, the store is asked for one record more than the cap; seeing
that extra record means the query is too broad and it is refused instead of
silently truncated.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ..errors import PolicyViolation
from .query import MAX_QUERY_LIMIT, Limit, PagingCursor, effective_limit

T = TypeVar("T")


@dataclass(frozen=True)
class ResultPage(Generic[T]):
    """An ordered page of records plus the limit that produced it."""

    records: list[T]
    limit: Limit
    cursor: PagingCursor = field(default_factory=PagingCursor)

    def __len__(self) -> int:
        return len(self.records)


class ResultWindow:
    """Applies the paging cursor and the enforced maximum to a result set."""

    def __init__(self, cap: int = MAX_QUERY_LIMIT) -> None:
        self.cap = cap

    def limit_for(self, cursor: PagingCursor) -> Limit:
        return effective_limit(cursor, self.cap)

    def fetch_count(self, cursor: PagingCursor) -> int:
        """Number of records to request from the store."""
        limit = self.limit_for(cursor)
        return limit.count if limit.explicit else limit.count + 1

    def apply(self, records: Sequence[T], cursor: PagingCursor) -> ResultPage[T]:
        """Build the page for a candidate result set, in storage order.

        Raises:
            PolicyViolation: No explicit max was honored and more than
                ``cap`` records matched.
        """
        limit = self.limit_for(cursor)
        if limit.explicit:
            return ResultPage(list(records[: limit.count]), limit, cursor)

        if len(records) > limit.count:
            raise PolicyViolation("Too many results", limit=limit.count)
        return ResultPage(list(records), limit, cursor)
