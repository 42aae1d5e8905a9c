"""
Query constraint parsing.

A query's children are processed left to right into a QueryFilter (time
bounds) and a PagingCursor (XEP-0059 result set management):

    <query xmlns="urn:xmpp:mam:tmp" queryid="f27">
      <start>2014-01-01T00:00:00Z</start>
      <end>2014-02-01T00:00:00Z</end>
      <set xmlns="http://jabber.org/protocol/rsm"><max>10</max></set>
    </query>

Invariants:
    - start and end may each appear at most once
    - Every paging field may be set at most once across all set blocks
    - The first malformed element fails the whole request
    - Unknown query children are ignored

Paging anchors (after/before/index) are validated and carried but do not
bound the query.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import datetime

from ..errors import MalformedRequest
from ..protocol.namespaces import NS_RSM
from ..protocol.stanza import local_name, namespace, text_of
from ..protocol.timestamps import parse_datetime

MAX_QUERY_LIMIT = 50

_ANCHOR_FIELDS = {"after": "after_id", "before": "before_id", "index": "index"}


@dataclass(frozen=True)
class QueryFilter:
    """Inclusive time bounds; either side may be open."""

    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class PagingCursor:
    """Client paging directives.

    Attributes:
        max: Requested page size
        after_id: Anchor id to page forward from
        before_id: Anchor id to page backward from
        index: Offset anchor
    """

    max: int | None = None
    after_id: str | None = None
    before_id: str | None = None
    index: str | None = None


@dataclass(frozen=True)
class ParsedQuery:
    filter: QueryFilter
    cursor: PagingCursor


@dataclass(frozen=True)
class Limit:
    """Effective page limit.

    Attributes:
        explicit: True when the caller's max is honored
        count: Page size
    """

    explicit: bool
    count: int


def effective_limit(cursor: PagingCursor, cap: int = MAX_QUERY_LIMIT) -> Limit:
    """Honor the requested max when it is within the cap."""
    if cursor.max is not None and cursor.max <= cap:
        return Limit(explicit=True, count=cursor.max)
    return Limit(explicit=False, count=cap)


def parse_query(elements: Iterable[ET.Element]) -> ParsedQuery:
    """Parse query constraint elements.

    Args:
        elements: Children of the ``<query/>`` element, in document order

    Returns:
        ParsedQuery with the filter and paging cursor

    Raises:
        MalformedRequest: On the first invalid or duplicated constraint.
    """
    start: datetime | None = None
    end: datetime | None = None
    cursor = PagingCursor()

    for el in elements:
        name = local_name(el)

        if name == "start":
            if start is not None:
                raise MalformedRequest("'start' may be given only once", element=name)
            start = _parse_time(el)

        elif name == "end":
            if end is not None:
                raise MalformedRequest("'end' may be given only once", element=name)
            end = _parse_time(el)

        elif name == "set":
            if namespace(el) != NS_RSM:
                raise MalformedRequest(
                    f"Unsupported 'set' namespace: {namespace(el)!r}", element=name
                )
            cursor = parse_rsm(el, cursor)

    return ParsedQuery(filter=QueryFilter(start=start, end=end), cursor=cursor)


def parse_rsm(set_el: ET.Element, cursor: PagingCursor) -> PagingCursor:
    """Fold the children of an RSM ``<set/>`` into the cursor."""
    for child in set_el:
        name = local_name(child)
        value = text_of(child).strip()

        if name == "max":
            _check_unset(cursor.max, name)
            if not (value.isascii() and value.isdigit()):
                raise MalformedRequest(f"Invalid 'max' value: {value!r}", element=name)
            cursor = replace(cursor, max=int(value))

        elif name in _ANCHOR_FIELDS:
            field_name = _ANCHOR_FIELDS[name]
            _check_unset(getattr(cursor, field_name), name)
            if not value:
                raise MalformedRequest(f"Empty '{name}' value", element=name)
            cursor = replace(cursor, **{field_name: value})

        else:
            raise MalformedRequest(f"Unsupported paging element: {name!r}", element=name)

    return cursor


def _parse_time(el: ET.Element) -> datetime:
    value = parse_datetime(text_of(el))
    if value is None:
        raise MalformedRequest(
            f"Invalid timestamp in '{local_name(el)}'", element=local_name(el)
        )
    return value


def _check_unset(current: object, name: str) -> None:
    if current is not None:
        raise MalformedRequest(f"'{name}' may be given only once", element=name)
