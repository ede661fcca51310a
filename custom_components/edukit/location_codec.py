"""Encoding and parsing of room/shelf/slot location strings.

Locations are stored on inventory rows as plain text. Tokens produced by this
module look like ``Room``, ``Room/Shelf`` or ``Room/Shelf-Slot``; an item may
carry several tokens joined with ``", "``.

``parse_location`` is the inverse used by the reporting views. It must accept
anything a user ever typed into the location column, so it never raises.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator
from typing import Any, NamedTuple

from .const import UNASSIGNED_ROOM
from .models import join_multi_value, split_multi_value

_SEGMENT_SPLIT_RE = re.compile(r"[/\s]+")
# A shelf label is a run without '-' or whitespace; the slot is whatever follows
_SHELF_SLOT_RE = re.compile(r"^(?P<shelf>[^\s-]+)(?:[-\s]+(?P<slot>.*))?$")


class ParsedLocation(NamedTuple):
    room: str
    shelf: str | None
    slot: str | None


def encode_location(room: str, shelf: str | None = None, slot: str | None = None) -> str:
    """Fold a room/shelf/slot selection into a single token.

    A slot without a shelf is ignored, mirroring the picker which only offers
    slots underneath a shelf.
    """

    if not room:
        return ""
    if not shelf:
        return room
    if not slot:
        return f"{room}/{shelf}"
    return f"{room}/{shelf}-{slot}"


def parse_location(text: Any) -> ParsedLocation:
    """Best-effort parse of a stored location string.

    Only the first comma-separated location is considered.
    """

    raw = "" if text is None else str(text)
    trimmed = raw.strip()
    if not trimmed:
        return ParsedLocation(UNASSIGNED_ROOM, None, None)

    first = trimmed.split(",", 1)[0]
    segments = [s for s in _SEGMENT_SPLIT_RE.split(first) if s]
    if not segments:
        return ParsedLocation(UNASSIGNED_ROOM, None, None)
    if len(segments) == 1:
        return ParsedLocation(segments[0], None, None)

    room = segments[0]
    rest = " ".join(segments[1:])
    match = _SHELF_SLOT_RE.match(rest)
    if match:
        slot = (match.group("slot") or "").strip()
        return ParsedLocation(room, match.group("shelf"), slot or None)
    return ParsedLocation(room, rest or None, None)


class LocationSelection:
    """Ordered set of location tokens attached to one item."""

    def __init__(self, tokens: Iterable[str] = ()) -> None:
        self._tokens: list[str] = []
        for token in tokens:
            self.add(token)

    @classmethod
    def from_field(cls, value: Any) -> LocationSelection:
        return cls(split_multi_value(value))

    def add(self, token: str) -> bool:
        """Append ``token``; returns False when empty or already selected."""

        if not token or token in self._tokens:
            return False
        self._tokens.append(token)
        return True

    def add_location(self, room: str, shelf: str | None = None, slot: str | None = None) -> bool:
        return self.add(encode_location(room, shelf, slot))

    def remove(self, token: str) -> None:
        if token in self._tokens:
            self._tokens.remove(token)

    def to_list(self) -> list[str]:
        return list(self._tokens)

    def to_field(self) -> str:
        return join_multi_value(self._tokens)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._tokens))

    def __len__(self) -> int:
        return len(self._tokens)

    def __contains__(self, token: object) -> bool:
        return token in self._tokens
