"""
Cross-board tracking.

A tracking stub is a card with a `k` tag naming the kind of record it
mirrors and a `ref` tag pointing at that record:

    ["k", "30302"]  ["ref", "30301:<board owner>:<board d>", "<card d>"]
    ["k", "1621"]   ["ref", "<issue record id>"]

Resolution replaces the stub's title/description with the source's. The
stub keeps its own d tag, board references, column and rank, so it stays
addressable on the hosting board. Stubs whose source cannot be found
resolve to None and callers drop them from the card list.
"""
import asyncio
import logging
from typing import Optional, List

from .client import EventClient
from .codec import decode_board, decode_card
from .dedup import latest
from .errors import DecodeError
from .schema import (
    Card,
    RawRecord,
    RecordFilter,
    TrackedStatus,
    BOARD_KIND,
    CARD_KIND,
    EXTERNAL_TRACKED_KINDS,
    STATUS_KINDS,
    UNTITLED_CARD,
    parse_coordinate,
)

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 80


class TrackingResolver:
    """Projects the current state of a tracked record onto its stub."""

    def __init__(self, client: EventClient):
        self.client = client

    async def resolve(self, stub: Card) -> Optional[Card]:
        """Resolved copy of the stub, or None when the source is missing."""
        if stub.tracking_kind == CARD_KIND:
            resolved = await self._resolve_card(stub)
        elif stub.tracking_kind in EXTERNAL_TRACKED_KINDS:
            resolved = await self._resolve_external(stub)
        else:
            logger.debug(f"Stub {stub.d_tag} tracks unsupported kind {stub.tracking_kind}")
            return None

        if resolved is None:
            logger.debug(f"Dropping stub {stub.d_tag}: tracked record {stub.tracking_ref} not found")
        return resolved

    async def resolve_many(self, stubs: List[Card]) -> List[Card]:
        """Resolve concurrently; unresolvable stubs are omitted."""
        results = await asyncio.gather(*(self.resolve(s) for s in stubs))
        return [card for card in results if card is not None]

    # ── Tracked cards ────────────────────────────────────────

    async def _resolve_card(self, stub: Card) -> Optional[Card]:
        if len(stub.tracking_ref) < 2:
            return None
        coordinate = parse_coordinate(stub.tracking_ref[0])
        if coordinate is None or coordinate[0] != BOARD_KIND:
            return None
        _, owner, board_id = coordinate
        card_d_tag = stub.tracking_ref[1]

        allowed = await self._board_editors(owner, board_id)
        if allowed is None:
            return None

        revisions = await self.client.fetch(RecordFilter(kinds=[CARD_KIND], d_tags=[card_d_tag]))
        # A revision from anyone else must not be able to hijack the mirror
        source_record = latest(r for r in revisions if r.pubkey in allowed)
        if source_record is None:
            return None

        try:
            source = decode_card(source_record)
        except DecodeError as e:
            logger.warning(f"Tracked card unreadable: {e}")
            return None

        return stub.copy(
            title=source.title,
            description=source.description,
            attachments=list(source.attachments),
            assignees=list(source.assignees),
            topic_tags=list(source.topic_tags),
        )

    async def _board_editors(self, owner: str, board_id: str) -> Optional[set]:
        """Owner plus maintainers of a board, or None when the board is gone."""
        records = await self.client.fetch(
            RecordFilter(kinds=[BOARD_KIND], authors=[owner], d_tags=[board_id])
        )
        record = latest(records)
        if record is None:
            return None
        try:
            board = decode_board(record)
        except DecodeError as e:
            logger.warning(f"Tracked card's board unreadable: {e}")
            return None
        return board.editors()

    # ── External items (issues / proposals) ──────────────────

    async def _resolve_external(self, stub: Card) -> Optional[Card]:
        if not stub.tracking_ref:
            return None
        item_id = stub.tracking_ref[0]
        records = await self.client.fetch(
            RecordFilter(kinds=[stub.tracking_kind], ids=[item_id])
        )
        item = latest(records)
        if item is None:
            return None

        status = await self.derive_status(item)
        return stub.copy(
            title=external_title(item),
            description=item.content or item.tag_value("description") or "",
            tracked_status=status,
        )

    async def derive_status(self, item: RawRecord) -> TrackedStatus:
        """Latest status record rooted at the item decides; none means Open."""
        records = await self.client.fetch(
            RecordFilter(kinds=list(STATUS_KINDS), tag_refs={"e": [item.id]})
        )
        rooted = [r for r in records if _is_rooted_at(r, item.id)]
        newest = latest(rooted)
        if newest is None:
            return TrackedStatus.OPEN
        return TrackedStatus.from_status_kind(newest.kind, item.kind)


def _is_rooted_at(record: RawRecord, item_id: str) -> bool:
    for tag in record.tags_for("e"):
        if len(tag) > 1 and tag[1] == item_id:
            marker = tag[3] if len(tag) > 3 else "root"
            if marker == "root":
                return True
    return False


def external_title(item: RawRecord) -> str:
    """subject/title tag, else the first content line."""
    title = item.tag_value("subject") or item.tag_value("title")
    if title:
        return title
    first_line = (item.content or "").strip().split("\n", 1)[0].strip()
    if not first_line:
        return UNTITLED_CARD
    if len(first_line) > TITLE_MAX_CHARS:
        return first_line[:TITLE_MAX_CHARS] + "…"
    return first_line
