"""
Tag codec: Board/Card <-> flat tag-tuple lists.

Two wire formats exist:

  legacy   - board columns and card fields live in a JSON content payload;
             boards list their cards with `a` tags.
  current  - everything is a discrete tag; content is empty.

Decoding accepts both. Encoding always produces the current format.
Each record kind has a decoder table (tag key -> field, cardinality,
default) so a missing or garbled tag falls back to a default instead of
failing the decode.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional, List, Dict, Any, Callable, Tuple

from .errors import DecodeError
from .schema import (
    RawRecord,
    Board,
    Card,
    Column,
    CardLink,
    BOARD_KIND,
    CARD_KIND,
    UNTITLED_BOARD,
    UNTITLED_CARD,
    parse_coordinate,
)

logger = logging.getLogger(__name__)

Tags = List[List[str]]


# ── Value converters (whole tag tuple in, field value out) ───────────────────

def _first(tag: List[str]) -> Optional[str]:
    return tag[1] if len(tag) > 1 else None


def _to_float(value: Any, default: float = 0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _rank(tag: List[str]) -> float:
    return _to_float(_first(tag))


def _kind(tag: List[str]) -> Optional[int]:
    value = _first(tag)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _column(tag: List[str]) -> Optional[Column]:
    # ["col", id, name, order]
    if len(tag) < 3:
        return None
    order = _to_int(tag[3]) if len(tag) > 3 else 0
    return Column(id=tag[1], name=tag[2], order=order)


def _link(tag: List[str]) -> Optional[CardLink]:
    # ["link", board owner, board id, card d, forward, backward]
    if len(tag) < 4:
        return None
    return CardLink(
        board_pubkey=tag[1],
        board_id=tag[2],
        card_d_tag=tag[3],
        forward_label=tag[4] if len(tag) > 4 else "",
        backward_label=tag[5] if len(tag) > 5 else "",
    )


def _ref(tag: List[str]) -> List[str]:
    return list(tag[1:])


# ── Decoder tables ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TagField:
    """Maps one tag key onto one entity field."""
    key: str
    attr: str
    repeated: bool = False
    default: Any = None
    convert: Callable[[List[str]], Any] = _first
    factory: Optional[Callable[[], Any]] = None

    def empty(self) -> Any:
        if self.repeated:
            return []
        return self.factory() if self.factory else self.default


BOARD_FIELDS: Tuple[TagField, ...] = (
    TagField("title", "title", default=UNTITLED_BOARD),
    TagField("description", "description", default=""),
    TagField("col", "columns", repeated=True, convert=_column),
    TagField("p", "maintainers", repeated=True),
)

CARD_FIELDS: Tuple[TagField, ...] = (
    TagField("title", "title", default=UNTITLED_CARD),
    TagField("description", "description", default=""),
    TagField("s", "status", default=""),
    TagField("rank", "order", default=0, convert=_rank),
    TagField("a", "board_refs", repeated=True),
    TagField("u", "attachments", repeated=True),
    TagField("p", "assignees", repeated=True),
    TagField("t", "topic_tags", repeated=True),
    TagField("link", "linked_cards", repeated=True, convert=_link),
    TagField("k", "tracking_kind", convert=_kind),
    TagField("ref", "tracking_ref", convert=_ref, factory=list),
)

# Tags that only the current format carries; their presence means a
# non-JSON content payload is plain free text, not a broken legacy record.
CURRENT_BOARD_KEYS = {"col"}
CURRENT_CARD_KEYS = {"s", "rank", "k"}


def apply_table(tags: Tags, table: Tuple[TagField, ...]) -> Dict[str, Any]:
    """Run a decoder table over a tag list. Never raises."""
    values = {f.attr: f.empty() for f in table}
    by_key = {f.key: f for f in table}
    seen = set()
    for tag in tags:
        if not tag:
            continue
        field = by_key.get(tag[0])
        if field is None:
            continue
        value = field.convert(tag)
        if value is None:
            continue
        if field.repeated:
            values[field.attr].append(value)
        elif field.key not in seen:
            values[field.attr] = value
            seen.add(field.key)
    return values


# ── Legacy detection ─────────────────────────────────────────────────────────

def _parse_payload(record: RawRecord, current_keys: set) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON content payload.

    Returns the parsed object, or None when the content is empty or is
    plain text on a current-format record. Raises DecodeError when a
    record that depends on its payload has one that does not parse.
    """
    content = (record.content or "").strip()
    if not content:
        return None
    try:
        payload = json.loads(content)
    except ValueError as e:
        if any(tag and tag[0] in current_keys for tag in record.tags):
            return None
        raise DecodeError(record.id, f"invalid JSON payload ({e})")
    if not isinstance(payload, dict):
        if any(tag and tag[0] in current_keys for tag in record.tags):
            return None
        raise DecodeError(record.id, "payload is not an object")
    return payload


def legacy_card_refs(record: RawRecord) -> List[Tuple[int, str, str]]:
    """Card coordinates a legacy board lists on its `a` tags."""
    refs = []
    for value in record.tag_values("a"):
        coordinate = parse_coordinate(value)
        if coordinate and coordinate[0] == CARD_KIND:
            refs.append(coordinate)
    return refs


def is_legacy_board(record: RawRecord) -> bool:
    """
    True when a board record still uses the JSON-content format: it links
    cards with `a` tags holding card coordinates, or its payload carries a
    `columns` field.
    """
    if legacy_card_refs(record):
        return True
    try:
        payload = _parse_payload(record, CURRENT_BOARD_KEYS)
    except DecodeError:
        return False
    return bool(payload) and "columns" in payload


# ── Decoders ─────────────────────────────────────────────────────────────────

def decode_board(record: RawRecord) -> Board:
    """Decode a board record of either format. Raises DecodeError."""
    if record.kind != BOARD_KIND:
        raise DecodeError(record.id, f"expected kind {BOARD_KIND}, got {record.kind}")

    values = apply_table(record.tags, BOARD_FIELDS)
    payload = _parse_payload(record, CURRENT_BOARD_KEYS)
    legacy = bool(legacy_card_refs(record)) or bool(payload and "columns" in payload)

    board = Board(
        id=record.d_tag or record.id,
        pubkey=record.pubkey,
        title=values["title"],
        description=values["description"],
        columns=values["columns"],
        maintainers=values["maintainers"],
        is_no_zap_board="off" in record.tag_values("zap"),
        needs_migration=legacy,
    )

    if legacy:
        payload = payload or {}
        board.description = payload.get("description") or board.description
        board.column_mapping = payload.get("columnMapping") or "EXACT"
        board.is_no_zap_board = bool(payload.get("isNoZapBoard", board.is_no_zap_board))
        if "columns" in payload:
            board.columns = _legacy_columns(record.id, payload["columns"])
        board.legacy_card_refs = legacy_card_refs(record)

    return board


def _legacy_columns(record_id: str, raw_columns: Any) -> List[Column]:
    if not isinstance(raw_columns, list):
        raise DecodeError(record_id, "legacy columns is not a list")
    columns = []
    for raw in raw_columns:
        if not isinstance(raw, dict):
            raise DecodeError(record_id, "legacy column is not an object")
        columns.append(Column(
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            order=_to_int(raw.get("order")),
        ))
    return columns


def decode_card(record: RawRecord) -> Card:
    """Decode a card record of either format. Raises DecodeError."""
    if record.kind != CARD_KIND:
        raise DecodeError(record.id, f"expected kind {CARD_KIND}, got {record.kind}")

    values = apply_table(record.tags, CARD_FIELDS)
    card = Card(
        id=record.id,
        d_tag=record.d_tag or record.id,
        pubkey=record.pubkey,
        created_at=record.created_at,
        **values,
    )

    payload = _parse_payload(record, CURRENT_CARD_KEYS)
    if payload is not None:
        # Legacy card: fields live in the payload, assignees on zap tags
        card.description = payload.get("description") or card.description
        card.status = payload.get("status") or card.status
        card.order = _to_float(payload.get("order"), card.order)
        attachments = payload.get("attachments") or []
        if isinstance(attachments, list):
            card.attachments = [str(a) for a in attachments]
        if not card.assignees:
            card.assignees = [z for z in record.tag_values("zap") if z != "off"]

    return card


def is_legacy_card(record: RawRecord) -> bool:
    try:
        return _parse_payload(record, CURRENT_CARD_KEYS) is not None
    except DecodeError:
        return False


def decode_many(records: List[RawRecord], decoder: Callable[[RawRecord], Any]) -> List[Any]:
    """Decode a batch; malformed records are logged and skipped."""
    decoded = []
    for record in records:
        try:
            decoded.append(decoder(record))
        except DecodeError as e:
            logger.warning(f"Skipping record: {e}")
    return decoded


# ── Encoders (current format only) ───────────────────────────────────────────

def format_rank(order: float) -> str:
    """10.0 -> "10", 15.5 -> "15.5"."""
    order = float(order)
    if order.is_integer():
        return str(int(order))
    return repr(order)


def encode_board(board: Board) -> Tuple[Tags, str]:
    """Board -> (tags, content). Content is always empty."""
    tags: Tags = [
        ["d", board.id],
        ["title", board.title],
        ["description", board.description or ""],
        ["alt", f"A board titled {board.title}"],
    ]
    for col in board.columns:
        tags.append(["col", col.id, col.name, str(col.order)])
    for maintainer in board.maintainers:
        tags.append(["p", maintainer])
    if board.is_no_zap_board:
        tags.append(["zap", "off"])
    return tags, ""


def encode_card(card: Card) -> Tuple[Tags, str]:
    """Card -> (tags, content). Content is always empty."""
    tags: Tags = [
        ["d", card.d_tag],
        ["title", card.title],
        ["description", card.description or ""],
        ["alt", f"A card titled {card.title}"],
        ["s", card.status or ""],
        ["rank", format_rank(card.order)],
    ]
    for ref in card.board_refs:
        tags.append(["a", ref])
    for url in card.attachments:
        tags.append(["u", url])
    for assignee in card.assignees:
        tags.append(["p", assignee])
    for assignee in card.assignees:
        tags.append(["zap", assignee])
    for label in card.topic_tags:
        tags.append(["t", label])
    for link in card.linked_cards:
        tags.append([
            "link", link.board_pubkey, link.board_id, link.card_d_tag,
            link.forward_label, link.backward_label,
        ])
    if card.tracking_kind is not None:
        tags.append(["k", str(card.tracking_kind)])
        if card.tracking_ref:
            tags.append(["ref", *card.tracking_ref])
    return tags, ""
