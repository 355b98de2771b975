"""
Board and card schema.

Boards and cards live as replaceable records in an append-only event log.
A logical board is addressed by (pubkey, d); a logical card by (pubkey, d).
Every edit publishes a new revision; the revision with the greatest
created_at wins.
"""
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Optional, List, Dict, Any, Set, Tuple


# ── Record kinds ─────────────────────────────────────────────────────────────

BOARD_KIND = 30301
CARD_KIND = 30302

# Externally defined trackable items and their status trail
PROPOSAL_KIND = 1617
ISSUE_KIND = 1621
STATUS_OPEN = 1630
STATUS_RESOLVED = 1631
STATUS_CLOSED = 1632
STATUS_DRAFT = 1633

STATUS_KINDS = [STATUS_OPEN, STATUS_RESOLVED, STATUS_CLOSED, STATUS_DRAFT]
EXTERNAL_TRACKED_KINDS = {ISSUE_KIND, PROPOSAL_KIND}

UNTITLED_BOARD = "Untitled Board"
UNTITLED_CARD = "Untitled Card"


class BoardScope(Enum):
    """Which boards a listing covers."""
    ALL = "all"
    OWNED = "owned"                # authored by the current user
    MAINTAINED = "maintained"      # current user listed as maintainer


class TrackedStatus(Enum):
    """Derived status of an external tracked item."""
    OPEN = "Open"
    RESOLVED = "Resolved"          # issues
    MERGED = "Merged"              # proposals
    CLOSED = "Closed"
    DRAFT = "Draft"

    @classmethod
    def from_status_kind(cls, status_kind: int, tracked_kind: int) -> "TrackedStatus":
        if status_kind == STATUS_RESOLVED:
            return cls.MERGED if tracked_kind == PROPOSAL_KIND else cls.RESOLVED
        if status_kind == STATUS_CLOSED:
            return cls.CLOSED
        if status_kind == STATUS_DRAFT:
            return cls.DRAFT
        return cls.OPEN


# ── Coordinates ──────────────────────────────────────────────────────────────

def format_coordinate(kind: int, pubkey: str, identifier: str) -> str:
    """Address string for a replaceable record: kind:pubkey:identifier."""
    return f"{kind}:{pubkey}:{identifier}"


def parse_coordinate(value: str) -> Optional[Tuple[int, str, str]]:
    """Split kind:pubkey:identifier. Returns None when malformed."""
    parts = value.split(":", 2)
    if len(parts) != 3:
        return None
    try:
        kind = int(parts[0])
    except ValueError:
        return None
    return kind, parts[1], parts[2]


# ── Wire-level records ───────────────────────────────────────────────────────

@dataclass
class RawRecord:
    """One signed entry as handed over by the event client."""
    id: str
    kind: int
    pubkey: str
    created_at: int
    content: str = ""
    tags: List[List[str]] = field(default_factory=list)

    def tag_value(self, key: str) -> Optional[str]:
        """First value of the first tag with this key."""
        for tag in self.tags:
            if len(tag) > 1 and tag[0] == key:
                return tag[1]
        return None

    def tag_values(self, key: str) -> List[str]:
        """First value of every tag with this key, in order."""
        return [tag[1] for tag in self.tags if len(tag) > 1 and tag[0] == key]

    def tags_for(self, key: str) -> List[List[str]]:
        return [tag for tag in self.tags if tag and tag[0] == key]

    @property
    def d_tag(self) -> Optional[str]:
        return self.tag_value("d")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        return cls(
            id=data.get("id", ""),
            kind=int(data.get("kind", 0)),
            pubkey=data.get("pubkey", ""),
            created_at=int(data.get("created_at", 0)),
            content=data.get("content") or "",
            tags=[list(t) for t in data.get("tags", [])],
        )


@dataclass
class RecordFilter:
    """
    Query sent to the event client.

    tag_refs maps a single-letter tag key to accepted values, e.g.
    {"a": ["30301:<pubkey>:<d>"]} or {"p": [<pubkey>]}.
    """
    kinds: List[int] = field(default_factory=list)
    authors: Optional[List[str]] = None
    d_tags: Optional[List[str]] = None
    ids: Optional[List[str]] = None
    tag_refs: Dict[str, List[str]] = field(default_factory=dict)
    limit: Optional[int] = None

    def matches(self, record: RawRecord) -> bool:
        if self.kinds and record.kind not in self.kinds:
            return False
        if self.authors is not None and record.pubkey not in self.authors:
            return False
        if self.ids is not None and record.id not in self.ids:
            return False
        if self.d_tags is not None and record.d_tag not in self.d_tags:
            return False
        for key, values in self.tag_refs.items():
            if not set(record.tag_values(key)) & set(values):
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Relay filter wire form (#d, #a, ... keys)."""
        data: Dict[str, Any] = {"kinds": self.kinds}
        if self.authors is not None:
            data["authors"] = self.authors
        if self.ids is not None:
            data["ids"] = self.ids
        if self.d_tags is not None:
            data["#d"] = self.d_tags
        for key, values in self.tag_refs.items():
            data[f"#{key}"] = values
        if self.limit is not None:
            data["limit"] = self.limit
        return data


# ── Domain entities ──────────────────────────────────────────────────────────

@dataclass
class Column:
    """A board column. Display order is (order, id)."""
    id: str
    name: str
    order: int = 0


@dataclass
class CardLink:
    """Directional link from a card to a card on a (possibly other) board."""
    board_pubkey: str
    board_id: str
    card_d_tag: str
    forward_label: str = ""       # e.g. "blocks"
    backward_label: str = ""      # e.g. "blocked by"


@dataclass
class Board:
    """A kanban board. Identity is (pubkey, id)."""

    id: str
    pubkey: str
    title: str = UNTITLED_BOARD
    description: str = ""
    columns: List[Column] = field(default_factory=list)
    is_no_zap_board: bool = False
    maintainers: List[str] = field(default_factory=list)

    # Derived on decode, never encoded
    needs_migration: bool = False
    column_mapping: str = "EXACT"
    legacy_card_refs: List[Tuple[int, str, str]] = field(default_factory=list)

    @property
    def coordinate(self) -> str:
        return format_coordinate(BOARD_KIND, self.pubkey, self.id)

    def sorted_columns(self) -> List[Column]:
        return sorted(self.columns, key=lambda c: (c.order, c.id))

    def can_edit(self, pubkey: Optional[str]) -> bool:
        """Owner or listed maintainer."""
        return bool(pubkey) and (pubkey == self.pubkey or pubkey in self.maintainers)

    def editors(self) -> Set[str]:
        return {self.pubkey, *self.maintainers}


@dataclass
class Card:
    """A kanban card. Stable identity is (pubkey, d_tag); id changes per revision."""

    id: str
    d_tag: str
    pubkey: str
    title: str = UNTITLED_CARD
    description: str = ""
    status: str = ""
    order: float = 0
    attachments: List[str] = field(default_factory=list)
    assignees: List[str] = field(default_factory=list)
    board_refs: List[str] = field(default_factory=list)
    topic_tags: List[str] = field(default_factory=list)
    linked_cards: List[CardLink] = field(default_factory=list)

    # Tracking stubs only
    tracking_kind: Optional[int] = None
    tracking_ref: List[str] = field(default_factory=list)
    tracked_status: Optional[TrackedStatus] = None

    created_at: int = 0

    @property
    def is_tracking_stub(self) -> bool:
        return self.tracking_kind is not None

    def copy(self, **changes) -> "Card":
        return replace(self, **changes)


@dataclass
class KanbanState:
    """
    In-memory projection of what has been fetched so far.

    Each successful fetch replaces a field wholesale; nothing is patched
    in place.
    """
    boards: List[Board] = field(default_factory=list)
    my_boards: List[Board] = field(default_factory=list)
    maintained_boards: List[Board] = field(default_factory=list)
    cards: Dict[str, List[Card]] = field(default_factory=dict)  # board coordinate -> cards
    loading: bool = False
    error: Optional[str] = None
