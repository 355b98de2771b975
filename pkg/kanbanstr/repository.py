"""
Board/card repository backed by the event log.

Reads: query the event client, collapse revisions (last-write-wins),
decode tags, resolve tracking stubs. Writes: check permissions, encode,
publish, then re-fetch the affected list so the in-memory state converges
with what was just published.

No joins exist on the other side. Cards find their board through an `a`
tag holding the board coordinate; legacy boards list their cards instead.
"""
import asyncio
import logging
import uuid
from typing import Optional, List, Tuple

from .client import EventClient
from .codec import decode_board, decode_card, decode_many, encode_board, encode_card
from .config import Config
from .dedup import (
    deduplicate,
    latest,
    authorised_revisions,
    original_authors,
    by_d_tag,
    by_author_and_d_tag,
)
from .errors import KanbanError, NotFound, PermissionDenied, TransportError
from .migration import LegacyMigrator, MigrationResult
from .ranking import calculate_new_order
from .schema import (
    Board,
    BoardScope,
    Card,
    CardLink,
    Column,
    KanbanState,
    RawRecord,
    RecordFilter,
    BOARD_KIND,
    CARD_KIND,
    EXTERNAL_TRACKED_KINDS,
    UNTITLED_BOARD,
    UNTITLED_CARD,
)
from .tracking import TrackingResolver

logger = logging.getLogger(__name__)


class KanbanRepository:
    """Boards and cards over an injected EventClient."""

    def __init__(self, client: EventClient, config: Optional[Config] = None):
        self.client = client
        self.config = config or Config()
        self.state = KanbanState()
        self.tracker = TrackingResolver(client)

    @property
    def current_user(self) -> Optional[str]:
        return self.client.current_user

    # ── Client calls ─────────────────────────────────────────

    async def _fetch(self, record_filter: RecordFilter) -> List[RawRecord]:
        try:
            return await self.client.fetch(record_filter)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(str(e)) from e

    async def _publish(self, kind: int, tags: List[List[str]], content: str = "") -> RawRecord:
        try:
            return await self.client.publish(kind, tags, content)
        except TransportError:
            raise
        except Exception as e:
            raise TransportError(str(e)) from e

    def _require_user(self) -> str:
        user = self.current_user
        if not user:
            raise PermissionDenied("No signed-in user; session is read-only")
        return user

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Boards
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def list_boards(self, scope: BoardScope = BoardScope.ALL) -> List[Board]:
        """
        List boards visible in a scope.

        ALL        - every board record
        OWNED      - authored by the current user
        MAINTAINED - current user appears on a `p` tag

        Replaces the matching state list. Malformed board records are
        logged and skipped.
        """
        record_filter = RecordFilter(kinds=[BOARD_KIND], limit=self.config.list_limit)
        user = None
        if scope is not BoardScope.ALL:
            user = self._require_user()
            if scope is BoardScope.OWNED:
                record_filter.authors = [user]
            else:
                record_filter.tag_refs = {"p": [user]}

        self.state.loading = True
        self.state.error = None
        try:
            records = await self._fetch(record_filter)
        except KanbanError as e:
            self.state.loading = False
            self.state.error = str(e)
            logger.error(f"Failed to load {scope.value} boards: {e}")
            raise

        boards = decode_many(deduplicate(records, key=by_author_and_d_tag), decode_board)

        if scope is BoardScope.ALL:
            self.state.boards = boards
        elif scope is BoardScope.OWNED:
            self.state.my_boards = boards
        else:
            boards = [b for b in boards if user in b.maintainers]
            self.state.maintained_boards = boards
        self.state.loading = False
        logger.debug(f"Loaded {len(boards)} {scope.value} boards")
        return boards

    async def _refresh_board_lists(self):
        scopes = [BoardScope.ALL]
        if self.current_user:
            scopes.append(BoardScope.OWNED)
        try:
            await asyncio.gather(*(self.list_boards(s) for s in scopes))
        except KanbanError as e:
            # The write itself went through; state.error carries the details
            logger.warning(f"Board lists not refreshed after write: {e}")

    async def fetch_board(self, owner: str, board_id: str) -> Board:
        """Current revision of one board. Raises NotFound."""
        records = await self._fetch(
            RecordFilter(kinds=[BOARD_KIND], authors=[owner], d_tags=[board_id])
        )
        record = latest(records)
        if record is None:
            raise NotFound(f"Board {owner}:{board_id} not found")
        return decode_board(record)

    async def load_board(self, owner: str, board_id: str) -> Tuple[Board, List[Card]]:
        """Board plus its cards, loaded through the path its format needs."""
        board = await self.fetch_board(owner, board_id)
        if board.needs_migration:
            cards = await self.load_legacy_cards(board)
        else:
            cards = await self.load_cards(board)
        return board, cards

    async def create_board(
        self,
        title: str,
        description: str = "",
        columns: Optional[List[Column]] = None,
        maintainers: Optional[List[str]] = None,
        is_no_zap_board: bool = False,
    ) -> Board:
        """Publish a new board owned by the current user."""
        user = self._require_user()
        board = Board(
            id=str(uuid.uuid4()),
            pubkey=user,
            title=title or UNTITLED_BOARD,
            description=description,
            columns=list(columns or []),
            maintainers=list(maintainers or []),
            is_no_zap_board=is_no_zap_board,
        )
        tags, content = encode_board(board)
        await self._publish(BOARD_KIND, tags, content)
        logger.info(f"Board created: {board.coordinate}")

        await self._refresh_board_lists()
        return board

    async def update_board(self, board: Board) -> Board:
        """Publish a new revision of a board. Only the owner may do this."""
        user = self.current_user
        if not user or user != board.pubkey:
            raise PermissionDenied(f"Only the owner may update board {board.id}")
        _require_current_format(board)

        await self.fetch_board(board.pubkey, board.id)
        tags, content = encode_board(board)
        await self._publish(BOARD_KIND, tags, content)
        logger.info(f"Board updated: {board.coordinate}")

        await self._refresh_board_lists()
        return board

    async def migrate_board(self, board: Board) -> MigrationResult:
        """Rewrite a legacy board and its cards, then reload both lists."""
        migrator = LegacyMigrator(self.client, self.config, reload=self._reload_migrated)
        return await migrator.migrate_board(board.id, board.pubkey)

    async def _reload_migrated(self, board: Board):
        await self._refresh_board_lists()
        await self.load_board(board.pubkey, board.id)

    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
    # Cards
    # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

    async def load_cards(self, board: Board) -> List[Card]:
        """All cards pointing at this board, tracking stubs resolved."""
        records = await self._fetch(
            RecordFilter(kinds=[CARD_KIND], tag_refs={"a": [board.coordinate]})
        )
        records = authorised_revisions(records, board.editors())
        cards = decode_many(deduplicate(records, key=by_d_tag), decode_card)

        stubs = [c for c in cards if c.is_tracking_stub]
        resolved = {c.d_tag: c for c in await self.tracker.resolve_many(stubs)}
        result = []
        for card in cards:
            if card.is_tracking_stub:
                card = resolved.get(card.d_tag)
                if card is None:
                    continue
            result.append(card)

        self.state.cards[board.coordinate] = result
        return result

    async def load_legacy_cards(self, board: Board) -> List[Card]:
        """Cards a legacy board lists on its own `a` tags."""
        refs = {(pubkey, ident) for _, pubkey, ident in board.legacy_card_refs}
        if not refs:
            self.state.cards[board.coordinate] = []
            return []

        records = await self._fetch(RecordFilter(
            kinds=[CARD_KIND],
            authors=sorted({pubkey for pubkey, _ in refs}),
            d_tags=sorted({ident for _, ident in refs}),
        ))
        records = [r for r in records if (r.pubkey, r.d_tag) in refs]
        cards = decode_many(deduplicate(records, key=by_author_and_d_tag), decode_card)

        self.state.cards[board.coordinate] = cards
        return cards

    def cached_cards(self, board: Board) -> List[Card]:
        return self.state.cards.get(board.coordinate, [])

    async def create_card(self, board: Board, card: Card, target_index: Optional[int] = None) -> Card:
        """
        Publish a new card on a board.

        The card gets a fresh d tag and the current user as author. It lands
        at target_index of its column, or at the end when no index is given.
        """
        user = self.current_user
        if not board.can_edit(user):
            raise PermissionDenied(f"Not allowed to add cards to board {board.id}")
        _require_current_format(board)

        status = card.status or self.config.default_status
        cards = self.cached_cards(board)
        if target_index is None:
            target_index = sum(1 for c in cards if c.status == status)
        new_card = card.copy(
            id="",
            d_tag=str(uuid.uuid4()),
            pubkey=user,
            title=card.title or UNTITLED_CARD,
            status=status,
            order=calculate_new_order(cards, "", status, target_index),
            board_refs=_with_board_ref(card.board_refs, board),
        )

        record = await self._publish_card(new_card)
        logger.info(f"Card created: {new_card.d_tag} on {board.coordinate}")
        await self._reload_cards(board)
        return new_card.copy(id=record.id, created_at=record.created_at)

    async def update_card(self, board: Board, card: Card, target_index: Optional[int] = None) -> Card:
        """
        Publish a new revision of a card.

        Allowed for the card's author and the board's owner or maintainers.
        The author is taken from the stored revisions, never from the card
        passed in. With target_index the card is re-ranked within its
        status column.
        """
        user = self.current_user
        if not user or not (user == card.pubkey or board.can_edit(user)):
            raise PermissionDenied(f"Not allowed to update card {card.d_tag}")
        _require_current_format(board)

        revisions = authorised_revisions(
            await self._fetch(RecordFilter(
                kinds=[CARD_KIND], d_tags=[card.d_tag], tag_refs={"a": [board.coordinate]},
            )),
            board.editors(),
        )
        if latest(revisions) is None:
            raise NotFound(f"Card {card.d_tag} not found")
        author = original_authors(revisions, board.editors())[card.d_tag]
        if not (user == author or board.can_edit(user)):
            raise PermissionDenied(f"Not allowed to update card {card.d_tag}")

        order = card.order
        if target_index is not None:
            order = calculate_new_order(
                self.cached_cards(board), card.id, card.status, target_index, d_tag=card.d_tag
            )
        updated = card.copy(order=order, board_refs=_with_board_ref(card.board_refs, board))

        record = await self._publish_card(updated)
        logger.info(f"Card updated: {card.d_tag} (rank {order})")
        await self._reload_cards(board)
        return updated.copy(id=record.id, pubkey=record.pubkey, created_at=record.created_at)

    async def move_card(self, board: Board, card: Card, target_status: str, target_index: int) -> Card:
        """Drag-and-drop: change column and rank in one revision."""
        return await self.update_card(board, card.copy(status=target_status), target_index)

    async def link_card(self, board: Board, card: Card, link: CardLink) -> Card:
        """Add a directional link from card to another card."""
        if link in card.linked_cards:
            return card
        return await self.update_card(board, card.copy(linked_cards=[*card.linked_cards, link]))

    # ── Tracking stubs ───────────────────────────────────────

    async def track_card(
        self,
        board: Board,
        source_board: Board,
        source_card: Card,
        status: str = "",
    ) -> Card:
        """Mirror a card from another board onto this one."""
        stub = Card(
            id="",
            d_tag="",
            pubkey="",
            title=source_card.title,
            status=status,
            tracking_kind=CARD_KIND,
            tracking_ref=[source_board.coordinate, source_card.d_tag],
        )
        return await self.create_card(board, stub)

    async def track_item(self, board: Board, item_id: str, kind: int, status: str = "") -> Card:
        """Mirror an external issue/proposal record onto this board."""
        if kind not in EXTERNAL_TRACKED_KINDS:
            raise ValueError(f"Kind {kind} cannot be tracked")
        stub = Card(
            id="",
            d_tag="",
            pubkey="",
            status=status,
            tracking_kind=kind,
            tracking_ref=[item_id],
        )
        return await self.create_card(board, stub)

    # ── Helpers ──────────────────────────────────────────────

    async def _publish_card(self, card: Card) -> RawRecord:
        tags, content = encode_card(card)
        return await self._publish(CARD_KIND, tags, content)

    async def _reload_cards(self, board: Board):
        try:
            await self.load_cards(board)
        except KanbanError as e:
            self.state.error = str(e)
            logger.warning(f"Cards of {board.coordinate} not refreshed after write: {e}")


def _with_board_ref(refs: List[str], board: Board) -> List[str]:
    if board.coordinate in refs:
        return list(refs)
    return [*refs, board.coordinate]


def _require_current_format(board: Board):
    if board.needs_migration:
        raise KanbanError(f"Board {board.id} uses the legacy format; migrate it before editing")
