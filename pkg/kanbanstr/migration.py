"""
One-shot migration of legacy (JSON-content) boards to the tag format.

    NOT_MIGRATED → BOARD_REWRITTEN → CARDS_REWRITTEN → PUBLISHED → RELOADED

The legacy records are never touched. A new board revision is published
under the same d tag, then one new revision per referenced card, each
keeping its d tag and pointing at the board with an `a` tag.

Not atomic: if publishing card N fails, cards 1..N-1 stay published.
Running again after success is refused because the latest board revision
is no longer legacy.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, List, Callable, Awaitable

from .client import EventClient
from .codec import decode_board, decode_card, encode_board, encode_card, is_legacy_board, legacy_card_refs
from .config import Config
from .dedup import latest
from .errors import KanbanError, MigrationFailed, NotFound, PermissionDenied
from .schema import Board, Card, RawRecord, RecordFilter, BOARD_KIND, CARD_KIND

logger = logging.getLogger(__name__)


class MigrationState(Enum):
    NOT_MIGRATED = "not_migrated"
    BOARD_REWRITTEN = "board_rewritten"
    CARDS_REWRITTEN = "cards_rewritten"
    PUBLISHED = "published"
    RELOADED = "reloaded"


@dataclass
class MigrationResult:
    """What a migration produced, and how far it got."""
    state: MigrationState = MigrationState.NOT_MIGRATED
    board: Optional[Board] = None
    cards: List[Card] = field(default_factory=list)
    board_record: Optional[RawRecord] = None
    card_records: List[RawRecord] = field(default_factory=list)


class LegacyMigrator:
    """Rewrites one legacy board and its cards into the tag format."""

    def __init__(
        self,
        client: EventClient,
        config: Optional[Config] = None,
        reload: Optional[Callable[[Board], Awaitable[object]]] = None,
    ):
        self.client = client
        self.config = config or Config()
        self.reload = reload

    async def migrate_board(self, d_tag: str, pubkey: str) -> MigrationResult:
        """
        Migrate the board (pubkey, d_tag).

        Raises MigrationFailed naming the step that broke.
        """
        result = MigrationResult()
        step = "authorising"
        try:
            if self.client.current_user != pubkey:
                raise PermissionDenied("Only the board owner can migrate it")

            step = "fetching the legacy board"
            old_board = latest(await self.client.fetch(
                RecordFilter(kinds=[BOARD_KIND], authors=[pubkey], d_tags=[d_tag])
            ))
            if old_board is None:
                raise NotFound(f"Board {pubkey}:{d_tag} not found")
            if not is_legacy_board(old_board):
                raise KanbanError(f"Board {d_tag} is already in the current format")

            step = "rewriting the board"
            result.board = self.rewrite_board(old_board)
            result.state = MigrationState.BOARD_REWRITTEN

            step = "rewriting cards"
            for _, card_pubkey, card_d_tag in legacy_card_refs(old_board):
                old_card = latest(await self.client.fetch(
                    RecordFilter(kinds=[CARD_KIND], authors=[card_pubkey], d_tags=[card_d_tag])
                ))
                if old_card is None:
                    logger.warning(f"Legacy card {card_pubkey}:{card_d_tag} not found, skipping")
                    continue
                result.cards.append(self.rewrite_card(old_card, result.board))
            result.state = MigrationState.CARDS_REWRITTEN

            step = "publishing the board"
            tags, content = encode_board(result.board)
            result.board_record = await self.client.publish(BOARD_KIND, tags, content)

            step = "publishing cards"
            for card in result.cards:
                tags, content = encode_card(card)
                result.card_records.append(await self.client.publish(CARD_KIND, tags, content))
            result.state = MigrationState.PUBLISHED
            logger.info(
                f"Migrated board {result.board.coordinate} with {len(result.cards)} cards"
            )

            if self.reload is not None:
                step = "reloading"
                if self.config.migration_settle_seconds > 0:
                    await asyncio.sleep(self.config.migration_settle_seconds)
                await self.reload(result.board)
                result.state = MigrationState.RELOADED

            return result
        except Exception as e:
            logger.error(f"Migration of board {d_tag} failed while {step}: {e}")
            raise MigrationFailed(step, e) from e

    def rewrite_board(self, old_board: RawRecord) -> Board:
        """Current-format Board from a legacy board record."""
        legacy = decode_board(old_board)
        return Board(
            id=old_board.d_tag or str(uuid.uuid4()),
            pubkey=old_board.pubkey,
            title=legacy.title,
            description=legacy.description or "",
            columns=legacy.columns,
            is_no_zap_board=legacy.is_no_zap_board,
        )

    def rewrite_card(self, old_card: RawRecord, board: Board) -> Card:
        """
        Current-format Card from a legacy card record, re-homed on board.

        The owner running the migration signs the new revision and becomes
        its author.
        """
        legacy = decode_card(old_card)
        return legacy.copy(
            d_tag=old_card.d_tag or str(uuid.uuid4()),
            pubkey=board.pubkey,
            status=legacy.status or self.config.default_status,
            board_refs=[board.coordinate],
        )
