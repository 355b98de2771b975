#!/usr/bin/env python3
"""
kanbanstr command line

Usage:
    python -m pkg.kanbanstr.cli boards                  # every board
    python -m pkg.kanbanstr.cli boards --mine           # boards I own
    python -m pkg.kanbanstr.cli boards --maintained     # boards I maintain
    python -m pkg.kanbanstr.cli show OWNER BOARD_ID     # board + cards
    python -m pkg.kanbanstr.cli migrate OWNER BOARD_ID  # legacy → tag format

The gateway comes from config.yaml, KANBANSTR_GATEWAY or --gateway.
"""
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .client import HttpEventClient
from .config import Config
from .errors import KanbanError
from .ranking import sort_cards
from .repository import KanbanRepository
from .schema import Board, BoardScope, Card
from .timefmt import format_time_ago

logger = logging.getLogger("kanbanstr")


def _print_boards(boards: List[Board]):
    if not boards:
        print("No boards.")
        return
    for board in boards:
        flag = "  [legacy]" if board.needs_migration else ""
        print(f"{board.pubkey[:12]}…  {board.id}  {board.title}{flag}")


def _print_board(board: Board, cards: List[Card]):
    print(f"# {board.title}")
    if board.description:
        print(board.description)
    if board.needs_migration:
        print("(legacy format, run `migrate` to convert)")
    for column in board.sorted_columns():
        column_cards = sort_cards([c for c in cards if c.status == column.name])
        print(f"\n## {column.name} ({len(column_cards)})")
        for card in column_cards:
            extra = f" [{card.tracked_status.value}]" if card.tracked_status else ""
            print(f"  - {card.title}{extra}  · {format_time_ago(card.created_at)}")


async def _run(args, repo: KanbanRepository) -> int:
    if args.command == "boards":
        scope = BoardScope.ALL
        if args.mine:
            scope = BoardScope.OWNED
        elif args.maintained:
            scope = BoardScope.MAINTAINED
        _print_boards(await repo.list_boards(scope))
    elif args.command == "show":
        board, cards = await repo.load_board(args.owner, args.board_id)
        _print_board(board, cards)
    elif args.command == "migrate":
        board = await repo.fetch_board(args.owner, args.board_id)
        result = await repo.migrate_board(board)
        print(f"Migrated {board.title}: {len(result.card_records)} cards ({result.state.value})")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(description="kanbanstr: kanban boards on an event log")
    ap.add_argument("--config", default=None, help="Path to config.yaml")
    ap.add_argument("--gateway", default=None, help="Relay gateway URL (overrides config)")
    sub = ap.add_subparsers(dest="command", required=True)

    boards = sub.add_parser("boards", help="List boards")
    group = boards.add_mutually_exclusive_group()
    group.add_argument("--mine", action="store_true", help="Only boards I own")
    group.add_argument("--maintained", action="store_true", help="Only boards I maintain")

    for name, help_text in (("show", "Show a board and its cards"),
                            ("migrate", "Migrate a legacy board")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("owner", help="Board owner pubkey (hex)")
        p.add_argument("board_id", help="Board d tag")

    args = ap.parse_args(argv)

    cfg = Config.load(args.config)
    if args.gateway:
        cfg.gateway_url = args.gateway

    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s [kanbanstr] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    try:
        repo = KanbanRepository(HttpEventClient.from_config(cfg), cfg)
        return asyncio.run(_run(args, repo))
    except KanbanError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
