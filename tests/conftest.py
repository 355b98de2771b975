"""Shared fixtures for kanbanstr tests."""

import json
import sys
from pathlib import Path

import pytest

# Ensure the repository root is importable (pkg/ is a namespace package)
sys.path.insert(0, str(Path(__file__).parent.parent))

from pkg.kanbanstr.client import InMemoryEventClient
from pkg.kanbanstr.config import Config
from pkg.kanbanstr.schema import BOARD_KIND, CARD_KIND, format_coordinate

OWNER = "a" * 64
MAINTAINER = "b" * 64
STRANGER = "c" * 64


@pytest.fixture
def config():
    return Config(migration_settle_seconds=0)


@pytest.fixture
def client():
    """Empty log, signed in as OWNER."""
    return InMemoryEventClient(current_user=OWNER)


@pytest.fixture
def add_board(client):
    """Store a current-format board record."""
    def _add(d_tag="board-1", pubkey=OWNER, title="Roadmap", columns=None,
             maintainers=(), created_at=1000, extra_tags=()):
        columns = columns if columns is not None else [
            ("todo", "To Do", 0), ("doing", "In Progress", 1), ("done", "Done", 2),
        ]
        tags = [["d", d_tag], ["title", title], ["description", f"{title} board"]]
        tags += [["col", cid, name, str(order)] for cid, name, order in columns]
        tags += [["p", m] for m in maintainers]
        tags += [list(t) for t in extra_tags]
        return client.add(BOARD_KIND, pubkey, tags, "", created_at=created_at)
    return _add


@pytest.fixture
def add_card(client):
    """Store a current-format card record on a board."""
    def _add(d_tag, board_d_tag="board-1", board_pubkey=OWNER, pubkey=OWNER,
             title=None, status="To Do", rank=10, created_at=1000, extra_tags=()):
        tags = [
            ["d", d_tag],
            ["title", title or f"Card {d_tag}"],
            ["description", ""],
            ["s", status],
            ["rank", str(rank)],
            ["a", format_coordinate(BOARD_KIND, board_pubkey, board_d_tag)],
        ]
        tags += [list(t) for t in extra_tags]
        return client.add(CARD_KIND, pubkey, tags, "", created_at=created_at)
    return _add


@pytest.fixture
def add_legacy_board(client):
    """Store a JSON-content board that lists its cards with `a` tags."""
    def _add(d_tag="legacy-1", pubkey=OWNER, card_refs=(), columns=None,
             created_at=500, content=None):
        if content is None:
            content = json.dumps({
                "description": "Old style board",
                "columnMapping": "EXACT",
                "columns": columns if columns is not None else [
                    {"id": "c1", "name": "To Do", "order": 0},
                    {"id": "c2", "name": "Done", "order": 1},
                ],
            })
        tags = [["d", d_tag], ["title", "Legacy board"]]
        tags += [["a", format_coordinate(CARD_KIND, p, ident)] for p, ident in card_refs]
        return client.add(BOARD_KIND, pubkey, tags, content, created_at=created_at)
    return _add


@pytest.fixture
def add_legacy_card(client):
    """Store a JSON-content card."""
    def _add(d_tag, pubkey=OWNER, status="Done", order=20, attachments=(),
             zaps=(), created_at=500, content=None):
        if content is None:
            content = json.dumps({
                "status": status,
                "description": f"legacy {d_tag}",
                "order": order,
                "attachments": list(attachments),
            })
        tags = [["d", d_tag], ["title", f"Legacy {d_tag}"]]
        tags += [["zap", z] for z in zaps]
        return client.add(CARD_KIND, pubkey, tags, content, created_at=created_at)
    return _add
