"""
Conflict resolution for replaceable records.

Relays hand back every revision they hold, so one logical board or card
may appear many times in a fetch. The rule is last-write-wins: per stable
identifier, the revision with the greatest created_at is authoritative.
Equal timestamps keep whichever revision was seen first. There is no
field-level merge; the earlier writer's change is dropped.

Card revisions are first filtered by author: only the board's editors
and the card's original author may supersede a card.
"""
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Set

from .schema import RawRecord


def by_d_tag(record: RawRecord) -> Hashable:
    return record.d_tag or record.id


def by_author_and_d_tag(record: RawRecord) -> Hashable:
    return (record.pubkey, record.d_tag or record.id)


def deduplicate(
    records: Iterable[RawRecord],
    key: Callable[[RawRecord], Hashable] = by_d_tag,
) -> List[RawRecord]:
    """
    Keep one record per stable identifier, the one with max created_at.

    Output preserves the order in which each identifier was first seen.
    """
    winners: Dict[Hashable, RawRecord] = {}
    for record in records:
        ident = key(record)
        current = winners.get(ident)
        if current is None or record.created_at > current.created_at:
            winners[ident] = record
    return list(winners.values())


def latest(records: Iterable[RawRecord]) -> Optional[RawRecord]:
    """Newest record of a point fetch, or None if empty."""
    best: Optional[RawRecord] = None
    for record in records:
        if best is None or record.created_at > best.created_at:
            best = record
    return best


def original_authors(records: Iterable[RawRecord], editors: Set[str]) -> Dict[Hashable, str]:
    """
    Author of each card, per d tag.

    Cards are created by a board's editors, so an editor's revision
    outranks anyone else's when deciding who created the card; among
    equals the earliest revision wins. A card with no editor revision at
    all (written by a since-removed maintainer) belongs to its earliest
    author.
    """
    authors: Dict[Hashable, str] = {}
    ordered = sorted(records, key=lambda r: (r.pubkey not in editors, r.created_at))
    for record in ordered:
        authors.setdefault(by_d_tag(record), record.pubkey)
    return authors


def authorised_revisions(records: Iterable[RawRecord], editors: Set[str]) -> List[RawRecord]:
    """Drop revisions written by anyone but an editor or the card's author."""
    records = list(records)
    authors = original_authors(records, editors)
    return [
        r for r in records
        if r.pubkey in editors or r.pubkey == authors.get(by_d_tag(r))
    ]
