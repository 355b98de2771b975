"""
Fractional ranking for drag-and-drop.

A moved card gets an order value between its new neighbours, so no other
card has to be republished. Orders are advisory: they carry no uniqueness
guarantee and ties render by card id.
"""
from typing import List, Optional

from .schema import Card

RANK_STEP = 10


def sort_cards(cards: List[Card]) -> List[Card]:
    """Display order within a column."""
    return sorted(cards, key=lambda c: (c.order, c.id))


def calculate_new_order(
    cards: List[Card],
    card_id: str,
    target_status: str,
    target_index: int,
    d_tag: Optional[str] = None,
) -> float:
    """
    Order value for card_id dropped at target_index of target_status.

    The moved card itself is excluded from the neighbours, matched by
    revision id and, when given, by its stable d tag.
    """
    column = sort_cards([
        c for c in cards
        if c.status == target_status
        and c.id != card_id
        and (d_tag is None or c.d_tag != d_tag)
    ])

    if not column:
        return RANK_STEP

    if target_index <= 0:
        return column[0].order - RANK_STEP

    if target_index >= len(column):
        return column[-1].order + RANK_STEP

    before = column[target_index - 1]
    after = column[target_index]
    return before.order + (after.order - before.order) / 2
