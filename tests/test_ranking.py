"""Tests for fractional ranking."""

from pkg.kanbanstr.ranking import calculate_new_order, sort_cards
from pkg.kanbanstr.schema import Card


def _card(cid, order, status="To Do"):
    return Card(id=cid, d_tag=f"d-{cid}", pubkey="a" * 64, status=status, order=order)


COLUMN = [_card("x", 10), _card("y", 20), _card("z", 30)]


class TestMidpointLaw:

    def test_insert_between(self):
        assert calculate_new_order(COLUMN, "moved", "To Do", 1) == 15

    def test_insert_first(self):
        assert calculate_new_order(COLUMN, "moved", "To Do", 0) == 0

    def test_insert_last(self):
        assert calculate_new_order(COLUMN, "moved", "To Do", 3) == 40

    def test_index_past_end(self):
        assert calculate_new_order(COLUMN, "moved", "To Do", 99) == 40

    def test_empty_column(self):
        assert calculate_new_order([], "moved", "To Do", 0) == 10

    def test_only_target_status_counts(self):
        cards = COLUMN + [_card("other", 12, status="Done")]
        assert calculate_new_order(cards, "moved", "Done", 0) == 2
        assert calculate_new_order(cards, "other", "Done", 0) == 10


class TestExclusion:

    def test_moved_card_excluded_by_id(self):
        # y moves from index 1 to the end of its own column
        assert calculate_new_order(COLUMN, "y", "To Do", 2) == 40

    def test_moved_card_excluded_by_d_tag(self):
        assert calculate_new_order(COLUMN, "new-revision", "To Do", 2, d_tag="d-y") == 40

    def test_repeated_insertions_stay_between_neighbours(self):
        cards = [_card("a", 10), _card("b", 20)]
        for i in range(30):
            order = calculate_new_order(cards, f"n{i}", "To Do", 1)
            assert 10 < order < cards[1].order
            cards.append(_card(f"n{i}", order))
            cards = sort_cards(cards)


class TestSortCards:

    def test_ties_break_on_id(self):
        cards = [_card("b", 5), _card("a", 5), _card("c", 1)]
        assert [c.id for c in sort_cards(cards)] == ["c", "a", "b"]
