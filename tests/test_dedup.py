"""Tests for last-write-wins deduplication."""

from pkg.kanbanstr.dedup import (
    deduplicate,
    latest,
    authorised_revisions,
    original_authors,
    by_author_and_d_tag,
)
from pkg.kanbanstr.schema import RawRecord, CARD_KIND


def _rev(d_tag, created_at, rid=None, pubkey="a" * 64):
    return RawRecord(
        id=rid or f"{d_tag}@{created_at}",
        kind=CARD_KIND,
        pubkey=pubkey,
        created_at=created_at,
        tags=[["d", d_tag]],
    )


class TestDeduplicate:

    def test_revisions_collapse_to_newest(self):
        records = [_rev("card", 10), _rev("card", 30), _rev("card", 20)]
        result = deduplicate(records)
        assert len(result) == 1
        assert result[0].created_at == 30

    def test_distinct_identifiers_survive(self):
        records = [_rev("one", 10), _rev("two", 5), _rev("one", 12), _rev("three", 1)]
        result = deduplicate(records)
        assert [r.d_tag for r in result] == ["one", "two", "three"]
        assert result[0].created_at == 12

    def test_idempotent(self):
        records = [_rev("one", 10), _rev("two", 20), _rev("one", 15)]
        once = deduplicate(records)
        twice = deduplicate(once)
        assert once == twice

    def test_equal_timestamps_keep_first_seen(self):
        first = _rev("card", 10, rid="first")
        second = _rev("card", 10, rid="second")
        assert deduplicate([first, second])[0].id == "first"
        assert deduplicate([second, first])[0].id == "second"

    def test_record_without_d_tag_keys_on_id(self):
        bare = RawRecord(id="raw", kind=CARD_KIND, pubkey="a" * 64, created_at=1)
        assert deduplicate([bare, _rev("card", 2)]) == [bare, _rev("card", 2)]

    def test_author_scoped_key(self):
        mine = _rev("board", 10, pubkey="a" * 64)
        theirs = _rev("board", 20, pubkey="b" * 64)
        assert len(deduplicate([mine, theirs], key=by_author_and_d_tag)) == 2
        assert len(deduplicate([mine, theirs])) == 1

    def test_empty(self):
        assert deduplicate([]) == []


class TestLatest:

    def test_picks_max_created_at(self):
        assert latest([_rev("x", 3), _rev("x", 9), _rev("x", 5)]).created_at == 9

    def test_empty_is_none(self):
        assert latest([]) is None


class TestAuthorisedRevisions:

    OWNER = "a" * 64
    HELPER = "b" * 64
    OUTSIDER = "c" * 64

    def test_outsider_revisions_dropped(self):
        records = [
            _rev("card", 10, pubkey=self.OWNER),
            _rev("card", 20, pubkey=self.OUTSIDER),
        ]
        kept = authorised_revisions(records, {self.OWNER})
        assert [r.pubkey for r in kept] == [self.OWNER]

    def test_editor_outranks_earlier_outsider(self):
        records = [
            _rev("card", 1, pubkey=self.OUTSIDER),
            _rev("card", 10, pubkey=self.OWNER),
        ]
        assert original_authors(records, {self.OWNER}) == {"card": self.OWNER}

    def test_card_without_editor_revisions_keeps_first_author(self):
        records = [
            _rev("card", 10, pubkey=self.HELPER),
            _rev("card", 20, pubkey=self.OUTSIDER),
            _rev("card", 30, pubkey=self.HELPER),
        ]
        kept = authorised_revisions(records, {self.OWNER})
        assert [r.created_at for r in kept] == [10, 30]
