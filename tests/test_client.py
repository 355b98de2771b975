"""
Tests for the event client implementations.
"""
import asyncio
from unittest.mock import patch, MagicMock

import pytest
import requests

from pkg.kanbanstr.client import HttpEventClient, InMemoryEventClient, record_id
from pkg.kanbanstr.config import Config
from pkg.kanbanstr.errors import TransportError
from pkg.kanbanstr.schema import RecordFilter, BOARD_KIND, CARD_KIND

from conftest import OWNER, STRANGER


def run(coro):
    return asyncio.run(coro)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# InMemoryEventClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class TestInMemoryClient:

    def test_filter_by_kind_author_and_d_tag(self, client):
        client.add(BOARD_KIND, OWNER, [["d", "b1"]], created_at=1)
        client.add(BOARD_KIND, STRANGER, [["d", "b1"]], created_at=2)
        client.add(CARD_KIND, OWNER, [["d", "b1"]], created_at=3)
        found = run(client.fetch(RecordFilter(kinds=[BOARD_KIND], authors=[OWNER], d_tags=["b1"])))
        assert len(found) == 1
        assert found[0].pubkey == OWNER

    def test_filter_by_tag_reference(self, client):
        client.add(CARD_KIND, OWNER, [["d", "c1"], ["a", "30301:x:y"]], created_at=1)
        client.add(CARD_KIND, OWNER, [["d", "c2"], ["a", "30301:x:z"]], created_at=2)
        found = run(client.fetch(RecordFilter(kinds=[CARD_KIND], tag_refs={"a": ["30301:x:y"]})))
        assert [r.d_tag for r in found] == ["c1"]

    def test_filter_by_id(self, client):
        record = client.add(CARD_KIND, OWNER, [["d", "c1"]], created_at=1)
        client.add(CARD_KIND, OWNER, [["d", "c2"]], created_at=2)
        assert run(client.fetch(RecordFilter(ids=[record.id]))) == [record]

    def test_limit_keeps_newest(self, client):
        for ts in (1, 5, 3):
            client.add(BOARD_KIND, OWNER, [["d", f"b{ts}"]], created_at=ts)
        found = run(client.fetch(RecordFilter(kinds=[BOARD_KIND], limit=2)))
        assert [r.created_at for r in found] == [5, 3]

    def test_publish_is_newer_than_everything(self, client):
        client.add(BOARD_KIND, OWNER, [["d", "b"]], created_at=10 ** 10)
        record = run(client.publish(BOARD_KIND, [["d", "b"]]))
        assert record.created_at == 10 ** 10 + 1
        assert record.pubkey == OWNER
        assert client.published == [record]

    def test_publish_without_user(self):
        client = InMemoryEventClient(current_user=None)
        with pytest.raises(TransportError):
            run(client.publish(BOARD_KIND, [["d", "b"]]))

    def test_fail_after(self):
        client = InMemoryEventClient(current_user=OWNER, fail_after=1)
        run(client.publish(BOARD_KIND, [["d", "b"]]))
        with pytest.raises(TransportError):
            run(client.publish(BOARD_KIND, [["d", "c"]]))

    def test_record_id_is_content_hash(self):
        a = record_id(OWNER, 1, BOARD_KIND, [["d", "x"]], "")
        b = record_id(OWNER, 1, BOARD_KIND, [["d", "y"]], "")
        assert a != b
        assert len(a) == 64


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HttpEventClient
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


class TestHttpClient:

    def test_from_config_requires_gateway(self):
        with pytest.raises(TransportError):
            HttpEventClient.from_config(Config())

    def test_fetch_posts_relay_filter(self):
        client = HttpEventClient("http://gw/", current_user=OWNER)
        event = {"id": "e1", "kind": BOARD_KIND, "pubkey": OWNER, "created_at": 7,
                 "content": "", "tags": [["d", "b1"]]}
        with patch("pkg.kanbanstr.client.requests.post", return_value=_response({"events": [event]})) as post:
            records = run(client.fetch(RecordFilter(kinds=[BOARD_KIND], d_tags=["b1"], limit=5)))

        assert records[0].d_tag == "b1"
        assert records[0].created_at == 7
        url = post.call_args[0][0]
        assert url == "http://gw/fetch"
        body = post.call_args[1]["data"]
        assert '"#d": ["b1"]' in body
        assert '"limit": 5' in body

    def test_publish_returns_acknowledged_record(self):
        client = HttpEventClient("http://gw", current_user=OWNER)
        event = {"id": "e2", "kind": CARD_KIND, "pubkey": OWNER, "created_at": 9,
                 "content": "", "tags": [["d", "c1"]]}
        with patch("pkg.kanbanstr.client.requests.post", return_value=_response({"event": event})):
            record = run(client.publish(CARD_KIND, [["d", "c1"]]))
        assert record.id == "e2"

    def test_missing_ack_is_transport_error(self):
        client = HttpEventClient("http://gw", current_user=OWNER)
        with patch("pkg.kanbanstr.client.requests.post", return_value=_response({})):
            with pytest.raises(TransportError):
                run(client.publish(CARD_KIND, [["d", "c1"]]))

    def test_network_error_is_transport_error(self):
        client = HttpEventClient("http://gw", current_user=OWNER)
        with patch("pkg.kanbanstr.client.requests.post", side_effect=requests.ConnectionError("refused")):
            with pytest.raises(TransportError):
                run(client.fetch(RecordFilter(kinds=[BOARD_KIND])))

    def test_publish_without_user(self):
        client = HttpEventClient("http://gw")
        with pytest.raises(TransportError):
            run(client.publish(CARD_KIND, [["d", "c1"]]))

    def test_concurrent_fetches_each_post(self):
        client = HttpEventClient("http://gw", current_user=OWNER)

        async def both():
            return await asyncio.gather(
                client.fetch(RecordFilter(kinds=[BOARD_KIND])),
                client.fetch(RecordFilter(kinds=[CARD_KIND])),
            )

        with patch("pkg.kanbanstr.client.requests.post", return_value=_response({"events": []})) as post:
            assert run(both()) == [[], []]
        assert post.call_count == 2
        assert not hasattr(client, "session")
