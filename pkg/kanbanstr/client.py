"""
Event client boundary.

Everything that touches the network goes through an EventClient: relay
connections, signing, broadcasting and signature checks all live on the
other side of this interface. The repository only ever calls fetch(),
publish() and reads current_user.

  InMemoryEventClient - append-only in-process log (tests, fixtures)
  HttpEventClient     - talks to a signing relay gateway over HTTP
"""
import asyncio
import hashlib
import json
import logging
import time
from typing import Optional, List, Dict, Any, Iterable, Protocol

import requests

from .config import Config
from .errors import TransportError
from .schema import RawRecord, RecordFilter

logger = logging.getLogger(__name__)


class EventClient(Protocol):
    """What the repository needs from the outside world."""

    current_user: Optional[str]

    async def fetch(self, record_filter: RecordFilter) -> List[RawRecord]:
        ...

    async def publish(self, kind: int, tags: List[List[str]], content: str = "") -> RawRecord:
        ...


def record_id(pubkey: str, created_at: int, kind: int, tags: List[List[str]], content: str) -> str:
    """Content hash in the usual [0, pubkey, created_at, kind, tags, content] layout."""
    serialized = json.dumps(
        [0, pubkey, created_at, kind, tags, content],
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# In-memory client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class InMemoryEventClient:
    """
    Append-only record log held in memory.

    Nothing is ever replaced: every revision stays, exactly like a relay
    that keeps history. Published records get a created_at strictly
    greater than anything already stored.
    """

    def __init__(
        self,
        current_user: Optional[str] = None,
        records: Optional[Iterable[RawRecord]] = None,
        fail_after: Optional[int] = None,
    ):
        self.current_user = current_user
        self.records: List[RawRecord] = list(records or [])
        self.published: List[RawRecord] = []
        self.filters: List[RecordFilter] = []
        self.fail_after = fail_after  # raise TransportError after N publishes

    def _next_timestamp(self) -> int:
        newest = max((r.created_at for r in self.records), default=0)
        return max(int(time.time()), newest + 1)

    def add(
        self,
        kind: int,
        pubkey: str,
        tags: List[List[str]],
        content: str = "",
        created_at: Optional[int] = None,
    ) -> RawRecord:
        """Store a record as if it had arrived from a relay."""
        ts = created_at if created_at is not None else self._next_timestamp()
        record = RawRecord(
            id=record_id(pubkey, ts, kind, tags, content),
            kind=kind,
            pubkey=pubkey,
            created_at=ts,
            content=content,
            tags=[list(t) for t in tags],
        )
        self.records.append(record)
        return record

    async def fetch(self, record_filter: RecordFilter) -> List[RawRecord]:
        self.filters.append(record_filter)
        matched = [r for r in self.records if record_filter.matches(r)]
        if record_filter.limit is not None:
            matched = sorted(matched, key=lambda r: r.created_at, reverse=True)
            matched = matched[:record_filter.limit]
        return list(matched)

    async def publish(self, kind: int, tags: List[List[str]], content: str = "") -> RawRecord:
        if not self.current_user:
            raise TransportError("No signer available")
        if self.fail_after is not None and len(self.published) >= self.fail_after:
            raise TransportError("Relay rejected the record")
        record = self.add(kind, self.current_user, tags, content)
        self.published.append(record)
        return record


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# HTTP gateway client
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class HttpEventClient:
    """
    Client for a relay gateway that signs and broadcasts on our behalf.

    Gateway API:
        POST {url}/fetch    {"filter": {...}}                 -> {"events": [...]}
        POST {url}/publish  {"kind", "tags", "content"}       -> {"event": {...}}

    requests is blocking, so each call runs in a worker thread and makes its
    own request; no Session is shared between threads. No retries happen
    here; a failed call surfaces as TransportError.
    """

    def __init__(self, base_url: str, current_user: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.current_user = current_user
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: Config) -> "HttpEventClient":
        if not cfg.gateway_url:
            raise TransportError("No gateway_url configured")
        return cls(cfg.gateway_url, current_user=cfg.current_user, timeout=cfg.request_timeout)

    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            r = requests.post(
                url,
                data=json.dumps(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Gateway call {url} failed: {e}")
            raise TransportError(str(e)) from e

    async def fetch(self, record_filter: RecordFilter) -> List[RawRecord]:
        body = await asyncio.to_thread(self._post, "/fetch", {"filter": record_filter.to_dict()})
        return [RawRecord.from_dict(e) for e in body.get("events", [])]

    async def publish(self, kind: int, tags: List[List[str]], content: str = "") -> RawRecord:
        if not self.current_user:
            raise TransportError("No signer available")
        body = await asyncio.to_thread(
            self._post, "/publish", {"kind": kind, "tags": tags, "content": content}
        )
        event = body.get("event")
        if not event:
            raise TransportError("Gateway did not acknowledge the record")
        return RawRecord.from_dict(event)
