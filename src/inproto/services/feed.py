"""Polling of the external content feed for broadcast notifications.

The poller is independent of the message relay: it runs as its own asyncio
task, catches its own failures and only shares the subscription store and the
push transport with the relay.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from typing import Any

import httpx
import yaml

from inproto.core.settings import settings
from inproto.repositories.relay_state import FeedCursor, RelayStateRepository
from inproto.repositories.subscriptions import SubscriptionRepository
from inproto.services.push import PushTransport
from inproto.services.relay import deliver_to_all
from inproto.utils.hash import sha256_hexdigest

logger = logging.getLogger(__name__)

# Order in which record fields are tried as the record's identity.
IDENTITY_FIELDS = ("hash", "sig", "id", "timestamp", "ts")
PREVIEW_LENGTH = 400


@dataclass(frozen=True)
class ArrayOfRecords:
    """Feed body that decoded to a JSON array; ``records`` are newest first.

    ``length`` counts every array item, including ones that are not objects.
    """

    records: tuple[Mapping[str, Any], ...]
    length: int = 0

    @property
    def latest(self) -> Mapping[str, Any] | None:
        return self.records[0] if self.records else None


@dataclass(frozen=True)
class SingleRecord:
    """Feed body that decoded to a single JSON object."""

    record: Mapping[str, Any]

    @property
    def latest(self) -> Mapping[str, Any] | None:
        return self.record


@dataclass(frozen=True)
class RawText:
    """Feed body that is not JSON (or JSON of another shape)."""

    text: str

    @property
    def latest(self) -> Mapping[str, Any] | None:
        return None


FeedDocument = ArrayOfRecords | SingleRecord | RawText


@dataclass(frozen=True)
class PostText:
    name: str | None = None
    body: str | None = None


@dataclass(frozen=True)
class PollResult:
    """Outcome of one feed poll."""

    changed: bool
    sent: bool
    reason: str | None = None
    latest: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


def _record_time(record: Mapping[str, Any]) -> float:
    value = record.get("ts")
    if value is None:
        value = record.get("timestamp")
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def decode_feed(body_text: str) -> FeedDocument:
    """Classify a feed response body."""
    try:
        decoded = json.loads(body_text)
    except ValueError:
        return RawText(body_text)
    if isinstance(decoded, list):
        records = [item for item in decoded if isinstance(item, Mapping)]
        records.sort(key=_record_time, reverse=True)
        return ArrayOfRecords(tuple(records), length=len(decoded))
    if isinstance(decoded, Mapping):
        return SingleRecord(decoded)
    return RawText(body_text)


def record_identity(record: Mapping[str, Any] | None) -> str | None:
    """Return the first usable identity field of ``record`` in precedence order."""
    if record is None:
        return None
    for name in IDENTITY_FIELDS:
        if name not in record or record[name] is None:
            continue
        value = record[name]
        # The first present field decides; a non-scalar value means no identity.
        if isinstance(value, bool) or not isinstance(value, str | int | float):
            return None
        return str(value)
    return None


def _yaml_fields(text: str) -> PostText | None:
    parsed = yaml.safe_load(text)
    if not isinstance(parsed, dict):
        return None
    name = parsed.get("name")
    body = parsed.get("body")
    return PostText(
        name=name.strip() if isinstance(name, str) else None,
        body=body.strip() if isinstance(body, str) else None,
    )


def parse_post_text(text: str) -> PostText:
    """Extract the author name and body from a post with optional YAML front matter."""
    if not isinstance(text, str) or not text:
        return PostText()
    raw = text.strip()
    front_matter = ""
    body_text = ""
    if raw.startswith("---"):
        lines = raw.split("\n")
        try:
            end = lines.index("---", 1)
        except ValueError:
            end = -1
        if end != -1:
            front_matter = "\n".join(lines[1:end])
            body_text = "\n".join(lines[end + 1:])

    fields: PostText | None = None
    try:
        fields = _yaml_fields(raw)
    except yaml.YAMLError:
        if front_matter:
            try:
                fields = _yaml_fields(front_matter)
            except yaml.YAMLError:
                fields = None
    fields = fields or PostText()

    body = body_text.strip() or (fields.body or "").strip()
    return PostText(name=fields.name or None, body=body or None)


def summarize_latest(record: Mapping[str, Any] | None) -> dict[str, Any] | None:
    if record is None:
        return None
    text = record.get("text") if isinstance(record.get("text"), str) else ""
    preview = f"{text[:PREVIEW_LENGTH]}…" if len(text) > PREVIEW_LENGTH else text
    summary = {
        "hash": record.get("hash") if isinstance(record.get("hash"), str) else None,
        "author": record.get("author") if isinstance(record.get("author"), str) else None,
        "ts": record.get("ts") if isinstance(record.get("ts"), str) else None,
        "textPreview": preview or None,
    }
    return {key: value for key, value in summary.items() if value is not None}


def build_feed_payload(
    record: Mapping[str, Any] | None,
    *,
    icon_url: str | None = None,
    link_base_url: str | None = None,
) -> str | None:
    """Render a broadcast notification for ``record``; None if it has no body."""
    if record is None:
        return None
    base = link_base_url or settings.feed_link_base_url
    record_hash = record.get("hash") if isinstance(record.get("hash"), str) else ""
    raw_text = record.get("text") if isinstance(record.get("text"), str) else ""
    parsed = parse_post_text(raw_text) if raw_text else PostText()
    if not parsed.body:
        return None
    author = record.get("author") if isinstance(record.get("author"), str) else ""
    title = parsed.name or (author[:10] if author else "Someone")
    return json.dumps(
        {
            "title": title,
            "body": parsed.body,
            "url": f"{base}#{record_hash}" if record_hash else base,
            "hash": record_hash,
            "icon": icon_url if icon_url is not None else settings.push_icon_url,
            "latest": dict(record),
        }
    )


class FeedPoller:
    """Fetches the latest feed item and broadcasts it once per new item."""

    def __init__(
        self,
        *,
        state: RelayStateRepository,
        subscriptions: SubscriptionRepository,
        transport: PushTransport,
        http_client: httpx.AsyncClient | None = None,
        latest_url: str | None = None,
        interval_seconds: float | None = None,
    ) -> None:
        self.state = state
        self.subscriptions = subscriptions
        self.transport = transport
        self.latest_url = latest_url or settings.latest_url
        self.interval = max(
            0.1,
            float(settings.feed_poll_interval_seconds if interval_seconds is None else interval_seconds),
        )
        self._client = http_client
        self._owns_client = http_client is None
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.feed_http_timeout_seconds)
        return self._client

    async def start(self) -> None:
        """Start the background polling loop."""
        if self._task is None or self._task.done():
            logger.info("Polling %s every %.1fs", self.latest_url, self.interval)
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the background polling loop and release the HTTP client."""
        if self._task is not None:
            self._stopping.set()
            await self._task
            self._task = None
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _run(self) -> None:
        while not self._stopping.is_set():
            await self.poll()
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
            except TimeoutError:
                continue

    async def poll(self, force: bool = False) -> PollResult:
        """Poll once; never raises."""
        try:
            return await self._poll(force)
        except Exception as err:
            logger.error("Poll error: %s", err, exc_info=True)
            return PollResult(changed=False, sent=False, reason="poll error")

    async def _poll(self, force: bool) -> PollResult:
        response = await self._http().get(self.latest_url, headers={"cache-control": "no-store"})
        if response.status_code != httpx.codes.OK:
            logger.error("Latest fetch failed: %s", response.status_code)
            return PollResult(changed=False, sent=False, reason="latest fetch failed")
        body_text = response.text
        if not body_text.strip():
            return PollResult(changed=False, sent=False, reason="empty response")

        document = decode_feed(body_text)
        if isinstance(document, ArrayOfRecords) and not document.length:
            return PollResult(changed=False, sent=False, reason="empty response")

        record = document.latest
        latest_id = record_identity(record)
        latest_hash = None if latest_id else sha256_hexdigest(body_text)
        summary = summarize_latest(record)

        cursor = await asyncio.to_thread(self.state.load_cursor)
        is_new = (
            latest_id != cursor.last_seen_id if latest_id else latest_hash != cursor.last_seen_hash
        )
        if not is_new and not force:
            return PollResult(changed=False, sent=False, reason="no new messages", latest=summary)
        if is_new:
            await asyncio.to_thread(
                self.state.save_cursor,
                FeedCursor(last_seen_id=latest_id, last_seen_hash=latest_hash),
            )

        bindings = await asyncio.to_thread(self.subscriptions.list_all)
        if not bindings:
            return PollResult(changed=True, sent=False, reason="no subscriptions", latest=summary)

        payload = build_feed_payload(record)
        if payload is None:
            return PollResult(changed=False, sent=False, reason="no content", latest=summary)

        report = await asyncio.to_thread(deliver_to_all, self.subscriptions, self.transport, payload)
        logger.info("Broadcast feed item: sent=%d pruned=%d", report.sent, len(report.pruned))
        return PollResult(changed=True, sent=True, latest=summary)
