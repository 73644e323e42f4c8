"""MySideline public registration search API adapter."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import httpx
import structlog

from carnivalsync.core.clock import Clock, SystemClock
from carnivalsync.core.config import SyncConfig
from carnivalsync.engines.event_ingestor.errors import (
    SourceMalformed,
    SourceTimeout,
    SourceUnavailable,
)
from carnivalsync.engines.event_ingestor.models import RawEvent

log = structlog.get_logger("carnivalsync.engine")

SOURCE_NAME = "mysideline"

_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds


def _text(value: Any) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _lower(value: Any) -> str:
    return str(value or "").lower()


def _name_of(item: dict, *path: str) -> str:
    node: Any = item
    for key in path:
        if not isinstance(node, dict):
            return ""
        node = node.get(key)
    return _lower(node)


def is_masters_event(item: dict) -> bool:
    """True for Masters rugby league items; Touch and all-ages listings are excluded."""
    age_level = _lower(item.get("ageLvl"))
    region = _name_of(item, "orgtree", "region", "name")
    association = _name_of(item, "association", "name")
    competition = _name_of(item, "competition", "name")
    club = _name_of(item, "club", "name")

    if "touch" in association or "touch" in competition or "all ages" in age_level:
        return False

    return (
        "masters" in age_level
        or "nrl masters" in region
        or "nrl masters" in association
        or "masters" in competition
        or "masters" in club
    )


def item_to_raw(item: Any, event_url: str, source: str = SOURCE_NAME) -> RawEvent | None:
    """Map one API item to a :class:`RawEvent`.

    Returns None for items that are not Masters events. Structurally broken
    items come back with ``parse_error`` set.
    """
    if not isinstance(item, dict):
        return RawEvent(source=source, parse_error="item is not an object")
    external_id = _text(item.get("_id"))
    title = _text(item.get("name"))
    if not external_id or not title:
        return RawEvent(
            source=source,
            external_id=external_id,
            title=title,
            parse_error="item missing _id or name",
        )
    if not is_masters_event(item):
        return None

    venue = item.get("venue") if isinstance(item.get("venue"), dict) else {}
    contact = item.get("contact") if isinstance(item.get("contact"), dict) else {}
    address = venue.get("address") or contact.get("address") or {}
    if not isinstance(address, dict):
        address = {}
    finder = item.get("finderDetails") if isinstance(item.get("finderDetails"), dict) else {}

    return RawEvent(
        source=source,
        external_id=external_id,
        title=title,
        state=_text(address.get("state")),
        location_address=_text(address.get("formatted")) or "TBC",
        contact_name=_text(contact.get("name")),
        contact_email=_text(contact.get("email")),
        contact_phone=_text(contact.get("number")),
        schedule_details=_text(finder.get("description")),
        registration_link=f"{event_url}{external_id}",
    )


class MySidelineSource:
    """Fetches Masters listings from the MySideline registration search API.

    One GET per fetch; the request timeout is the time left until the
    deadline. 5xx responses and transport timeouts are retried with
    exponential backoff while the deadline allows.
    """

    def __init__(
        self,
        api_url: str,
        event_url: str,
        *,
        criteria: str = "Masters",
        clock: Clock | None = None,
        client: httpx.AsyncClient | None = None,
        name: str = SOURCE_NAME,
        max_retries: int = _MAX_RETRIES,
        retry_base_delay: float = _RETRY_BASE_DELAY,
    ) -> None:
        self.name = name
        self._api_url = api_url
        self._event_url = event_url
        self._criteria = criteria
        self._clock = clock or SystemClock()
        self._client = client
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay

    @classmethod
    def from_config(cls, config: SyncConfig, clock: Clock | None = None) -> MySidelineSource:
        return cls(
            config.mysideline_api_url,
            config.mysideline_event_url,
            criteria=config.mysideline_criteria,
            clock=clock,
        )

    # ── public ─────────────────────────────────────────────────────────────

    async def fetch(self, deadline: datetime) -> AsyncIterator[RawEvent]:
        payload = await self._load(deadline)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise SourceMalformed("response has no 'data' list")

        log.info("mysideline.fetched", items=len(data))
        for item in data:
            raw = item_to_raw(item, self._event_url, self.name)
            if raw is None:
                continue
            yield raw

    # ── internal ───────────────────────────────────────────────────────────

    def _remaining(self, deadline: datetime) -> float:
        return (deadline - self._clock.now()).total_seconds()

    async def _load(self, deadline: datetime) -> Any:
        if self._client is not None:
            response = await self._request_with_retry(self._client, deadline)
        else:
            async with httpx.AsyncClient(headers={"Accept": "application/json"}) as client:
                response = await self._request_with_retry(client, deadline)
        try:
            return response.json()
        except ValueError as exc:
            raise SourceMalformed(f"response is not JSON: {exc}") from exc

    async def _request_with_retry(
        self, client: httpx.AsyncClient, deadline: datetime
    ) -> httpx.Response:
        """GET with exponential backoff on 5xx and timeout errors."""
        params = {"criteria": self._criteria, "source": "rugby-league"}
        last_error = "no attempt made"
        for attempt in range(self._max_retries):
            remaining = self._remaining(deadline)
            if remaining <= 0:
                raise SourceTimeout("deadline exceeded before source responded")
            try:
                resp = await client.get(
                    self._api_url, params=params, timeout=httpx.Timeout(remaining)
                )
            except httpx.TimeoutException:
                log.warning(
                    "mysideline.timeout",
                    url=self._api_url,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                if self._remaining(deadline) <= 0:
                    raise SourceTimeout("deadline exceeded while waiting for source") from None
                last_error = "request timed out"
            except httpx.HTTPError as exc:
                raise SourceUnavailable(f"transport error: {exc}") from exc
            else:
                if resp.status_code < 500:
                    if resp.is_success:
                        return resp
                    raise SourceUnavailable(f"unexpected status {resp.status_code}")
                log.warning(
                    "mysideline.server_error",
                    url=self._api_url,
                    status=resp.status_code,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                )
                last_error = f"server error {resp.status_code}"

            if attempt < self._max_retries - 1:
                delay = self._retry_base_delay * (2**attempt)
                remaining = self._remaining(deadline)
                if delay >= remaining:
                    raise SourceTimeout(f"deadline exceeded during backoff ({last_error})")
                await asyncio.sleep(delay)

        raise SourceUnavailable(f"source unavailable after {self._max_retries} attempts: {last_error}")
