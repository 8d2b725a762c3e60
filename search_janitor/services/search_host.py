"""
Search Janitor — Search host REST client.

The search host owns the indexes, their versions and the object database.
This client is the only place that talks to it:

    GET    /indexables
    GET    /indexables/{slug}/versions
    GET    /indexables/{slug}/versions/active
    DELETE /indexables/{slug}/versions/{number}
    GET    /indexables/{slug}/count?source=db|es&...
"""

import asyncio
import logging
from typing import Any, Protocol, Union

import aiohttp
from pydantic import ValidationError

from search_janitor.config import settings
from search_janitor.schemas import IndexableCollection, IndexVersion

logger = logging.getLogger(__name__)

IndexableRef = Union[IndexableCollection, str]


class SearchHostError(Exception):
    """The search host could not be reached or answered with an error."""


class DeletionError(SearchHostError):
    """Deleting an index version failed."""

    def __init__(self, indexable: str, version: int, message: str):
        self.indexable = indexable
        self.version = version
        self.message = message
        super().__init__(f"delete {indexable} v{version}: {message}")


class VersioningService(Protocol):
    async def list_versions(self, indexable: IndexableRef) -> list[IndexVersion]: ...

    async def get_active_version(self, indexable: IndexableRef) -> IndexVersion | None: ...

    async def delete_version(self, indexable: IndexableRef, number: int) -> None: ...


class IndexableRegistry(Protocol):
    async def get_all(self) -> list[IndexableCollection]: ...


def _slug(indexable: IndexableRef) -> str:
    return indexable if isinstance(indexable, str) else indexable.slug


def _encode_params(query_args: dict[str, Any]) -> dict[str, str]:
    """aiohttp only accepts scalar query values, so lists are comma-joined."""
    params: dict[str, str] = {}
    for key, value in query_args.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple, set)):
            params[key] = ",".join(str(v) for v in value)
        elif isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params


def _parse_version(raw: Any) -> IndexVersion | None:
    if not isinstance(raw, dict):
        return None
    try:
        return IndexVersion.model_validate(raw)
    except ValidationError as e:
        logger.warning("Ignoring malformed index version %r: %s", raw, e.errors()[:1])
        return None


class SearchHostClient:
    """aiohttp client implementing ``VersioningService`` and ``IndexableRegistry``."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ):
        self.base_url = (base_url or settings.search_host_url).rstrip("/")
        self.token = settings.search_host_token if token is None else token
        self.timeout = timeout or settings.search_host_timeout

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
    ) -> tuple[int, Any]:
        """Low-level request wrapper. Returns ``(status, json_or_text)``."""
        url = f"{self.base_url}{path}"
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout, headers=self._headers()) as session:
                async with session.request(method, url, params=params) as resp:
                    if resp.content_type == "application/json":
                        body = await resp.json()
                    else:
                        body = await resp.text()
                    return resp.status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SearchHostError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            # Malformed JSON or a body that is not valid UTF-8
            raise SearchHostError(f"{method} {url} returned an unreadable body: {e}") from e

    @staticmethod
    def _error_message(status: int, body: Any) -> str:
        if isinstance(body, dict):
            msg = body.get("message") or body.get("error")
            if msg:
                return str(msg)
        return f"HTTP {status}: {str(body)[:200]}"

    # ── IndexableRegistry ──────────────────────────────────

    async def get_all(self) -> list[IndexableCollection]:
        status, body = await self._request("GET", "/indexables")
        if status != 200:
            raise SearchHostError(self._error_message(status, body))
        if not isinstance(body, list):
            return []
        indexables = []
        for raw in body:
            try:
                indexables.append(IndexableCollection.model_validate(raw))
            except ValidationError:
                logger.warning("Ignoring malformed indexable %r", raw)
        return indexables

    async def get(self, slug: str) -> IndexableCollection | None:
        for indexable in await self.get_all():
            if indexable.slug == slug:
                return indexable
        return None

    # ── VersioningService ──────────────────────────────────

    async def list_versions(self, indexable: IndexableRef) -> list[IndexVersion]:
        slug = _slug(indexable)
        status, body = await self._request("GET", f"/indexables/{slug}/versions")
        if status == 404:
            return []
        if status != 200:
            raise SearchHostError(self._error_message(status, body))

        # Versions may come back as a list or keyed by number
        if isinstance(body, dict):
            body = list(body.values())
        if not isinstance(body, list):
            return []

        return [v for v in (_parse_version(raw) for raw in body) if v is not None]

    async def get_active_version(self, indexable: IndexableRef) -> IndexVersion | None:
        slug = _slug(indexable)
        status, body = await self._request("GET", f"/indexables/{slug}/versions/active")
        if status == 404:
            return None
        if status != 200:
            raise SearchHostError(self._error_message(status, body))
        return _parse_version(body) if body else None

    async def delete_version(self, indexable: IndexableRef, number: int) -> None:
        slug = _slug(indexable)
        try:
            status, body = await self._request("DELETE", f"/indexables/{slug}/versions/{number}")
        except SearchHostError as e:
            raise DeletionError(slug, number, str(e)) from e
        if status not in (200, 202, 204):
            raise DeletionError(slug, number, self._error_message(status, body))

    # ── Entity counts ──────────────────────────────────────

    async def _count(self, slug: str, source: str, query_args: dict[str, Any]) -> int:
        params = _encode_params({**query_args, "source": source})
        status, body = await self._request("GET", f"/indexables/{slug}/count", params=params)
        if status != 200 or not isinstance(body, dict) or "total" not in body:
            raise SearchHostError(self._error_message(status, body))
        return int(body["total"])

    async def count_db(self, indexable: IndexableRef, query_args: dict[str, Any]) -> int:
        """Total objects matching ``query_args`` in the site database."""
        return await self._count(_slug(indexable), "db", query_args)

    async def count_es(self, indexable: IndexableRef, query_args: dict[str, Any]) -> int:
        """Total documents matching ``query_args`` in the live index."""
        return await self._count(_slug(indexable), "es", query_args)
