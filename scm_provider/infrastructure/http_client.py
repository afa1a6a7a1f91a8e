import aiohttp
import asyncio
import logging
import random
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple

from scm_provider.domain.exceptions import (
    AuthenticationError,
    NotFoundError,
    RateLimitExceededException,
    ScmApiError,
    TransportError,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60, connect=10)
MAX_RETRIES = 5
# Limit concurrent connections to avoid overwhelming the backend
CONNECTOR_LIMIT = 10
RETRYABLE_STATUSES = {500, 502, 503, 504}
DEFAULT_RATE_LIMIT_SLEEP = 60
USER_AGENT = "scm-provider-discovery"


class ScmHttpClient:
    """
    Thin aiohttp client shared by every provider.
    Handles authentication headers, JSON decoding, pagination, retries with backoff,
    and maps HTTP failures onto the discovery error taxonomy.
    """

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[aiohttp.BasicAuth] = None,
        verify_ssl: bool = True,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        self.headers.update(headers or {})
        self.auth = auth
        self.verify_ssl = verify_ssl
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        # No await between the check and the assignment, so concurrent callers share one session.
        if self._session is None:
            self._session = aiohttp.ClientSession(
                connector=aiohttp.TCPConnector(limit=CONNECTOR_LIMIT, ssl=self.verify_ssl),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        Fetches a single JSON document.

        Raises:
            NotFoundError, AuthenticationError, RateLimitExceededException,
            TransportError or ScmApiError, depending on the failure.
        """
        payload, _ = await self._request(self.url(path), params)
        return payload

    async def get_paginated(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        items_key: Optional[str] = None,
    ) -> List[Any]:
        """
        Fetches every page of a list endpoint and returns the concatenated items.

        Follows `Link: rel="next"` headers, and for envelopes (items_key set) a `next`
        URL in the body. A failure on any page propagates; nothing partial is returned.
        """
        items: List[Any] = []
        url: Optional[str] = self.url(path)
        page_params = params
        pages = 0

        while url:
            payload, links = await self._request(url, page_params)
            pages += 1
            next_url = None

            if items_key is not None:
                envelope = payload or {}
                items.extend(envelope.get(items_key) or [])
                next_url = envelope.get("next")
            else:
                items.extend(payload or [])

            next_link = links.get("next")
            if next_link:
                next_url = str(next_link.get("url"))

            # Next URLs already carry the query string
            url = next_url
            page_params = None

        logger.debug(f"Fetched {len(items)} items from {path} in {pages} page(s).")
        return items

    async def _request(self, url: str, params: Optional[Dict[str, Any]]) -> Tuple[Any, Any]:
        session = self._get_session()
        last_error: Optional[BaseException] = None

        for attempt in range(MAX_RETRIES):
            try:
                async with session.get(url, params=params, headers=self.headers, auth=self.auth, timeout=REQUEST_TIMEOUT) as response:
                    if self._is_rate_limited(response):
                        if attempt == MAX_RETRIES - 1:
                            raise RateLimitExceededException(reset_at=response.headers.get("X-RateLimit-Reset"), url=url)
                        sleep_time = _retry_after_seconds(response.headers.get("Retry-After"))
                        logger.warning(f"Rate limited ({response.status}) on {url}. Sleeping {sleep_time}s...")
                        await asyncio.sleep(sleep_time)
                        continue

                    if response.status in RETRYABLE_STATUSES:
                        last_error = TransportError(f"Server error ({response.status}) from {url}", status=response.status, url=url)
                        sleep_time = (2 ** attempt) + random.uniform(0, 2)
                        logger.warning(
                            f"Server error ({response.status}) on {url}, "
                            f"retrying in {sleep_time:.1f}s (attempt {attempt + 1}/{MAX_RETRIES})..."
                        )
                        await asyncio.sleep(sleep_time)
                        continue

                    payload = await self._read_json(response)
                    if response.status >= 400:
                        raise self._to_error(response.status, url, payload)
                    return payload, response.links

            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                sleep_time = (2 ** attempt) + random.uniform(0, 2)
                logger.warning(
                    f"Request to {url} failed (attempt {attempt + 1}/{MAX_RETRIES}): {e!r}. "
                    f"Retrying in {sleep_time:.1f}s..."
                )
                await asyncio.sleep(sleep_time)

        if isinstance(last_error, TransportError):
            raise last_error
        raise TransportError(f"Failed to fetch {url} after {MAX_RETRIES} attempts.", url=url) from last_error

    @staticmethod
    def _is_rate_limited(response: aiohttp.ClientResponse) -> bool:
        if response.status == 429:
            return True
        # GitHub signals both primary and secondary limits with a 403
        if response.status == 403:
            return "Retry-After" in response.headers or response.headers.get("X-RateLimit-Remaining") == "0"
        return False

    @staticmethod
    async def _read_json(response: aiohttp.ClientResponse) -> Any:
        try:
            return await response.json(content_type=None)
        except ValueError:
            return None

    @staticmethod
    def _to_error(status: int, url: str, payload: Any) -> ScmApiError:
        body = payload if isinstance(payload, dict) else {}
        message = f"HTTP {status} from {url}"
        if status in (401, 403):
            return AuthenticationError(message, status=status, url=url, payload=body)
        if status == 404:
            return NotFoundError(message, status=status, url=url, payload=body)
        return ScmApiError(message, status=status, url=url, payload=body)


def _retry_after_seconds(value: Optional[str]) -> int:
    """Retry-After carries either delta-seconds or an HTTP-date."""
    if not value:
        return DEFAULT_RATE_LIMIT_SLEEP
    try:
        return max(int(value), 0)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable Retry-After header {value!r}, sleeping {DEFAULT_RATE_LIMIT_SLEEP}s")
        return DEFAULT_RATE_LIMIT_SLEEP
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(int((retry_at - datetime.now(timezone.utc)).total_seconds()), 0)
