# cogs/utils/coda_api.py

import aiohttp
import asyncio
import logging
import time
from typing import Any, Dict, List, Mapping, Optional

logger = logging.getLogger('coda_api')

RETRYABLE_STATUSES = {429, 500, 502, 503, 504}


class CodaRequestError(Exception):
    """Raised when a Coda API request cannot be completed."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RateLimitWindow:
    """Holds requests back until Coda's advertised reset time has passed."""

    def __init__(self):
        self.reset_at = 0.0
        self.lock = asyncio.Lock()

    async def wait(self):
        async with self.lock:
            delay = self.reset_at - time.time()
            if delay > 0:
                logger.warning(f"Coda rate limit active, waiting {delay:.2f}s")
                await asyncio.sleep(delay)

    def observe(self, headers: Mapping[str, str]):
        reset = headers.get('X-RateLimit-Reset')
        if not reset:
            return
        try:
            self.reset_at = float(reset)
        except ValueError:
            logger.error(f"Ignoring unreadable X-RateLimit-Reset header: {reset!r}")
            return
        if headers.get('X-RateLimit-Remaining') == '0':
            logger.warning("Coda rate limit exhausted until reset")


class CodaAPIClient:
    """Thin async client for the Coda tables that back the member ledger."""

    def __init__(self, api_token: str, base_url: str = "https://coda.io/apis/v1", timeout: float = 30):
        self.api_token = api_token
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.session: Optional[aiohttp.ClientSession] = None
        self.rate_limit = RateLimitWindow()
        self.session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        async with self.session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(
                    headers={'Authorization': f'Bearer {self.api_token}'},
                    timeout=self.timeout
                )
            return self.session

    async def close(self):
        if self.session and not self.session.closed:
            await self.session.close()
            logger.info("Coda API session closed.")

    @staticmethod
    def _retry_delay(attempt: int, backoff_factor: float, retry_after: Optional[str] = None) -> float:
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                pass
        return backoff_factor ** attempt

    async def request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        retries: int = 3,
        backoff_factor: float = 1.5
    ) -> Dict[str, Any]:
        """Call the Coda API and return the decoded JSON body.

        Rate limits, 5xx responses and connection errors are retried with
        backoff up to ``retries`` times.

        Raises:
            CodaRequestError: on a 4xx response or once retries run out.
        """
        session = await self._get_session()
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        method = method.upper()

        for attempt in range(retries + 1):
            last_attempt = attempt == retries
            await self.rate_limit.wait()
            try:
                async with session.request(method, url, json=data, params=params) as response:
                    self.rate_limit.observe(response.headers)
                    logger.debug(f"{method} {url} -> {response.status}")

                    if response.status < 300:
                        if response.content_type == 'application/json':
                            return await response.json()
                        return {}

                    body = await response.text()
                    if response.status not in RETRYABLE_STATUSES or last_attempt:
                        logger.error(f"Coda API {method} {endpoint} failed ({response.status}): {body}")
                        raise CodaRequestError(f"{response.status}: {body}", status=response.status)

                    delay = self._retry_delay(attempt, backoff_factor, response.headers.get('Retry-After'))
                    logger.warning(f"Coda API returned {response.status}, retrying in {delay}s")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                if last_attempt:
                    logger.critical(f"Coda API {method} {endpoint} failed after {retries} retries: {e}")
                    raise CodaRequestError(f"Request failed: {e}") from e
                delay = self._retry_delay(attempt, backoff_factor)
                logger.warning(f"Coda API connection error: {e}. Retrying in {delay}s")

            await asyncio.sleep(delay)

        raise CodaRequestError(f"Gave up on {method} {endpoint}")

    async def get_rows(
        self,
        doc_id: str,
        table_id: str,
        query: Optional[str] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Rows keyed by column name, following page tokens until ``limit`` is reached."""
        params: Dict[str, Any] = {'useColumnNames': 'true'}
        if query:
            params['query'] = query
        if limit:
            params['limit'] = limit

        rows: List[Dict[str, Any]] = []
        while True:
            page = await self.request('GET', f"docs/{doc_id}/tables/{table_id}/rows", params=params)
            rows.extend(page.get('items', []))
            token = page.get('nextPageToken')
            if not token or (limit and len(rows) >= limit):
                return rows[:limit] if limit else rows
            params['pageToken'] = token

    async def insert_rows(self, doc_id: str, table_id: str, rows: List[List[Dict[str, Any]]]) -> Dict[str, Any]:
        """Insert rows given as lists of ``{'column', 'value'}`` cells."""
        payload = {'rows': [{'cells': cells} for cells in rows]}
        return await self.request('POST', f'docs/{doc_id}/tables/{table_id}/rows', data=payload)

    async def update_row(self, doc_id: str, table_id: str, row_id: str, cells: List[Dict[str, Any]]) -> Dict[str, Any]:
        return await self.request('PUT', f'docs/{doc_id}/tables/{table_id}/rows/{row_id}', data={'row': {'cells': cells}})
