"""
Asynchronous client for the AUR RPC interface.

Names are split into batches that are fetched concurrently, at most
``max_parallel_requests`` at a time. Each batch retries failed requests with
exponential backoff and every response is paced by the optional bandwidth
limit.
"""

# SPDX-License-Identifier: GPL-3.0-or-later

from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import aiohttp
from yarl import URL

from .constants import APP_USER_AGENT, AUR_RPC_VERSION, RETRY_BASE_DELAY_MS, RETRY_MAX_EXPONENT
from .exceptions import NetworkError, SerializationError
from .models import AurConfig, VersionRecord
from .utils.logger import get_logger

logger = get_logger(__name__)


def partition_batches(names: List[str], max_args: int) -> List[List[str]]:
    """
    Split names into consecutive batches of at most ``max_args`` names.

    Args:
        names: Package names, in request order
        max_args: Batch size; values below 1 are treated as 1

    Returns:
        List of batches covering every name exactly once
    """
    size = max(1, max_args)
    return [names[start:start + size] for start in range(0, len(names), size)]


def backoff_delay_ms(attempt: int) -> int:
    """Delay before retrying after failed attempt number ``attempt`` (1-based)."""
    return RETRY_BASE_DELAY_MS * 2 ** min(max(attempt, 0), RETRY_MAX_EXPONENT)


def throttle_delay_ms(size_bytes: int, kib_per_sec: int) -> int:
    """
    Time needed to transfer ``size_bytes`` at ``kib_per_sec``, rounded up.

    Args:
        size_bytes: Response size in bytes
        kib_per_sec: Bandwidth limit; 0 disables throttling

    Returns:
        Delay in milliseconds
    """
    if kib_per_sec <= 0 or size_bytes <= 0:
        return 0
    denominator = kib_per_sec * 1024
    return (size_bytes * 1000 + denominator - 1) // denominator


async def _pause(delay_ms: int) -> None:
    if delay_ms > 0:
        await asyncio.sleep(delay_ms / 1000)


def _content_length(response: Any) -> Optional[int]:
    raw = response.headers.get('Content-Length')
    if raw is None:
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value if value >= 0 else None


def _optional_size(entry: Dict[str, Any], key: str, url: str) -> Optional[int]:
    value = entry.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SerializationError(f"Invalid {key} {value!r} in AUR response from {url}")
    return value


class AurClient:
    """Client for the AUR RPC ``info`` endpoint."""

    def __init__(self, config: AurConfig, session: Optional[aiohttp.ClientSession] = None) -> None:
        """
        Initialize the client.

        Args:
            config: AUR settings
            session: Optional existing session; the caller keeps ownership
        """
        self.base_url = config.base_url.rstrip('/')
        self.timeout = max(1, config.timeout)
        self.max_args = max(1, config.max_args)
        self.max_retries = max(1, config.max_retries)
        self.max_parallel_requests = max(1, config.max_parallel_requests)
        self.max_kib_per_sec = max(0, config.max_kib_per_sec)
        self.probe_sizes = config.probe_sizes

        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> 'AurClient':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                connector=aiohttp.TCPConnector(limit=self.max_parallel_requests * 2),
                headers={'User-Agent': APP_USER_AGENT},
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session if this client created it."""
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def compose_url(self, names: List[str]) -> str:
        """Build the RPC info URL for a batch of names."""
        args = ''.join(f"&arg[]={quote(name, safe='')}" for name in names)
        return f"{self.base_url}?v={AUR_RPC_VERSION}&type=info{args}"

    def snapshot_url(self, path: str) -> str:
        """Resolve a ``URLPath`` to an absolute snapshot URL."""
        if path.startswith(('http://', 'https://')):
            return path

        root = self.base_url
        index = root.rfind('/rpc')
        if index != -1:
            root = root[:index]
        if not path.startswith('/'):
            path = '/' + path
        return root + path

    async def fetch_versions(self, names: Iterable[str]) -> Dict[str, VersionRecord]:
        """
        Fetch AUR versions and sizes for the given packages.

        All batches run to completion. If any failed, the error of the
        earliest failing batch is raised and no results are returned.

        Args:
            names: Package names to look up

        Returns:
            Mapping of package name to AUR record, for names the AUR knows

        Raises:
            NetworkError: If a batch exhausted its retries or the AUR reported an error
            SerializationError: If a response could not be decoded
        """
        ordered = sorted(set(names))
        if not ordered:
            return {}

        batches = partition_batches(ordered, self.max_args)
        logger.info(f"Querying AUR for {len(ordered)} packages in {len(batches)} batches")

        session = self._get_session()
        gate = asyncio.Semaphore(self.max_parallel_requests)
        tasks = [asyncio.ensure_future(self._fetch_batch(session, gate, batch)) for batch in batches]

        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        versions: Dict[str, VersionRecord] = {}
        for index, outcome in enumerate(outcomes):
            if isinstance(outcome, BaseException):
                logger.error(f"AUR batch {index + 1}/{len(batches)} failed: {outcome}")
                raise outcome
            versions.update(outcome)

        logger.info(f"AUR reports {len(versions)} of {len(ordered)} queried packages")
        return versions

    async def _fetch_batch(self, session: aiohttp.ClientSession, gate: asyncio.Semaphore,
                           batch: List[str]) -> Dict[str, VersionRecord]:
        async with gate:
            url = self.compose_url(batch)
            payload, size = await self._request_info(session, url)

            if not isinstance(payload, dict):
                raise SerializationError(f"AUR response from {url} is not a JSON object")

            error = payload.get('error')
            if error is not None:
                raise NetworkError(f"AUR responded with error for {url}: {error}", url=url, status=200)

            results = payload.get('results', [])
            if not isinstance(results, list):
                raise SerializationError(f"AUR response from {url} has no results list")

            await self._throttle(size)
            return await self._parse_results(session, url, batch, results)

    async def _request_info(self, session: aiohttp.ClientSession, url: str):
        attempt = 0
        while True:
            attempt += 1
            status: Optional[int] = None
            try:
                async with session.get(URL(url, encoded=True)) as response:
                    status = response.status
                    if status == 200:
                        try:
                            payload = await response.json(content_type=None)
                        except ValueError as e:
                            raise SerializationError(f"Failed to decode AUR response from {url}: {e}") from e
                        return payload, _content_length(response)
                    logger.warning(f"AUR request returned status {status} "
                                   f"(attempt {attempt}/{self.max_retries})")
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                logger.warning(f"AUR request failed (attempt {attempt}/{self.max_retries}): "
                               f"{e or type(e).__name__}")

            if attempt >= self.max_retries:
                raise NetworkError(
                    f"AUR request {url} failed with status {status} after {attempt} attempts",
                    url=url, status=status,
                )
            await _pause(backoff_delay_ms(attempt))

    async def _parse_results(self, session: aiohttp.ClientSession, url: str,
                             batch: List[str], results: List[Any]) -> Dict[str, VersionRecord]:
        requested = set(batch)
        versions: Dict[str, VersionRecord] = {}

        for entry in results:
            if not isinstance(entry, dict):
                raise SerializationError(f"Malformed AUR result in response from {url}")

            name = entry.get('Name')
            version = entry.get('Version')
            if not isinstance(name, str) or not isinstance(version, str):
                raise SerializationError(f"AUR result without Name/Version in response from {url}")

            if name not in requested:
                logger.debug(f"Ignoring unrequested AUR result: {name}")
                continue

            download_size = _optional_size(entry, 'CompressedSize', url)
            installed_size = _optional_size(entry, 'InstalledSize', url)

            url_path = entry.get('URLPath')
            if download_size is None and self.probe_sizes and isinstance(url_path, str) and url_path:
                download_size = await self._probe_size(session, url_path)

            try:
                versions[name] = VersionRecord(version, download_size, installed_size)
            except ValueError as e:
                raise SerializationError(f"Invalid AUR result for {name}: {e}") from e

        return versions

    async def _probe_size(self, session: aiohttp.ClientSession, path: str) -> Optional[int]:
        url = self.snapshot_url(path)
        try:
            async with session.head(url, allow_redirects=True) as response:
                if not 200 <= response.status < 300:
                    logger.debug(f"Size probe for {url} returned status {response.status}")
                    return None
                size = _content_length(response)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Size probe for {url} failed: {e}")
            return None

        await self._throttle(size)
        return size

    async def _throttle(self, size: Optional[int]) -> None:
        if size is None:
            return
        delay = throttle_delay_ms(size, self.max_kib_per_sec)
        if delay:
            await _pause(delay)
