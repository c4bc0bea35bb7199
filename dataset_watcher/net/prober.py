"""
Checks whether a remote file exists without downloading its body.
"""

import asyncio
import logging

import aiohttp

from dataset_watcher.models.config import DEFAULT_USER_AGENT
from dataset_watcher.models.state import ProbeResult

log = logging.getLogger(__name__)

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}

# Errors that count as a transport failure for a single probe attempt.
TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError, ValueError)


class ExistenceProber:
    """
    Two-tier existence check for a URL.

    A HEAD request is tried first. Some servers reject HEAD (403/405) or fail it
    outright while still serving ranged GETs, so any answer other than a clear
    200 or 404 falls back to a GET for the first byte only.
    """

    def __init__(
        self,
        timeout: float = 15.0,
        user_agent: str = DEFAULT_USER_AGENT,
        session: aiohttp.ClientSession | None = None,
    ):
        """
        Initializes the prober.

        Args:
            timeout: Upper bound in seconds for each of the two request attempts.
            user_agent: User-Agent header sent with every probe.
            session: An existing session to use. When omitted, the prober creates
                and owns one.
        """
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._user_agent = user_agent
        self._session = session
        self._owns_session = session is None

    async def _initialize_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                headers={"User-Agent": self._user_agent},
                connector=aiohttp.TCPConnector(limit=2, ttl_dns_cache=300),
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session if the prober created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()

    async def probe(self, url: str) -> ProbeResult:
        """
        Determines whether `url` exists. Never raises.

        Returns:
            A ProbeResult whose `status` is the last HTTP status seen, or None if
            the deciding request failed at the transport level.
        """
        session = await self._initialize_session()

        try:
            async with session.head(
                url,
                allow_redirects=True,
                headers=NO_CACHE_HEADERS,
                timeout=self._timeout,
            ) as response:
                status = response.status
            if status == 200:
                return ProbeResult(exists=True, status=status)
            if status == 404:
                return ProbeResult(exists=False, status=status)
            log.debug(f"HEAD {url} returned {status}, retrying with a ranged GET.")
        except TRANSPORT_ERRORS as e:
            log.debug(f"HEAD {url} failed ({type(e).__name__}: {e}), retrying with GET.")

        try:
            async with session.get(
                url,
                allow_redirects=True,
                headers={**NO_CACHE_HEADERS, "Range": "bytes=0-0"},
                timeout=self._timeout,
            ) as response:
                status = response.status
        except TRANSPORT_ERRORS as e:
            log.debug(f"Ranged GET {url} failed: {type(e).__name__}: {e}")
            return ProbeResult(exists=False, status=None)

        if status in (200, 206):
            return ProbeResult(exists=True, status=status)
        if status != 404:
            log.debug(f"Ranged GET {url} returned {status}, treating as absent.")
        return ProbeResult(exists=False, status=status)
