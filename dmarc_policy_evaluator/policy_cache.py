import asyncio
import time
from typing import Callable, Dict, List

import structlog

from dmarc_policy_evaluator.expiring_cache import ExpiringCache
from dmarc_policy_evaluator.policy_fetcher import TxtLookup

logger = structlog.get_logger()


class SingleFlightTxtLookup:
    """Caching wrapper around a ``TxtLookup``.

    Answers are kept for ``ttl_seconds``. Concurrent lookups of a name that
    is not cached share a single query to the wrapped lookup. Failed lookups
    are reported to every waiting caller and are not cached.
    """

    _in_flight: Dict[str, "asyncio.Future[List[str]]"]

    def __init__(
        self,
        lookup: TxtLookup,
        ttl_seconds: float,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.lookup = lookup
        self._cache: ExpiringCache[str, List[str]] = ExpiringCache(
            ttl_seconds, time_fn
        )
        self._in_flight = {}

    async def __call__(self, name: str) -> List[str]:
        key = name.lower().rstrip(".")
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)

        in_flight = self._in_flight.get(key)
        if in_flight is None:
            in_flight = asyncio.ensure_future(self._lookup_and_store(key))
            self._in_flight[key] = in_flight
            in_flight.add_done_callback(lambda fut: self._forget(key, fut))
        else:
            await logger.adebug(
                "Joining in-flight TXT lookup.",
                logger=self.__class__.__name__,
                name=key,
            )
        return list(await asyncio.shield(in_flight))

    def _forget(self, key: str, future: "asyncio.Future[List[str]]"):
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        # Waiters may all have given up, mark the failure as retrieved.
        if not future.cancelled():
            future.exception()

    async def _lookup_and_store(self, name: str) -> List[str]:
        records = await self.lookup(name)
        self._cache[name] = list(records)
        return records
