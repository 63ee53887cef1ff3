"""Server discovery service - finds a reachable backend address.

Resolution order:
1. The last address that answered a probe (persisted)
2. The static candidate list from settings, in priority order

The first candidate whose health endpoint returns 2xx is adopted and
persisted. If nothing answers, resolve() still returns a usable URL built
from the first static candidate; calls through it may fail later.
"""
import asyncio
import logging
from datetime import datetime
from typing import List, Optional

import httpx

from ..config import Settings
from ..exceptions import ConfigurationError
from ..utils.endpoints import ServerEndpoint, parse_address
from .local_store import LocalStore

logger = logging.getLogger(__name__)


class ServerDiscoveryService:
    """Resolves, caches and persists the backend base address."""

    def __init__(self, store: LocalStore, client: httpx.AsyncClient, config: Settings):
        self._store = store
        self._client = client
        self._config = config
        self._current: Optional[ServerEndpoint] = None

    def current_endpoint(self) -> Optional[ServerEndpoint]:
        """The endpoint in use for this run, if one has been chosen."""
        return self._current

    def health_url(self, endpoint: ServerEndpoint) -> str:
        return endpoint.api_url(self._config.api_prefix, self._config.health_path)

    def api_url(self, endpoint: ServerEndpoint, path: str) -> str:
        return endpoint.api_url(self._config.api_prefix, path)

    async def get_base_url(self) -> str:
        """Base URL for API calls. Runs resolve() only when nothing is cached."""
        if self._current is None:
            return await self.resolve()
        return self._current.base_url

    async def get_endpoint(self) -> ServerEndpoint:
        if self._current is None:
            await self.resolve()
        return self._current

    async def probe(self, endpoint: ServerEndpoint, timeout: float) -> bool:
        """Liveness probe. Any 2xx from the health endpoint counts as alive.

        Failures are never raised: a timeout or connection error only means
        this candidate is skipped.
        """
        url = self.health_url(endpoint)
        try:
            start = datetime.now()
            response = await asyncio.wait_for(self._client.get(url, timeout=timeout), timeout=timeout)
            elapsed_ms = int((datetime.now() - start).total_seconds() * 1000)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.debug(f"Probe failed for {endpoint.base_url}: {type(e).__name__}: {e}")
            return False

        if response.is_success:
            logger.debug(f"Probe OK for {endpoint.base_url} ({elapsed_ms}ms)")
            return True

        logger.debug(f"Probe for {endpoint.base_url} returned {response.status_code}")
        return False

    def _static_candidates(self) -> List[ServerEndpoint]:
        """Parse the configured candidate list, skipping malformed entries."""
        candidates = []
        for address in self._config.candidate_hosts:
            try:
                candidates.append(parse_address(address, self._config.default_port))
            except ConfigurationError as e:
                logger.warning(f"Ignoring discovery candidate {address!r}: {e.message}")
        return candidates

    def _fallback(self, candidates: List[ServerEndpoint]) -> ServerEndpoint:
        if candidates:
            return candidates[0]
        return parse_address(self._config.production_url, self._config.default_port)

    async def _adopt(self, endpoint: ServerEndpoint) -> str:
        endpoint = endpoint.verified(datetime.utcnow())
        self._current = endpoint
        try:
            await self._store.save_endpoint(endpoint)
        except Exception as e:
            logger.error(f"Could not save server address {endpoint.base_url}: {e}")
        logger.info(f"Using server {endpoint.base_url}")
        return endpoint.base_url

    async def _first_alive(self, candidates: List[ServerEndpoint]) -> Optional[ServerEndpoint]:
        timeout = self._config.probe_timeout_seconds

        if self._config.discovery_parallel_probes:
            results = await asyncio.gather(*(self.probe(c, timeout) for c in candidates))
            for candidate, alive in zip(candidates, results):
                if alive:
                    return candidate
            return None

        for candidate in candidates:
            if await self.probe(candidate, timeout):
                return candidate
        return None

    async def resolve(self) -> str:
        """Find a reachable backend and return its base URL. Never raises."""
        static = self._static_candidates()
        candidates = static

        try:
            persisted = await self._store.load_endpoint()
        except Exception as e:
            logger.error(f"Could not read saved server address: {e}")
            persisted = None
        if persisted is not None:
            if await self.probe(persisted, self._config.probe_timeout_seconds):
                return await self._adopt(persisted)
            logger.info(f"Saved server {persisted.base_url} did not respond, trying candidates")
            candidates = [c for c in static if not c.same_address(persisted)]

        alive = await self._first_alive(candidates)
        if alive is not None:
            return await self._adopt(alive)

        fallback = self._fallback(static)
        self._current = fallback
        logger.warning(
            f"No server candidate responded ({len(candidates)} tried), falling back to {fallback.base_url}"
        )
        return fallback.base_url

    async def set_manual(self, address: str) -> bool:
        """Validate, probe and persist a user-supplied address.

        Returns:
            True if the server answered and was saved, False otherwise

        Raises:
            ConfigurationError: if the address is malformed
        """
        endpoint = parse_address(address, self._config.default_port)

        if not await self.probe(endpoint, self._config.manual_probe_timeout_seconds):
            logger.warning(f"Manual server {endpoint.base_url} did not respond, keeping current settings")
            return False

        await self._adopt(endpoint)
        return True

    async def reset(self) -> str:
        """Forget the saved address and rediscover from the static list."""
        await self._store.clear_endpoint()
        self._current = None
        logger.info("Server address reset, rediscovering")
        return await self.resolve()
