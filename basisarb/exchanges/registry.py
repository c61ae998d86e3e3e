"""Venue client cache keyed by credential context signature."""

from typing import Callable, Dict, Optional

from loguru import logger

from ..config import Config, VenueConfig, VenueContext
from .base import VenueClient
from .binance import BinanceRestClient
from .ccxt_venue import CcxtBinanceVenue
from .rate_limiter import RateLimiter

ClientFactory = Callable[[VenueContext, VenueConfig, RateLimiter], VenueClient]

CLIENT_FACTORIES: Dict[str, ClientFactory] = {
    "rest": BinanceRestClient,
    "ccxt": CcxtBinanceVenue,
}


class VenueClientCache:
    """Reuses a venue client until the credential context changes.

    All clients built by one cache share its rate limiter.
    """

    def __init__(self, limiter: Optional[RateLimiter] = None,
                 factories: Optional[Dict[str, ClientFactory]] = None):
        self.limiter = limiter
        self.factories = factories if factories is not None else CLIENT_FACTORIES
        self._clients: Dict[str, VenueClient] = {}

    def _limiter_for(self, settings: VenueConfig) -> RateLimiter:
        if self.limiter is None:
            self.limiter = RateLimiter(settings.max_requests_per_minute, settings.rate_limit_safety_factor)
        return self.limiter

    async def get(self, config: Config) -> VenueClient:
        """Return the client for the config's context, building it if the signature is new."""
        context = config.venue_context()
        key = f"{config.venue.client}:{context.signature}"
        client = self._clients.get(key)
        if client is not None:
            return client

        factory = self.factories.get(config.venue.client)
        if factory is None:
            raise ValueError(f"Unknown venue client: {config.venue.client}")

        # Drop clients built for a previous context
        for stale_key, stale in list(self._clients.items()):
            await stale.close()
            del self._clients[stale_key]

        client = factory(context, config.venue, self._limiter_for(config.venue))
        self._clients[key] = client
        logger.info(f"Venue client ready: {config.venue.client} {context!r}")
        return client

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
