"""Telegram notifications for trades and critical events."""

import asyncio
import html
import time
from typing import Optional

import aiohttp
from loguru import logger

from ..config import AlertConfig
from ..core.types import ExecutionOutcome

TELEGRAM_API = "https://api.telegram.org"


class TelegramNotifier:
    """Send-only Telegram notifier."""

    def __init__(self, config: AlertConfig, session: Optional[aiohttp.ClientSession] = None):
        self.config = config
        self.enabled = bool(config.telegram_token and config.telegram_chat_id)
        self._session = session
        self._owns_session = session is None

        # Rate limiting
        self.last_message_time = 0.0
        self.min_interval_s = 1.0

        if not self.enabled:
            logger.warning("Telegram notifications disabled - missing token or chat ID")

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
            self._owns_session = True
        return self._session

    async def send_message(self, text: str) -> bool:
        """Send a message to Telegram with rate limiting."""
        if not self.enabled:
            return False

        elapsed = time.time() - self.last_message_time
        if elapsed < self.min_interval_s:
            await asyncio.sleep(self.min_interval_s - elapsed)

        url = f"{TELEGRAM_API}/bot{self.config.telegram_token}/sendMessage"
        payload = {"chat_id": self.config.telegram_chat_id, "text": text, "parse_mode": "HTML"}
        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as resp:
                self.last_message_time = time.time()
                if resp.status != 200:
                    logger.error(f"Telegram send failed: HTTP {resp.status} {await resp.text()}")
                    return False
                return True
        except Exception as e:
            logger.error(f"Telegram send failed: {e}")
            return False

    async def notify_critical(self, outcome: ExecutionOutcome) -> bool:
        """Alert on an outcome that left an open position."""
        legs = "\n".join(
            f"• {leg.market.value} {leg.side.value} {leg.symbol}: {leg.status or 'error'}"
            for leg in outcome.leg_results
        )
        text = (
            f"🚨 <b>MANUAL INTERVENTION REQUIRED</b>\n"
            f"{outcome.kind} {html.escape(outcome.symbol)}\n"
            f"{html.escape(outcome.error or '')}\n{html.escape(legs)}"
        )
        return await self.send_message(text)

    async def notify_trade(self, outcome: ExecutionOutcome) -> bool:
        if not self.config.notify_all_trades:
            return False
        icon = "✅" if outcome.success else "❌"
        text = (
            f"{icon} {outcome.kind} {html.escape(outcome.symbol)} "
            f"PnL ${outcome.realized_profit:.4f}"
            + (" (simulated)" if outcome.simulated else "")
        )
        return await self.send_message(text)

    async def close(self) -> None:
        if self._session and self._owns_session and not self._session.closed:
            await self._session.close()
