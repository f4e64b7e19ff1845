from __future__ import annotations

import logging
from html import escape
from typing import Any

import httpx

from creator_sniper.config import Settings
from creator_sniper.core.models import Position
from creator_sniper.utils.time import iso_ts


class TradeNotifier:
    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None) -> None:
        self.settings = settings
        self.token = settings.TELEGRAM_BOT_TOKEN
        self.chat_id = settings.TELEGRAM_CHAT_ID
        self.enabled = settings.TELEGRAM_ENABLED
        self.client = client or httpx.AsyncClient(timeout=settings.API_TIMEOUT_SEC)
        self.logger = logging.getLogger("creator_sniper.telegram")

    async def close(self) -> None:
        await self.client.aclose()

    async def send_message(self, text: str) -> None:
        if not self.enabled:
            return
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        await self._post("sendMessage", payload)

    async def send_trade_event(self, event: str, position: Position, detail: str | None = None) -> None:
        if not self.enabled:
            return
        await self.send_message(build_trade_message(event, position, detail))

    async def _post(self, method: str, payload: dict[str, Any]) -> Any:
        url = f"https://api.telegram.org/bot{self.token}/{method}"
        try:
            response = await self.client.post(url, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPError as exc:
            self.logger.warning("Telegram %s failed: %s", method, exc)
            return {}


def build_trade_message(event: str, position: Position, detail: str | None = None) -> str:
    header_map = {
        "BUY": "🟢 <b>NEW POSITION</b>",
        "LADDER": "💰 <b>LADDER SELL</b>",
        "STOP_LOSS": "🛑 <b>STOP LOSS</b>",
        "TIME_LIMIT": "⏰ <b>TIME LIMIT EXIT</b>",
        "LADDER_EXHAUSTED": "🏁 <b>LADDER COMPLETE</b>",
        "MANUAL": "🚪 <b>MANUAL CLOSE</b>",
    }
    header = header_map.get(event, f"🔔 <b>{escape(event)}</b>")

    symbol = escape(position.symbol or "UNKNOWN")
    token = escape(position.token_address)
    entry = position.entry_price or 0.0
    last = position.last_price or 0.0
    pnl = position.profit_pct(last) if entry and last else 0.0

    lines = [
        header,
        f"💎 <b>{symbol}</b> | <code>{token}</code>",
    ]
    if position.social_handle:
        lines.append(f"👤 @{escape(position.social_handle)} (score {position.reputation_score})")
    lines.extend([
        "",
        f"• Size: <b>{position.amount_base:.4f} ETH</b> ({position.size_remaining_fraction * 100:.0f}% left)",
        f"• Entry: {entry:.10f} ETH",
        f"• Last:  {last:.10f} ETH",
        f"• PnL: <b>{pnl:+.1f}%</b> | Realized {position.realized_base:.4f} ETH",
        f"• Opened: {iso_ts(position.entry_timestamp)}",
    ])
    if detail:
        lines.append("")
        lines.append(f"📝 {escape(detail)}")
    return "\n".join(lines)
