from __future__ import annotations

import logging
from pathlib import Path

from creator_sniper.config import Settings


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for important bot events."""

    # Readable "Terminal" Palette (High Contrast)
    GREY = "\x1b[90m"            # Bright Black (Grey)
    NEON_GREEN = "\x1b[92m"      # Bright Green (Standard)
    NEON_CYAN = "\x1b[96m"       # Bright Cyan (Standard)
    NEON_RED = "\x1b[91m"        # Bright Red (Standard)
    MAGENTA = "\x1b[95m"         # Bright Magenta (Standard)
    YELLOW = "\x1b[93m"          # Bright Yellow
    RESET = "\x1b[0m"

    DATE_FMT = "%H:%M:%S"

    def format(self, record: logging.LogRecord) -> str:
        # Base color based on level
        if record.levelno >= logging.ERROR:
            color = self.NEON_RED
        elif record.levelno >= logging.WARNING:
            color = self.YELLOW
        else:
            color = self.GREY

        msg = str(record.msg)

        # Errors keep red regardless of keywords
        if record.levelno < logging.ERROR:
            # 1. POSITIVE / ACTION
            if "QUALIFIES" in msg or "BUY" in msg or "OPENED" in msg:
                color = self.NEON_GREEN
            # 2. DISCOVERY
            elif "NEW COIN" in msg:
                color = self.NEON_CYAN
            # 3. EXIT / PROFIT
            elif "SELL" in msg or "LADDER" in msg or "CLOSED" in msg or "STOP LOSS" in msg or "TIME LIMIT" in msg:
                color = self.MAGENTA
            # 4. REJECTION / NOISE (Dim them down)
            elif "REJECT" in msg or "FILTERED" in msg or "SKIPPED" in msg:
                color = self.GREY

        formatter = logging.Formatter(
            f"{color}%(asctime)s %(levelname)-7s %(message)s{self.RESET}", datefmt=self.DATE_FMT
        )
        return formatter.format(record)


def setup_logging(settings: Settings) -> None:
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "bot.log"

    # File Handler (Plain text, no colors, always DEBUG)
    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    file_handler.setLevel(logging.DEBUG)

    # Console Handler (Colored, honours LOG_LEVEL)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(ColoredFormatter())
    console_handler.setLevel(settings.LOG_LEVEL)

    # Root Logger
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)

    # Remove existing handlers to avoid duplicates on reload
    if logger.hasHandlers():
        logger.handlers.clear()

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    # Silence noisy HTTP libraries - only show WARNING and above
    for noisy in ("httpx", "httpcore", "aiohttp", "web3", "urllib3", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
