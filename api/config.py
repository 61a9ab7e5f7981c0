"""
Deployment configuration, read once from the environment and passed to each intake.
"""
import os
from dataclasses import dataclass

TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    sheets_url: str = ""
    sheets_secret: str = ""
    bot_token: str = ""
    webhook_secret: str = ""
    webapp_url: str = ""
    debug_to_chat: bool = False
    relay_timeout: float | None = None

    def env_flags(self) -> dict:
        """Presence flags for the healthcheck. Never the values themselves."""
        return {
            "SHEETS_URL": bool(self.sheets_url),
            "SHEETS_SECRET": bool(self.sheets_secret),
            "BOT_TOKEN": bool(self.bot_token),
            "WEBAPP_URL": bool(self.webapp_url),
        }


def _timeout(raw: str) -> float | None:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def load_config(environ=None) -> Config:
    env = os.environ if environ is None else environ
    return Config(
        sheets_url=(env.get("SHEETS_URL") or "").strip(),
        sheets_secret=env.get("SHEETS_SECRET") or "",
        bot_token=(env.get("BOT_TOKEN") or env.get("TELEGRAM_BOT_TOKEN") or "").strip(),
        webhook_secret=env.get("WEBHOOK_SECRET") or env.get("TELEGRAM_WEBHOOK_SECRET") or "",
        webapp_url=(env.get("WEBAPP_URL") or "").strip(),
        debug_to_chat=(env.get("DEBUG_TO_CHAT") or "").strip().lower() in TRUTHY,
        relay_timeout=_timeout(env.get("SHEETS_TIMEOUT")),
    )
