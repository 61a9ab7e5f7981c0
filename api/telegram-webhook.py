"""
Vercel serverless: POST /api/telegram-webhook: Telegram bot updates.

/start replies with a keyboard button that opens the mini-app; web_app_data sent back
from the mini-app is relayed to the spreadsheet like /api/subscribe does. Anything that
goes wrong after the secret check is logged and acknowledged with 200 so Telegram does
not retry the update.
Requires: BOT_TOKEN, SHEETS_URL, WEBAPP_URL. Optional: WEBHOOK_SECRET, SHEETS_SECRET, DEBUG_TO_CHAT.
"""
import json
import sys
from http.server import BaseHTTPRequestHandler

from api import telegram
from api.config import Config, load_config
from api.errors import ConfigurationError, PlatformProtocolError, RelayError
from api.relay import SubscriptionRecord, deliver
from api.security import coerce_text, secret_matches

SOURCE = "pickle-bot"
SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

START_TEXT = "Open the mini-app to subscribe."
RETRY_TEXT = "Could not read your email. Please try again."
THANKS_TEXT = "Thanks! {email} is subscribed."


def _is_start(text: str) -> bool:
    parts = (text or "").split()
    if not parts:
        return False
    return parts[0] == "/start" or parts[0].startswith("/start@")


def _web_app_payload(raw) -> dict:
    if not isinstance(raw, str):
        return {}
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def _as_dict(value) -> dict:
    return value if isinstance(value, dict) else {}


def _message(update: dict) -> dict:
    return _as_dict(update.get("message"))


def _chat_id(message: dict):
    return _as_dict(message.get("chat")).get("id")


def handle_start(chat_id, config: Config):
    if not config.webapp_url:
        raise ConfigurationError("WEBAPP_URL missing")
    telegram.send_message(
        config.bot_token, chat_id, START_TEXT,
        reply_markup=telegram.web_app_keyboard(config.webapp_url),
    )


def handle_web_app_data(message: dict, config: Config):
    chat_id = _chat_id(message)
    data = _web_app_payload(_as_dict(message.get("web_app_data")).get("data"))
    email = coerce_text(data.get("email"), max_length=320)
    if not email:
        telegram.send_message(config.bot_token, chat_id, RETRY_TEXT)
        return
    if not config.sheets_url:
        raise ConfigurationError("SHEETS_URL missing")

    sender = _as_dict(message.get("from"))
    record = SubscriptionRecord.build(
        email,
        data.get("source"),
        default_source=SOURCE,
        tg_user_id=sender.get("id"),
        tg_username=sender.get("username"),
        secret=config.sheets_secret,
    )
    outcome = deliver(record, config.sheets_url, timeout=config.relay_timeout)
    print(f"[telegram-webhook] chat {chat_id}: {outcome.describe()}", file=sys.stderr)

    # The user is thanked either way; failed rows are recovered from the logs.
    text = THANKS_TEXT.format(email=record.email)
    if config.debug_to_chat and not outcome.ok:
        text += f"\n\n[debug] {outcome.describe()}"
    telegram.send_message(config.bot_token, chat_id, text, reply_markup=telegram.remove_keyboard())


def handle_update(update: dict, config: Config):
    message = _message(update)
    chat_id = _chat_id(message)
    if chat_id is None:
        return
    if message.get("web_app_data"):
        handle_web_app_data(message, config)
    elif _is_start(message.get("text")):
        handle_start(chat_id, config)


def _report_to_chat(update: dict, config: Config, error: Exception):
    if not config.debug_to_chat:
        return
    chat_id = _chat_id(_message(update))
    if chat_id is None:
        return
    try:
        telegram.send_message(config.bot_token, chat_id, f"[debug] {type(error).__name__}: {error}")
    except telegram.TelegramError as e:
        print(f"[telegram-webhook] debug report failed: {e}", file=sys.stderr)


def authorize(headers, config: Config):
    if not config.bot_token:
        raise ConfigurationError("BOT_TOKEN missing")
    if not secret_matches(config.webhook_secret, headers.get(SECRET_HEADER)):
        raise PlatformProtocolError("forbidden")


def respond(method: str, headers, raw: bytes | str, config: Config):
    """Returns (status, body). Only a missing token or a bad secret produce a non-200."""
    if (method or "").upper() != "POST":
        return 200, {"ok": True}
    try:
        authorize(headers, config)
    except RelayError as e:
        print(f"[telegram-webhook] rejected: {e}", file=sys.stderr)
        return e.status, {"ok": False, "error": str(e)}

    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        update = json.loads(raw or "{}")
    except json.JSONDecodeError:
        print("[telegram-webhook] unparsable update", file=sys.stderr)
        return 200, {"ok": True}
    if not isinstance(update, dict):
        return 200, {"ok": True}

    try:
        handle_update(update, config)
    except Exception as e:
        print(f"[telegram-webhook] {type(e).__name__}: {e}", file=sys.stderr)
        _report_to_chat(update, config, e)
    return 200, {"ok": True}


class handler(BaseHTTPRequestHandler):
    def do_POST(self):
        content_len = int(self.headers.get("Content-Length", 0) or 0)
        raw = self.rfile.read(content_len) if content_len else b""
        self._send(*respond("POST", self.headers, raw, load_config()))

    def do_GET(self):
        self._ack()

    def do_HEAD(self):
        self._ack()

    def do_PUT(self):
        self._ack()

    def do_PATCH(self):
        self._ack()

    def do_DELETE(self):
        self._ack()

    def do_OPTIONS(self):
        self._ack()

    def _ack(self):
        self._send(*respond(self.command, self.headers, b"", load_config()))

    def _send(self, status, body):
        self.send_response(status)
        self.send_header("Content-type", "application/json")
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(json.dumps(body).encode("utf-8"))
