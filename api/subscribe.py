"""
Vercel serverless: /api/subscribe. The mini-app posts an email here and it is relayed
to the spreadsheet web app.
Requires: SHEETS_URL. Optional: SHEETS_SECRET, SHEETS_TIMEOUT.
"""
import json
import sys
from http.server import BaseHTTPRequestHandler

from api.config import Config, load_config
from api.errors import ConfigurationError, RelayError, UpstreamError, ValidationError
from api.relay import SubscriptionRecord, deliver
from api.security import coerce_text

SOURCE = "pickle-miniapp"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}


def _parse(raw: bytes | str) -> dict:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        data = json.loads(raw or "{}")
    except json.JSONDecodeError:
        raise ValidationError("bad json")
    if not isinstance(data, dict):
        raise ValidationError("bad json")
    return data


def subscribe(data: dict, config: Config):
    """Validate one submission and relay it. Returns the delivery outcome or raises RelayError."""
    email = coerce_text(data.get("email"), max_length=320)
    if not email:
        raise ValidationError("email required")
    if not config.sheets_url:
        raise ConfigurationError("SHEETS_URL missing")

    record = SubscriptionRecord.build(
        email,
        data.get("source"),
        default_source=SOURCE,
        tg_user_id=data.get("tg_user_id"),
        tg_username=data.get("tg_username"),
        secret=config.sheets_secret,
    )
    outcome = deliver(record, config.sheets_url, timeout=config.relay_timeout)
    if not outcome.ok:
        raise UpstreamError(outcome)
    return outcome


def respond(method: str, raw: bytes | str, config: Config):
    """Returns (status, body). body is None for an empty response."""
    method = (method or "").upper()
    if method == "OPTIONS":
        return 204, None
    if method == "GET":
        return 200, {"ok": True, "expects": "POST", "has_env": config.env_flags()}
    if method != "POST":
        return 405, {"ok": False, "error": "method not allowed"}

    try:
        outcome = subscribe(_parse(raw), config)
    except UpstreamError as e:
        print(f"[subscribe] upstream failed: {e}", file=sys.stderr)
        return e.status, {"ok": False, "stage": e.outcome.stage, "error": str(e)}
    except RelayError as e:
        return e.status, {"ok": False, "error": str(e)}

    print(f"[subscribe] {outcome.describe()}", file=sys.stderr)
    return 200, {"ok": True}


class handler(BaseHTTPRequestHandler):
    def do_OPTIONS(self):
        self._handle("OPTIONS")

    def do_GET(self):
        self._handle("GET")

    def do_POST(self):
        self._handle("POST")

    def do_PUT(self):
        self._handle("PUT")

    def do_DELETE(self):
        self._handle("DELETE")

    def do_PATCH(self):
        self._handle("PATCH")

    def do_HEAD(self):
        self._handle("HEAD")

    def _handle(self, method):
        content_len = int(self.headers.get("Content-Length", 0) or 0)
        raw = self.rfile.read(content_len) if content_len else b""
        status, body = respond(method, raw, load_config())
        self._send(status, body)

    def _send(self, status, body):
        self.send_response(status)
        for name, value in CORS_HEADERS.items():
            self.send_header(name, value)
        if body is not None:
            self.send_header("Content-type", "application/json; charset=utf-8")
        self.end_headers()
        if body is not None and self.command != "HEAD":
            self.wfile.write(json.dumps(body).encode("utf-8"))
