"""
Relay core: delivers one subscription row to the spreadsheet web app (Google Apps Script).

Apps Script answers a POST to /exec with a 302 to script.googleusercontent.com. Letting
the HTTP client follow it turns the POST into a GET and the row is lost, so every hop is
issued by hand with allow_redirects=False and the exact same body. When the redirect is
unusable (no Location, or a Google login/docs page), the execution-proxy URL is scraped
out of the HTML body instead.
"""
import html
import json
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import urljoin, urlparse

import requests

from api.errors import ValidationError
from api.security import coerce_id, coerce_text, snippet

REDIRECT_CODES = {301, 302, 303, 307, 308}
METHOD_NOT_ALLOWED = 405
MAX_REQUESTS = 3  # first hop, redirect hop, one scrape-retry hop

# Hosts Google serves instead of a usable redirect (sign-in walls, "moved" docs pages).
GENERIC_HOSTS = {
    "accounts.google.com",
    "developers.google.com",
    "support.google.com",
    "www.google.com",
}
SCRAPE_TARGET_RE = re.compile(r"https://script\.googleusercontent\.com/macros/echo\?[^\"'<>\s]+")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ── Record ──

@dataclass(frozen=True)
class SubscriptionRecord:
    email: str
    source: str
    tg_user_id: str = ""
    tg_username: str = ""
    secret: str = ""
    ts: str = field(default_factory=now_iso)

    def __post_init__(self):
        if not self.email:
            raise ValidationError("email required")

    @classmethod
    def build(cls, email, source=None, *, default_source, tg_user_id=None, tg_username=None, secret=""):
        """Sanitize raw input into a record. Raises ValidationError when email is blank."""
        return cls(
            email=coerce_text(email, max_length=320),
            source=coerce_text(source, max_length=64) or default_source,
            tg_user_id=coerce_id(tg_user_id),
            tg_username=coerce_text(tg_username, max_length=64),
            secret=secret or "",
        )

    def to_payload(self) -> dict:
        payload = {
            "email": self.email,
            "tg_user_id": self.tg_user_id,
            "tg_username": self.tg_username,
            "source": self.source,
            "ts": self.ts,
        }
        if self.secret:
            payload["secret"] = self.secret
        return payload

    def to_body(self) -> bytes:
        return json.dumps(self.to_payload(), ensure_ascii=False).encode("utf-8")

    def __repr__(self):
        return f"SubscriptionRecord(email={self.email!r}, source={self.source!r}, ts={self.ts!r})"


# ── Outcomes ──

@dataclass(frozen=True)
class Delivered:
    ok = True

    def describe(self) -> str:
        return "delivered"


@dataclass(frozen=True)
class DeliveredViaRedirect:
    hops: int
    final_host: str = ""
    ok = True

    def describe(self) -> str:
        return f"delivered via {self.hops} redirect hop(s) to {self.final_host}"


@dataclass(frozen=True)
class Failed:
    stage: str
    status_code: int
    body_snippet: str = ""
    ok = False

    def describe(self) -> str:
        return f"{self.stage} {self.status_code}: {self.body_snippet}"


# ── Redirect resolution ──

def _host(url: str) -> str:
    try:
        return (urlparse(url).hostname or "").lower()
    except ValueError:
        return ""


def is_generic_host(url: str) -> bool:
    return (urlparse(url).hostname or "").lower() in GENERIC_HOSTS


def scrape_target(text: str) -> str | None:
    """First Apps Script execution-proxy URL in an HTML body, entities decoded."""
    if not text:
        return None
    m = SCRAPE_TARGET_RE.search(text)
    if not m:
        return None
    return html.unescape(m.group(0)).replace("\\u0026", "&")


def resolve_redirect(location: str | None, base_url: str, body: str) -> str | None:
    """Location header first; the HTML body when the header is missing, unparsable or generic."""
    if location and location.strip():
        try:
            target = urljoin(base_url, location.strip())
            if not is_generic_host(target):
                return target
        except ValueError:
            print(f"[relay] unparsable Location: {location[:100]!r}", file=sys.stderr)
    return scrape_target(body)


# ── Delivery ──

def _post(url: str, body: bytes, timeout):
    return requests.post(
        url,
        data=body,
        headers={"Content-Type": "application/json"},
        allow_redirects=False,
        timeout=timeout,
    )


def _text(resp) -> str:
    try:
        return resp.text or ""
    except (requests.RequestException, UnicodeDecodeError):
        return ""


def _failed(stage: str, status: int, text: str, record: SubscriptionRecord) -> Failed:
    outcome = Failed(stage, status, snippet(text, record.secret))
    print(f"[relay] {outcome.describe()}", file=sys.stderr)
    return outcome


def deliver(record: SubscriptionRecord, endpoint_url: str, timeout: float | None = None):
    """POST record to endpoint_url, chasing up to two redirects by hand.

    Returns Delivered, DeliveredViaRedirect or Failed. Never raises for transport errors.
    """
    body = record.to_body()
    url = endpoint_url
    resp = None
    text = ""
    try:
        for attempt in range(MAX_REQUESTS):
            resp = _post(url, body, timeout)
            status = resp.status_code
            print(f"[relay] hop {attempt} {_host(url)} -> {status}", file=sys.stderr)

            if 200 <= status < 300:
                if attempt == 0:
                    return Delivered()
                return DeliveredViaRedirect(hops=attempt, final_host=_host(url))

            text = _text(resp)
            if status in REDIRECT_CODES:
                target = resolve_redirect(resp.headers.get("Location"), url, text)
                if not target:
                    return _failed("redirect_unresolved", status, text, record)
            elif status == METHOD_NOT_ALLOWED and scrape_target(text):
                # Google's intermediate page rejects the POST but links the real target.
                target = scrape_target(text)
            else:
                return _failed("first_hop" if attempt == 0 else "final_hop", status, text, record)
            url = target
    except requests.RequestException as e:
        return _failed("transport", 0, f"{type(e).__name__}: {e}", record)

    return _failed("final_hop", resp.status_code, text, record)
