"""
Minimal Telegram Bot API client: just sendMessage and the keyboards the webhook uses.
"""
import requests

API_BASE = "https://api.telegram.org"


class TelegramError(RuntimeError):
    pass


def web_app_keyboard(url: str, label: str = "Open mini-app") -> dict:
    """Reply keyboard with one button that launches the mini-app.

    Only keyboard-launched mini-apps can send web_app_data back to the chat,
    so this is a reply keyboard rather than an inline one.
    """
    return {
        "keyboard": [[{"text": label, "web_app": {"url": url}}]],
        "resize_keyboard": True,
        "one_time_keyboard": True,
    }


def remove_keyboard() -> dict:
    return {"remove_keyboard": True}


def send_message(token: str, chat_id, text: str, reply_markup: dict | None = None, timeout: float = 10) -> dict:
    payload = {"chat_id": chat_id, "text": text}
    if reply_markup:
        payload["reply_markup"] = reply_markup
    try:
        resp = requests.post(f"{API_BASE}/bot{token}/sendMessage", json=payload, timeout=timeout)
    except requests.RequestException as e:
        # The token is part of the URL; keep it out of the message.
        raise TelegramError(f"sendMessage failed: {type(e).__name__}") from e
    try:
        data = resp.json()
    except ValueError:
        data = {}
    if resp.status_code >= 300 or not data.get("ok", False):
        raise TelegramError(f"sendMessage {resp.status_code}: {data.get('description', '')}")
    return data
