"""
Local dev server: mounts the Vercel functions under the same paths.
Set env (or .env): SHEETS_URL, SHEETS_SECRET, BOT_TOKEN, WEBHOOK_SECRET, WEBAPP_URL, DEBUG_TO_CHAT.
Run: python server.py  →  http://127.0.0.1:5001/api/subscribe
"""
import importlib
import json
import os
import pathlib

from dotenv import load_dotenv
from flask import Flask, Response, request

load_dotenv(dotenv_path=pathlib.Path(__file__).resolve().parent / ".env")

from api.config import load_config

# Import API logic from Vercel functions
subscribe_mod = importlib.import_module("api.subscribe")
webhook_mod = importlib.import_module("api.telegram-webhook")

app = Flask(__name__)


# ── Security headers ──

@app.after_request
def add_security_headers(response):
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


def _reply(status, body, headers=None):
    data = json.dumps(body) if body is not None else ""
    resp = Response(data, status=status, headers=headers or {})
    if body is not None:
        resp.mimetype = "application/json"
    return resp


# --- API routes ---

@app.route("/")
def health():
    return _reply(200, {"ok": True})


@app.route("/api/subscribe", methods=["GET", "POST", "OPTIONS", "PUT", "DELETE", "PATCH"])
def subscribe():
    status, body = subscribe_mod.respond(request.method, request.get_data(), app.config["RELAY_CONFIG"])
    return _reply(status, body, subscribe_mod.CORS_HEADERS)


@app.route("/api/telegram-webhook", methods=["GET", "POST"])
def telegram_webhook():
    status, body = webhook_mod.respond(request.method, request.headers, request.get_data(), app.config["RELAY_CONFIG"])
    return _reply(status, body)


app.config["RELAY_CONFIG"] = load_config()


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    config = app.config["RELAY_CONFIG"]
    print(f"Relay running at http://127.0.0.1:{port}/")
    if not config.sheets_url:
        print("WARNING: SHEETS_URL not set in .env; subscriptions will fail with 500.")
    if not config.bot_token:
        print("WARNING: BOT_TOKEN not set in .env; the webhook will answer 500.")
    app.run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "false").lower() == "true")
