from unittest.mock import Mock

SHEETS_URL = "https://script.google.com/macros/s/AKfycbTEST/exec"
ECHO_URL = "https://script.googleusercontent.com/macros/echo?user_content_key=abc&lib=xyz"
TELEGRAM_PREFIX = "https://api.telegram.org/"


def make_response(status, text="", headers=None, json_body=None):
    r = Mock()
    r.status_code = status
    r.text = text
    r.headers = headers or {}
    r.json.return_value = json_body if json_body is not None else {"ok": True}
    return r


def split_calls(post):
    """(spreadsheet calls, telegram payloads) from a patched requests.post."""
    sheets, chat = [], []
    for call in post.call_args_list:
        if call.args[0].startswith(TELEGRAM_PREFIX):
            chat.append(call.kwargs["json"])
        else:
            sheets.append(call)
    return sheets, chat
