"""
Subscription intake: method gating, validation, configuration and upstream mapping.
"""
import importlib
import json
from dataclasses import replace
from unittest.mock import patch

import requests

from tests.helpers import ECHO_URL, SHEETS_URL, make_response

subscribe = importlib.import_module("api.subscribe")


def _post(body, config):
    raw = body if isinstance(body, (bytes, str)) else json.dumps(body)
    return subscribe.respond("POST", raw, config)


class TestMethods:
    def test_preflight_is_empty(self, config):
        assert subscribe.respond("OPTIONS", b"", config) == (204, None)

    def test_healthcheck_exposes_only_flags(self, config):
        status, body = subscribe.respond("GET", b"", config)
        assert status == 200
        assert body["expects"] == "POST"
        assert body["has_env"]["SHEETS_URL"] is True
        assert body["has_env"]["SHEETS_SECRET"] is True
        assert all(isinstance(v, bool) for v in body["has_env"].values())
        assert config.sheets_secret not in json.dumps(body)
        assert config.sheets_url not in json.dumps(body)

    def test_other_methods_not_allowed(self, config):
        status, body = subscribe.respond("DELETE", b"", config)
        assert status == 405
        assert body["ok"] is False


class TestValidation:
    def test_bad_json(self, config):
        status, body = _post(b"{not json", config)
        assert status == 400
        assert body["error"] == "bad json"

    def test_json_array_is_rejected(self, config):
        assert _post([1, 2], config)[0] == 400

    def test_missing_email(self, config):
        status, body = _post({}, config)
        assert status == 400
        assert "email" in body["error"]

    def test_blank_email(self, config):
        assert _post({"email": "   "}, config)[0] == 400

    def test_empty_body(self, config):
        assert _post(b"", config)[0] == 400

    def test_control_character_email(self, config):
        assert _post({"email": "\x01\x02"}, config)[0] == 400

    def test_non_scalar_email(self, config):
        assert _post({"email": {"a": 1}}, config)[0] == 400
        assert _post({"email": True}, config)[0] == 400

    @patch("api.relay.requests.post")
    def test_missing_endpoint_config(self, post, config):
        status, body = _post({"email": "a@b.com"}, replace(config, sheets_url=""))
        assert status == 500
        assert "SHEETS_URL" in body["error"]
        post.assert_not_called()


@patch("api.relay.requests.post")
class TestRelay:
    def test_success(self, post, config):
        post.return_value = make_response(200)
        status, body = _post({"email": " a@b.com ", "tg_user_id": 7, "tg_username": "pickle"}, config)
        assert (status, body) == (200, {"ok": True})
        sent = json.loads(post.call_args.kwargs["data"])
        assert sent["email"] == "a@b.com"
        assert sent["tg_user_id"] == "7"
        assert sent["source"] == "pickle-miniapp"
        assert sent["secret"] == config.sheets_secret
        assert post.call_args.args[0] == SHEETS_URL

    def test_source_is_passed_through(self, post, config):
        post.return_value = make_response(200)
        _post({"email": "a@b.com", "source": "landing"}, config)
        assert json.loads(post.call_args.kwargs["data"])["source"] == "landing"

    def test_success_via_redirect(self, post, config):
        post.side_effect = [make_response(302, headers={"Location": ECHO_URL}), make_response(200)]
        assert _post({"email": "a@b.com"}, config) == (200, {"ok": True})

    def test_unreachable_endpoint(self, post, config):
        post.side_effect = requests.ConnectionError("Name or service not known")
        status, body = _post({"email": "a@b.com"}, config)
        assert status == 502
        assert body["ok"] is False
        assert body["stage"] in ("transport", "first_hop")
        assert body["error"].startswith("transport 0:")

    def test_upstream_error_body(self, post, config):
        post.return_value = make_response(403, f"denied for {config.sheets_secret}")
        status, body = _post({"email": "a@b.com"}, config)
        assert status == 502
        assert body["error"].startswith("first_hop 403: denied for")
        assert config.sheets_secret not in body["error"]

    def test_numeric_email_is_coerced(self, post, config):
        post.return_value = make_response(200)
        assert _post({"email": 12345}, config)[0] == 200
        assert json.loads(post.call_args.kwargs["data"])["email"] == "12345"

    def test_unparsable_location_is_a_gateway_error(self, post, config):
        post.return_value = make_response(302, "", headers={"Location": "http://[bad/exec"})
        status, body = _post({"email": "a@b.com"}, config)
        assert status == 502
        assert body["stage"] == "redirect_unresolved"
