# tests/conftest.py
from __future__ import annotations

import os
import tempfile
from urllib.parse import urlencode

import pytest
import responses

# ---------- Env (must be set before steamauth.config / steamauth.db import) ----------
_TMP = tempfile.mkdtemp(prefix="steamauth-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["APP_BASE_URL"] = "http://computer.local:5000"
os.environ["STEAM_API_KEY"] = ""
os.environ.pop("STEAM_REALM", None)
os.environ.pop("STEAM_RETURN_URL", None)

STEAM_ID = "76561197960287930"
REALM = "http://computer.local"
RETURN_URL = "http://computer.local:5000/auth/steam/return"
SIGNED = "signed,op_endpoint,claimed_id,identity,return_to,response_nonce,assoc_handle"


def callback_params(**overrides) -> dict:
    """Query of a well-formed Steam id_res callback. ``None`` drops a key."""
    params = {
        "openid.ns": "http://specs.openid.net/auth/2.0",
        "openid.mode": "id_res",
        "openid.op_endpoint": "https://steamcommunity.com/openid/login",
        "openid.claimed_id": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
        "openid.identity": f"https://steamcommunity.com/openid/id/{STEAM_ID}",
        "openid.return_to": RETURN_URL,
        "openid.response_nonce": "2024-05-01T12:00:00ZabcDEF123=",
        "openid.assoc_handle": "1234567890",
        "openid.signed": SIGNED,
        "openid.sig": "W0u5DRbtHE1GG0ZKXjerUZDUGmc=",
    }
    for key, value in overrides.items():
        key = "openid." + key
        if value is None:
            params.pop(key, None)
        else:
            params[key] = value
    return params


def callback_url(base: str = RETURN_URL, **overrides) -> str:
    return f"{base}?{urlencode(callback_params(**overrides))}"


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as mock:
        yield mock


@pytest.fixture(autouse=True)
def no_backoff_sleep(monkeypatch):
    import steamauth.steam
    monkeypatch.setattr(steamauth.steam.time, "sleep", lambda _s: None)
