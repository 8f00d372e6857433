from __future__ import annotations

from types import SimpleNamespace
from urllib.parse import parse_qs, urlsplit

import pytest
import responses
from flask import Flask, jsonify
from sqlalchemy import create_engine, func, select

from conftest import REALM, RETURN_URL, STEAM_ID, callback_url
from steamauth.auth import STEAM_OPENID_ENDPOINT
from steamauth import db as dbmod
from steamauth.config import settings as default_settings
from steamauth.errors import ConfigurationError
from steamauth.flask_ext import create_blueprint
from steamauth.main import create_app
from steamauth.models import Base, Identity, Player
from steamauth.steam import STEAM_LEVEL, STEAM_SUMMARIES
from steamauth.store import create_all, upsert_steam_user
from steamauth.strategy import SteamStrategy, UserRecord

VALID_BODY = "ns:http://specs.openid.net/auth/2.0\nis_valid:true\n"
PROFILE = {
    "steamid": STEAM_ID,
    "personaname": "gaben",
    "avatarfull": "https://avatars.example/full.jpg",
    "profileurl": "https://steamcommunity.com/id/gaben/",
}
RETURN_PATH = "/auth/steam/return"


@pytest.fixture(autouse=True)
def fresh_db():
    dbmod.configure_engine(default_settings.database_url)
    Base.metadata.drop_all(bind=dbmod.engine)
    yield
    dbmod.configure_engine(default_settings.database_url)


def make_client(**strategy_kwargs):
    strategy_kwargs.setdefault("fetch_user_profile", False)
    app = create_app(strategy=SteamStrategy(REALM, RETURN_URL, **strategy_kwargs))
    app.config["TESTING"] = True
    return app.test_client()


def test_healthz():
    resp = make_client().get("/healthz")
    assert resp.status_code == 200
    assert resp.get_json() == {"status": "ok"}


def test_login_redirects_to_steam():
    resp = make_client().get("/auth/steam/login")
    assert resp.status_code == 302
    loc = urlsplit(resp.headers["Location"])
    assert f"{loc.scheme}://{loc.netloc}{loc.path}" == STEAM_OPENID_ENDPOINT
    q = parse_qs(loc.query)
    assert q["openid.mode"] == ["checkid_setup"]
    assert q["openid.realm"] == [REALM]
    assert q["openid.return_to"] == [RETURN_URL]


def test_return_without_params_restarts_login():
    resp = make_client().get(RETURN_PATH)
    assert resp.status_code == 302
    assert resp.headers["Location"].startswith(STEAM_OPENID_ENDPOINT)


def test_login_and_me(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    client = make_client()
    assert client.get("/api/v1/me").get_json() == {"user": None}

    resp = client.get(callback_url(base=RETURN_PATH))
    assert resp.status_code == 302
    assert resp.headers["Location"].endswith("/")
    with client.session_transaction() as sess:
        assert sess["uid"] == f"steam:{STEAM_ID}"

    user = client.get("/api/v1/me").get_json()["user"]
    assert user["provider"] == "steam"
    assert user["id"] == STEAM_ID
    assert user["profile"] == f"https://steamcommunity.com/profiles/{STEAM_ID}/"
    assert user["display_name"] is None


def test_login_with_profile_and_level(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    rsps.add(responses.GET, STEAM_SUMMARIES, json={"response": {"players": [PROFILE]}})
    rsps.add(responses.GET, STEAM_LEVEL, json={"response": {"player_level": 31}})
    client = make_client(api_key="KEY", fetch_user_profile=True, fetch_steam_level=True)

    assert client.get(callback_url(base=RETURN_PATH)).status_code == 302
    user = client.get("/api/v1/me").get_json()["user"]
    assert user["display_name"] == "gaben"
    assert user["avatar"] == PROFILE["avatarfull"]
    assert user["profile"] == PROFILE["profileurl"]
    assert user["level"] == 31


def test_second_login_reuses_identity(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    client = make_client()
    client.get(callback_url(base=RETURN_PATH))
    client.post("/auth/logout")
    client.get(callback_url(base=RETURN_PATH))

    with dbmod.session_scope() as db:
        assert db.execute(select(func.count()).select_from(Identity)).scalar_one() == 1
        assert db.execute(select(func.count()).select_from(Player)).scalar_one() == 1


def test_rejected_login(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body="is_valid:false\n")
    client = make_client()
    resp = client.get(callback_url(base=RETURN_PATH))
    assert resp.status_code == 401
    body = resp.get_json()
    assert body["ok"] is False
    assert body["error"] == "authentication_failed"
    with client.session_transaction() as sess:
        assert "uid" not in sess


def test_unsigned_return_to_is_rejected(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    resp = make_client().get(callback_url(base=RETURN_PATH, signed="claimed_id,response_nonce,assoc_handle"))
    assert resp.status_code == 401
    assert "not signed" in resp.get_json()["message"]


def test_enrichment_failure_still_signs_in(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    rsps.add(responses.GET, STEAM_SUMMARIES, status=500)
    client = make_client(api_key="KEY", fetch_user_profile=True)
    assert client.get(callback_url(base=RETURN_PATH)).status_code == 302
    user = client.get("/api/v1/me").get_json()["user"]
    assert user["id"] == STEAM_ID
    assert user["display_name"] is None


def test_logout():
    client = make_client()
    with client.session_transaction() as sess:
        sess["uid"] = f"steam:{STEAM_ID}"
    assert client.post("/auth/logout").get_json() == {"ok": True}
    with client.session_transaction() as sess:
        assert "uid" not in sess


def test_create_app_checks_configuration():
    settings = SimpleNamespace(
        secret_key="x",
        log_level="WARNING",
        steam_realm=REALM,
        steam_return_url=RETURN_URL,
        steam_api_key="",
        fetch_user_profile=True,
        fetch_steam_level=False,
        steam_http_timeout=5.0,
        database_url=default_settings.database_url,
    )
    with pytest.raises(ConfigurationError):
        create_app(settings=settings)


def test_create_app_uses_configured_database(rsps, tmp_path):
    url = f"sqlite:///{tmp_path / 'other.db'}"
    settings = SimpleNamespace(
        secret_key="x",
        log_level="WARNING",
        steam_realm=REALM,
        steam_return_url=RETURN_URL,
        steam_api_key="",
        fetch_user_profile=False,
        fetch_steam_level=False,
        steam_http_timeout=5.0,
        database_url=url,
    )
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    client = create_app(settings=settings).test_client()
    assert client.get(callback_url(base=RETURN_PATH)).status_code == 302

    other = create_engine(url)
    try:
        with other.connect() as conn:
            ids = conn.execute(select(Identity.external_id)).scalars().all()
    finally:
        other.dispose()
    assert ids == [STEAM_ID]


def test_login_repairs_orphaned_identity():
    create_all(dbmod.engine)
    with dbmod.session_scope() as db:
        # SQLite does not enforce the players FK by default
        db.add(Identity(player_id=999, provider="steam", external_id=STEAM_ID))

    with dbmod.session_scope() as db:
        ident = upsert_steam_user(db, UserRecord(steam_id=STEAM_ID, profile={"personaname": "gaben"}, level=3))
        player = db.get(Player, ident.player_id)
        assert ident.player_id != 999
        assert player.display_name == "gaben"
        assert player.steam_level == 3


# ---------- blueprint defaults ----------

def _bare_app(strategy):
    app = Flask(__name__)
    app.register_blueprint(
        create_blueprint(strategy, lambda user: jsonify({"ok": True, "steam_id": user.steam_id})),
        url_prefix="/auth/steam",
    )
    return app.test_client()


def test_blueprint_success(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    client = _bare_app(SteamStrategy(REALM, RETURN_URL, fetch_user_profile=False))
    resp = client.get(callback_url(base=RETURN_PATH))
    assert resp.get_json() == {"ok": True, "steam_id": STEAM_ID}


def test_blueprint_enrichment_failure_default(rsps):
    rsps.add(responses.POST, STEAM_OPENID_ENDPOINT, body=VALID_BODY)
    rsps.add(responses.GET, STEAM_SUMMARIES, status=500)
    client = _bare_app(SteamStrategy(REALM, RETURN_URL, api_key="KEY"))
    resp = client.get(callback_url(base=RETURN_PATH))
    assert resp.status_code == 502
    body = resp.get_json()
    assert body["error"] == "enrichment_failed"
    assert body["steam_id"] == STEAM_ID
