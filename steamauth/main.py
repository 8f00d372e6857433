from __future__ import annotations

import logging

from flask import Flask, jsonify, redirect, session

from steamauth.config import settings as default_settings
from steamauth.db import configure_engine, session_scope
from steamauth.flask_ext import create_blueprint
from steamauth.log import setup_logging
from steamauth.store import create_all, get_user, upsert_steam_user
from steamauth.strategy import Outcome, SteamStrategy, UserRecord


log = logging.getLogger(__name__)


def _login(user: UserRecord):
    with session_scope() as db:
        upsert_steam_user(db, user)
    session["uid"] = f"steam:{user.steam_id}"
    log.info("user steam:%s signed in", user.steam_id)
    return redirect("/")


def create_app(settings=None, strategy: SteamStrategy | None = None) -> Flask:
    settings = settings or default_settings
    setup_logging(settings.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["SESSION_COOKIE_SAMESITE"] = "Lax"

    # Raises ConfigurationError here rather than on the first login
    strategy = strategy or SteamStrategy.from_settings(settings)

    # Ensure DB schema exists on the configured database (idempotent)
    create_all(configure_engine(settings.database_url))

    def on_enrichment_failed(outcome: Outcome):
        # Verified identity is still good, sign in without the profile
        return _login(outcome.user)

    app.register_blueprint(
        create_blueprint(strategy, _login, on_enrichment_failed=on_enrichment_failed),
        url_prefix="/auth/steam",
    )

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok"})

    @app.get("/api/v1/me")
    def me():
        uid = session.get("uid")
        if not uid:
            return jsonify({"user": None})
        provider, external_id = uid.split(":", 1)
        with session_scope() as db:
            return jsonify({"user": get_user(db, provider, external_id)})

    @app.post("/auth/logout")
    def auth_logout():
        session.clear()
        return jsonify({"ok": True})

    return app
