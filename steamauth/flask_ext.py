from __future__ import annotations

from typing import Callable, Optional

from flask import Blueprint, jsonify, redirect, request

from steamauth.strategy import Outcome, SteamStrategy, UserRecord


def create_blueprint(
    strategy: SteamStrategy,
    on_user: Callable[[UserRecord], object],
    on_enrichment_failed: Optional[Callable[[Outcome], object]] = None,
    name: str = "steam_auth",
) -> Blueprint:
    """Expose ``/login`` and ``/return`` routes driven by ``strategy``.

    ``on_user`` receives the verified (and possibly enriched) user and returns
    the Flask response. Register with a url_prefix matching the configured
    return URL, e.g. ``app.register_blueprint(bp, url_prefix="/auth/steam")``.
    """
    bp = Blueprint(name, __name__)

    def _handle():
        outcome = strategy.authenticate(request.url)
        if outcome.kind == Outcome.REDIRECT:
            return redirect(outcome.location)
        if outcome.kind == Outcome.FAIL:
            return jsonify({"ok": False, "error": "authentication_failed", "message": outcome.message}), 401
        if outcome.kind == Outcome.ENRICHMENT_FAILED:
            if on_enrichment_failed is not None:
                return on_enrichment_failed(outcome)
            return jsonify({
                "ok": False,
                "error": "enrichment_failed",
                "message": outcome.message,
                "steam_id": outcome.user.steam_id,
            }), 502
        return on_user(outcome.user)

    bp.add_url_rule("/login", "login", _handle, methods=["GET"])
    bp.add_url_rule("/return", "return", _handle, methods=["GET"])
    return bp
