from __future__ import annotations

import json
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from steamauth.models import Base, Identity, Player, _utcnow
from steamauth.strategy import UserRecord


def create_all(engine) -> None:
    Base.metadata.create_all(bind=engine)


def upsert_steam_user(db: Session, user: UserRecord) -> Identity:
    """Create or refresh the Player/Identity rows for a verified Steam login.

    Profile fields only overwrite stored values when Steam returned them.
    """
    steamid = str(user.steam_id)
    ident = db.execute(
        select(Identity).where(Identity.provider == "steam", Identity.external_id == steamid)
    ).scalar_one_or_none()
    if ident is None:
        player = Player()
        db.add(player)
        db.flush()
        ident = Identity(
            player_id=player.id,
            provider="steam",
            external_id=steamid,
            profile_url=f"https://steamcommunity.com/profiles/{steamid}/",
        )
        db.add(ident)
    else:
        player = db.get(Player, ident.player_id) if ident.player_id else None
        if player is None:
            # orphaned identity, the FK cascade is not enforced on every backend
            player = Player()
            db.add(player)
            db.flush()
            ident.player_id = player.id

    p = user.profile or {}
    if p:
        player.display_name = p.get("personaname") or player.display_name
        player.avatar_url = p.get("avatarfull") or p.get("avatar") or player.avatar_url
        ident.profile_url = p.get("profileurl") or ident.profile_url
        ident.raw = json.dumps(p)
    if user.level is not None:
        player.steam_level = user.level
    ident.last_login_at = _utcnow()
    db.flush()
    return ident


def get_user(db: Session, provider: str, external_id: str) -> Optional[Dict[str, Any]]:
    row: Optional[Tuple[Identity, Player]] = db.execute(
        select(Identity, Player)
        .where(Identity.provider == provider, Identity.external_id == external_id)
        .join(Player, Identity.player_id == Player.id, isouter=True)
    ).first()
    if not row:
        return None
    ident, player = row
    return {
        "provider": provider,
        "id": ident.external_id,
        "profile": ident.profile_url,
        "display_name": player.display_name if player else None,
        "avatar": player.avatar_url if player else None,
        "level": player.steam_level if player else None,
    }
