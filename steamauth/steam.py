from __future__ import annotations

import itertools
import logging
import time
from typing import Any, Dict, Iterable, List

import requests

from steamauth.errors import EnrichmentFailed


log = logging.getLogger(__name__)

STEAM_SUMMARIES = "https://api.steampowered.com/ISteamUser/GetPlayerSummaries/v2/"
STEAM_LEVEL = "https://api.steampowered.com/IPlayerService/GetSteamLevel/v1/"

DEFAULT_TIMEOUT = 8.0


def chunked(iterable: Iterable[str], size: int) -> Iterable[List[str]]:
    it = iter(iterable)
    while True:
        buf = list(itertools.islice(it, size))
        if not buf:
            return
        yield buf


def fetch_with_retries(
    url: str,
    params: Dict[str, str],
    retries: int = 3,
    backoff: float = 0.3,
    http=None,
    timeout: float = DEFAULT_TIMEOUT,
) -> requests.Response:
    """GET ``url``, backing off exponentially while Steam answers 429.

    After ``retries`` rate-limited attempts one final request is made and
    returned whatever its status.
    """
    http = http or requests
    for attempt in range(retries):
        resp = http.get(url, params=params, timeout=timeout)
        if resp.status_code != 429:
            return resp
        if attempt < retries - 1:
            delay = backoff * (2 ** attempt)
            log.debug("steam api rate limited, retrying in %.2fs", delay)
            time.sleep(delay)
    return http.get(url, params=params, timeout=timeout)


def _get_json(url: str, params: Dict[str, str], http=None, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    try:
        resp = fetch_with_retries(url, params, http=http, timeout=timeout)
    except requests.RequestException as exc:
        raise EnrichmentFailed(f"Steam API request failed: {exc}") from exc
    if resp.status_code == 429:
        raise EnrichmentFailed("Steam API rate limit exceeded")
    if "application/json" not in (resp.headers.get("Content-Type") or ""):
        if "Access is denied." in (resp.text or ""):
            raise EnrichmentFailed("Steam API key is invalid")
    if not 200 <= resp.status_code < 300:
        raise EnrichmentFailed(f"Steam API returned HTTP {resp.status_code}")
    try:
        data = resp.json()
    except ValueError as exc:
        raise EnrichmentFailed("Steam API returned a non-JSON body") from exc
    if not isinstance(data, dict) or not isinstance(data.get("response"), dict):
        raise EnrichmentFailed("Steam API response is missing the \"response\" object")
    return data


def fetch_player_summaries(steam_ids: Iterable[str], api_key: str, http=None,
                           timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    """Fetch Steam player summaries for given 64-bit IDs, 100 per request.

    Returns the GetPlayerSummaries body shape with players from every batch merged.
    """
    players: List[Dict[str, Any]] = []
    ids = [sid for sid in (steam_ids or []) if sid]
    for batch in chunked(ids, 100):
        data = _get_json(STEAM_SUMMARIES, {"key": api_key, "steamids": ",".join(batch)}, http=http, timeout=timeout)
        batch_players = data["response"].get("players")
        if not isinstance(batch_players, list):
            raise EnrichmentFailed("Steam API response is missing \"players\"")
        players.extend(batch_players)
    return {"response": {"players": players}}


def fetch_steam_profile(steam_id: str, api_key: str, http=None, timeout: float = DEFAULT_TIMEOUT) -> Dict[str, Any]:
    res = fetch_player_summaries([steam_id], api_key, http=http, timeout=timeout)
    for p in res["response"]["players"]:
        if isinstance(p, dict) and str(p.get("steamid")) == steam_id:
            return p
    raise EnrichmentFailed("There was an error fetching your steam profile.")


def fetch_steam_level(steam_id: str, api_key: str, http=None, timeout: float = DEFAULT_TIMEOUT) -> int:
    """Return the Steam level, 0 when Steam reports none.

    Private profiles come back without ``player_level`` and are indistinguishable
    from a level 0 account, so both read as 0.
    """
    data = _get_json(STEAM_LEVEL, {"key": api_key, "steamid": steam_id}, http=http, timeout=timeout)
    level = data["response"].get("player_level")
    if level is None:
        log.debug("no steam level reported for %s", steam_id)
        return 0
    if isinstance(level, bool) or not isinstance(level, int) or level < 0:
        raise EnrichmentFailed(f"Steam API returned an invalid player_level: {level!r}")
    return level
