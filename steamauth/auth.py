from __future__ import annotations

import logging
import re
from typing import Dict, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit

import requests

from steamauth.errors import (
    InvalidRealm,
    MalformedClaimedId,
    MissingParameter,
    ProviderUnreachable,
    RealmMismatch,
    UnexpectedMode,
    UnsignedCriticalParameter,
    VerificationError,
    VerificationFailed,
)


log = logging.getLogger(__name__)

STEAM_OPENID_ENDPOINT = "https://steamcommunity.com/openid/login"
OPENID_NS = "http://specs.openid.net/auth/2.0"
IDENTIFIER_SELECT = "http://specs.openid.net/auth/2.0/identifier_select"

# Must be present even in stateless mode, they are forwarded to check_authentication
REQUIRED_PARAMS = ("openid.assoc_handle", "openid.signed", "openid.sig")
# claimed_id: spoofed SteamID, return_to: login lifted from another site, response_nonce: replay
REQUIRED_SIGNED_PARAMS = ("claimed_id", "return_to", "response_nonce")

DEFAULT_TIMEOUT = 10.0

# host, optional numeric port, then path/query/fragment or the end; userinfo never matches
_REALM_RE = re.compile(r"^(https?://[^:/?#@\\]+)(?::[0-9]+)?(?=[/?#]|\Z)", re.IGNORECASE)
_CLAIMED_ID_RE = re.compile(r"https?://steamcommunity\.com/openid/id/([0-9]+)/?")


def canonicalize_realm(realm: str) -> str:
    """Reduce a realm or return URL to lowercase ``scheme://host``."""
    m = _REALM_RE.match(realm or "")
    if not m:
        raise InvalidRealm(f'"{realm}" does not appear to be a valid realm')
    return m.group(1).lower()


def build_auth_url(realm: str, return_url: str) -> str:
    """Return the URL to redirect the browser to Steam OpenID provider.

    Uses OpenID 2.0 identifier_select with checkid_setup (interactive login).
    """
    params = {
        "openid.claimed_id": IDENTIFIER_SELECT,
        "openid.identity": IDENTIFIER_SELECT,
        "openid.mode": "checkid_setup",
        "openid.ns": OPENID_NS,
        "openid.realm": realm,
        "openid.return_to": return_url,
    }
    return f"{STEAM_OPENID_ENDPOINT}?{urlencode(params)}"


def parse_callback_query(url: str) -> Dict[str, str]:
    query: Dict[str, str] = {}
    for k, v in parse_qsl(urlsplit(url).query, keep_blank_values=True):
        query.setdefault(k, v)
    return query


def extract_claimed_id(query: Dict[str, str]) -> Optional[str]:
    m = _CLAIMED_ID_RE.fullmatch(query.get("openid.claimed_id") or "")
    return m.group(1) if m else None


def _signed_query(args: Dict[str, str]) -> Dict[str, str]:
    query: Dict[str, str] = {}
    for param in REQUIRED_PARAMS:
        if not args.get(param):
            raise MissingParameter(param)
        query[param] = args[param]

    signed = query["openid.signed"].split(",")
    for name in signed:
        key = f"openid.{name}"
        if not args.get(key):
            raise MissingParameter(key)
        query[key] = args[key]

    unsigned = [p for p in REQUIRED_SIGNED_PARAMS if p not in signed]
    if unsigned:
        raise UnsignedCriticalParameter(unsigned)
    return query


def extract_and_verify_params(url: str, expected_realm: str) -> Dict[str, str]:
    """Parse a callback URL and apply every local check.

    Returns the sanitized query ready to be posted back with
    ``mode=check_authentication``. Raises a ``VerificationError`` subclass on
    the first failed check; nothing here touches the network.
    """
    args = parse_callback_query(url)

    mode = args.get("openid.mode") or ""
    if mode != "id_res":
        raise UnexpectedMode(f'Response parameter openid.mode value "{mode}" does not match expected value "id_res"')

    query = _signed_query(args)
    # Set last so nothing from the callback can pre-seed them; args is not used past this point
    query["openid.ns"] = OPENID_NS
    query["openid.mode"] = "check_authentication"

    try:
        realm = canonicalize_realm(query["openid.return_to"])
    except InvalidRealm as exc:
        raise RealmMismatch(str(exc)) from exc
    if realm != expected_realm:
        raise RealmMismatch(f'Return realm "{realm}" does not match expected realm "{expected_realm}"')

    if extract_claimed_id(query) is None:
        raise MalformedClaimedId(
            "No \"openid.claimed_id\" parameter is present in the URL, or it doesn't have the correct format"
        )
    return query


def _is_valid(resp: requests.Response) -> bool:
    if "application/json" in (resp.headers.get("Content-Type") or ""):
        try:
            data = resp.json()
        except ValueError:
            return False
        return isinstance(data, dict) and data.get("is_valid") is True
    body = (resp.text or "").replace("\r\n", "\n")
    return any(line == "is_valid:true" for line in body.split("\n"))


def verify_with_provider(query: Dict[str, str], http=None, timeout: float = DEFAULT_TIMEOUT) -> bool:
    """Post the sanitized query back to Steam and read its verdict.

    ``False`` means Steam disavowed the response. Transport failures raise
    ``ProviderUnreachable`` instead.
    """
    http = http or requests
    try:
        r = http.post(
            STEAM_OPENID_ENDPOINT,
            data=query,
            headers={
                "Origin": "https://steamcommunity.com",
                "Referer": "https://steamcommunity.com/",
            },
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise ProviderUnreachable(f"HTTP error {exc} when validating response") from exc
    if not 200 <= r.status_code < 300:
        raise ProviderUnreachable(f"HTTP error {r.status_code} when validating response")
    return _is_valid(r)


def verify_login(url: str, expected_realm: str, http=None, timeout: float = DEFAULT_TIMEOUT) -> str:
    """Verify a Steam OpenID callback URL and return the steamid64."""
    try:
        query = extract_and_verify_params(url, expected_realm)
        if not verify_with_provider(query, http=http, timeout=timeout):
            raise VerificationFailed("Response was not validated by Steam. It may be forged or reused.")
    except VerificationError as exc:
        log.warning("steam login rejected (%s): %s", type(exc).__name__, exc)
        raise
    steamid = extract_claimed_id(query)
    log.info("steam login verified for %s", steamid)
    return steamid
