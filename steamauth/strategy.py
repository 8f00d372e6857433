from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Union

from steamauth.auth import (
    DEFAULT_TIMEOUT,
    build_auth_url,
    canonicalize_realm,
    parse_callback_query,
    verify_login,
)
from steamauth.errors import ConfigurationError, EnrichmentFailed, InvalidRealm, VerificationError
from steamauth.steam import fetch_steam_level, fetch_steam_profile


log = logging.getLogger(__name__)

ApiKey = Union[str, Callable[[], str]]


class StaticCredential:
    """Credential provider that always hands back the same key."""

    def __init__(self, key: str) -> None:
        self._key = key

    def __call__(self) -> str:
        return self._key

    def __repr__(self) -> str:
        return "StaticCredential(<redacted>)"


def credential_provider(api_key: Optional[ApiKey]) -> Optional[Callable[[], str]]:
    if api_key is None or api_key == "":
        return None
    if isinstance(api_key, str):
        return StaticCredential(api_key)
    if callable(api_key):
        return api_key
    raise ConfigurationError("apiKey must be a string or a callable returning a string")


@dataclass
class UserRecord:
    steam_id: str
    profile: Optional[Dict[str, Any]] = None
    level: Optional[int] = None


@dataclass
class Outcome:
    """Result of handling one request on the login or return route."""

    kind: str  # redirect | success | fail | enrichment_failed
    location: Optional[str] = None
    user: Optional[UserRecord] = None
    error: Optional[Exception] = None

    REDIRECT = "redirect"
    SUCCESS = "success"
    FAIL = "fail"
    ENRICHMENT_FAILED = "enrichment_failed"

    @property
    def message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class SteamStrategy:
    """Steam OpenID login bound to one realm and return URL.

    All options are validated here so a misconfigured app fails at startup,
    not on the first login.
    """

    def __init__(
        self,
        realm: str,
        return_url: str,
        api_key: Optional[ApiKey] = None,
        fetch_user_profile: bool = True,
        fetch_steam_level: bool = False,
        http=None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if not realm:
            raise ConfigurationError("realm is required")
        if not return_url:
            raise ConfigurationError("returnUrl is required")
        try:
            self.realm = canonicalize_realm(realm)
        except InvalidRealm as exc:
            raise ConfigurationError(str(exc)) from exc
        self.return_url = return_url
        self.fetch_user_profile = bool(fetch_user_profile)
        self.fetch_steam_level = bool(fetch_steam_level)
        self._api_key = credential_provider(api_key)
        if (self.fetch_user_profile or self.fetch_steam_level) and self._api_key is None:
            raise ConfigurationError(
                "apiKey is required when fetchUserProfile or fetchSteamLevel is enabled"
            )
        self.http = http
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, http=None) -> "SteamStrategy":
        return cls(
            realm=settings.steam_realm,
            return_url=settings.steam_return_url,
            api_key=settings.steam_api_key or None,
            fetch_user_profile=settings.fetch_user_profile,
            fetch_steam_level=settings.fetch_steam_level,
            http=http,
            timeout=settings.steam_http_timeout,
        )

    @property
    def enrichment_enabled(self) -> bool:
        return self.fetch_user_profile or self.fetch_steam_level

    def auth_url(self) -> str:
        return build_auth_url(self.realm, self.return_url)

    def verify(self, url: str) -> str:
        return verify_login(url, self.realm, http=self.http, timeout=self.timeout)

    def _resolve_api_key(self) -> str:
        try:
            key = self._api_key()
        except EnrichmentFailed:
            raise
        except Exception as exc:
            raise EnrichmentFailed(f"Could not obtain Steam API key: {exc}") from exc
        if not key or not isinstance(key, str):
            raise EnrichmentFailed("Steam API key provider returned no key")
        return key

    def enrich(self, steam_id: str) -> UserRecord:
        user = UserRecord(steam_id=steam_id)
        if not self.enrichment_enabled:
            return user
        key = self._resolve_api_key()
        if self.fetch_user_profile:
            user.profile = fetch_steam_profile(steam_id, key, http=self.http, timeout=self.timeout)
        if self.fetch_steam_level:
            user.level = fetch_steam_level(steam_id, key, http=self.http, timeout=self.timeout)
        return user

    def authenticate(self, url: str) -> Outcome:
        """Handle a request to the login or return route.

        Without a value for ``openid.mode`` in the query this starts the
        handshake; otherwise the callback is verified and, if configured, enriched.
        """
        if not parse_callback_query(url).get("openid.mode"):
            return Outcome(Outcome.REDIRECT, location=self.auth_url())

        try:
            steam_id = self.verify(url)
        except VerificationError as exc:
            return Outcome(Outcome.FAIL, error=exc)

        try:
            user = self.enrich(steam_id)
        except EnrichmentFailed as exc:
            log.warning("steam enrichment failed for %s: %s", steam_id, exc)
            return Outcome(Outcome.ENRICHMENT_FAILED, user=UserRecord(steam_id=steam_id), error=exc)
        return Outcome(Outcome.SUCCESS, user=user)
