from __future__ import annotations


class SteamAuthError(Exception):
    """Base class for every error raised by steamauth."""


class ConfigurationError(SteamAuthError, ValueError):
    """Bad strategy options, raised at construction time."""


class InvalidRealm(SteamAuthError, ValueError):
    """The value has no recognisable ``scheme://host`` prefix."""


class VerificationError(SteamAuthError):
    """The callback could not be turned into a verified identity.

    Every subclass means "authentication failed"; only ``ProviderUnreachable``
    is worth retrying.
    """


class UnexpectedMode(VerificationError):
    pass


class MissingParameter(VerificationError):
    def __init__(self, param: str) -> None:
        super().__init__(f'No "{param}" parameter is present in the URL')
        self.param = param


class UnsignedCriticalParameter(VerificationError):
    def __init__(self, params) -> None:
        names = ", ".join(params)
        super().__init__(f"A vital parameter was not signed: {names}")
        self.params = tuple(params)


class RealmMismatch(VerificationError):
    pass


class MalformedClaimedId(VerificationError):
    pass


class ProviderUnreachable(VerificationError):
    pass


class VerificationFailed(VerificationError):
    pass


class EnrichmentFailed(SteamAuthError):
    """Steam Web API lookup failed after a successful login."""
