"""MfaProvider protocol: the external identity provider behind MFA logins.

The state machine only sees these result types and exceptions; it never
touches the provider SDK directly.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol


@dataclass(frozen=True)
class ProviderTokens:
    """Session tokens issued by the identity provider itself."""

    access_token: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None


@dataclass(frozen=True)
class MfaChallenge:
    """A challenge the caller must answer before tokens are issued."""

    challenge_name: str
    session: str
    parameters: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class InitiateResult:
    """Either a pending challenge or, when the provider skips MFA, its tokens."""

    challenge: Optional[MfaChallenge] = None
    tokens: Optional[ProviderTokens] = None

    @property
    def requires_challenge(self) -> bool:
        return self.challenge is not None


class MfaError(Exception):
    """Base class for provider failures the state machine translates."""


class MfaCodeMismatchError(MfaError):
    """Submitted code is wrong (or the provider rejected the credentials)."""


class MfaCodeExpiredError(MfaError):
    """Submitted code or session has expired."""


class MfaInvalidParametersError(MfaError):
    """Malformed challenge parameters."""


class MfaIdentityExistsError(MfaError):
    """The provider already holds an identity for this username."""


class MfaProviderError(MfaError):
    """Any other provider failure."""


class MfaProvider(Protocol):
    async def initiate_challenge(self, email: str, password: str) -> InitiateResult: ...

    async def complete_challenge(
        self, email: str, session: str, challenge_name: str, code: str
    ) -> ProviderTokens: ...

    async def provision_identity(self, email: str, temporary_password: str) -> str: ...

    async def set_password(self, email: str, password: str) -> None: ...
