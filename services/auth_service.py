"""
Authentication service: the account lifecycle state machine.

    register ──► invited/unverified ──verify_email──► active/verified
                                                          │
                                login ◄───────────────────┘
                                  │ (mfa mode) challenge ──complete_mfa──┐
                                  ▼                                       ▼
                               access + refresh tokens ◄──────────────────┘

    request_password_reset ──► OTP stored (hash + expiry)
    verify_reset_otp        ──► OTP cleared, reset token issued
    reset_password          ──► password replaced, token_version bumped

The service is stateless between calls. Every per-account race (two OTP
verifications, two resends inside one cooldown, a reset racing another
reset) is settled by the repository's compare_and_update: the loser of the
race sees ``None`` and fails with the same error a late caller would get.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional

from config import AuthPolicySettings
from errors import (
    ConflictError,
    ForbiddenError,
    InvalidOrExpiredError,
    NotFoundError,
    RateLimitedError,
    UnauthorizedError,
    ValidationError,
)
from infrastructure.mfa.protocol import MfaChallenge, ProviderTokens
from repositories.protocol import AccountRepository, DuplicateEmailError
from schemas.models.account import AccountDoc, AccountStatus, LoginProvider
from services.login_strategies import INVALID_CREDENTIALS, LoginStrategy
from services.notifications import AccountNotifier
from services.token_service import OtpService, TokenError, TokenKind, TokenService
from shared.crypto import hash_password, password_needs_rehash, verify_password
from shared.datetime_utils import ensure_utc, seconds_remaining, utc_now
from shared.logging import get_logger
from shared.validators import is_valid_email, is_valid_otp, normalize_email

log = get_logger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class RegistrationResult:
    account_id: str
    message: str = "Registration successful. Please verify your email."


@dataclass(frozen=True)
class VerificationResult:
    account_id: str
    already_verified: bool

    @property
    def message(self) -> str:
        if self.already_verified:
            return "Email already verified"
        return "Email verified successfully"


@dataclass(frozen=True)
class LoginResult:
    account: AccountDoc
    tokens: Optional[TokenPair] = None
    challenge: Optional[MfaChallenge] = None
    provider_tokens: Optional[ProviderTokens] = None

    @property
    def requires_mfa(self) -> bool:
        return self.challenge is not None


@dataclass(frozen=True)
class ResetTicket:
    reset_token: str
    expires_in: int


@dataclass(frozen=True)
class RefreshResult:
    account: AccountDoc
    access_token: str


class AuthService:
    def __init__(
        self,
        repository: AccountRepository,
        tokens: TokenService,
        otps: OtpService,
        notifier: AccountNotifier,
        login_strategy: LoginStrategy,
        policy: AuthPolicySettings,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self._repo = repository
        self._tokens = tokens
        self._otps = otps
        self._notifier = notifier
        self._strategy = login_strategy
        self._policy = policy
        self._clock = clock

    @property
    def login_mode(self) -> str:
        return self._strategy.name

    # ── Helpers ────────────────────────────────────────────────────────────

    def _require_email(self, email: Optional[str]) -> str:
        normalized = normalize_email(email)
        if not normalized:
            raise ValidationError("Email is required", field="email")
        if not is_valid_email(normalized):
            raise ValidationError("Email address is not valid", field="email")
        return normalized

    async def _load_by_email(self, email: str, message: str = "User not found") -> AccountDoc:
        account = await self._repo.find_by_email(email)
        if account is None:
            raise NotFoundError(message)
        return account

    def _issue_tokens(self, account: AccountDoc) -> TokenPair:
        access = self._tokens.issue(
            TokenKind.ACCESS,
            account.account_id,
            ver=account.token_version,
            roles=list(account.roles),
        )
        refresh = self._tokens.issue(
            TokenKind.REFRESH, account.account_id, ver=account.token_version
        )
        return TokenPair(access_token=access, refresh_token=refresh)

    async def _start_session(
        self, account: AccountDoc, changes: Optional[dict[str, Any]] = None
    ) -> tuple[AccountDoc, TokenPair]:
        updated = await self._repo.update(
            account.account_id, {"last_login_at": self._clock(), **(changes or {})}
        )
        if updated is None:
            raise NotFoundError("User not found")
        return updated, self._issue_tokens(updated)

    async def _claim_cooldown(self, account: AccountDoc, field: str) -> AccountDoc:
        """Reserve the next send slot for *field* or raise RateLimitedError."""
        cooldown = self._policy.resend_cooldown_seconds
        now = self._clock()
        last_sent = getattr(account, field)
        if last_sent is not None:
            wait = seconds_remaining(last_sent, cooldown, now)
            if wait > 0:
                log.warning(
                    "resend_cooldown_active",
                    account_id=account.account_id,
                    field=field,
                    retry_after=wait,
                )
                raise RateLimitedError(
                    f"Please wait {wait} seconds before requesting again.",
                    retry_after=wait,
                )

        claimed = await self._repo.compare_and_update(
            account.account_id, {field: last_sent}, {field: now}
        )
        if claimed is None:
            # A concurrent request took this slot
            raise RateLimitedError(
                f"Please wait {cooldown} seconds before requesting again.",
                retry_after=cooldown,
            )
        return claimed

    def _require_password_login(self, account: AccountDoc) -> None:
        if not account.uses_password:
            raise ValidationError(
                f"This account signs in with {account.login_provider}; "
                "it has no password to reset or change",
                code="no_password_login",
            )

    @staticmethod
    def _password_changes(
        account: AccountDoc, new_password: str, token_version: int
    ) -> dict[str, Any]:
        changes: dict[str, Any] = {
            "password_hash": hash_password(new_password),
            "token_version": token_version,
            "reset_otp_hash": None,
            "reset_otp_expires_at": None,
            "reset_otp_attempts": 0,
        }
        if account.provisioning_secret:
            # Not provisioned yet: the provider identity gets the new password
            changes["provisioning_secret"] = new_password
        return changes

    async def _send_verification(self, account: AccountDoc) -> None:
        token = self._tokens.issue(TokenKind.EMAIL_VERIFICATION, account.account_id)
        await self._notifier.send_verification(
            account.email,
            account.name,
            token,
            committed={"account_id": account.account_id},
        )

    async def _store_and_send_otp(self, account: AccountDoc) -> None:
        now = self._clock()
        otp = self._otps.issue(now)
        updated = await self._repo.update(
            account.account_id,
            {
                "reset_otp_hash": otp.code_hash,
                "reset_otp_expires_at": otp.expires_at,
                "reset_otp_attempts": 0,
                "last_otp_sent_at": now,
            },
        )
        if updated is None:
            raise NotFoundError("User not found")
        log.info("password_reset_otp_issued", account_id=account.account_id)
        await self._notifier.send_password_reset_otp(
            account.email,
            account.name,
            otp.code,
            committed={"account_id": account.account_id},
        )

    # ── Registration & verification ────────────────────────────────────────

    async def register(
        self,
        email: Optional[str],
        password: Optional[str] = None,
        name: Optional[str] = None,
        login_provider: str = LoginProvider.PASSWORD.value,
    ) -> RegistrationResult:
        email = self._require_email(email)
        try:
            provider = LoginProvider(login_provider)
        except ValueError:
            raise ValidationError("Unsupported login method", field="login_provider")
        uses_password = provider == LoginProvider.PASSWORD
        if uses_password and not password:
            raise ValidationError("Password is required", field="password")
        if not uses_password and self._strategy.captures_registration_password:
            raise ValidationError(
                "Only password registration is available", field="login_provider"
            )

        existing = await self._repo.find_by_email(email)
        if existing is not None:
            if existing.email_verified:
                log.warning("registration_failed", reason="already_registered")
                raise ConflictError(
                    "User already exists. Please log in.", code="already_registered"
                )
            log.warning("registration_failed", reason="pending_verification")
            raise ConflictError(
                "User already registered but not verified. Please verify email.",
                code="pending_verification",
            )

        now = self._clock()
        account = AccountDoc(
            email=email,
            name=(name or "").strip() or None,
            login_provider=provider,
            password_hash=hash_password(password) if uses_password else None,
            email_verified=False,
            status=AccountStatus.INVITED,
            last_verification_sent_at=now,
            provisioning_secret=(
                password if self._strategy.captures_registration_password else None
            ),
            created_at=now,
        )
        try:
            account = await self._repo.create(account)
        except DuplicateEmailError:
            log.warning("registration_failed", reason="race_condition_duplicate")
            raise ConflictError(
                "User already exists. Please log in.", code="already_registered"
            )

        log.info(
            "account_registered",
            account_id=account.account_id,
            login_provider=account.login_provider,
            has_name=bool(account.name),
        )
        await self._send_verification(account)
        return RegistrationResult(account_id=account.account_id)

    async def verify_email(self, token: Optional[str]) -> VerificationResult:
        if not token:
            raise ValidationError("Token is required", field="token")
        try:
            claims = self._tokens.verify(TokenKind.EMAIL_VERIFICATION, token)
        except TokenError as e:
            log.warning("email_verification_failed", reason="invalid_token", error=str(e))
            raise InvalidOrExpiredError("Invalid or expired token")

        account = await self._repo.find_by_id(claims["sub"])
        if account is None:
            raise NotFoundError("User not found")
        if account.email_verified:
            return VerificationResult(account.account_id, already_verified=True)

        provisioned = await self._strategy.provision(account)
        changes = {
            "email_verified": True,
            "status": AccountStatus.ACTIVE.value,
            **provisioned,
        }
        updated = await self._repo.compare_and_update(
            account.account_id, {"email_verified": False}, changes
        )
        if updated is None:
            current = await self._repo.find_by_id(account.account_id)
            if current is None:
                raise NotFoundError("User not found")
            if not current.email_verified:
                log.warning(
                    "email_verification_failed",
                    reason="write_conflict",
                    account_id=account.account_id,
                )
                raise ConflictError(
                    "Verification could not be completed. Please try again.",
                    code="concurrent_update",
                )
            # A concurrent verification of the same account won
            return VerificationResult(current.account_id, already_verified=True)

        log.info("email_verified", account_id=updated.account_id)
        return VerificationResult(updated.account_id, already_verified=False)

    async def resend_verification(self, email: Optional[str]) -> None:
        account = await self._load_by_email(self._require_email(email))
        if account.email_verified:
            raise ValidationError("Email is already verified", code="already_verified")
        account = await self._claim_cooldown(account, "last_verification_sent_at")
        await self._send_verification(account)

    # ── Login ──────────────────────────────────────────────────────────────

    async def login(self, email: Optional[str], password: Optional[str]) -> LoginResult:
        if not email or not password:
            raise ValidationError("Email and password are required")

        account = await self._repo.find_by_email(normalize_email(email))
        if account is None:
            # Same hashing cost and the same answer as a wrong password
            verify_password(password, None)
            log.warning("login_failed", reason="invalid_credentials", email_exists=False)
            raise UnauthorizedError(INVALID_CREDENTIALS, code="invalid_credentials")

        if not account.email_verified:
            raise ForbiddenError(
                "Email is not verified. Please verify your email first.",
                code="email_not_verified",
            )
        if not account.is_active:
            raise ForbiddenError(
                "Account is inactive. Contact support.", code="account_inactive"
            )
        if not verify_password(password, account.password_hash):
            log.warning(
                "login_failed", reason="invalid_password", account_id=account.account_id
            )
            raise UnauthorizedError(INVALID_CREDENTIALS, code="invalid_credentials")

        outcome = await self._strategy.begin(account, password)
        if outcome is not None and outcome.requires_challenge:
            log.info(
                "login_mfa_challenge",
                account_id=account.account_id,
                challenge=outcome.challenge.challenge_name,
            )
            return LoginResult(account=account, challenge=outcome.challenge)

        changes: dict[str, Any] = {}
        if password_needs_rehash(account.password_hash):
            changes["password_hash"] = hash_password(password)

        account, pair = await self._start_session(account, changes)
        log.info("login_success", account_id=account.account_id, mode=self.login_mode)
        return LoginResult(
            account=account,
            tokens=pair,
            provider_tokens=outcome.tokens if outcome is not None else None,
        )

    async def complete_mfa(
        self,
        email: Optional[str],
        session: Optional[str],
        challenge_name: Optional[str],
        code: Optional[str],
    ) -> LoginResult:
        if not (email and session and challenge_name and code):
            raise ValidationError("All MFA verification fields are required")
        email = normalize_email(email)

        provider_tokens = await self._strategy.complete(email, session, challenge_name, code)

        account = await self._load_by_email(email)
        if not account.is_active:
            raise ForbiddenError(
                "Account is inactive. Contact support.", code="account_inactive"
            )
        account, pair = await self._start_session(account)
        log.info("login_success", account_id=account.account_id, mode=self.login_mode)
        return LoginResult(account=account, tokens=pair, provider_tokens=provider_tokens)

    # ── Password reset ─────────────────────────────────────────────────────

    async def request_password_reset(self, email: Optional[str]) -> None:
        account = await self._load_by_email(
            self._require_email(email), "User with this email does not exist"
        )
        self._require_password_login(account)
        await self._store_and_send_otp(account)

    async def resend_reset_otp(self, email: Optional[str]) -> None:
        account = await self._load_by_email(self._require_email(email))
        self._require_password_login(account)
        account = await self._claim_cooldown(account, "last_otp_sent_at")
        await self._store_and_send_otp(account)

    async def verify_reset_otp(self, email: Optional[str], otp: Optional[str]) -> ResetTicket:
        if not email or not otp:
            raise ValidationError("Email and OTP are required")
        if not is_valid_otp(otp, self._policy.otp_length):
            raise ValidationError(
                f"OTP must be {self._policy.otp_length} digits", field="otp"
            )
        account = await self._load_by_email(normalize_email(email))
        now = self._clock()

        if self._otps.matches(otp, account.reset_otp_hash, account.reset_otp_expires_at, now):
            consumed = await self._repo.compare_and_update(
                account.account_id,
                {"reset_otp_hash": account.reset_otp_hash},
                {
                    "reset_otp_hash": None,
                    "reset_otp_expires_at": None,
                    "reset_otp_attempts": 0,
                },
            )
            if consumed is None:
                raise InvalidOrExpiredError("Invalid or expired OTP")
            token = self._tokens.issue(
                TokenKind.PASSWORD_RESET, consumed.email, ver=consumed.token_version
            )
            log.info("password_reset_otp_verified", account_id=consumed.account_id)
            return ResetTicket(
                reset_token=token, expires_in=self._tokens.ttl(TokenKind.PASSWORD_RESET)
            )

        await self._record_failed_otp(account, now)
        raise InvalidOrExpiredError("Invalid or expired OTP")

    async def _record_failed_otp(self, account: AccountDoc, now: Any) -> None:
        expires_at = ensure_utc(account.reset_otp_expires_at)
        if account.reset_otp_hash is None or expires_at is None or now >= expires_at:
            log.warning(
                "password_reset_otp_rejected",
                account_id=account.account_id,
                reason="expired_or_missing",
            )
            return

        attempts = account.reset_otp_attempts + 1
        changes: dict[str, Any] = {"reset_otp_attempts": attempts}
        if attempts >= self._policy.max_otp_attempts:
            changes.update(reset_otp_hash=None, reset_otp_expires_at=None)
        await self._repo.compare_and_update(
            account.account_id,
            {
                "reset_otp_hash": account.reset_otp_hash,
                "reset_otp_attempts": account.reset_otp_attempts,
            },
            changes,
        )
        log.warning(
            "password_reset_otp_rejected",
            account_id=account.account_id,
            reason="mismatch",
            attempts=attempts,
            exhausted=attempts >= self._policy.max_otp_attempts,
        )

    async def reset_password(
        self,
        reset_token: Optional[str],
        new_password: Optional[str],
        email: Optional[str] = None,
    ) -> None:
        if not reset_token or not new_password:
            raise ValidationError("Reset token and new password are required")
        try:
            claims = self._tokens.verify(TokenKind.PASSWORD_RESET, reset_token)
        except TokenError as e:
            log.warning("password_reset_failed", reason="invalid_token", error=str(e))
            raise InvalidOrExpiredError("Invalid or expired reset token", status_code=401)

        token_email = claims["sub"]
        if email is not None and normalize_email(email) != token_email:
            log.warning("password_reset_failed", reason="email_mismatch")
            raise InvalidOrExpiredError("Invalid or expired reset token", status_code=401)

        account = await self._load_by_email(token_email)
        version = claims.get("ver")
        if version != account.token_version:
            log.warning(
                "password_reset_failed", reason="stale_token", account_id=account.account_id
            )
            raise InvalidOrExpiredError("Invalid or expired reset token", status_code=401)

        updated = await self._repo.compare_and_update(
            account.account_id,
            {"token_version": version},
            self._password_changes(account, new_password, version + 1),
        )
        if updated is None:
            raise InvalidOrExpiredError("Invalid or expired reset token", status_code=401)
        log.info("password_reset_completed", account_id=updated.account_id)
        await self._strategy.update_password(updated, new_password)

    # ── Session tokens ─────────────────────────────────────────────────────

    async def refresh(self, refresh_token: Optional[str]) -> RefreshResult:
        if not refresh_token:
            raise UnauthorizedError("Missing refresh token", code="missing_refresh_token")
        try:
            claims = self._tokens.verify(TokenKind.REFRESH, refresh_token)
        except TokenError as e:
            log.warning("token_refresh_failed", reason="expired_or_invalid", error=str(e))
            raise ForbiddenError(
                "Invalid or expired refresh token", code="invalid_refresh_token"
            )

        account = await self._repo.find_by_id(claims["sub"])
        if account is None:
            raise NotFoundError("User not found")
        if claims.get("ver") != account.token_version:
            log.warning("token_refresh_failed", reason="revoked", account_id=account.account_id)
            raise ForbiddenError(
                "Invalid or expired refresh token", code="invalid_refresh_token"
            )
        if not account.is_active:
            raise ForbiddenError(
                "Account is inactive. Contact support.", code="account_inactive"
            )

        access = self._tokens.issue(
            TokenKind.ACCESS,
            account.account_id,
            ver=account.token_version,
            roles=list(account.roles),
        )
        log.info("token_refreshed", account_id=account.account_id)
        return RefreshResult(account=account, access_token=access)

    def logout(self, refresh_token: Optional[str]) -> None:
        """Nothing is revoked server-side; the caller clears the cookies."""
        account_id = None
        if refresh_token:
            try:
                account_id = self._tokens.verify(TokenKind.REFRESH, refresh_token)["sub"]
            except TokenError:
                pass
        log.info("logout", account_id=account_id)

    async def authenticate(self, access_token: Optional[str]) -> AccountDoc:
        """Resolve the account behind an access token."""
        if not access_token:
            raise UnauthorizedError("Unauthorized request")
        try:
            claims = self._tokens.verify(TokenKind.ACCESS, access_token)
        except TokenError:
            raise UnauthorizedError("Invalid access token", code="invalid_access_token")

        account = await self._repo.find_by_id(claims["sub"])
        if account is None or claims.get("ver") != account.token_version:
            raise UnauthorizedError("Invalid access token", code="invalid_access_token")
        if not account.is_active:
            raise ForbiddenError(
                "Account is inactive. Contact support.", code="account_inactive"
            )
        return account

    # ── Authenticated account management ───────────────────────────────────

    async def change_password(
        self, account: AccountDoc, current_password: str, new_password: str
    ) -> TokenPair:
        """Replace the password and return a fresh token pair.

        Bumping token_version kills every token issued before the change,
        including the ones the caller is using right now.
        """
        self._require_password_login(account)
        if not verify_password(current_password, account.password_hash):
            raise UnauthorizedError(
                "Current password is incorrect", code="invalid_current_password"
            )
        if current_password == new_password:
            raise ValidationError(
                "New password must differ from the current password", field="new_password"
            )

        updated = await self._repo.compare_and_update(
            account.account_id,
            {"token_version": account.token_version},
            self._password_changes(account, new_password, account.token_version + 1),
        )
        if updated is None:
            raise ConflictError(
                "Account was modified concurrently. Please sign in again.",
                code="concurrent_update",
            )
        log.info("password_changed", account_id=updated.account_id)
        await self._strategy.update_password(updated, new_password)
        return self._issue_tokens(updated)

    async def update_profile(
        self, account: AccountDoc, name: Optional[str] = None, phone: Optional[str] = None
    ) -> AccountDoc:
        changes: dict[str, Any] = {}
        if name is not None:
            changes["name"] = name.strip() or None
        if phone is not None:
            changes["phone"] = phone.strip() or None
        if not changes:
            raise ValidationError("Nothing to update")
        updated = await self._repo.update(account.account_id, changes)
        if updated is None:
            raise NotFoundError("User not found")
        log.info("profile_updated", account_id=updated.account_id, fields=sorted(changes))
        return updated

    async def update_recovery_email(
        self, account: AccountDoc, recovery_email: Optional[str]
    ) -> AccountDoc:
        recovery_email = self._require_email(recovery_email)
        if recovery_email == account.email:
            raise ValidationError(
                "Recovery email must differ from the account email", field="recovery_email"
            )
        updated = await self._repo.update(
            account.account_id, {"recovery_email": recovery_email}
        )
        if updated is None:
            raise NotFoundError("User not found")
        log.info("recovery_email_updated", account_id=updated.account_id)
        return updated
