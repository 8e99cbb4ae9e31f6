"""
FastAPI application factory.
create_app() is the single entry point for building the app.

The login strategy is picked here, once, from LOGIN_MODE; nothing below the
composition root branches on the deployment mode.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import redis.asyncio as aioredis
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from infrastructure.mfa.cognito import CognitoMfaProvider
from infrastructure.rate_limiter import RateLimiter
from repositories.account_repository import MongoAccountRepository, ensure_indexes
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from services.auth_service import AuthService
from services.login_strategies import DirectLogin, LoginStrategy, MfaDelegatedLogin
from services.notifications import AccountNotifier
from services.token_service import OtpService, TokenService
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def build_login_strategy(settings: AppSettings) -> LoginStrategy:
    if settings.auth.login_mode == "mfa":
        return MfaDelegatedLogin(CognitoMfaProvider(settings.cognito))
    return DirectLogin()


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
            profiles_sample_rate=settings.sentry.sentry_profile_sample_rate,
        )

    setup_logging(
        settings.logging.log_level, settings.logging.log_format, env=settings.env
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri, tz_aware=True
        )
        app.state.mongo_client = mongo_client
        app.state.db = mongo_client[settings.db.db_name]
        app.state.settings = settings

        # Redis is optional; without it the request throttles are disabled
        redis_client = None
        if settings.redis.redis_uri:
            redis_client = aioredis.from_url(
                settings.redis.redis_uri,
                encoding="utf-8",
                decode_responses=True,
            )
        app.state.redis = redis_client

        await ensure_indexes(app.state.db, settings.db.accounts_collection)
        repository = MongoAccountRepository(
            app.state.db[settings.db.accounts_collection]
        )

        email_http = HttpClient(timeout=10.0)
        notifier = AccountNotifier(
            ZeptoMailProvider(settings.email, email_http),
            app_name=settings.app_name,
            verify_email_url=settings.auth.verify_email_url,
            otp_ttl_minutes=settings.auth.otp_ttl_seconds // 60,
        )

        strategy = build_login_strategy(settings)
        app.state.auth_service = AuthService(
            repository,
            TokenService(settings.tokens),
            OtpService(settings.tokens, settings.auth),
            notifier,
            strategy,
            settings.auth,
        )
        app.state.rate_limiter = RateLimiter(redis_client)
        log.info(
            "app_started",
            env=settings.env,
            login_mode=strategy.name,
            throttling=redis_client is not None,
        )

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await email_http.aclose()
        await mongo_client.close()
        if redis_client is not None:
            await redis_client.aclose()

    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    # Credentialed CORS so browsers send the refresh cookie
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(health_router)
    app.include_router(auth_router)

    return app
