from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from cargo_api.db import filters as _filters  # noqa: F401  (register SQLAlchemy tenant filter)
from cargo_api.db.init_db import init_db
from cargo_api.errors import install_error_handlers
from cargo_api.logging_config import configure_app_logging
from cargo_api.routers import (
    auth,
    branches,
    consignments,
    customers,
    dashboard,
    health,
    ogpl,
    onboarding,
    public,
    users,
)
from cargo_api.security.config import load_security_config
from cargo_api.security.dependencies import enforce_security
from cargo_api.security.tokens import TokenSigner
from cargo_api.services.notifications import Mailer, SmsSender, build_mailer, build_sms_sender
from cargo_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    *,
    sms_sender: SmsSender | None = None,
    mailer: Mailer | None = None,
) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning environment=%s", settings.environment)

        init_db(seed_demo_data=settings.seed_demo_data, bcrypt_rounds=settings.bcrypt_rounds)
        logger.info("Database initialized (tables ensured, demo seed=%s)", settings.seed_demo_data)

        yield

    # Global dependency: applies security with zero changes to route handlers.
    app = FastAPI(title="Cargo API", dependencies=[Depends(enforce_security)], lifespan=lifespan)
    install_error_handlers(app, expose_internal_errors=settings.is_development)

    app.state.settings = settings
    app.state.security_config = load_security_config(settings.resolved_security_config_path())
    app.state.token_signer = TokenSigner(settings)
    app.state.sms_sender = sms_sender or build_sms_sender(settings)
    app.state.mailer = mailer or build_mailer(settings)
    logger.info("Loaded security config: %s", settings.resolved_security_config_path())

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(onboarding.router)
    app.include_router(branches.router)
    app.include_router(users.router)
    app.include_router(customers.router)
    app.include_router(consignments.router)
    app.include_router(ogpl.router)
    app.include_router(dashboard.router)
    app.include_router(public.router)

    return app


app = create_app()
