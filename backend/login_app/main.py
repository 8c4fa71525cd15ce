"""Log In Backend Application.

Serves the log in screen over HTTP: username/password log in and
Sign in with Apple against a Parse Server (Back4App) identity service.

Modules:
    - auth: log in controller, Parse identity service, Apple broker
    - config: YAML settings + secrets
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from login_app.auth.apple_service import AppleWebAuthorizationBroker
from login_app.auth.identity_service import ParseIdentityService
from login_app.auth.router import configure_login
from login_app.auth.router import router as login_router
from login_app.config import get_config

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every request line and TLS handshake.
for _noisy in (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    parse_secrets = config.secrets.parse
    if not parse_secrets.application_id:
        logger.warning("Parse application_id is not configured; log in calls will fail")

    identity_service = ParseIdentityService(
        server_url=config.identity_service.server_url,
        application_id=parse_secrets.application_id,
        client_key=parse_secrets.client_key,
        rest_api_key=parse_secrets.rest_api_key,
        revocable_session=config.identity_service.revocable_session,
    )
    apple_broker = AppleWebAuthorizationBroker(
        client_id=config.apple.client_id,
        redirect_uri=config.apple.redirect_uri,
        authorize_url=config.apple.authorize_url,
        response_timeout_seconds=config.apple.response_timeout_seconds,
    )
    configure_login(app, identity_service, apple_broker)
    logger.info(
        "Log in ready: identity_service=%s, apple.enabled=%s",
        config.identity_service.server_url,
        config.apple.enabled,
    )

    yield  # Application runs here

    # Shutdown
    app.state.login_screens.close_all()
    await identity_service.aclose()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Log In API",
    description="Log in screen backend - credentials and Sign in with Apple",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(login_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
