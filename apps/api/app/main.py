from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from app.api.errors import install_exception_handlers
from app.api.router import api_router
from app.core.config import settings
from app.core.database import init_db

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("fableweaver.security")


def _using_default_dev_token() -> bool:
    for chunk in str(settings.auth_tokens or "").split(","):
        item = chunk.strip()
        if not item or ":" not in item:
            continue
        _, token = item.split(":", 1)
        if token.strip() == "local-dev-token":
            return True
    return str(settings.auth_token or "").strip() == "local-dev-token"


def _emit_startup_security_notice() -> None:
    if not settings.auth_enabled:
        logger.warning(
            "SECURITY WARNING: AUTH_ENABLED=false. Every request acts as %s; keep this deployment local-only.",
            settings.auth_disabled_user,
        )
    if _using_default_dev_token():
        logger.warning(
            "SECURITY WARNING: default token 'local-dev-token' is active. Replace it before any non-local exposure."
        )
    admins = str(settings.auth_admin_users or "").strip()
    if not admins:
        logger.warning("SECURITY NOTICE: AUTH_ADMIN_USERS is empty. Moderation and review routes will reject everyone.")
    elif "*" in admins.replace(",", "|").split("|"):
        logger.warning("SECURITY WARNING: AUTH_ADMIN_USERS='*' grants the admin role to every authenticated user.")
    if not str(settings.recommendation_base_url or "").strip():
        logger.info("RECOMMENDATION_BASE_URL is empty; recommendation proxy routes will return 500.")


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    _emit_startup_security_notice()
    yield


app = FastAPI(title="fableweaver-api", lifespan=lifespan)
install_exception_handlers(app)
app.include_router(api_router, prefix=settings.api_prefix)


@app.get("/health")
def health():
    return {"ok": True, "profile": settings.config_profile}
