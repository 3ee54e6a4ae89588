"""
Ghost -> Discourse SSO bridge.
GET /sso per SSO_METHOD (session or jwt), OPTIONS /sso for jwt, GET /health.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from sso_bridge import config
from sso_bridge.ghost import close_ghost_client
from sso_bridge.keys import get_signing_key
from sso_bridge.sso import build_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Refuse to start on bad config, derive the signing key, close the Ghost client on shutdown."""
    problems = config.validate_config()
    if problems:
        raise RuntimeError("Invalid configuration: " + "; ".join(problems))
    get_signing_key()
    logger.info("SSO bridge ready (method=%s, ghost=%s)", app.state.sso_method, config.GHOST_URL)
    yield
    await close_ghost_client()


def build_app(sso_method: str) -> FastAPI:
    app = FastAPI(title="SSO Bridge", version="0.1.0", lifespan=lifespan)
    app.state.sso_method = sso_method
    app.include_router(build_router(sso_method), tags=["sso"])

    @app.get("/health")
    def health():
        """Health check endpoint."""
        return {"status": "ok", "service": "sso_bridge", "sso_method": sso_method}

    return app


app = build_app(config.SSO_METHOD if config.SSO_METHOD in config.SSO_METHODS else "session")


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "sso_bridge.main:app",
        host=config.HOST,
        port=config.PORT,
    )
