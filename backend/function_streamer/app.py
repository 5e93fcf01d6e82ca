import os
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from dotenv import load_dotenv

from .routes.health import router as health_router
from .routes.relay import router as relay_router


def create_app() -> FastAPI:
    """Development stand-in for the stream relay.

    Accepts framed streams at ``/.stream/{request_id}`` and keeps the decoded
    result in memory so functions can be exercised end to end locally.
    """
    # Load environment variables from .env if present
    if os.getenv("DOTENV_DISABLED", "false").lower() not in {"1", "true", "yes"}:
        load_dotenv()

    app = FastAPI(title="Function Streaming Dev Relay", version="0.1.0")

    # CORS: configure via env CORS_ALLOW_ORIGINS as CSV, default "*"
    cors_env = os.getenv("CORS_ALLOW_ORIGINS", "*")
    cors_origins = [o.strip() for o in cors_env.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health_router, prefix="/api")
    app.include_router(relay_router)

    return app
