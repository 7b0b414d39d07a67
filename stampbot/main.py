import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stampbot.config import get_settings
from stampbot.database import init_db
from stampbot.logging_config import get_logger, setup_logging
from stampbot.routers import admin, alerts, media, qmunity, webhook

setup_logging("DEBUG" if get_settings().debug else "INFO")

logger = get_logger("main")

app = FastAPI(
    title="Stampbot",
    description="WhatsApp stamp card demo and community side-quests",
    version="0.1.0",
)

cors_env = os.environ.get("CORS_ALLOW_ORIGINS", "*")
cors_origins = [origin.strip() for origin in cors_env.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(webhook.router)
app.include_router(qmunity.router)
app.include_router(media.router)
app.include_router(admin.router)
app.include_router(alerts.router)


@app.on_event("startup")
async def create_tables() -> None:
    settings = get_settings()
    if settings.uses_supabase:
        logger.info("Using Supabase record store")
        return
    init_db()
    logger.info("Using SQL record store")


@app.get("/health")
async def health():
    return {"status": "ok"}
