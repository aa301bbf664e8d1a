from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from dashboard.core.config import get_settings
from dashboard.core.database import engine, Base
from dashboard import models  # noqa: F401  registers tables with Base.metadata
from dashboard.routers import (
    account,
    admin,
    agent_runs,
    auth,
    billing,
    chats,
    cron,
    dashboard,
    expenditures,
    github,
    mail,
    news,
    news_sources,
    notifications,
    stripe,
    themes,
    timers,
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("uvicorn.error")

settings = get_settings()

app = FastAPI(
    title="Personal Dashboard API",
    description="Mail, pull requests, news, AI chat and billing for a personal dashboard",
    version="0.1.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.middleware("http")
async def log_requests(request, call_next):
    logger.info(f"{request.method} {request.url}")
    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception(f"Unhandled exception on {request.method} {request.url.path}: {e}")
        return JSONResponse(status_code=500, content={"detail": "Internal Server Error"})
    logger.info(f"Response status: {response.status_code}")
    return response

@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

for module in (
    auth,
    account,
    dashboard,
    themes,
    billing,
    stripe,
    chats,
    agent_runs,
    admin,
    mail,
    github,
    news,
    news_sources,
    notifications,
    cron,
    timers,
    expenditures,
):
    app.include_router(module.router)

@app.get("/")
async def root():
    return {"message": "Welcome to the Personal Dashboard API"}

@app.get("/health")
async def health_check():
    return {"status": "ok"}
