import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from repricer.db import settings
from repricer.observability import RequestLoggingMiddleware
from repricer.routers import adjustments, campaigns, webhooks
from repricer.services.scheduler import CampaignScheduler

logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    scheduler = CampaignScheduler() if settings.scheduler_enabled else None
    app.state.scheduler = scheduler
    if scheduler is not None:
        await scheduler.start()
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


app = FastAPI(title="Repricer API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS or ALLOWED_ORIGINS,
    allow_methods=["*"], allow_headers=["*"], allow_credentials=True,
)
app.add_middleware(RequestLoggingMiddleware)


@app.get("/health")
def health():
    scheduler = getattr(app.state, "scheduler", None)
    return {"ok": True, "scheduler": bool(scheduler and scheduler.running)}


app.include_router(adjustments.router)
app.include_router(campaigns.router)
app.include_router(webhooks.router)
