from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from contextlib import asynccontextmanager

from tutorbot.db.database import close_db, init_db
from tutorbot.middleware.cron_auth import CronAuthMiddleware
from tutorbot.services.conversation_service import get_engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    # Fail at startup, not on the first message, if the playbooks are broken
    get_engine()
    yield
    await close_db()


app = FastAPI(title="WhatsApp Spanish Tutor", lifespan=lifespan)

app.add_middleware(CronAuthMiddleware)

# Import and register routes
from tutorbot.routes.webhook import router as webhook_router
from tutorbot.routes.cron import router as cron_router

app.include_router(webhook_router)
app.include_router(cron_router)


@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "OK"
