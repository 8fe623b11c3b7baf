from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from tutorbot.config import settings

PROTECTED_PREFIXES = ("/cron/",)


class CronAuthMiddleware(BaseHTTPMiddleware):
    """Require X-Cron-Secret on scheduler endpoints when CRON_SECRET is configured."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # Webhook, health and docs are always reachable
        if not path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        # No secret configured: scheduler endpoints are open (dev)
        if not settings.cron_secret:
            return await call_next(request)

        if request.headers.get("X-Cron-Secret", "") == settings.cron_secret:
            return await call_next(request)

        return JSONResponse(status_code=401, content={"detail": "Not authenticated"})
