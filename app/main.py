# File: app/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from app.core.config import cors_origins_list, settings
from app.core.errors import DomainError, InvalidTransition
from app.core.ratelimit import limiter
from app.routers import admin, auth, events, issues, issues_stats, notifications, push_subscriptions, users
from app.routers import settings as settings_router
from app.services.storage import MEDIA_PREFIX, MEDIA_ROOT

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Civic Issue Workflow API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(InvalidTransition)
async def invalid_transition_handler(request: Request, exc: InvalidTransition):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": "Invalid status transition", "from": exc.current, "to": exc.requested},
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins_list(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/health")
def health():
    return {"ok": True}

app.include_router(auth.router)
# stats paths must be matched before /issues/{issue_id}
app.include_router(issues_stats.router)
app.include_router(issues.router)
app.include_router(notifications.router)
app.include_router(users.router)
app.include_router(admin.router)
app.include_router(settings_router.router)
app.include_router(push_subscriptions.router)
app.include_router(events.router)

# local photo store; unused once Supabase is configured
MEDIA_ROOT.mkdir(parents=True, exist_ok=True)
app.mount(MEDIA_PREFIX, StaticFiles(directory=MEDIA_ROOT), name="media")
