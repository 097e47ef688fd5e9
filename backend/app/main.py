"""FastAPI application entry point."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from app.config import settings
from app.database import Base, engine
from app.logging_config import setup_logging
from app.routing import redirect_for
from app.services.push_bus import PushBus
from app.session import TokenSessionOracle

# Import routers
from app.routers import messages, pages, profiles, realtime, rooms

# Import all models so Base.metadata knows about them
from app.models.profile import Profile            # noqa: F401
from app.models.room import Room, RoomMember      # noqa: F401
from app.models.message import Message            # noqa: F401

setup_logging()

app = FastAPI(
    title="Room Chat",
    description="Multi-tenant room chat with admin/member moderation and realtime message sync",
    version="0.1.0",
)

# App-scoped collaborators, handed to routes through dependencies
app.state.push_bus = PushBus()
app.state.session_oracle = TokenSessionOracle()

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def session_gates(request: Request, call_next):
    """Redirect page requests according to session state (API routes answer 401/403 instead)."""
    path = request.url.path
    if not path.startswith("/api"):
        token = request.cookies.get(settings.SESSION_COOKIE)
        identity = request.app.state.session_oracle.resolve(token)
        target = redirect_for(path, identity)
        if target is not None:
            return RedirectResponse(url=target, status_code=307)
    return await call_next(request)


# Register routers
app.include_router(profiles.router, prefix="/api/profiles", tags=["Profiles"])
app.include_router(rooms.router, prefix="/api/rooms", tags=["Rooms"])
app.include_router(messages.router, prefix="/api/messages", tags=["Messages"])
app.include_router(realtime.router, tags=["Realtime"])
app.include_router(pages.router, tags=["Pages"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
