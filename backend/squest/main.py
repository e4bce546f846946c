"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from squest.config import settings
from squest.core.errors import (
    DuplicateRelationship,
    FriendError,
    InvalidFriendRequest,
    NoActiveQuest,
    NotAuthenticated,
    QuestAlreadyInProgress,
    QuestError,
    QuestNotFound,
    RelationshipNotFound,
    TransportError,
    UserNotFound,
)
from squest.db.database import Base, engine
from squest.db.http import close_http_client
from squest.db.local_cache import LocalBase, local_engine
from squest.db.redis import close_redis

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Most specific first; the base classes map to 400
ERROR_STATUS = [
    (UserNotFound, 404),
    (RelationshipNotFound, 404),
    (QuestNotFound, 404),
    (NoActiveQuest, 404),
    (DuplicateRelationship, 409),
    (QuestAlreadyInProgress, 409),
    (NotAuthenticated, 401),
    (TransportError, 502),
    (InvalidFriendRequest, 400),
]


def status_for(exc: Exception) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format=LOG_FORMAT,
    )
    # Import all models so both metadata objects know about them
    import squest.models  # noqa: F401

    # Startup: create tables (dev only; use migrations in production)
    if settings.APP_ENV == "development":
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    async with local_engine.begin() as conn:
        await conn.run_sync(LocalBase.metadata.create_all)
    logger.info("Squest API started (%s, remote backend: %s)", settings.APP_ENV, settings.REMOTE_BACKEND)
    yield
    # Shutdown: close connections
    await engine.dispose()
    await local_engine.dispose()
    await close_redis()
    await close_http_client()


app = FastAPI(
    title="Squest API",
    description="Friends sync and side quests for the Squest mobile app",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FriendError)
@app.exception_handler(QuestError)
async def domain_error_handler(request: Request, exc: FriendError | QuestError):
    status = status_for(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# --- Routes ---
from squest.api.routes import friends, quests, users  # noqa: E402

app.include_router(friends.router, prefix="/api/friends", tags=["friends"])
app.include_router(users.router, prefix="/api/users", tags=["users"])
app.include_router(quests.router, prefix="/api/quests", tags=["quests"])


@app.get("/health")
async def health_check():
    return {"status": "ok"}
