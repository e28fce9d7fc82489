# harker/main.py
"""
uvicorn harker.main:app --host 0.0.0.0 --port 5000 --workers 2
"""
import logging
import time
from typing import Optional

import sentry_sdk
from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sentry_sdk.integrations.fastapi import FastApiIntegration
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from harker import auth, config, crud, schemas, seed
from harker.auth import IdentityProviderError, Principal, require_admin, require_user
from harker.database import async_session, create_tables, engine, get_db
from harker.transcription import (
    AudioDataError,
    TranscriptionError,
    TranscriptionService,
    decode_audio_data_url,
    get_transcriber,
)

config.configure_logging()
logger = logging.getLogger(__name__)

if config.SENTRY_DSN:
    # unhandled exceptions are reported with full stack trace and request context
    sentry_sdk.init(dsn=config.SENTRY_DSN, integrations=[FastApiIntegration()])

router = APIRouter(prefix="/api")

# Initialize rate limiter
limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="Harker")
app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    status_code = 500  # unhandled errors become 500 outside this middleware
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        if request.url.path.startswith("/api"):
            elapsed_ms = (time.perf_counter() - start) * 1000
            logger.info(f"{request.method} {request.url.path} {status_code} in {elapsed_ms:.0f}ms")


# --- Error handlers ---


# Rate limit error handler
@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"message": "Too many requests", "detail": str(exc.detail)},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"path": [part for part in err["loc"] if part != "body"], "message": err["msg"]}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": "Invalid request data", "errors": errors},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail}, headers=exc.headers)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.exception(f"Database failure on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


@app.exception_handler(TranscriptionError)
async def transcription_error_handler(request: Request, exc: TranscriptionError):
    logger.error(f"Transcription error: {exc.__cause__ or exc}")
    return JSONResponse(status_code=500, content={"message": "Failed to transcribe audio"})


@app.exception_handler(IdentityProviderError)
async def identity_provider_error_handler(request: Request, exc: IdentityProviderError):
    logger.error(f"Authentication backend error: {exc}")
    return JSONResponse(status_code=500, content={"message": "Failed to verify authentication"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"message": "Internal server error"})


# --- Lifecycle ---


@app.on_event("startup")
async def startup_event():
    await create_tables()
    async with async_session() as db:
        purged = await crud.purge_expired_sessions(db)
        if purged:
            logger.info(f"Purged {purged} expired sessions")
        if config.ADMIN_USERNAME and config.ADMIN_PASSWORD:
            await seed.ensure_admin(db, config.ADMIN_USERNAME, config.ADMIN_PASSWORD)
        if config.SEED_DATABASE:
            await seed.seed_sample_content(db)
    logger.info(f"Started with {config.AUTH_STRATEGY} authentication")


@app.on_event("shutdown")
async def shutdown_event():
    await engine.dispose()


@router.get("/health")
async def health():
    return {"status": "ok"}


# --- Auth Routes ---


@router.post("/register", response_model=schemas.UserOut, status_code=201)
async def register(payload: schemas.UserCreate, response: Response, db: AsyncSession = Depends(get_db)):
    if await crud.get_user_by_username(db, payload.username):
        raise HTTPException(status_code=400, detail="Username already exists")
    try:
        user = await crud.create_user(db, payload.username, await auth.hash_password(payload.password))
    except IntegrityError:
        # lost a race against a concurrent registration
        await db.rollback()
        raise HTTPException(status_code=400, detail="Username already exists")
    await auth.start_session(db, response, user)
    return user


@router.post("/login", response_model=schemas.UserOut)
@limiter.limit(config.LOGIN_RATE_LIMIT)
async def login(
    request: Request,
    payload: schemas.UserCreate,
    response: Response,
    db: AsyncSession = Depends(get_db),
):
    user = await auth.authenticate_user(db, payload.username, payload.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    await auth.start_session(db, response, user)
    return user


@router.post("/logout")
async def logout(request: Request, response: Response, db: AsyncSession = Depends(get_db)):
    await auth.end_session(db, request, response)
    return {"message": "Logged out"}


@router.get("/user", response_model=schemas.UserOut)
async def current_user(principal: Principal = Depends(require_user)):
    return principal


# --- Video Routes ---


@router.get("/videos", response_model=list[schemas.VideoOut])
async def list_videos(db: AsyncSession = Depends(get_db)):
    return await crud.list_active_videos(db)


@router.get("/admin/videos", response_model=list[schemas.VideoOut])
async def list_all_videos(principal: Principal = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    return await crud.list_videos(db)


@router.get("/videos/{video_id}", response_model=schemas.VideoOut)
async def get_video(video_id: int, db: AsyncSession = Depends(get_db)):
    video = await crud.get_video(db, video_id)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


@router.post("/videos", response_model=schemas.VideoOut, status_code=201)
async def create_video(
    video: schemas.VideoCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_video(db, video)


@router.put("/videos/{video_id}", response_model=schemas.VideoOut)
async def update_video(
    video_id: int,
    updated: schemas.VideoUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    video = await crud.update_video(db, video_id, updated)
    if not video:
        raise HTTPException(status_code=404, detail="Video not found")
    return video


@router.delete("/videos/{video_id}", status_code=204)
async def delete_video(video_id: int, principal: Principal = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    if not await crud.delete_video(db, video_id):
        raise HTTPException(status_code=404, detail="Video not found")
    return


@router.get("/videos/{video_id}/discussions", response_model=list[schemas.DiscussionOut])
async def list_video_discussions(video_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.list_discussions_by_video(db, video_id)


# --- Live Event Routes ---


@router.get("/live-events", response_model=schemas.LiveEventOut)
async def get_current_live_event(db: AsyncSession = Depends(get_db)):
    event = await crud.get_latest_live_event(db)
    if not event:
        raise HTTPException(status_code=404, detail="No live event found")
    return event


@router.get("/live-events/{event_id}", response_model=schemas.LiveEventOut)
async def get_live_event(event_id: int, db: AsyncSession = Depends(get_db)):
    event = await crud.get_live_event(db, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Live event not found")
    return event


@router.post("/live-events", response_model=schemas.LiveEventOut, status_code=201)
async def create_live_event(
    event: schemas.LiveEventCreate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_live_event(db, event)


@router.put("/live-events/{event_id}", response_model=schemas.LiveEventOut)
async def update_live_event(
    event_id: int,
    updated: schemas.LiveEventUpdate,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    event = await crud.update_live_event(db, event_id, updated)
    if not event:
        raise HTTPException(status_code=404, detail="Live event not found")
    return event


@router.get("/live-events/{event_id}/discussions", response_model=list[schemas.DiscussionOut])
async def list_live_event_discussions(event_id: int, db: AsyncSession = Depends(get_db)):
    return await crud.list_discussions_by_live_event(db, event_id)


@router.get("/live-events/{event_id}/rsvps", response_model=schemas.RsvpCount)
async def count_live_event_rsvps(event_id: int, db: AsyncSession = Depends(get_db)):
    count = await crud.count_rsvps(db, event_id, "live")
    return {"event_id": event_id, "event_type": "live", "count": count}


# --- Discussion Routes ---


@router.get("/discussions", response_model=list[schemas.DiscussionOut])
async def list_discussions(db: AsyncSession = Depends(get_db)):
    return await crud.list_discussions(db)


@router.get("/discussions/{discussion_id}", response_model=schemas.DiscussionOut)
async def get_discussion(discussion_id: int, db: AsyncSession = Depends(get_db)):
    discussion = await crud.get_discussion(db, discussion_id)
    if not discussion:
        raise HTTPException(status_code=404, detail="Discussion not found")
    return discussion


@router.post("/discussions", response_model=schemas.DiscussionOut, status_code=201)
async def create_discussion(
    discussion: schemas.DiscussionCreate,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_discussion(db, discussion)


@router.delete("/discussions/{discussion_id}", status_code=204)
async def delete_discussion(
    discussion_id: int,
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if not await crud.delete_discussion(db, discussion_id):
        raise HTTPException(status_code=404, detail="Discussion not found")
    return


# --- Transcription Route ---


@router.post("/transcribe", response_model=schemas.TranscriptionOut)
async def transcribe(
    payload: schemas.TranscriptionRequest,
    principal: Principal = Depends(require_user),
    transcriber: TranscriptionService = Depends(get_transcriber),
):
    try:
        audio = decode_audio_data_url(payload.audio)
    except AudioDataError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return {"transcription": await transcriber.transcribe(audio)}


# --- Activity, Reminder and Guide Answer Routes ---


@router.post("/user-activities", response_model=schemas.UserActivityOut, status_code=201)
async def record_activity(
    activity: schemas.UserActivityCreate,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_user_activity(db, principal.user_key, activity)


@router.get("/user-activities", response_model=list[schemas.UserActivityOut])
async def list_activities(principal: Principal = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await crud.list_user_activities(db, principal.user_key)


@router.post("/reminders", response_model=schemas.ReminderOut, status_code=201)
async def set_reminder(
    reminder: schemas.ReminderCreate,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_reminder(db, principal.user_key, reminder)


@router.get("/reminders", response_model=list[schemas.ReminderOut])
async def list_reminders(principal: Principal = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await crud.list_reminders(db, principal.user_key)


@router.post("/discussion-guide-answers", response_model=schemas.GuideAnswerOut, status_code=201)
async def answer_guide_question(
    answer: schemas.GuideAnswerCreate,
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await crud.create_guide_answer(db, principal.user_key, answer)


@router.get("/discussion-guide-answers", response_model=list[schemas.GuideAnswerOut])
async def list_guide_answers(
    event_id: Optional[int] = Query(None, alias="eventId"),
    event_type: Optional[schemas.EventType] = Query(None, alias="eventType"),
    principal: Principal = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    if event_id is None and event_type is None:
        return await crud.list_guide_answers(db, principal.user_key)
    if event_id is None or event_type is None:
        raise HTTPException(status_code=400, detail="eventId and eventType must be given together")
    return await crud.list_event_guide_answers(db, event_id, event_type)


app.include_router(router)
