from datetime import datetime
from typing import Optional

from sqlalchemy import delete, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from harker.models import (
    Discussion,
    DiscussionGuideAnswer,
    LiveEvent,
    Reminder,
    Session,
    User,
    UserActivity,
    Video,
    utcnow,
)
from harker.schemas import (
    DiscussionCreate,
    GuideAnswerCreate,
    LiveEventCreate,
    LiveEventUpdate,
    ReminderCreate,
    UserActivityCreate,
    VideoCreate,
    VideoUpdate,
)

# Missing rows come back as None (or False for deletes); database errors propagate.


async def _add(db: AsyncSession, obj):
    db.add(obj)
    await db.commit()
    await db.refresh(obj)
    return obj


async def _delete(db: AsyncSession, model, obj_id: int) -> bool:
    result = await db.execute(delete(model).where(model.id == obj_id))
    await db.commit()
    return result.rowcount > 0


async def _merge(db: AsyncSession, obj, changes: dict):
    for key, val in changes.items():
        setattr(obj, key, val)
    await db.commit()
    await db.refresh(obj)
    return obj


# --- Users ---


async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalars().first()


async def get_user_by_username(db: AsyncSession, username: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalars().first()


async def create_user(db: AsyncSession, username: str, password_hash: str, is_admin: bool = False) -> User:
    return await _add(db, User(username=username, password=password_hash, is_admin=is_admin))


async def set_admin(db: AsyncSession, user_id: int, is_admin: bool = True) -> Optional[User]:
    user = await get_user(db, user_id)
    if not user:
        return None
    return await _merge(db, user, {"is_admin": is_admin})


# --- Videos ---


async def list_videos(db: AsyncSession) -> list[Video]:
    result = await db.execute(select(Video).order_by(Video.id))
    return list(result.scalars().all())


async def list_active_videos(db: AsyncSession) -> list[Video]:
    result = await db.execute(select(Video).where(Video.active.is_(True)).order_by(Video.id))
    return list(result.scalars().all())


async def get_video(db: AsyncSession, video_id: int) -> Optional[Video]:
    result = await db.execute(select(Video).where(Video.id == video_id))
    return result.scalars().first()


async def create_video(db: AsyncSession, video: VideoCreate) -> Video:
    return await _add(db, Video(**video.model_dump()))


async def update_video(db: AsyncSession, video_id: int, updated: VideoUpdate) -> Optional[Video]:
    video = await get_video(db, video_id)
    if not video:
        return None
    return await _merge(db, video, updated.model_dump(exclude_unset=True))


async def delete_video(db: AsyncSession, video_id: int) -> bool:
    return await _delete(db, Video, video_id)


# --- Live events ---


async def get_latest_live_event(db: AsyncSession) -> Optional[LiveEvent]:
    result = await db.execute(
        select(LiveEvent).order_by(LiveEvent.event_date.desc(), LiveEvent.id.desc()).limit(1)
    )
    return result.scalars().first()


async def get_live_event(db: AsyncSession, event_id: int) -> Optional[LiveEvent]:
    result = await db.execute(select(LiveEvent).where(LiveEvent.id == event_id))
    return result.scalars().first()


async def create_live_event(db: AsyncSession, event: LiveEventCreate) -> LiveEvent:
    return await _add(db, LiveEvent(**event.model_dump()))


async def update_live_event(db: AsyncSession, event_id: int, updated: LiveEventUpdate) -> Optional[LiveEvent]:
    event = await get_live_event(db, event_id)
    if not event:
        return None
    return await _merge(db, event, updated.model_dump(exclude_unset=True))


# --- Discussions ---


async def list_discussions(db: AsyncSession) -> list[Discussion]:
    result = await db.execute(select(Discussion).order_by(Discussion.id))
    return list(result.scalars().all())


async def get_discussion(db: AsyncSession, discussion_id: int) -> Optional[Discussion]:
    result = await db.execute(select(Discussion).where(Discussion.id == discussion_id))
    return result.scalars().first()


async def list_discussions_by_video(db: AsyncSession, video_id: int) -> list[Discussion]:
    result = await db.execute(
        select(Discussion).where(Discussion.video_id == video_id).order_by(Discussion.id)
    )
    return list(result.scalars().all())


async def list_discussions_by_live_event(db: AsyncSession, event_id: int) -> list[Discussion]:
    result = await db.execute(
        select(Discussion).where(Discussion.live_event_id == event_id).order_by(Discussion.id)
    )
    return list(result.scalars().all())


async def create_discussion(db: AsyncSession, discussion: DiscussionCreate) -> Discussion:
    data = discussion.model_dump()
    if data["date"] is None:
        data["date"] = utcnow()
    if data["participants"] is None:
        data["participants"] = 0
    if data["duration"] is None:
        data["duration"] = 0
    return await _add(db, Discussion(**data))


async def delete_discussion(db: AsyncSession, discussion_id: int) -> bool:
    return await _delete(db, Discussion, discussion_id)


# --- Activities, reminders, guide answers ---


async def create_user_activity(db: AsyncSession, user_id: str, activity: UserActivityCreate) -> UserActivity:
    return await _add(db, UserActivity(user_id=user_id, **activity.model_dump()))


async def list_user_activities(db: AsyncSession, user_id: str) -> list[UserActivity]:
    result = await db.execute(
        select(UserActivity)
        .where(UserActivity.user_id == user_id)
        .order_by(UserActivity.created_at.desc(), UserActivity.id.desc())
    )
    return list(result.scalars().all())


async def list_event_activities(db: AsyncSession, event_id: int, event_type: str) -> list[UserActivity]:
    result = await db.execute(
        select(UserActivity)
        .where(UserActivity.event_id == event_id, UserActivity.event_type == event_type)
        .order_by(UserActivity.id)
    )
    return list(result.scalars().all())


async def count_rsvps(db: AsyncSession, event_id: int, event_type: str = "live") -> int:
    # repeated RSVPs from one user are counted individually
    result = await db.execute(
        select(func.count(UserActivity.id)).where(
            UserActivity.event_id == event_id,
            UserActivity.event_type == event_type,
            UserActivity.activity_type == "rsvp",
        )
    )
    return result.scalar_one()


async def create_reminder(db: AsyncSession, user_id: str, reminder: ReminderCreate) -> Reminder:
    return await _add(db, Reminder(user_id=user_id, **reminder.model_dump()))


async def list_reminders(db: AsyncSession, user_id: str) -> list[Reminder]:
    result = await db.execute(
        select(Reminder).where(Reminder.user_id == user_id).order_by(Reminder.id)
    )
    return list(result.scalars().all())


async def list_event_reminders(db: AsyncSession, event_id: int, event_type: str) -> list[Reminder]:
    result = await db.execute(
        select(Reminder)
        .where(Reminder.event_id == event_id, Reminder.event_type == event_type)
        .order_by(Reminder.id)
    )
    return list(result.scalars().all())


async def create_guide_answer(db: AsyncSession, user_id: str, answer: GuideAnswerCreate) -> DiscussionGuideAnswer:
    return await _add(db, DiscussionGuideAnswer(user_id=user_id, **answer.model_dump()))


async def list_guide_answers(db: AsyncSession, user_id: str) -> list[DiscussionGuideAnswer]:
    result = await db.execute(
        select(DiscussionGuideAnswer)
        .where(DiscussionGuideAnswer.user_id == user_id)
        .order_by(DiscussionGuideAnswer.id)
    )
    return list(result.scalars().all())


async def list_event_guide_answers(db: AsyncSession, event_id: int, event_type: str) -> list[DiscussionGuideAnswer]:
    result = await db.execute(
        select(DiscussionGuideAnswer)
        .where(
            DiscussionGuideAnswer.event_id == event_id,
            DiscussionGuideAnswer.event_type == event_type,
        )
        .order_by(DiscussionGuideAnswer.question_number, DiscussionGuideAnswer.id)
    )
    return list(result.scalars().all())


# --- Sessions ---


async def create_session(db: AsyncSession, sid: str, user_id: int, expires_at: datetime) -> Session:
    return await _add(db, Session(sid=sid, user_id=user_id, expires_at=expires_at))


async def get_session(db: AsyncSession, sid: str) -> Optional[Session]:
    result = await db.execute(select(Session).where(Session.sid == sid))
    return result.scalars().first()


async def delete_session(db: AsyncSession, sid: str) -> bool:
    result = await db.execute(delete(Session).where(Session.sid == sid))
    await db.commit()
    return result.rowcount > 0


async def purge_expired_sessions(db: AsyncSession) -> int:
    result = await db.execute(delete(Session).where(Session.expires_at <= utcnow()))
    await db.commit()
    return result.rowcount
