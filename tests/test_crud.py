from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from starlette.responses import Response

from harker import auth, config, crud, seed
from harker.database import Base
from harker.models import utcnow
from harker.schemas import (
    DiscussionCreate,
    LiveEventCreate,
    ReminderCreate,
    UserActivityCreate,
    VideoCreate,
    VideoUpdate,
)


@pytest.fixture()
def run_db(tmp_path: Path):
    """Run ``scenario(db)`` against a fresh database of its own."""

    def run(scenario):
        async def main():
            engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'crud.db'}")
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            session_factory = sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            try:
                async with session_factory() as db:
                    return await scenario(db)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return run


def _video(**overrides) -> VideoCreate:
    data = {
        "title": "Impressionism",
        "description": "Light and colour",
        "youtube_url": "jWE6cIqIbGU",
        "discussion_guide": "1. Which painting stood out?",
    }
    data.update(overrides)
    return VideoCreate(**data)


def test_missing_rows_are_none_not_errors(run_db):
    async def scenario(db):
        assert await crud.get_user(db, 1) is None
        assert await crud.get_user_by_username(db, "nobody") is None
        assert await crud.get_video(db, 1) is None
        assert await crud.get_live_event(db, 1) is None
        assert await crud.get_latest_live_event(db) is None
        assert await crud.get_discussion(db, 1) is None
        assert await crud.update_video(db, 1, VideoUpdate(title="x")) is None
        assert await crud.delete_video(db, 1) is False
        assert await crud.delete_discussion(db, 1) is False
        assert await crud.set_admin(db, 1) is None

    run_db(scenario)


def test_video_merge_update(run_db):
    async def scenario(db):
        video = await crud.create_video(db, _video(duration=68))
        updated = await crud.update_video(db, video.id, VideoUpdate(title="Monet"))
        return updated

    updated = run_db(scenario)
    assert updated.title == "Monet"
    assert updated.description == "Light and colour"
    assert updated.duration == 68
    assert updated.active is True


def test_active_listing(run_db):
    async def scenario(db):
        await crud.create_video(db, _video(title="a"))
        await crud.create_video(db, _video(title="b", active=False))
        return await crud.list_videos(db), await crud.list_active_videos(db)

    everything, active = run_db(scenario)
    assert [v.title for v in everything] == ["a", "b"]
    assert [v.title for v in active] == ["a"]


def test_latest_live_event_orders_by_date(run_db):
    def event(title: str, when: datetime) -> LiveEventCreate:
        return LiveEventCreate(
            title=title,
            description="d",
            youtube_url="yt",
            event_date=when,
            discussion_guide="1. Why?",
        )

    async def scenario(db):
        await crud.create_live_event(db, event("middle", datetime(2024, 5, 1)))
        await crud.create_live_event(db, event("latest", datetime(2024, 9, 1)))
        await crud.create_live_event(db, event("oldest", datetime(2023, 1, 1)))
        return await crud.get_latest_live_event(db)

    assert run_db(scenario).title == "latest"


def test_discussion_defaults(run_db):
    async def scenario(db):
        return await crud.create_discussion(db, DiscussionCreate(title="t", transcription="words"))

    discussion = run_db(scenario)
    assert discussion.participants == 0
    assert discussion.duration == 0
    assert discussion.audio_url is None
    assert abs((utcnow() - discussion.date).total_seconds()) < 60


def test_count_rsvps_counts_duplicates(run_db):
    async def scenario(db):
        rsvp = UserActivityCreate(event_id=5, event_type="live", activity_type="rsvp")
        await crud.create_user_activity(db, "1", rsvp)
        await crud.create_user_activity(db, "1", rsvp)
        await crud.create_user_activity(db, "2", rsvp)
        await crud.create_user_activity(
            db, "2", UserActivityCreate(event_id=5, event_type="video", activity_type="rsvp")
        )
        return (
            await crud.count_rsvps(db, 5, "live"),
            len(await crud.list_event_activities(db, 5, "live")),
            len(await crud.list_user_activities(db, "1")),
        )

    assert run_db(scenario) == (3, 3, 2)


def test_sessions_expire(run_db):
    async def scenario(db):
        await crud.create_session(db, "fresh", 1, utcnow() + timedelta(hours=24))
        await crud.create_session(db, "stale", 1, utcnow() - timedelta(seconds=1))
        purged = await crud.purge_expired_sessions(db)
        return purged, await crud.get_session(db, "fresh"), await crud.get_session(db, "stale")

    purged, fresh, stale = run_db(scenario)
    assert purged == 1
    assert fresh is not None
    assert stale is None


def test_starting_a_session_purges_expired_ones(run_db):
    async def scenario(db):
        user = await crud.create_user(db, "carol", "hash.salt")
        await crud.create_session(db, "abandoned", user.id, utcnow() - timedelta(minutes=5))
        response = Response()
        await auth.start_session(db, response, user)
        return await crud.get_session(db, "abandoned"), response.headers["set-cookie"]

    abandoned, set_cookie = run_db(scenario)
    assert abandoned is None
    assert set_cookie.startswith(f"{config.SESSION_COOKIE_NAME}=")


def test_seed_is_idempotent(run_db):
    async def scenario(db):
        first = await seed.seed_sample_content(db)
        second = await seed.seed_sample_content(db)
        return first, second, await crud.list_videos(db), await crud.get_latest_live_event(db)

    first, second, videos, event = run_db(scenario)
    assert (first, second) == (True, False)
    assert len(videos) == len(seed.SAMPLE_VIDEOS)
    assert event.youtube_url == "Z1XU5ZGqzeI"


def test_ensure_admin_promotes_existing_account(run_db):
    async def scenario(db):
        await crud.create_user(db, "carol", "hash.salt")
        admin = await seed.ensure_admin(db, "carol", "ignored")
        created = await seed.ensure_admin(db, "root", "pw")
        return admin, created, await seed.promote(db, "nobody")

    admin, created, missing = run_db(scenario)
    assert admin.is_admin is True
    assert admin.password == "hash.salt"
    assert created.is_admin is True
    assert missing is None


def test_reminders_by_user_and_event(run_db):
    async def scenario(db):
        await crud.create_reminder(db, "1", ReminderCreate(event_id=3, event_type="live"))
        await crud.create_reminder(db, "2", ReminderCreate(event_id=3, event_type="live"))
        await crud.create_reminder(db, "2", ReminderCreate(event_id=3, event_type="video"))
        return await crud.list_reminders(db, "2"), await crud.list_event_reminders(db, 3, "live")

    by_user, by_event = run_db(scenario)
    assert [(r.event_id, r.event_type) for r in by_user] == [(3, "live"), (3, "video")]
    assert sorted(r.user_id for r in by_event) == ["1", "2"]
