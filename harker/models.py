# harker/models.py
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from harker.database import Base

# Timestamps are stored as naive UTC so SQLite and Postgres compare them the same way.


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)  # "<scrypt hex>.<salt>"
    is_admin = Column(Boolean, default=False, nullable=False)


class LiveEvent(Base):
    __tablename__ = "live_events"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    youtube_url = Column(String, nullable=False)  # video-provider id, e.g. "Z1XU5ZGqzeI"
    event_date = Column(DateTime, nullable=False, index=True)
    discussion_guide = Column(Text, nullable=False)


class Video(Base):
    __tablename__ = "videos"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    youtube_url = Column(String, nullable=False)
    duration = Column(Integer, nullable=True)  # minutes
    thumbnail_url = Column(String, nullable=True)
    discussion_guide = Column(Text, nullable=False)
    active = Column(Boolean, default=True, nullable=False)


class Discussion(Base):
    __tablename__ = "discussions"
    id = Column(Integer, primary_key=True, index=True)
    title = Column(Text, nullable=False)
    # plain integers, the referenced rows are not checked on insert
    video_id = Column(Integer, nullable=True, index=True)
    live_event_id = Column(Integer, nullable=True, index=True)
    date = Column(DateTime, default=utcnow, nullable=False)
    participants = Column(Integer, default=0)
    duration = Column(Integer, default=0)
    transcription = Column(Text, nullable=False)
    audio_url = Column(String, nullable=True)


class Reminder(Base):
    __tablename__ = "reminders"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(16), nullable=False)  # "live" | "video"
    created_at = Column(DateTime, default=utcnow, nullable=False)


class UserActivity(Base):
    __tablename__ = "user_activities"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(16), nullable=False)
    activity_type = Column(String(32), nullable=False)  # "rsvp" | "reminder" | "guide_answer"
    created_at = Column(DateTime, default=utcnow, nullable=False)


class DiscussionGuideAnswer(Base):
    __tablename__ = "discussion_guide_answers"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    event_id = Column(Integer, nullable=False, index=True)
    event_type = Column(String(16), nullable=False)
    question_number = Column(Integer, nullable=False)
    answer = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Session(Base):
    __tablename__ = "sessions"
    sid = Column(String(64), primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
