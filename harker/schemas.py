# harker/schemas.py
from datetime import datetime, timezone
from typing import Annotated, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# JSON uses camelCase (youtubeUrl, eventDate, ...); snake_case is accepted on input too.


def not_blank(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


# Stored exactly as submitted; only all-whitespace values are rejected.
Text = Annotated[str, AfterValidator(not_blank)]
Count = Annotated[int, Field(ge=0)]
EventType = Literal["live", "video"]
ActivityType = Literal["rsvp", "reminder", "guide_answer"]


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def to_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


Instant = Annotated[datetime, AfterValidator(to_naive_utc)]
UtcInstant = Annotated[datetime, AfterValidator(to_aware_utc)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# --- Users ---


class UserCreate(CamelModel):
    username: Text
    password: Annotated[str, Field(min_length=1)]


class UserOut(CamelModel):
    id: Union[int, str]
    username: str
    is_admin: bool = False


# --- Live events ---


class LiveEventCreate(CamelModel):
    title: Text
    description: Text
    youtube_url: Text
    event_date: Instant
    discussion_guide: Text


class LiveEventUpdate(CamelModel):
    # Omitted fields stay unset; an explicit null fails the str/datetime check.
    title: Text = None
    description: Text = None
    youtube_url: Text = None
    event_date: Instant = None
    discussion_guide: Text = None


class LiveEventOut(CamelModel):
    id: int
    title: str
    description: str
    youtube_url: str
    event_date: UtcInstant
    discussion_guide: str


# --- Videos ---


class VideoCreate(CamelModel):
    title: Text
    description: Text
    youtube_url: Text
    duration: Optional[Count] = None
    thumbnail_url: Optional[str] = None
    discussion_guide: Text
    active: bool = True


class VideoUpdate(CamelModel):
    title: Text = None
    description: Text = None
    youtube_url: Text = None
    duration: Optional[Count] = None
    thumbnail_url: Optional[str] = None
    discussion_guide: Text = None
    active: bool = None


class VideoOut(CamelModel):
    id: int
    title: str
    description: str
    youtube_url: str
    duration: Optional[int] = None
    thumbnail_url: Optional[str] = None
    discussion_guide: str
    active: bool


# --- Discussions ---


class DiscussionCreate(CamelModel):
    title: Text
    video_id: Optional[int] = None
    live_event_id: Optional[int] = None
    date: Optional[Instant] = None
    participants: Optional[Count] = None
    duration: Optional[Count] = None
    transcription: Text
    audio_url: Optional[str] = None


class DiscussionOut(CamelModel):
    id: int
    title: str
    video_id: Optional[int] = None
    live_event_id: Optional[int] = None
    date: UtcInstant
    participants: Optional[int] = None
    duration: Optional[int] = None
    transcription: str
    audio_url: Optional[str] = None


# --- Transcription ---


class TranscriptionRequest(CamelModel):
    audio: Text  # data URL, "data:audio/webm;base64,..."


class TranscriptionOut(CamelModel):
    transcription: str


# --- Reminders, activities, guide answers ---


class EventRef(CamelModel):
    event_id: int
    event_type: EventType


class UserActivityCreate(EventRef):
    activity_type: ActivityType


class ReminderCreate(EventRef):
    pass


class GuideAnswerCreate(EventRef):
    question_number: Annotated[int, Field(ge=1)]
    answer: Text


class EventRecordOut(CamelModel):
    id: int
    user_id: str
    event_id: int
    event_type: str
    created_at: UtcInstant


class UserActivityOut(EventRecordOut):
    activity_type: str


class ReminderOut(EventRecordOut):
    pass


class GuideAnswerOut(EventRecordOut):
    question_number: int
    answer: str


class RsvpCount(CamelModel):
    event_id: int
    event_type: EventType
    count: int
