# tgsync/schemas.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from tgsync.utils import parse_datetime


def counter_text(value):
    # Configs with "type": "int" hand over numbers instead of "1.2K"-style text
    if isinstance(value, (int, float)):
        return str(value)
    return value


class MediaItem(BaseModel):
    duration: Optional[str] = None


class MessageLink(BaseModel):
    url: str


class FeedMessage(BaseModel):
    """One message extracted from a channel feed page."""
    tg_message_id: int
    text: str = ""
    views: Optional[str] = None
    links: List[MessageLink] = Field(default_factory=list)
    published_at: Optional[datetime] = None
    images: List[MediaItem] = Field(default_factory=list)
    videos: List[MediaItem] = Field(default_factory=list)
    voices: List[MediaItem] = Field(default_factory=list)
    forwarded_name: Optional[str] = None
    forwarded_url: Optional[str] = None

    @field_validator("views", mode="before")
    @classmethod
    def _counter_text(cls, value):
        return counter_text(value)

    @field_validator("published_at", mode="before")
    @classmethod
    def _utc_published_at(cls, value):
        return parse_datetime(value)

    @field_validator("text", mode="before")
    @classmethod
    def _text_or_empty(cls, value):
        return value or ""


class ChannelInfo(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    verified: bool = False
    subscribers: Optional[str] = None

    @field_validator("subscribers", mode="before")
    @classmethod
    def _counter_text(cls, value):
        return counter_text(value)

    @field_validator("verified", mode="before")
    @classmethod
    def _truthy(cls, value):
        return bool(value)


class PageResult(BaseModel):
    """A page yielded by the parser plus its iteration bookkeeping."""
    data: Dict[str, Any] = Field(default_factory=dict)
    iteration: int = 0
    start_time: float = Field(description="Epoch milliseconds when the iteration sequence started")
    before: Optional[int] = None
    last_published_at: Optional[datetime] = None


class ItemOutcome(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


class SyncStatus(str, Enum):
    COMPLETED = "completed"
    TIME_LIMIT = "time_limit"
    SKIPPED = "skipped"
    FAILED = "failed"


class SyncResult(BaseModel):
    job: str
    channel_id: int
    status: SyncStatus = SyncStatus.COMPLETED
    run_time: float = 0
    pages: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    error: Optional[str] = None

    def count(self, outcome: ItemOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)


class ChannelReport(BaseModel):
    channel_id: int
    tg_id: str
    run_time: float
    results: List[SyncResult]


class BatchReport(BaseModel):
    selected: int = 0
    overall_run_time: float = 0
    budget_exhausted: bool = False
    channels: List[ChannelReport] = Field(default_factory=list)


class SyncResponse(BaseModel):
    status: str
    new_posts_found: int
    overall_run_time: float
    channels_synced: List[str]
