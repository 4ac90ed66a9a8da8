"""Browser-side data models."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from smartbrowser.core.tasks.models import utcnow


class NavigationOptions(BaseModel):
    """Per-navigation overrides.  ``timeout`` is in seconds."""

    timeout: float | None = None
    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "domcontentloaded"
    retries: int | None = None


class Viewport(BaseModel):
    width: int = 1920
    height: int = 1080


class BrowserOptions(BaseModel):
    """Options applied when a pooled session (browser context) is created."""

    timeout: float | None = None
    user_agent: str | None = None
    viewport: Viewport = Field(default_factory=Viewport)
    locale: str = "en-US"
    timezone_id: str = "America/New_York"


class SessionInfo(BaseModel):
    """Public view of one pooled browser context."""

    id: str
    user_id: str
    session_id: str
    created_at: datetime
    last_used: datetime
    idle_seconds: float
    page_count: int
    memory_usage: int  # bytes, estimated


class RawPageContent(BaseModel):
    url: str
    title: str
    html: str
    text: str


class PageMetadata(BaseModel):
    author: str | None = None
    publish_date: str | None = None
    description: str | None = None
    keywords: list[str] = []
    language: str | None = None
    reading_time: int | None = None  # minutes
    word_count: int | None = None


class PageContent(BaseModel):
    """Everything read from a page: text, markup and metadata."""

    url: str
    title: str = ""
    text: str = ""
    html: str = ""
    metadata: PageMetadata = Field(default_factory=PageMetadata)
    extracted_at: datetime = Field(default_factory=utcnow)
    extractor_used: str = "playwright"


class PageSession(BaseModel):
    """A pooled session plus one page already navigated somewhere."""

    id: str
    user_id: str
    context_id: str
    page_id: str
    url: str
    title: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
