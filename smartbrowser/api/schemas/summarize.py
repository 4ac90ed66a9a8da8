"""Request/response schemas for summarisation and page probes."""

from pydantic import BaseModel, Field

from smartbrowser.core.browser.models import PageMetadata
from smartbrowser.core.content.summarizer import ContentSummary, SummaryOptions


class SummarizeRequest(BaseModel):
    url: str = Field(..., min_length=1)
    options: SummaryOptions = Field(default_factory=SummaryOptions)


class SummarizeData(BaseModel):
    summary: ContentSummary
    extraction_confidence: float
    metadata: PageMetadata
    processing_time: float
    cached: bool = False


class PageInfoData(BaseModel):
    url: str
    title: str
    metadata: PageMetadata
    text_length: int
    can_summarize: bool
    can_extract: bool
