"""Page summarisation endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from smartbrowser.api.schemas.common import ApiResponse, ok
from smartbrowser.api.schemas.summarize import SummarizeData, SummarizeRequest
from smartbrowser.core.browser.page_controller import PageController
from smartbrowser.core.content.extractor import ArticleExtractor
from smartbrowser.core.content.summarizer import MIN_SUMMARY_TEXT, ContentSummarizer, SummaryRequest
from smartbrowser.dependencies import (
    get_extractor,
    get_page_controller,
    get_summarizer,
    get_user_id,
    get_validator,
)
from smartbrowser.utils.exceptions import ContentExtractionError, LLMError
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator

logger = get_logger(__name__)

router = APIRouter()


@router.post(
    "/summarize",
    response_model=ApiResponse,
    summary="Summarize a web page",
    description=(
        "Open the page in a pooled browser session, extract the main article "
        "when possible and summarize it with the configured LLM."
    ),
)
async def summarize_page(
    body: SummarizeRequest,
    user_id: str = Depends(get_user_id),
    validator: Validator = Depends(get_validator),
    pages: PageController = Depends(get_page_controller),
    extractor: ArticleExtractor = Depends(get_extractor),
    summarizer: ContentSummarizer = Depends(get_summarizer),
) -> ApiResponse:
    url = validator.validate_url(body.url)
    logger.info("summarize_request", url=url, user_id=user_id)

    session_id = await pages.create_page_session(user_id, url)
    try:
        page = await pages.get_page_content(session_id)
    finally:
        await pages.close_session(session_id)

    content, confidence = page, 0.5
    extraction = await extractor.extract(page.html, page.url)
    if extraction.success:
        content, confidence = extraction.content, extraction.confidence
    else:
        logger.debug("summarize_using_page_text", url=url, reason=extraction.error)

    if len(content.text.strip()) < MIN_SUMMARY_TEXT:
        raise ContentExtractionError("Page has too little text to summarize")

    result = await summarizer.summarize(
        SummaryRequest(content=content, options=body.options, user_id=user_id)
    )
    if not result.success:
        raise LLMError("summarizer", result.error or "summarization failed")

    return ok(
        SummarizeData(
            summary=result.summary,
            extraction_confidence=confidence,
            metadata=content.metadata,
            processing_time=result.processing_time,
            cached=result.cached,
        )
    )
