"""Page metadata probe endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from smartbrowser.api.schemas.common import ApiResponse, ok
from smartbrowser.api.schemas.summarize import PageInfoData
from smartbrowser.core.browser.page_controller import PageController
from smartbrowser.core.content.extractor import ArticleExtractor
from smartbrowser.dependencies import get_extractor, get_page_controller, get_user_id, get_validator
from smartbrowser.utils.logging import get_logger
from smartbrowser.utils.validator import Validator

logger = get_logger(__name__)

router = APIRouter()

# Pages with less text than this are not worth summarising.
SUMMARIZABLE_TEXT = 100


@router.get(
    "/page-info",
    response_model=ApiResponse,
    summary="Probe a page",
    description="Load the page and report its title, metadata and what can be done with it.",
)
async def page_info(
    url: str = Query(..., min_length=1),
    user_id: str = Depends(get_user_id),
    validator: Validator = Depends(get_validator),
    pages: PageController = Depends(get_page_controller),
    extractor: ArticleExtractor = Depends(get_extractor),
) -> ApiResponse:
    validated = validator.validate_url(url)
    logger.info("page_info_request", url=validated, user_id=user_id)

    session_id = await pages.create_page_session(user_id, validated)
    try:
        page = await pages.get_page_content(session_id)
    finally:
        await pages.close_session(session_id)

    return ok(
        PageInfoData(
            url=page.url,
            title=page.title,
            metadata=page.metadata,
            text_length=len(page.text),
            can_summarize=len(page.text) >= SUMMARIZABLE_TEXT,
            can_extract=extractor.can_extract(page.html),
        )
    )
