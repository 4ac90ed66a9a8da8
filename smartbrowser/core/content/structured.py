"""Schema-driven data extraction through the LLM."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from smartbrowser.core.browser.models import PageContent
from smartbrowser.core.content.prompts import build_extraction_prompt
from smartbrowser.core.llm.parsing import extract_json
from smartbrowser.utils.exceptions import ValidationError
from smartbrowser.utils.logging import get_logger

logger = get_logger("content.structured")


class SchemaField(BaseModel):
    name: str
    type: Literal["string", "number", "date", "array", "object"] = "string"
    description: str = ""
    required: bool = False


class StructuredDataExtractor:
    """Ask the LLM to fill *fields* from a page; unparseable replies give ``{}``."""

    def __init__(self, llm_client) -> None:
        self.llm = llm_client

    async def extract(self, content: PageContent, fields: list[SchemaField | dict]) -> dict:
        parsed = [f if isinstance(f, SchemaField) else SchemaField.model_validate(f) for f in fields]
        if not parsed:
            raise ValidationError("Extraction schema needs at least one field")

        prompt = build_extraction_prompt(
            content.url, content.title, content.text, [f.model_dump() for f in parsed]
        )
        raw = await self.llm.complete(prompt)
        try:
            data = extract_json(raw)
        except ValueError:
            logger.warning("structured_parse_failed", url=content.url)
            return {}

        wanted = {f.name for f in parsed}
        result = {k: v for k, v in data.items() if k in wanted}
        logger.info("structured_data_extracted", url=content.url, fields=len(result))
        return result
