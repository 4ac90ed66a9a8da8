"""Prompt templates for page summarisation and structured extraction."""

SUMMARY_PROMPT_VERSION = "2"

SUMMARY_LENGTH_INSTRUCTIONS: dict[str, str] = {
    "brief": "Keep the summary under 100 words",
    "detailed": "Provide a detailed summary of 200-300 words",
    "comprehensive": "Create a comprehensive summary with full context",
}

SUMMARY_FORMAT_INSTRUCTIONS: dict[str, str] = {
    "paragraph": "Format as flowing paragraphs",
    "bullets": "Use bullet points for key information",
    "structured": "Use clear sections with headers",
}

# Characters of page text sent to the model.
SUMMARY_CONTENT_LIMIT = 15_000
EXTRACTION_CONTENT_LIMIT = 10_000

SUMMARY_USER_TEMPLATE = """\
Please analyze and summarize the following web page content. {length}. {format}. {focus}

Page URL: {url}
Page Title: {title}
Content: {content}

Please provide your response in the following JSON format:
{{
  "summary": "Your summary here",
  "keyPoints": ["Point 1", "Point 2", "Point 3"],
  "entities": [{{"name": "Entity Name", "type": "person|organization|location|product", "confidence": 0.9}}],
  "sentiment": "positive|neutral|negative",
  "relevanceScore": 0.85
}}"""

EXTRACTION_USER_TEMPLATE = """\
Extract structured data from the following web page content according to the specified schema:

Page URL: {url}
Page Title: {title}
Content: {content}

Schema fields:
{fields}

Return only valid JSON with the extracted data. If a field cannot be found or determined, \
use null for optional fields or provide a reasonable default for required fields."""


def build_summary_prompt(
    url: str,
    title: str,
    text: str,
    max_length: str = "detailed",
    format: str = "paragraph",
    focus: list[str] | None = None,
) -> str:
    focus_line = f"Focus particularly on: {', '.join(focus)}" if focus else ""
    return SUMMARY_USER_TEMPLATE.format(
        length=SUMMARY_LENGTH_INSTRUCTIONS.get(max_length, SUMMARY_LENGTH_INSTRUCTIONS["detailed"]),
        format=SUMMARY_FORMAT_INSTRUCTIONS.get(format, SUMMARY_FORMAT_INSTRUCTIONS["paragraph"]),
        focus=focus_line,
        url=url,
        title=title,
        content=text[:SUMMARY_CONTENT_LIMIT],
    )


def build_extraction_prompt(url: str, title: str, text: str, fields: list[dict]) -> str:
    lines = []
    for f in fields:
        required = ", required" if f.get("required") else ""
        lines.append(
            f"- {f['name']} ({f.get('type', 'string')}{required}): {f.get('description', '')}"
        )
    return EXTRACTION_USER_TEMPLATE.format(
        url=url,
        title=title,
        content=text[:EXTRACTION_CONTENT_LIMIT],
        fields="\n".join(lines),
    )
