from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

from ...errors import ExecutionFailure, ExternalServiceError
from ...protocol.tags import Tag
from ..base import ToolContext, ToolDefinition

logger = logging.getLogger(__name__)

ENDPOINT = "/tools/web-crawl"
MAX_TEXT_SNIPPET_LENGTH = 16_000

DESCRIPTION = """
You can crawl a website so you can clone it.

### When You MUST Trigger a Crawl
Trigger a crawl ONLY if BOTH conditions are true:

1. The user's message shows intent to CLONE / COPY / REPLICATE / RECREATE / DUPLICATE / MIMIC a website.
   - Keywords include: clone, copy, replicate, recreate, duplicate, mimic, build the same, make the same.

2. The user's message contains a URL or something that appears to be a domain name.
   - e.g. "example.com", "https://example.com"
   - Do not require 'http://' or 'https://'.
"""

CLONE_INSTRUCTIONS = """

Replicate the website from the provided screenshot image and markdown.

**Use the screenshot as your primary visual reference** to understand the layout, colors, typography,
and overall design of the website.

**Image Handling**
- Do NOT use or reference real external image URLs.
- Create a file named "placeholder.svg" at "/public/assets/placeholder.svg" containing a simple
  neutral gray rectangle:
  ```svg
  <svg width="400" height="300" xmlns="http://www.w3.org/2000/svg">
    <rect width="100%" height="100%" fill="#e2e2e2"/>
  </svg>
  ```
- Replace all `<img src="...">` with `<img src="/assets/placeholder.svg" alt="placeholder" />`.

Always include the placeholder.svg file in your output file tree.
"""


class WebCrawlArgs(BaseModel):
    url: str = Field(description="URL to crawl")


class _WebCrawlResponse(BaseModel):
    rootUrl: str
    html: Optional[str] = None
    markdown: Optional[str] = None
    screenshot: Optional[str] = None


def truncate_text(value: str, limit: int = MAX_TEXT_SNIPPET_LENGTH) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}\n<!-- truncated -->"


def format_snippet(label: str, value: str, lang: str) -> str:
    return f"{label}:\n```{lang}\n{truncate_text(value)}\n```"


class WebCrawlTool(ToolDefinition):
    name = "web_crawl"
    description = DESCRIPTION
    input_schema = WebCrawlArgs
    default_consent = "ask"

    def is_enabled(self, ctx: ToolContext) -> bool:
        return ctx.engine is not None

    def get_consent_preview(self, args: WebCrawlArgs) -> str:
        return f'Crawl URL: "{args.url}"'

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if not args.get("url"):
            return None
        return Tag(name="web-crawl", body=str(args["url"]), complete=is_complete)

    def execute(self, args: WebCrawlArgs, ctx: ToolContext) -> str:
        logger.info("Executing web crawl: %s", args.url)
        raw = ctx.engine.fetch(ENDPOINT, {"url": args.url}, request_id=ctx.request_id)
        if not raw:
            raise ExecutionFailure("Web crawl returned no results")
        try:
            result = _WebCrawlResponse.model_validate(raw)
        except ValidationError as e:
            raise ExternalServiceError(ENDPOINT, None, f"unexpected response: {e}") from e

        if not result.markdown:
            raise ExecutionFailure("No content available from web crawl")
        if not result.screenshot:
            raise ExecutionFailure("No screenshot available from web crawl")
        logger.info("Web crawl completed for URL: %s", args.url)

        if ctx.append_followup_content is not None:
            ctx.append_followup_content([
                {"type": "text", "text": CLONE_INSTRUCTIONS},
                {"type": "image-url", "url": result.screenshot},
                {"type": "text", "text": format_snippet("Markdown snapshot:", result.markdown, "markdown")},
            ])
        return "Web crawl completed."
