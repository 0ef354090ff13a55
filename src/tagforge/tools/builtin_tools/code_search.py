from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ...errors import ExternalServiceError
from ...protocol.tags import Tag
from ..base import ToolContext, ToolDefinition, ToolOutput
from .codebase import read_codebase

logger = logging.getLogger(__name__)

ENDPOINT = "/tools/code-search"

DESCRIPTION = """\
Search the codebase semantically to find files relevant to a query. Use this tool when you need to
discover which files contain code related to a specific concept, feature, or functionality.
Returns a list of file paths that are most relevant to the search query.

### When to Use This Tool

- Explore unfamiliar codebases
- Ask "how / where / what" questions to understand behavior
- Find code by meaning rather than exact text

### When NOT to Use

Skip this tool for:
1. Exact text matches (use `grep`)
2. Reading known files (use `read_file`)
3. Simple symbol lookups (use `grep`)
"""


class CodeSearchArgs(BaseModel):
    query: str = Field(description="Search query to find relevant files")


class _CodeSearchResponse(BaseModel):
    relevantFiles: list[str]


class CodeSearchTool(ToolDefinition):
    name = "code_search"
    description = DESCRIPTION
    input_schema = CodeSearchArgs

    def is_enabled(self, ctx: ToolContext) -> bool:
        return ctx.engine is not None

    def get_consent_preview(self, args: CodeSearchArgs) -> str:
        return f'Search for "{args.query}"'

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if is_complete or not args.get("query"):
            return None
        return Tag(name="code-search", attrs={"query": args["query"]}, body="Searching...")

    def execute(self, args: CodeSearchArgs, ctx: ToolContext) -> ToolOutput:
        logger.info("Executing code search: %s", args.query)
        ctx.preview(Tag(name="code-search", attrs={"query": args.query}))

        files = read_codebase(ctx)
        logger.info("Searching %d files for query: %r", len(files), args.query)

        raw = ctx.engine.fetch(
            ENDPOINT,
            {"query": args.query, "filesContext": [{"path": f.path, "content": f.content} for f in files]},
            request_id=ctx.request_id,
        )
        try:
            relevant = _CodeSearchResponse.model_validate(raw).relevantFiles
        except ValidationError as e:
            raise ExternalServiceError(ENDPOINT, None, f"unexpected response: {e}") from e

        listing = "\n".join(f" - {f}" for f in relevant) if relevant else "No relevant files found."
        tag = Tag(name="code-search", attrs={"query": args.query}, body=listing, complete=True)

        if not relevant:
            return ToolOutput("No relevant files found for the given query.", tag)
        return ToolOutput(f"Found {len(relevant)} relevant file(s):\n{listing}", tag)
