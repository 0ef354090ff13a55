from __future__ import annotations

from pydantic import BaseModel, Field

from ..base import ToolContext, ToolDefinition


class SetChatSummaryArgs(BaseModel):
    summary: str = Field(description="A short summary/title for the chat")


class SetChatSummaryTool(ToolDefinition):
    name = "set_chat_summary"
    description = (
        "Set the title/summary for this chat message. You should always call this at the end of the "
        "turn when you have finished calling all the other tools."
    )
    input_schema = SetChatSummaryArgs

    def get_consent_preview(self, args: SetChatSummaryArgs) -> str:
        return args.summary

    def execute(self, args: SetChatSummaryArgs, ctx: ToolContext) -> str:
        if args.summary:
            ctx.chat_summary = args.summary
        return f"Chat summary set to: {args.summary}"
