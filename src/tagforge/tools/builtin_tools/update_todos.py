from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field

from ..base import ToolContext, ToolDefinition

DESCRIPTION = """
### When to Use This Tool

Use proactively for:
1. Complex multi-step tasks (3+ distinct steps)
2. Non-trivial tasks requiring careful planning
3. User explicitly requests todo list
4. User provides multiple tasks (numbered/comma-separated)
5. After completing tasks - mark complete with merge=true and add follow-ups
6. When starting new tasks - mark as in_progress (ideally only one at a time)

### When NOT to Use

Skip for single, straightforward or purely conversational requests. Todo items should not include
operational actions done in service of higher-level tasks (linting, testing, searching the codebase).

### Task States

- pending: Not yet started
- in_progress: Currently working on
- completed: Finished successfully

Mark tasks complete immediately after finishing them and keep only one task in_progress at a time.
Batch todo updates with other tool calls in the same step.
"""


class TodoArgs(BaseModel):
    id: str = Field(description="Unique identifier for the todo item")
    content: Optional[str] = Field(default=None, description="The description/content of the todo item")
    status: Optional[Literal["pending", "in_progress", "completed"]] = Field(
        default=None, description="The current status of the todo item"
    )


class UpdateTodosArgs(BaseModel):
    merge: bool = Field(
        description=(
            "Whether to merge the todos with the existing todos. If true, the todos will be merged into "
            "the existing todos based on the id field. You can leave unchanged properties undefined. "
            "If false, the new todos will replace the existing todos."
        )
    )
    todos: list[TodoArgs] = Field(
        description=(
            "Array of todo items. When merge is true, only include todos that need updates. "
            "When merge is false, this is the complete list."
        )
    )


class UpdateTodosTool(ToolDefinition):
    name = "update_todos"
    description = DESCRIPTION
    input_schema = UpdateTodosArgs

    def get_consent_preview(self, args: UpdateTodosArgs) -> str:
        completed = sum(1 for t in args.todos if t.status == "completed")
        return f"{completed}/{len(args.todos)} todos completed"

    def execute(self, args: UpdateTodosArgs, ctx: ToolContext) -> str:
        return ctx.state.todos.update(args.todos, args.merge)
