from __future__ import annotations

import dataclasses
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Literal, Union

from pydantic import BaseModel, ValidationError

from ..errors import SchemaValidationError
from ..protocol.tags import Tag
from ..util.fs import DEFAULT_SHARED_MODULE_GLOBS, is_shared_module
from ..vfs.filesystem import SyncVirtualFileSystem
from .todos import Todo, TodoTracker

if TYPE_CHECKING:
    from ..protocol.tags import TagStream
    from .engine import EngineClient

Consent = Literal["always", "ask"]
ContentPart = dict[str, str]  # {"type": "text", "text": ...} | {"type": "image-url", "url": ...}

DEFAULT_EXCLUDED_GLOBS = ("!node_modules/**", "!.git/**", "!dist/**", "!build/**", "!.venv/**", "!__pycache__/**")


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    parameters: dict[str, Any]   # JSONSchema
    permission_key: str          # "read" | "edit" | "mcp"


@dataclass
class ToolResult:
    content: str
    is_error: bool = False


@dataclass
class ToolOutput:
    """Result text for the model plus an optional final tag for the transcript."""

    text: str
    tag: Tag | None = None


@dataclass
class ConsentRequest:
    tool_name: str
    tool_description: str | None = None
    input_preview: str | None = None


@dataclass
class ToolSettings:
    rg_path: str = "rg"
    max_filesize: str = "1M"
    excluded_globs: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDED_GLOBS))
    shared_module_globs: list[str] = field(default_factory=lambda: list(DEFAULT_SHARED_MODULE_GLOBS))
    tsc_command: list[str] = field(default_factory=lambda: ["npx", "--no-install", "tsc", "--noEmit", "--pretty", "false"])
    list_files_ui_limit: int = 20


@dataclass
class TurnState:
    """The only state that outlives a single tool call within a turn."""

    todos: TodoTracker = field(default_factory=TodoTracker)
    is_shared_modules_changed: bool = False
    chat_summary: str | None = None


@dataclass
class ToolContext:
    project_root: str
    project_id: str = ""
    conversation_id: str = ""
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    database_id: str | None = None
    vfs: SyncVirtualFileSystem | None = None
    engine: "EngineClient | None" = None
    settings: ToolSettings = field(default_factory=ToolSettings)
    state: TurnState = field(default_factory=TurnState)

    stream_tag: Callable[[Tag], Any] | None = None
    complete_tag: Callable[[Tag], Any] | None = None
    request_consent: Callable[[ConsentRequest], bool] | None = None
    append_followup_content: Callable[[list[ContentPart]], None] | None = None
    on_update_todos: Callable[[list[Todo]], None] | None = None

    def __post_init__(self):
        if self.vfs is None:
            self.vfs = SyncVirtualFileSystem(self.project_root)
        if self.on_update_todos is not None and self.state.todos.observer is None:
            self.state.todos.observer = self.on_update_todos

    @property
    def todos(self) -> list[Todo]:
        return self.state.todos.todos

    @property
    def is_shared_modules_changed(self) -> bool:
        return self.state.is_shared_modules_changed

    @is_shared_modules_changed.setter
    def is_shared_modules_changed(self, value: bool) -> None:
        self.state.is_shared_modules_changed = value

    @property
    def chat_summary(self) -> str | None:
        return self.state.chat_summary

    @chat_summary.setter
    def chat_summary(self, value: str | None) -> None:
        self.state.chat_summary = value

    def note_path_touched(self, rel_path: str) -> None:
        if is_shared_module(rel_path, self.settings.shared_module_globs):
            self.state.is_shared_modules_changed = True

    def preview(self, tag: Tag | None) -> None:
        if tag is not None and self.stream_tag is not None:
            self.stream_tag(tag)

    def bind_call(self, stream: "TagStream") -> "ToolContext":
        """Per-call view: same state and VFS, tag callbacks routed to ``stream``."""
        return dataclasses.replace(self, stream_tag=stream.preview, complete_tag=stream.complete)


class ToolDefinition:
    """Base for every tool.

    Subclasses set ``name``, ``description`` and ``input_schema`` and implement
    :meth:`execute`. The other hooks are optional.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    input_schema: ClassVar[type[BaseModel]]
    default_consent: ClassVar[Consent] = "always"
    modifies_state: ClassVar[bool] = False

    @property
    def spec(self) -> ToolSpec:
        return ToolSpec(
            name=self.name,
            description=self.description,
            parameters=self.input_schema.model_json_schema(),
            permission_key="edit" if self.modifies_state else "read",
        )

    def validate(self, raw: dict[str, Any]) -> Any:
        try:
            return self.input_schema.model_validate(raw)
        except ValidationError as e:
            raise SchemaValidationError(self.name, _format_validation_error(e)) from e

    def is_enabled(self, ctx: ToolContext) -> bool:
        return True

    def get_consent_preview(self, args: Any) -> str | None:
        return None

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        return None

    def execute(self, args: Any, ctx: ToolContext) -> Union[str, ToolOutput]:
        raise NotImplementedError


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(x) for x in err.get("loc", ())) or "(root)"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)
