from __future__ import annotations

from .registry import ToolRegistry

from .builtin_tools.write_file import WriteFileTool
from .builtin_tools.edit_file import EditFileTool
from .builtin_tools.search_replace import SearchReplaceTool
from .builtin_tools.delete_file import DeleteFileTool
from .builtin_tools.rename_file import RenameFileTool
from .builtin_tools.read_file import ReadFileTool
from .builtin_tools.list_files import ListFilesTool
from .builtin_tools.grep import GrepTool
from .builtin_tools.code_search import CodeSearchTool
from .builtin_tools.run_type_checks import RunTypeChecksTool
from .builtin_tools.update_todos import UpdateTodosTool
from .builtin_tools.set_chat_summary import SetChatSummaryTool
from .builtin_tools.database import ExecuteSqlTool, GetDatabaseSchemaTool
from .builtin_tools.web_crawl import WebCrawlTool


def register_builtin_tools(registry: ToolRegistry) -> None:
    registry.register(WriteFileTool())
    registry.register(EditFileTool())
    registry.register(SearchReplaceTool())
    registry.register(DeleteFileTool())
    registry.register(RenameFileTool())
    registry.register(ReadFileTool())
    registry.register(ListFilesTool())
    registry.register(GrepTool())
    registry.register(CodeSearchTool())
    registry.register(RunTypeChecksTool())
    registry.register(UpdateTodosTool())
    registry.register(SetChatSummaryTool())
    registry.register(GetDatabaseSchemaTool())
    registry.register(ExecuteSqlTool())
    registry.register(WebCrawlTool())
