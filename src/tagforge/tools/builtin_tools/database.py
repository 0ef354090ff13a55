"""Tools backed by the connected database, reached through the engine."""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from ...errors import ExecutionFailure
from ...protocol.tags import Tag
from ..base import ToolContext, ToolDefinition, ToolOutput

logger = logging.getLogger(__name__)

SCHEMA_ENDPOINT = "/tools/database/table-schema"
SQL_ENDPOINT = "/tools/database/execute-sql"


def _database_connected(ctx: ToolContext) -> bool:
    return bool(ctx.database_id) and ctx.engine is not None


def _require_database(ctx: ToolContext) -> None:
    if not _database_connected(ctx):
        raise ExecutionFailure("No database is connected to this project")


def _result_text(raw: Any) -> str:
    if isinstance(raw, dict) and isinstance(raw.get("result"), str):
        return raw["result"]
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, ensure_ascii=False, indent=2)


class GetDatabaseSchemaArgs(BaseModel):
    tableName: Optional[str] = Field(
        default=None,
        description="Optional table name to get schema for. If omitted, returns schema for all tables.",
    )


class GetDatabaseSchemaTool(ToolDefinition):
    name = "get_database_schema"
    description = (
        "Get database table schema. If tableName is provided, returns schema for that specific table "
        "(columns, policies, triggers). If omitted, returns schema for all tables."
    )
    input_schema = GetDatabaseSchemaArgs

    def is_enabled(self, ctx: ToolContext) -> bool:
        return _database_connected(ctx)

    def get_consent_preview(self, args: GetDatabaseSchemaArgs) -> str:
        return f'Get schema for table "{args.tableName}"' if args.tableName else "Get schema for all tables"

    def execute(self, args: GetDatabaseSchemaArgs, ctx: ToolContext) -> ToolOutput:
        _require_database(ctx)
        attrs = {"table": args.tableName}
        ctx.preview(Tag(name="database-table-schema", attrs=attrs))

        raw = ctx.engine.fetch(
            SCHEMA_ENDPOINT,
            {"databaseId": ctx.database_id, "tableName": args.tableName},
            request_id=ctx.request_id,
        )
        schema = _result_text(raw)
        return ToolOutput(schema, Tag(name="database-table-schema", attrs=attrs, body=schema, complete=True, block=True))


class ExecuteSqlArgs(BaseModel):
    query: str = Field(description="The SQL query to execute")
    description: Optional[str] = Field(default=None, description="Brief description of what the query does")


class ExecuteSqlTool(ToolDefinition):
    name = "execute_sql"
    description = "Execute SQL on the connected database. Use it for schema changes and data migrations."
    input_schema = ExecuteSqlArgs
    default_consent = "ask"
    modifies_state = True

    def is_enabled(self, ctx: ToolContext) -> bool:
        return _database_connected(ctx)

    def get_consent_preview(self, args: ExecuteSqlArgs) -> str:
        q = args.query
        return q[:100] + "..." if len(q) > 100 else q

    def build_tag(self, args: dict[str, Any], is_complete: bool) -> Tag | None:
        if args.get("query") is None:
            return None
        return Tag(
            name="execute-sql",
            attrs={"description": args.get("description") or ""},
            body=str(args["query"]),
            complete=is_complete,
            block=True,
        )

    def execute(self, args: ExecuteSqlArgs, ctx: ToolContext) -> str:
        _require_database(ctx)
        ctx.engine.fetch(
            SQL_ENDPOINT,
            {"databaseId": ctx.database_id, "query": args.query, "description": args.description or ""},
            request_id=ctx.request_id,
        )
        logger.info("Executed SQL on database %s", ctx.database_id)
        return "Successfully executed SQL query"
