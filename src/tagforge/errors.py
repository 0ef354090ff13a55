from __future__ import annotations


class ToolError(RuntimeError):
    """Base class for failures raised while running a tool call."""


class PathTraversalError(ToolError):
    def __init__(self, candidate: str, reason: str = "escapes the project directory"):
        self.candidate = candidate
        super().__init__(f'Invalid path: "{candidate}" {reason}')


class SchemaValidationError(ToolError):
    def __init__(self, tool_name: str, detail: str):
        self.tool_name = tool_name
        self.detail = detail
        super().__init__(f"Invalid arguments for {tool_name}: {detail}")


class ConsentDeniedError(ToolError):
    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"User declined running tool {tool_name}")


class ExecutionFailure(ToolError):
    pass


class ExternalServiceError(ToolError):
    """Non-2xx (or unreachable) response from an external collaborator."""

    def __init__(self, endpoint: str, status: int | None, body: str = ""):
        self.endpoint = endpoint
        self.status = status
        self.body = body
        if status is None:
            msg = f"{endpoint} failed: {body}"
        else:
            msg = f"{endpoint} failed: {status} - {body}"
        super().__init__(msg)


class TodoValidationError(ExecutionFailure):
    pass


class ToolRegistrationError(ValueError):
    pass
