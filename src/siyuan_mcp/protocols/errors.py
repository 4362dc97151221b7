"""Shared error types for the protocol layer."""


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""


class ToolNotFoundError(ProtocolError):
    """Requested tool does not exist in the registry."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class ToolInputError(ProtocolError):
    """Tool arguments are missing or invalid."""


class MissingArgumentError(ToolInputError):
    """A required argument is absent or blank."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"缺少参数 {name}")


class UnknownOperationError(ToolInputError):
    """A multi-operation tool received an operation it does not implement."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"未知的操作类型: {operation}")
