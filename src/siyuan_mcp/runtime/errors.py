"""Shared error types for the runtime safety layer."""


class RuntimeSafetyError(Exception):
    """Base error for all runtime safety failures."""


class ReadOnlyError(RuntimeSafetyError):
    """A mutating tool was called while the bridge runs read-only."""

    def __init__(self, tool_name: str) -> None:
        self.tool_name = tool_name
        super().__init__(f"read-only 模式下不允许写入：{tool_name}")
