"""Error types for the SiYuan backend client.

Two layers are kept apart on purpose: transport failures (the backend could
not be reached or answered with a non-2xx status) and application failures
(the backend answered ``{code != 0}``).
"""


class BackendError(Exception):
    """Base error for all backend failures."""


class BackendConnectionError(BackendError):
    """The backend could not be reached (DNS, refused, timeout)."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"SiYuan backend unreachable ({path}): {detail}")


class BackendHTTPError(BackendError):
    """The backend answered with a non-2xx HTTP status."""

    def __init__(self, path: str, status_code: int, reason: str = "") -> None:
        self.path = path
        self.status_code = status_code
        self.reason = reason
        super().__init__(f"HTTP {status_code} {reason}".strip() + f" ({path})")


class BackendResponseError(BackendError):
    """The backend answered 2xx but the body is not a JSON envelope."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Invalid SiYuan response ({path})")


class BackendAPIError(BackendError):
    """The backend was reachable but rejected the operation (``code != 0``)."""

    def __init__(self, path: str, code: object, msg: str = "") -> None:
        self.path = path
        self.code = code
        self.msg = msg
        super().__init__(msg or f"SiYuan error code={code}")
