from typing import Optional


class ChatProxyError(Exception):
    """Base class for errors raised while serving a chat turn."""


class ConfigurationError(ChatProxyError):
    pass


class UpstreamInferenceError(ChatProxyError):
    def __init__(self, message: str, status_code: Optional[int] = None, detail: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class UpstreamSearchError(ChatProxyError):
    def __init__(self, reason: str, status_code: Optional[int] = None):
        if status_code is not None:
            message = f"Serper error: {status_code} {reason}".strip()
        else:
            message = f"Serper error: {reason}"
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ArgumentDecodeError(ChatProxyError):
    pass


class UnknownToolError(ChatProxyError):
    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name
