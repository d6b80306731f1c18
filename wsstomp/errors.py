from typing import Any, Optional


class StompError(Exception):
    def __init__(self, message: Optional[str], detail: Any = None):
        super().__init__(message)
        self.detail = detail


class StompDisconnectedError(StompError):
    def __init__(self, message: Optional[str] = "Not connected", detail: Any = None):
        super().__init__(message, detail)


class StompConnectionLostError(StompError):
    pass


class StompHeartbeatTimeoutError(StompConnectionLostError):
    pass


class StompUnsupportedCommandError(StompError):
    def __init__(self, frame: Any):
        super().__init__(f"Not supported STOMP command {frame.command}", frame)
        self.frame = frame
