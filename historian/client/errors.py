"""
Error taxonomy for the analysis-session client
"""

from typing import Optional


class HistorianError(Exception):
    """Base class for all client errors"""


class ConfigurationError(HistorianError):
    """Missing or invalid project path, URL or credential setting"""


class TransportError(HistorianError):
    """Network failure or non-2xx response from the backend"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ProtocolError(HistorianError):
    """Response body or pushed message does not match the backend contract"""


class ChannelError(HistorianError):
    """Live update stream broken or unreachable"""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message)
        self.session_id = session_id
