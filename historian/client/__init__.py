"""
Analysis-session client for the Code Historian backend
Starts remote analyses and bridges their live updates to a display
"""

from .errors import (
    HistorianError,
    ConfigurationError,
    TransportError,
    ProtocolError,
    ChannelError,
)
from .models import (
    AnalysisRequest,
    AnalysisResponse,
    AnalysisSession,
    SessionState,
    ProgressEvent,
    MetricsEvent,
    CompletionEvent,
    FailureEvent,
)
from .transport import TransportClient, TransportResponse
from .channel import LiveUpdateChannel, Subscription
from .sink import UpdateSink
from .api import HistorianApi

__all__ = [
    'HistorianError', 'ConfigurationError', 'TransportError', 'ProtocolError', 'ChannelError',
    'AnalysisRequest', 'AnalysisResponse', 'AnalysisSession', 'SessionState',
    'ProgressEvent', 'MetricsEvent', 'CompletionEvent', 'FailureEvent',
    'TransportClient', 'TransportResponse', 'LiveUpdateChannel', 'Subscription', 'UpdateSink',
    'HistorianApi',
]
