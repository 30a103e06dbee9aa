"""
Data models for analysis sessions
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Union
import os
import threading

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigurationError, ProtocolError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    """Lifecycle of one analysis run as seen by the client"""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.CANCELLED)


@dataclass(frozen=True)
class AnalysisRequest:
    """Body of POST /analysis/start"""

    project_path: str
    max_depth: Optional[int] = None
    excluded_paths: Optional[List[str]] = None

    def __post_init__(self):
        validate_project_path(self.project_path)

    def to_dict(self) -> dict:
        """Wire format; optional settings are only sent when configured"""
        body: Dict[str, Any] = {"projectPath": self.project_path}
        if self.max_depth is not None:
            body["maxDepth"] = self.max_depth
        if self.excluded_paths is not None:
            body["excludedPaths"] = list(self.excluded_paths)
        return body


def validate_project_path(project_path: Optional[str]) -> str:
    if not isinstance(project_path, str) or not project_path.strip():
        raise ConfigurationError("Project path is required")
    if not os.path.isabs(project_path):
        raise ConfigurationError(f"Project path must be absolute: {project_path!r}")
    return project_path


class AnalysisResponse(BaseModel):
    """Body returned by a successful start request"""

    model_config = {"frozen": True, "populate_by_name": True}

    session_id: str = Field(alias="id", min_length=1)
    status: Optional[str] = None
    start_time: Optional[str] = Field(default=None, alias="startTime")

    @classmethod
    def parse(cls, document: Any) -> "AnalysisResponse":
        """Validate a decoded JSON body, raising ProtocolError on mismatch"""
        if not isinstance(document, dict):
            raise ProtocolError(f"Expected a JSON object, got {type(document).__name__}")
        try:
            response = cls.model_validate(document)
        except ValidationError as e:
            raise ProtocolError(f"Malformed start response: {e.errors()[0]['msg']}") from e
        if not response.session_id.strip():
            raise ProtocolError("Malformed start response: empty session id")
        return response


@dataclass(frozen=True)
class ProgressEvent:
    percent_complete: float


@dataclass(frozen=True)
class MetricsEvent:
    payload: Mapping[str, Any]


@dataclass(frozen=True)
class CompletionEvent:
    """Terminal marker: the backend finished the analysis"""
    detail: Any = None


@dataclass(frozen=True)
class FailureEvent:
    """Terminal marker: the backend reported the analysis as failed"""
    message: str


UpdateEvent = Union[ProgressEvent, MetricsEvent, CompletionEvent, FailureEvent]


def is_terminal(event: UpdateEvent) -> bool:
    return isinstance(event, (CompletionEvent, FailureEvent))


@dataclass
class AnalysisSession:
    """One launch of an analysis, from request to terminal state"""

    project_path: Optional[str] = None
    request: Optional[AnalysisRequest] = None
    authenticated: bool = False
    state: SessionState = SessionState.IDLE
    session_id: Optional[str] = None
    progress: float = 0.0
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    _done: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)

    @property
    def is_active(self) -> bool:
        return not self.state.is_terminal

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            "project_path": self.project_path,
            "authenticated": self.authenticated,
            "state": self.state.value,
            "session_id": self.session_id,
            "progress": self.progress,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }

    def mark_starting(self) -> None:
        self.state = SessionState.STARTING
        self.updated_at = _now()

    def mark_running(self, session_id: str) -> None:
        """Record the server-assigned id; it can only be issued once"""
        if self.session_id is not None:
            raise ProtocolError(
                f"Session already has id {self.session_id!r}, refusing {session_id!r}"
            )
        self.session_id = session_id
        self.state = SessionState.RUNNING
        self.started_at = _now()
        self.updated_at = self.started_at

    def record_progress(self, percent: float) -> None:
        self.progress = percent
        self.updated_at = _now()

    def mark_completed(self) -> None:
        self.state = SessionState.COMPLETED
        self.finished_at = _now()
        self.updated_at = self.finished_at
        self._done.set()

    def mark_failed(self, error: str) -> None:
        self.state = SessionState.FAILED
        self.error_message = error
        self.finished_at = _now()
        self.updated_at = self.finished_at
        self._done.set()

    def mark_cancelled(self) -> None:
        self.state = SessionState.CANCELLED
        self.finished_at = _now()
        self.updated_at = self.finished_at
        self._done.set()

    def attach_request(self, request: AnalysisRequest) -> None:
        self.request = request
        self.project_path = request.project_path
        self.updated_at = _now()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the session reaches a terminal state"""
        return self._done.wait(timeout)
