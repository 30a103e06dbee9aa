"""
Read-only backend queries
File history and project metrics shown next to the live analysis.
"""

from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from pydantic import BaseModel, Field, ValidationError

from .errors import ProtocolError
from .transport import TransportClient


class Change(BaseModel):
    """One commit touching a file"""
    timestamp: str
    author: str
    message: str
    impact_score: float = Field(alias="impactScore")


class FileMetrics(BaseModel):
    total_changes: int = Field(alias="totalChanges")
    total_authors: int = Field(alias="totalAuthors")
    avg_impact_score: float = Field(alias="avgImpactScore")


class FileHistory(BaseModel):
    changes: List[Change] = []
    metrics: Optional[FileMetrics] = None


class Hotspot(BaseModel):
    file_path: str = Field(alias="filePath")
    score: float
    changes: int
    authors: int


class ProjectMetrics(BaseModel):
    total_files: int = Field(alias="totalFiles")
    total_commits: int = Field(alias="totalCommits")
    total_authors: int = Field(alias="totalAuthors")
    avg_commits_per_file: Optional[float] = Field(default=None, alias="avgCommitsPerFile")
    avg_authors_per_file: Optional[float] = Field(default=None, alias="avgAuthorsPerFile")
    hotspots: List[Hotspot] = []


def then(future: Future, fn: Callable[[Any], Any]) -> Future:
    """Chain fn onto a future; failures of either step fail the result"""
    result: Future = Future()

    def done(source: Future) -> None:
        try:
            result.set_result(fn(source.result()))
        except Exception as e:
            result.set_exception(e)

    future.add_done_callback(done)
    return result


def _validate(model: type, document: Any):
    try:
        return model.model_validate(document)
    except ValidationError as e:
        raise ProtocolError(f"Malformed {model.__name__} document: {e.errors()[0]['msg']}") from e


class HistorianApi:
    """Typed wrappers over the backend's GET endpoints"""

    def __init__(self, transport: TransportClient, credential: Optional[str] = None):
        self.transport = transport
        self.credential = credential

    def file_history(self, file_path: str) -> Future:
        """Future[FileHistory] for one file"""
        future = self.transport.get_json("/history/file", params={"path": file_path}, credential=self.credential)
        return then(future, lambda doc: _validate(FileHistory, doc))

    def project_metrics(self) -> Future:
        """Future[ProjectMetrics] for the whole project"""
        future = self.transport.get_json("/metrics/project", credential=self.credential)
        return then(future, lambda doc: _validate(ProjectMetrics, doc))

    def custom_metrics(self, metric_key: str) -> Future:
        """Future[Dict[str, float]] for a user-defined metric"""
        future = self.transport.get_json(f"/metrics/custom/{quote(metric_key, safe='')}", credential=self.credential)
        return then(future, _as_number_map)

    def metrics_summary(self) -> Future:
        """Future[List[dict]] of {name, value, hasDetails} entries"""
        future = self.transport.get_json("/metrics/summary", credential=self.credential)
        return then(future, _summary_entries)


def _as_number_map(document: Any) -> Dict[str, float]:
    if not isinstance(document, dict):
        raise ProtocolError("Custom metrics must be a JSON object")
    try:
        return {str(k): float(v) for k, v in document.items()}
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Custom metrics must be numeric: {e}") from e


def _summary_entries(document: Any) -> List[dict]:
    if not isinstance(document, dict) or not isinstance(document.get("metrics"), list):
        raise ProtocolError("Metrics summary must contain a 'metrics' list")
    return document["metrics"]
