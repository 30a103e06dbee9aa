"""
Tests for session data models
"""

import os
import sys
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from historian.client.errors import ConfigurationError, ProtocolError
from historian.client.models import (
    AnalysisRequest,
    AnalysisResponse,
    AnalysisSession,
    CompletionEvent,
    FailureEvent,
    MetricsEvent,
    ProgressEvent,
    SessionState,
    is_terminal,
)


class TestAnalysisRequest:
    """Tests for AnalysisRequest"""

    def test_minimal_body(self):
        """Test request body without optional settings"""
        assert AnalysisRequest("/repo/proj1").to_dict() == {"projectPath": "/repo/proj1"}

    def test_optional_settings(self):
        """Test request body with optional settings"""
        request = AnalysisRequest("/repo/proj1", max_depth=10, excluded_paths=["vendor"])
        assert request.to_dict() == {
            "projectPath": "/repo/proj1",
            "maxDepth": 10,
            "excludedPaths": ["vendor"],
        }

    @pytest.mark.parametrize("path", [None, "", "  ", "relative/path", 42])
    def test_invalid_path(self, path):
        """Test invalid project paths are rejected"""
        with pytest.raises(ConfigurationError):
            AnalysisRequest(path)


class TestAnalysisResponse:
    """Tests for AnalysisResponse.parse"""

    def test_parse_id(self):
        """Test parse id"""
        response = AnalysisResponse.parse({"id": "abc123"})
        assert response.session_id == "abc123"
        assert response.status is None

    def test_parse_optional_fields(self):
        """Test parse optional fields"""
        response = AnalysisResponse.parse({"id": "abc123", "status": "running", "startTime": "2024-05-01T10:00:00Z"})
        assert response.status == "running"
        assert response.start_time == "2024-05-01T10:00:00Z"

    def test_extra_fields_ignored(self):
        """Test extra fields ignored"""
        assert AnalysisResponse.parse({"id": "abc123", "queuePosition": 2}).session_id == "abc123"

    @pytest.mark.parametrize("document", [
        None,
        [],
        "abc123",
        {},
        {"id": ""},
        {"id": "   "},
        {"id": None},
        {"id": 42},
    ])
    def test_malformed(self, document):
        """Test malformed start responses are rejected"""
        with pytest.raises(ProtocolError):
            AnalysisResponse.parse(document)


class TestEvents:
    """Tests for update events"""

    def test_terminal_events(self):
        """Test terminal events"""
        assert is_terminal(CompletionEvent(True))
        assert is_terminal(FailureEvent("boom"))
        assert not is_terminal(ProgressEvent(10.0))
        assert not is_terminal(MetricsEvent({}))


class TestAnalysisSession:
    """Tests for AnalysisSession state transitions"""

    def test_initial_state(self):
        """Test initial state"""
        session = AnalysisSession(project_path="/repo/proj1")
        assert session.state == SessionState.IDLE
        assert session.is_active
        assert session.session_id is None
        assert not session.wait(0)

    def test_running_then_completed(self):
        """Test running then completed"""
        session = AnalysisSession(project_path="/repo/proj1")
        session.mark_starting()
        session.mark_running("abc123")

        assert session.state == SessionState.RUNNING
        assert session.started_at is not None

        session.record_progress(55.0)
        session.mark_completed()

        assert session.state == SessionState.COMPLETED
        assert session.progress == 55.0
        assert not session.is_active
        assert session.wait(0)

    def test_session_id_issued_once(self):
        """Test session id issued once"""
        session = AnalysisSession()
        session.mark_running("abc123")
        with pytest.raises(ProtocolError):
            session.mark_running("def456")
        assert session.session_id == "abc123"

    def test_failed(self):
        """Test failed state records the error"""
        session = AnalysisSession()
        session.mark_failed("Failed to start analysis: boom")
        assert session.state == SessionState.FAILED
        assert session.error_message == "Failed to start analysis: boom"
        assert session.finished_at is not None
        assert session.wait(0)

    def test_cancelled(self):
        """Test cancelled state is terminal"""
        session = AnalysisSession()
        session.mark_cancelled()
        assert session.state.is_terminal
        assert session.wait(0)

    def test_attach_request(self):
        """Test attach request"""
        session = AnalysisSession()
        session.attach_request(AnalysisRequest("/repo/proj1"))
        assert session.project_path == "/repo/proj1"
        assert session.request.to_dict() == {"projectPath": "/repo/proj1"}

    def test_to_dict(self):
        """Test session serialization"""
        session = AnalysisSession(project_path="/repo/proj1", authenticated=True)
        session.mark_running("abc123")

        data = session.to_dict()

        assert data["project_path"] == "/repo/proj1"
        assert data["authenticated"] is True
        assert data["state"] == "running"
        assert data["session_id"] == "abc123"
        assert data["finished_at"] is None
        assert isinstance(data["started_at"], str)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
