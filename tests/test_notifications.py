"""
Tests for status reporting
"""

import os
import sys
import pytest
from unittest.mock import Mock

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from historian.client.models import AnalysisSession
from historian.client.notifications import (
    LoggingStatusReporter,
    NotificationManager,
    NotificationReporter,
    NotificationType,
)


class TestNotificationManager:
    """Tests for NotificationManager"""

    def test_forwards_to_host(self):
        """Test forwards to host"""
        notify = Mock()
        manager = NotificationManager(notify=notify)

        manager.show(NotificationType.WARNING, "Server is slow")

        notify.assert_called_once_with(NotificationType.WARNING, "Server is slow")
        assert manager.history == [(NotificationType.WARNING, "Server is slow")]

    def test_success_prefixed(self):
        """Test success prefixed"""
        notify = Mock()
        manager = NotificationManager(notify=notify)

        manager.show(NotificationType.SUCCESS, "Done")

        notify.assert_called_once_with(NotificationType.SUCCESS, "✓ Done")

    def test_disabled(self):
        """Test disabled notifications are not forwarded"""
        notify = Mock()
        manager = NotificationManager(notify=notify, enabled=False)

        manager.show(NotificationType.ERROR, "boom", status_bar_message="Analysis Failed")

        notify.assert_not_called()
        assert manager.history == []
        assert manager.status_bar_message is None

    def test_status_bar(self):
        """Test status bar message tracking"""
        manager = NotificationManager()
        manager.show(NotificationType.INFO, "started", status_bar_message="Analysis Progress: 0%")
        assert manager.status_bar_message == "Analysis Progress: 0%"

        manager.clear()
        assert manager.status_bar_message is None
        assert manager.history == []

    def test_status_bar_hidden(self):
        """Test status bar hidden"""
        manager = NotificationManager(show_in_status_bar=False)
        manager.show(NotificationType.INFO, "started", status_bar_message="Analysis Progress: 0%")
        assert manager.status_bar_message is None


class TestNotificationReporter:
    """Tests for NotificationReporter"""

    @pytest.fixture
    def manager(self):
        return NotificationManager()

    @pytest.fixture
    def session(self):
        session = AnalysisSession(project_path="/repo/proj1")
        session.mark_running("abc123")
        return session

    def test_lifecycle(self, manager, session):
        """Test started and completed notifications"""
        reporter = NotificationReporter(manager)

        reporter.report_started(session)
        assert manager.status_bar_message == "Analysis Progress: 0%"

        reporter.report_completed(session)
        assert manager.status_bar_message == "Analysis Complete"
        assert manager.history == [
            (NotificationType.INFO, "Code history analysis started"),
            (NotificationType.SUCCESS, "✓ Code history analysis completed"),
        ]

    def test_failure(self, manager, session):
        """Test failure notification"""
        reporter = NotificationReporter(manager)

        reporter.report_failure(session, "Failed to start analysis: Unexpected response 500")

        assert manager.history == [(NotificationType.ERROR, "Failed to start analysis: Unexpected response 500")]
        assert manager.status_bar_message == "Analysis Failed"


class TestLoggingStatusReporter:
    """Tests for LoggingStatusReporter"""

    def test_logs_failure(self, caplog):
        """Test logs failure"""
        session = AnalysisSession(project_path="/repo/proj1")

        LoggingStatusReporter().report_failure(session, "Analysis failed: boom")

        assert "Analysis failed: boom" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
