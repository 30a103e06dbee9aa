"""
Status reporting
Surfaces session outcomes to the host (notifications, status bar, log).
"""

import logging
from enum import Enum
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class NotificationManager:
    """
    Forwards notifications to a host callback.

    ``notify`` receives ``(NotificationType, message)``. When notifications are
    disabled nothing is forwarded; the status bar message is still tracked
    when enabled separately.
    """

    def __init__(
        self,
        notify: Optional[Callable[[NotificationType, str], None]] = None,
        enabled: bool = True,
        show_in_status_bar: bool = True,
    ):
        self._notify = notify
        self.enabled = enabled
        self.show_in_status_bar = show_in_status_bar
        self.status_bar_message: Optional[str] = None
        self.history: List[Tuple[NotificationType, str]] = []

    def show(self, kind: NotificationType, message: str, status_bar_message: Optional[str] = None) -> None:
        if not self.enabled:
            return

        if kind == NotificationType.SUCCESS:
            message = f"✓ {message}"
        self.history.append((kind, message))

        if self._notify is not None:
            self._notify(kind, message)

        if self.show_in_status_bar and status_bar_message:
            self.status_bar_message = status_bar_message

    def clear(self) -> None:
        self.history.clear()
        self.status_bar_message = None


class StatusReporter:
    """Host-facing hooks for session outcomes; the base class ignores them"""

    def report_started(self, session) -> None:
        pass

    def report_completed(self, session) -> None:
        pass

    def report_failure(self, session, message: str) -> None:
        pass


class LoggingStatusReporter(StatusReporter):
    """Default reporter: session outcomes go to the log"""

    def report_started(self, session) -> None:
        logger.info(f"Analysis {session.session_id} started for {session.project_path}")

    def report_completed(self, session) -> None:
        logger.info(f"Analysis {session.session_id} completed")

    def report_failure(self, session, message: str) -> None:
        logger.error(message)


class NotificationReporter(StatusReporter):
    """Reports session outcomes through a NotificationManager"""

    def __init__(self, manager: NotificationManager):
        self.manager = manager

    def report_started(self, session) -> None:
        self.manager.show(
            NotificationType.INFO,
            "Code history analysis started",
            status_bar_message="Analysis Progress: 0%"
        )

    def report_completed(self, session) -> None:
        self.manager.show(
            NotificationType.SUCCESS,
            "Code history analysis completed",
            status_bar_message="Analysis Complete"
        )

    def report_failure(self, session, message: str) -> None:
        self.manager.show(NotificationType.ERROR, message, status_bar_message="Analysis Failed")
