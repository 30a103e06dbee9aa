"""
Session Launcher for Code Historian analyses
Starts a remote analysis without blocking the caller and wires its live
updates to the display.

Usage:
    python -m historian.client.launcher --project-path /path/to/repo

The launcher:
1. Derives and validates the project path
2. Posts {"projectPath": ...} to /analysis/start on a background worker
3. Parses the session id from the 200 response
4. Opens the live update channel for that id
5. Pumps progress/metrics into the update sink until a terminal event

Every failure on that path ends the session in the FAILED state and is
reported once; nothing propagates to the caller.
"""

import os
import sys
import logging
import argparse
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Union

from historian.config.config import get_config

from .channel import LiveUpdateChannel, Subscription
from .errors import ConfigurationError, HistorianError, TransportError
from .models import (
    AnalysisRequest,
    AnalysisResponse,
    AnalysisSession,
    FailureEvent,
    ProgressEvent,
    SessionState,
    UpdateEvent,
    validate_project_path,
)
from .notifications import (
    LoggingStatusReporter,
    NotificationManager,
    NotificationReporter,
    NotificationType,
    StatusReporter,
)
from .sink import ConsoleDisplay, UpdateSink, clamp_percent
from .transport import TransportClient, normalize_credential

logger = logging.getLogger("historian.launcher")

START_PATH = "/analysis/start"


class SessionLauncher:
    """
    Fire-and-forget launcher for analysis sessions.

    Concurrent launches share nothing but the session registry; each session
    owns its own subscription.
    """

    def __init__(
        self,
        transport: TransportClient,
        channel: LiveUpdateChannel,
        sink: Optional[UpdateSink] = None,
        reporter: Optional[StatusReporter] = None,
        project_context: Optional[Callable[[], Optional[str]]] = None,
        default_credential: Optional[str] = None,
        require_credential: bool = False,
        max_depth: Optional[int] = None,
        excluded_paths: Optional[List[str]] = None,
        launch_workers: int = 2,
        executor: Optional[ThreadPoolExecutor] = None,
        channel_executor: Optional[ThreadPoolExecutor] = None,
        owns_clients: bool = False,
    ):
        """
        Initialize the launcher.

        Args:
            transport: Client used for the start request
            channel: Opens live update streams for issued session ids
            sink: Receives progress/metrics (a detached sink when omitted)
            reporter: Host status surface for started/completed/failed
            project_context: Supplies the active project path when none is given
            default_credential: API key used when start_analysis gets none
            require_credential: Refuse to launch without a non-blank API key
            max_depth: Optional history depth forwarded to the backend
            excluded_paths: Optional paths the backend should skip
            launch_workers: Size of the launch pool when no executor is given
            executor: Runs launch jobs (owned by the caller)
            channel_executor: Runs channel pumps (owned by the caller)
            owns_clients: Close transport and channel on shutdown
        """
        self.transport = transport
        self.channel = channel
        self.sink = sink or UpdateSink()
        self.reporter = reporter or LoggingStatusReporter()
        self.project_context = project_context
        self.default_credential = normalize_credential(default_credential)
        self.require_credential = require_credential
        self.max_depth = max_depth
        self.excluded_paths = excluded_paths
        self._owns_clients = owns_clients

        self._owned_executors: List[ThreadPoolExecutor] = []
        if executor is None:
            executor = ThreadPoolExecutor(
                max_workers=max(1, launch_workers),
                thread_name_prefix="historian_launch"
            )
            self._owned_executors.append(executor)
        if channel_executor is None:
            channel_executor = ThreadPoolExecutor(thread_name_prefix="historian_channel")
            self._owned_executors.append(channel_executor)
        self._executor = executor
        self._channel_executor = channel_executor

        self._lock = threading.Lock()
        self._sessions: List[AnalysisSession] = []
        self._subscriptions: Dict[str, Subscription] = {}

    def start_analysis(
        self,
        project_path: Optional[str] = None,
        credential: Optional[str] = None,
    ) -> AnalysisSession:
        """
        Launch an analysis and return immediately.

        Args:
            project_path: Absolute project path; the project context supplies
                          it when omitted
            credential: API key for authenticated backends. None falls back to
                        the configured key; a blank string means unauthenticated.

        Returns:
            Session handle for observing state or cancelling
        """
        if credential is None:
            credential = self.default_credential
        credential = normalize_credential(credential)

        session = AnalysisSession(project_path=project_path, authenticated=credential is not None)
        session.mark_starting()
        with self._lock:
            self._sessions.append(session)

        try:
            self._executor.submit(self._launch, session, project_path, credential)
        except RuntimeError as e:
            # Executor already shut down
            self._fail(session, f"Failed to start analysis: {e}")
        return session

    def cancel(self, target: Union[AnalysisSession, str]) -> bool:
        """
        Cancel a session by handle or session id.

        Closes its channel; events that arrive afterwards are ignored.

        Returns:
            True if an active session was cancelled
        """
        with self._lock:
            session = self._find(target)
            if session is None or session.state.is_terminal:
                return False
            session.mark_cancelled()
            subscription = self._subscriptions.pop(session.session_id, None) if session.session_id else None

        if subscription is not None:
            subscription.close()
        logger.info(f"Analysis {session.session_id or session.project_path} cancelled")
        return True

    def active_sessions(self) -> List[AnalysisSession]:
        with self._lock:
            return [s for s in self._sessions if s.is_active]

    def sessions(self) -> List[AnalysisSession]:
        with self._lock:
            return list(self._sessions)

    def shutdown(self, wait: bool = True) -> None:
        """Cancel active sessions and stop the worker pools"""
        logger.info("Shutting down session launcher...")
        for session in self.active_sessions():
            self.cancel(session)
        for executor in self._owned_executors:
            executor.shutdown(wait=wait)
        if self._owns_clients:
            self.transport.close(wait=wait)
            self.channel.close()

    def _find(self, target: Union[AnalysisSession, str]) -> Optional[AnalysisSession]:
        if isinstance(target, AnalysisSession):
            return target
        for session in self._sessions:
            if session.session_id == target:
                return session
        return None

    def _resolve_project_path(self, project_path: Optional[str]) -> str:
        if project_path is None and self.project_context is not None:
            project_path = self.project_context()
        if project_path is None:
            raise ConfigurationError("No project is open")
        return validate_project_path(project_path)

    def _launch(self, session: AnalysisSession, project_path: Optional[str], credential: Optional[str]) -> None:
        """Build and submit the start request (runs on the launch pool)"""
        try:
            if self.require_credential and credential is None:
                raise ConfigurationError("An API key is required by this server")

            path = self._resolve_project_path(project_path)
            request = AnalysisRequest(
                path,
                max_depth=self.max_depth,
                excluded_paths=self.excluded_paths
            )
            session.attach_request(request)

            if not session.is_active:
                return

            logger.info(f"Starting analysis for {path}")
            future = self.transport.send(
                "POST",
                START_PATH,
                body=request.to_dict(),
                credential=credential
            )
        except HistorianError as e:
            self._fail(session, f"Failed to start analysis: {e}")
            return
        except Exception as e:
            logger.exception("Unexpected error while launching analysis")
            self._fail(session, f"Failed to start analysis: {e}")
            return

        future.add_done_callback(lambda f: self._on_start_response(session, credential, f))

    def _on_start_response(self, session: AnalysisSession, credential: Optional[str], future: Future) -> None:
        """Continuation of the start request; runs on whichever thread completed it"""
        try:
            response = future.result()
            if response.status_code != 200:
                raise TransportError(
                    f"Unexpected response {response.status_code}",
                    status_code=response.status_code
                )
            parsed = AnalysisResponse.parse(response.json())
        except HistorianError as e:
            self._fail(session, f"Failed to start analysis: {e}")
            return
        except Exception as e:
            logger.exception("Unexpected error while reading start response")
            self._fail(session, f"Failed to start analysis: {e}")
            return

        with self._lock:
            if not session.is_active:
                logger.info(f"Ignoring session {parsed.session_id}: launch was cancelled")
                return
            session.mark_running(parsed.session_id)

        logger.info(f"Analysis session {parsed.session_id} issued")
        self._report("report_started", session)

        try:
            subscription = self.channel.open(parsed.session_id, credential=credential)
        except HistorianError as e:
            self._fail(session, f"Analysis failed: {e}")
            return

        with self._lock:
            if not session.is_active:
                cancelled = True
            else:
                cancelled = False
                self._subscriptions[parsed.session_id] = subscription
        if cancelled:
            subscription.close()
            return

        try:
            self._channel_executor.submit(self._pump, session, subscription)
        except RuntimeError as e:
            subscription.close()
            self._fail(session, f"Analysis failed: {e}")

    def _pump(self, session: AnalysisSession, subscription: Subscription) -> None:
        """Forward live updates until the analysis ends (runs on the channel pool)"""
        try:
            terminal = subscription.pump(self.sink, on_event=lambda event: self._record(session, event))
        except HistorianError as e:
            self._fail(session, f"Analysis failed: {e}")
            return
        except Exception as e:
            logger.exception(f"Unexpected error while streaming session {session.session_id}")
            self._fail(session, f"Analysis failed: {e}")
            return
        finally:
            subscription.close()
            with self._lock:
                self._subscriptions.pop(session.session_id, None)

        if terminal is None:
            return
        if isinstance(terminal, FailureEvent):
            self._fail(session, f"Analysis failed: {terminal.message}")
            return

        with self._lock:
            if not session.is_active:
                return
            session.mark_completed()
        self._report("report_completed", session)

    def _record(self, session: AnalysisSession, event: UpdateEvent) -> None:
        if isinstance(event, ProgressEvent):
            percent = clamp_percent(event.percent_complete)
            if percent is not None:
                session.record_progress(percent)

    def _fail(self, session: AnalysisSession, message: str) -> None:
        """Move the session to FAILED and report it, at most once"""
        with self._lock:
            if session.state.is_terminal:
                return
            session.mark_failed(message)
        logger.error(message)
        self._report("report_failure", session, message)

    def _report(self, hook: str, session: AnalysisSession, *args) -> None:
        try:
            getattr(self.reporter, hook)(session, *args)
        except Exception:
            logger.exception(f"Status reporter failed in {hook}")


def create_launcher(
    config=None,
    display=None,
    reporter: Optional[StatusReporter] = None,
    project_context: Optional[Callable[[], Optional[str]]] = None,
    api_url: Optional[str] = None,
    api_key: Optional[str] = None,
    request_timeout: Optional[float] = None,
) -> SessionLauncher:
    """
    Factory function to create a launcher with its transport and channel.

    Args:
        config: Config class (selected from HISTORIAN_ENV when omitted)
        display: Display object receiving update_progress/update_metrics
        reporter: Status reporter (logging when omitted)
        project_context: Supplies the active project path
        api_url: Overrides the configured base URL
        api_key: Overrides the configured API key
        request_timeout: Overrides the configured request timeout

    Returns:
        Configured SessionLauncher owning its clients
    """
    config = config or get_config()

    overrides = {}
    if api_url is not None:
        overrides["API_URL"] = api_url
    if api_key is not None:
        overrides["API_KEY"] = api_key
    if request_timeout is not None:
        overrides["REQUEST_TIMEOUT"] = request_timeout
    if overrides:
        config = type(f"{config.__name__}Override", (config,), overrides)

    config.validate()
    logger.info(f"Launcher configuration: {config.describe()}")

    transport = TransportClient(
        config.API_URL,
        request_timeout=config.REQUEST_TIMEOUT,
        max_workers=config.TRANSPORT_WORKERS
    )
    channel = LiveUpdateChannel(
        config.API_URL,
        events_path=config.EVENTS_PATH,
        connect_timeout=config.REQUEST_TIMEOUT,
        max_reconnects=config.MAX_RECONNECTS,
        reconnect_backoff=config.RECONNECT_BACKOFF,
        max_backoff=config.MAX_BACKOFF
    )

    return SessionLauncher(
        transport,
        channel,
        sink=UpdateSink(display),
        reporter=reporter,
        project_context=project_context,
        default_credential=config.credential(),
        require_credential=config.REQUIRE_API_KEY,
        max_depth=config.MAX_DEPTH,
        excluded_paths=config.EXCLUDED_PATHS,
        launch_workers=config.LAUNCH_WORKERS,
        owns_clients=True
    )


def _print_notification(kind: NotificationType, message: str) -> None:
    stream = sys.stderr if kind == NotificationType.ERROR else sys.stdout
    print(f"[{kind.value}] {message}", file=stream, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Start a Code Historian analysis and follow its progress")
    parser.add_argument(
        "--project-path",
        default=os.getcwd(),
        help="Absolute path of the project to analyze (default: current directory)"
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Base API URL of the analysis backend"
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="API key for authenticated backends"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="HTTP request timeout in seconds"
    )
    parser.add_argument(
        "--env",
        default=None,
        help="Configuration profile (development, enterprise, testing)"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = get_config(args.env)
    # The sink holds the display weakly; keep it referenced for the whole run
    display = ConsoleDisplay()
    notifications = NotificationManager(
        notify=_print_notification,
        enabled=config.NOTIFICATIONS_ENABLED,
        show_in_status_bar=config.SHOW_IN_STATUS_BAR
    )

    try:
        launcher = create_launcher(
            config=config,
            display=display,
            reporter=NotificationReporter(notifications),
            api_url=args.api_url,
            api_key=args.api_key,
            request_timeout=args.timeout
        )
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    session = launcher.start_analysis(os.path.abspath(args.project_path))
    try:
        session.wait()
    except KeyboardInterrupt:
        logger.info("Interrupted, cancelling analysis...")
        launcher.cancel(session)
    finally:
        launcher.shutdown(wait=False)

    return 0 if session.state == SessionState.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
