"""
Live update channel
Streams progress and metrics events for one analysis session.

The backend pushes Server-Sent Events on GET {base}/analysis/{id}/events.
Each event's data lines carry one JSON message:

    {"progress": 42.5}
    {"metrics": {"churn": 12, "authors": 3}}
    {"completed": true}
    {"error": "repository not found"}

Plain newline-delimited JSON is accepted as well. The last two shapes are
terminal: the subscription closes itself after yielding them.
"""

import json
import logging
import threading
import time
from typing import Callable, Dict, Iterator, List, Optional

import requests

from .errors import ChannelError
from .models import (
    CompletionEvent,
    FailureEvent,
    MetricsEvent,
    ProgressEvent,
    UpdateEvent,
    is_terminal,
)
from .transport import auth_headers, join_url

logger = logging.getLogger(__name__)

DEFAULT_EVENTS_PATH = "/analysis/{session_id}/events"

# Raised by readers that lose the connection mid-stream
_STREAM_ERRORS = (ChannelError, requests.RequestException, OSError, ValueError)


def parse_message(text: str) -> List[UpdateEvent]:
    """
    Turn one pushed message into events.

    Unknown or malformed messages yield no events. A message may carry
    progress and a terminal marker at once; the terminal event comes last.
    """
    try:
        document = json.loads(text)
    except ValueError:
        logger.warning(f"Skipping malformed channel message: {text[:200]!r}")
        return []

    if not isinstance(document, dict):
        logger.warning(f"Skipping non-object channel message: {text[:200]!r}")
        return []

    events: List[UpdateEvent] = []

    if "progress" in document:
        progress = document["progress"]
        if isinstance(progress, (int, float)) and not isinstance(progress, bool):
            events.append(ProgressEvent(float(progress)))
        else:
            logger.warning(f"Skipping non-numeric progress value: {progress!r}")

    if "metrics" in document:
        metrics = document["metrics"]
        if isinstance(metrics, dict):
            events.append(MetricsEvent(metrics))
        else:
            logger.warning(f"Skipping metrics that are not an object: {type(metrics).__name__}")

    if "error" in document:
        events.append(FailureEvent(str(document["error"])))
    elif "completed" in document:
        events.append(CompletionEvent(document["completed"]))

    if not events:
        logger.debug(f"Ignoring channel message without known fields: {sorted(document)}")

    return events


def iter_messages(lines) -> Iterator[str]:
    """Group SSE lines (or bare JSON lines) into message payloads"""
    data_lines: List[str] = []
    for line in lines:
        if line is None:
            continue
        if isinstance(line, bytes):
            line = line.decode("utf-8", errors="replace")
        line = line.rstrip("\r")

        if line == "":
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            data_lines.append(line[5:].lstrip())
            continue
        if line.startswith(("event:", "id:", "retry:")):
            continue
        # Bare NDJSON line
        yield line

    if data_lines:
        yield "\n".join(data_lines)


class Subscription:
    """
    Event stream for one session id.

    Iterating yields events lazily in delivery order. Only one thread should
    iterate; close() may be called from any thread.
    """

    def __init__(
        self,
        session_id: str,
        connect: Callable[[], requests.Response],
        response: Optional[requests.Response] = None,
        max_reconnects: int = 0,
        reconnect_backoff: float = 1.0,
        max_backoff: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session_id = session_id
        self._connect = connect
        self._response = response
        self.max_reconnects = max(0, max_reconnects)
        self.reconnect_backoff = reconnect_backoff
        self.max_backoff = max_backoff
        self._sleep = sleep

        self._closed = threading.Event()
        self._lock = threading.Lock()
        self._reconnects = 0
        self._current_backoff = reconnect_backoff

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def reconnects(self) -> int:
        return self._reconnects

    def __iter__(self) -> Iterator[UpdateEvent]:
        return self.events()

    def events(self) -> Iterator[UpdateEvent]:
        while not self.closed:
            try:
                response = self._take_response()
                for message in iter_messages(response.iter_lines(decode_unicode=True)):
                    if self.closed:
                        return
                    for event in parse_message(message):
                        if self.closed:
                            return
                        if is_terminal(event):
                            self.close()
                            yield event
                            return
                        yield event
                if self.closed:
                    return
                cause = "stream ended before the analysis finished"
            except _STREAM_ERRORS as e:
                if self.closed:
                    return
                cause = str(e) or type(e).__name__

            self._drop_response()
            self._handle_broken_stream(cause)

    def pump(self, sink, on_event: Optional[Callable[[UpdateEvent], None]] = None) -> Optional[UpdateEvent]:
        """
        Forward events to an UpdateSink until the stream ends.

        Returns:
            The terminal event, or None when the subscription was closed first

        Raises:
            ChannelError: when the stream breaks and no reconnect remains
        """
        for event in self:
            if self.closed and not is_terminal(event):
                break
            if on_event is not None:
                on_event(event)
            if isinstance(event, ProgressEvent):
                sink.on_progress(event.percent_complete)
            elif isinstance(event, MetricsEvent):
                sink.on_metrics(event.payload)
            elif is_terminal(event):
                return event
        return None

    def close(self) -> None:
        """Stop delivering events and drop the connection"""
        if self.closed:
            return
        self._closed.set()
        self._drop_response()
        logger.info(f"Channel for session {self.session_id} closed")

    def _take_response(self) -> requests.Response:
        with self._lock:
            if self._response is None:
                self._response = self._connect()
            return self._response

    def _drop_response(self) -> None:
        with self._lock:
            response, self._response = self._response, None
        if response is not None:
            try:
                response.close()
            except _STREAM_ERRORS as e:
                logger.debug(f"Ignoring error while closing stream: {e}")

    def _handle_broken_stream(self, cause: str) -> None:
        """Back off and reconnect, or close and raise once attempts run out"""
        if self._reconnects >= self.max_reconnects:
            self.close()
            raise ChannelError(
                f"Live updates for session {self.session_id} lost: {cause}",
                session_id=self.session_id
            )

        self._reconnects += 1
        logger.warning(
            f"Channel for session {self.session_id} broke ({cause}); "
            f"reconnect #{self._reconnects} in {self._current_backoff:.1f}s"
        )
        self._sleep(self._current_backoff)
        self._current_backoff = min(self._current_backoff * 2, self.max_backoff)


class LiveUpdateChannel:
    """Opens per-session event streams against the backend"""

    def __init__(
        self,
        base_url: str,
        events_path: str = DEFAULT_EVENTS_PATH,
        connect_timeout: Optional[float] = 30.0,
        max_reconnects: int = 0,
        reconnect_backoff: float = 1.0,
        max_backoff: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.events_path = events_path
        self.connect_timeout = connect_timeout
        self.max_reconnects = max_reconnects
        self.reconnect_backoff = reconnect_backoff
        self.max_backoff = max_backoff
        self._session = session or requests.Session()

    def url_for(self, session_id: str) -> str:
        return join_url(self.base_url, self.events_path.format(session_id=session_id))

    def open(self, session_id: str, credential: Optional[str] = None) -> Subscription:
        """
        Connect to the event stream of one session.

        Raises:
            ChannelError: if the session id is empty or the stream is unreachable
        """
        if not session_id or not str(session_id).strip():
            raise ChannelError("Cannot open a channel without a session id")

        url = self.url_for(session_id)
        headers: Dict[str, str] = {"Accept": "text/event-stream"}
        headers.update(auth_headers(credential))

        def connect() -> requests.Response:
            try:
                response = self._session.get(
                    url,
                    headers=headers,
                    stream=True,
                    timeout=(self.connect_timeout, None)
                )
            except requests.RequestException as e:
                raise ChannelError(f"Cannot reach live updates at {url}: {e}", session_id=session_id) from e

            if response.status_code != 200:
                response.close()
                raise ChannelError(
                    f"Live updates at {url} refused with status {response.status_code}",
                    session_id=session_id
                )
            # Event streams are always UTF-8; requests would assume ISO-8859-1 for text/*
            response.encoding = "utf-8"
            return response

        logger.info(f"Opening channel for session {session_id}: {url}")
        response = connect()

        return Subscription(
            session_id,
            connect,
            response=response,
            max_reconnects=self.max_reconnects,
            reconnect_backoff=self.reconnect_backoff,
            max_backoff=self.max_backoff,
        )

    def close(self) -> None:
        self._session.close()

