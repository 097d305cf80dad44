"""
Fire-and-forget follow-ups that run after a primary write has committed.

A follow-up (notification request, selection bookkeeping) always runs in
its own session, so its failure cannot roll back the primary transaction.
Failures are logged as ``DependencyFailure`` and swallowed; nothing is
retried.
"""

import logging
from typing import Any, Callable, List, Optional

from sqlalchemy.orm import Session

from ..database.config import DatabaseConfig
from ..database.models import NotificationEvent
from ..errors import DependencyFailure
from ..models.notification import NotificationRequest

logger = logging.getLogger(__name__)


class NotificationSink:
    """Accepts notification requests; delivery is someone else's job."""

    def emit(self, request: NotificationRequest) -> None:
        raise NotImplementedError


class DatabaseNotificationSink(NotificationSink):
    """Writes notification requests to the ``notification_events`` outbox."""

    def __init__(self, db_config: DatabaseConfig):
        self.db_config = db_config

    def emit(self, request: NotificationRequest) -> None:
        with self.db_config.get_session_context() as session:
            session.add(NotificationEvent(**request.model_dump()))


class MemoryNotificationSink(NotificationSink):
    """Keeps requests in memory; used by tests and dry runs."""

    def __init__(self):
        self.events: List[NotificationRequest] = []

    def emit(self, request: NotificationRequest) -> None:
        self.events.append(request)


class FollowUpDispatcher:
    """
    Runs secondary side effects after a primary commit.

    Every method returns True on success and False on a swallowed failure;
    recorded failures are kept on ``failures`` for inspection.
    """

    def __init__(self, db_config: DatabaseConfig, sink: Optional[NotificationSink] = None):
        self.db_config = db_config
        self.sink = sink or DatabaseNotificationSink(db_config)
        self.failures: List[DependencyFailure] = []

    def dispatch(self, name: str, action: Callable[[], Any]) -> bool:
        """Run a follow-up, logging and swallowing any failure."""
        try:
            action()
            return True
        except Exception as e:
            failure = DependencyFailure(f"{name} failed: {e}")
            self.failures.append(failure)
            logger.warning(f"Follow-up '{name}' failed; primary write kept: {e}")
            return False

    def run_in_session(self, name: str, action: Callable[[Session], Any]) -> bool:
        """Run a follow-up inside its own session; commits only if it succeeds."""
        def run():
            with self.db_config.get_session_context() as session:
                action(session)

        return self.dispatch(name, run)

    def notify(self, request: NotificationRequest) -> bool:
        """Emit a notification request to the sink."""
        return self.dispatch(f"notification {request.type.value}", lambda: self.sink.emit(request))
