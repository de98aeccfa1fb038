"""
Audit Logger

DESIGN DECISION: Every significant workflow step is logged.
This provides:
1. Complete traceability of a scan from capture to commit
2. Debugging capability for extraction and persistence failures

The audit logger:
- Is synchronous: it only writes local structured log lines
- Never raises (a failing log line must not break the workflow)
- Supports correlation IDs to trace the events of one scan
"""

from collections import deque
from uuid import UUID, uuid4

import structlog

from invoicescanner.models.audit import AuditEvent, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Keeps the most recent `max_events` events in memory so callers (and
    tests) can inspect what happened. Older events only live in the log.
    """

    def __init__(self, name: str = "invoicescanner.audit", max_events: int = 500):
        self._logger = structlog.get_logger(name)
        self._events: deque[AuditEvent] = deque(maxlen=max_events)

    @property
    def events(self) -> list[AuditEvent]:
        """Retained events, oldest first."""
        return list(self._events)

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the log line was written.
        """
        self._events.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity == AuditSeverity.ERROR:
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            # Logging must never take the workflow down
            return False

        return True


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new scan and pass it through
    review and commit.
    """
    return uuid4()
