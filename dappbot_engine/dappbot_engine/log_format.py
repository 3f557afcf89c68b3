"""JSON log formatting for CloudWatch Logs.

Queue- and schedule-triggered paths have no caller to report failures to,
so log lines are the only record of what a run did.  Each record is emitted
as a single-line JSON object that CloudWatch Logs Insights can query
without regex parsing.

Output schema per line::

    {
        "timestamp": "2025-05-15T12:34:56.789012+00:00",
        "level": "WARNING",
        "logger": "dappbot_engine.reconciler.lapsed_users",
        "message": "Reconciliation failed for owner",
        "context": {"owner": "a@x.com"},   // present when passed via extra=
        "exc_info": "Traceback ..."         // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import traceback
from datetime import UTC, datetime
from typing import Any

from dappbot_engine.config import Settings


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Structured context passed via ``extra={"context": {...}}``.
        context = getattr(record, "context", None)
        if context is not None:
            payload["context"] = context

        aws_request_id = getattr(record, "aws_request_id", None)
        if aws_request_id:
            payload["aws_request_id"] = aws_request_id

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(settings: Settings) -> None:
    """Install a single stream handler on the root logger.

    Existing root handlers (the Lambda runtime installs its own) are
    replaced so repeated calls never stack duplicate output.
    """
    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler()
    if settings.structured_logging:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level.upper())

    # botocore is chatty at INFO about credential discovery.
    logging.getLogger("botocore").setLevel(logging.WARNING)
