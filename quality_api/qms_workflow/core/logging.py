from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Optional, Union

# Set per request by the HTTP middleware; read by every log record.
correlation_id_var: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
tenant_id_var: ContextVar[Optional[str]] = ContextVar("tenant_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)

_CONTEXT_FIELDS = (
    ("correlation_id", correlation_id_var),
    ("tenant_id", tenant_id_var),
    ("actor_id", actor_id_var),
)

LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | cid=%(correlation_id)s | tenant=%(tenant_id)s | "
    "actor=%(actor_id)s | %(message)s"
)


class RequestContextFilter(logging.Filter):
    """Stamps the request's correlation, tenant and actor ids ("-" outside a request) onto records."""

    def filter(self, record: logging.LogRecord) -> bool:
        for attr, var in _CONTEXT_FIELDS:
            setattr(record, attr, var.get() or "-")
        return True


# PUBLIC_INTERFACE
def configure_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Route all logging to stdout in the pipe-separated request-context format.

    Replaces existing root handlers so repeated calls (reloads, tests) do not
    duplicate output. Workflow services log rejected operations at INFO and
    unexpected failures with tracebacks.
    """
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level)
