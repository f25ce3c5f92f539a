"""Correlation ID and job context management for tracing.

HTTP requests get their correlation ID from the X-Correlation-ID header
(middleware); scheduler ticks open a fresh one via job_context().
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
job_name_var: ContextVar[str] = ContextVar("job_name", default="")

CORRELATION_ID_HEADER = "X-Correlation-ID"


def generate_correlation_id() -> str:
    """Generate a new correlation ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Get current correlation ID from context."""
    return correlation_id_var.get()


def set_correlation_id(cid: str) -> Token[str]:
    """Set correlation ID in context."""
    return correlation_id_var.set(cid)


def reset_correlation_id(token: Token[str]) -> None:
    """Reset correlation ID to previous value."""
    correlation_id_var.reset(token)


def get_job_name() -> str:
    """Name of the scheduler job running in this context ("" outside jobs)."""
    return job_name_var.get()


@contextmanager
def job_context(job_name: str) -> Iterator[str]:
    """Tag everything logged inside the block with job_name and a new correlation ID."""
    cid = generate_correlation_id()
    cid_token = correlation_id_var.set(cid)
    job_token = job_name_var.set(job_name)
    try:
        yield cid
    finally:
        job_name_var.reset(job_token)
        correlation_id_var.reset(cid_token)
