import contextvars
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator

operation_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar("operation_id", default="")


class OperationIdFilter(logging.Filter):
    """
    Logging filter to inject the current operation_id into log records.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.operation_id = operation_id_ctx.get()
        return True


def fmt_ctx(ctx: Dict[str, Any]) -> str:
    """Return a deterministic key=value string used in log messages."""
    return " ".join(f"{k}={v}" for k, v in ctx.items() if v is not None)


@contextmanager
def operation_scope(logger: logging.Logger, operation: str, **ctx: Any) -> Iterator[str]:
    """Tag every record logged inside the block with a fresh operation id.

    Start, finish and failure are logged at DEBUG with the elapsed time.
    """
    op_id = uuid.uuid4().hex[:12]
    token = operation_id_ctx.set(op_id)
    fields = {"operation_id": op_id, "operation": operation, **ctx}
    start_time = time.monotonic()
    logger.debug(f"Started {fmt_ctx(fields)}", extra=fields)
    try:
        yield op_id
    except Exception as e:
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.debug(
            f"Failed {fmt_ctx(fields)} error={type(e).__name__} elapsed_ms={elapsed_ms}",
            extra=fields,
        )
        raise
    else:
        elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.debug(f"Finished {fmt_ctx(fields)} elapsed_ms={elapsed_ms}", extra=fields)
    finally:
        operation_id_ctx.reset(token)
