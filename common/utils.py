import datetime
import decimal
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError

from common.errors import OperationTimeoutError

logger = logging.getLogger(__name__)


def _to_json_compatible(value):
    if isinstance(value, dict):
        return {key: _to_json_compatible(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_json_compatible(item) for item in value]
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, decimal.Decimal):
        return str(value)
    if isinstance(value, (datetime.date, datetime.datetime, datetime.time)):
        return value.isoformat()
    return value


def snapshot_instance(instance):
    """Capture every concrete column of a model row as a JSON-safe dict keyed by attname."""
    return {
        field.attname: _to_json_compatible(getattr(instance, field.attname))
        for field in instance._meta.concrete_fields
    }


def rebuild_instance(model, snapshot):
    """Inverse of `snapshot_instance`: convert JSON values back through each field's parser."""
    values = {}
    for field in model._meta.concrete_fields:
        if field.attname not in snapshot:
            continue
        raw = snapshot[field.attname]
        values[field.attname] = None if raw is None else field.to_python(raw)
    return model(**values)


def chunked(items, size):
    size = max(int(size or 1), 1)
    items = list(items)
    for start in range(0, len(items), size):
        yield items[start : start + size]


def call_with_timeout(func, timeout, *args, label="external call", **kwargs):
    """Run `func` in a worker thread and raise OperationTimeoutError if it exceeds `timeout` seconds.

    On timeout the call is abandoned, not cancelled: the worker thread (and any
    database connection it opened) keeps running until `func` returns, so
    callables passed here must be free of side effects.
    """
    executor = ThreadPoolExecutor(max_workers=1)
    future = executor.submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError:
        future.cancel()
        logger.warning("external_call_timeout", extra={"label": label, "timeout_seconds": timeout})
        raise OperationTimeoutError(
            f"{label} did not answer within {timeout} seconds.",
            {"label": label, "timeout_seconds": timeout},
        )
    finally:
        executor.shutdown(wait=False)
