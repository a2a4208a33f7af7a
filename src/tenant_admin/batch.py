from __future__ import annotations

from typing import Any, Callable, Iterable, List, Mapping, Optional, TypeVar

from .audit import JsonAuditLogger
from .models import OperationResult

T = TypeVar("T")


def run_batch(
    items: Iterable[T],
    operation: Callable[[T], Optional[Mapping[str, Any]]],
    identify: Callable[[T], str],
    audit_logger: Optional[JsonAuditLogger] = None,
) -> List[OperationResult]:
    """Apply ``operation`` to each item in order and collect one result per item.

    ``operation`` may return report details for a successful item. Any
    exception it raises is recorded as a failure for that item only.
    """
    results: List[OperationResult] = []
    for index, item in enumerate(items, start=1):
        identifier = identify(item)
        try:
            details = operation(item) or {}
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or exc.__class__.__name__
            if audit_logger:
                audit_logger.warning("batch_item_failed", item=identifier, index=index, error=reason)
            results.append(OperationResult.failure(identifier, reason))
            continue
        results.append(OperationResult.success(identifier, **details))

    if audit_logger:
        failed = sum(1 for result in results if not result.succeeded)
        audit_logger.info(
            "batch_completed",
            total=len(results),
            succeeded=len(results) - failed,
            failed=failed,
        )
    return results
