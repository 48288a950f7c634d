"""
Apply - Best-effort batch write of proposed changes.

Each change is written independently through the Task Store. A failed write
is counted and reported; earlier successful writes are kept (no rollback,
no retry).
"""

import logging

from activity_scheduler.models import ApplyReport, ProposedChange

logger = logging.getLogger(__name__)


def apply_changes(changes: list[ProposedChange], task_store) -> ApplyReport:
    """
    Write changes through task_store.update().

    Returns:
        ApplyReport with applied/failed counts and a summary message
    """
    applied = 0
    errors = []

    for change in changes:
        try:
            task_store.update(change.task_id, change.to_update())
            applied += 1
        except Exception as e:
            # Keep going: one bad write must not abort the batch
            error_msg = f"{change.task_id}: {e}"
            logger.warning(f"Failed to apply schedule change: {error_msg}", exc_info=True)
            errors.append(error_msg)

    failed = len(errors)
    if not changes:
        message = "No changes to apply"
    elif failed == 0:
        message = f"Applied {applied} change(s)"
    else:
        message = f"Applied {applied} of {len(changes)} change(s); {failed} failed"

    logger.info(message)
    return ApplyReport(
        success=failed == 0,
        applied_count=applied,
        failed_count=failed,
        message=message,
        errors=errors,
    )
