"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` mapper events before
any SQL is emitted for a flush.  The listeners registered here raise
ImmutabilityViolationError, which aborts the flush:

    session.flush()
         |
         v
    [before_update] --> _check_*() --> ImmutabilityViolationError
    [before_delete] --> _check_*() -----------^

Protected entities
------------------

Entity                  | When immutable                    | Allowed changes
------------------------|-----------------------------------|---------------------------------
StructureApproval       | ALWAYS                            | none
StructureChangeLog      | ALWAYS                            | none
StructureChangeRequest  | content, once status != DRAFT     | status, resolved_at, implemented_*,
                        | status, once terminal             | updated_at / updated_by_id
Department / Position   | never deleted (soft delete only)  | any column via HierarchyStore

Bulk ``UPDATE``/``DELETE`` statements bypass mapper events; the kernel never
issues them against these tables.
"""

from sqlalchemy import event, inspect

from org_kernel.exceptions import ImmutabilityViolationError
from org_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Columns a non-DRAFT change request may still change.
_REQUEST_LIFECYCLE_COLUMNS = frozenset({
    "status",
    "resolved_at",
    "implemented_at",
    "implemented_by_id",
    "updated_at",
    "updated_by_id",
})

_TERMINAL_REQUEST_STATUSES = frozenset({"APPROVED", "REJECTED", "CANCELED"})


def _changed_columns(target) -> set[str]:
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


def _committed_value(target, key: str):
    history = inspect(target).attrs[key].history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _reject(entity_type: str, target, reason: str):
    logger.error(
        "immutability_violation",
        extra={"entity_type": entity_type, "entity_id": str(target.id), "reason": reason},
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _check_approval_update(mapper, connection, target):
    _reject("StructureApproval", target, "approval records are append-only")


def _check_approval_delete(mapper, connection, target):
    _reject("StructureApproval", target, "approval records cannot be deleted")


def _check_change_log_update(mapper, connection, target):
    _reject("StructureChangeLog", target, "change log entries are append-only")


def _check_change_log_delete(mapper, connection, target):
    _reject("StructureChangeLog", target, "change log entries cannot be deleted")


def _check_change_request_update(mapper, connection, target):
    previous_status = _committed_value(target, "status")
    changed = _changed_columns(target)

    if previous_status in _TERMINAL_REQUEST_STATUSES and "status" in changed:
        _reject(
            "StructureChangeRequest",
            target,
            f"status is terminal ({previous_status}) and cannot change",
        )

    if previous_status != "DRAFT":
        frozen = sorted(changed - _REQUEST_LIFECYCLE_COLUMNS)
        if frozen:
            _reject(
                "StructureChangeRequest",
                target,
                f"fields {frozen} are frozen once the request leaves DRAFT",
            )


def _check_change_request_delete(mapper, connection, target):
    _reject("StructureChangeRequest", target, "change requests cannot be deleted")


def _check_hierarchy_delete(mapper, connection, target):
    _reject(type(target).__name__, target, "hierarchy records are soft-deleted only")


def _listeners():
    from org_kernel.models.approval import StructureApproval
    from org_kernel.models.change_log import StructureChangeLog
    from org_kernel.models.change_request import StructureChangeRequest
    from org_kernel.models.department import Department
    from org_kernel.models.position import Position

    return (
        (StructureApproval, "before_update", _check_approval_update),
        (StructureApproval, "before_delete", _check_approval_delete),
        (StructureChangeLog, "before_update", _check_change_log_update),
        (StructureChangeLog, "before_delete", _check_change_log_delete),
        (StructureChangeRequest, "before_update", _check_change_request_update),
        (StructureChangeRequest, "before_delete", _check_change_request_delete),
        (Department, "before_delete", _check_hierarchy_delete),
        (Position, "before_delete", _check_hierarchy_delete),
    )


def register_immutability_listeners() -> None:
    """Register all ORM immutability listeners (idempotent)."""
    for model, name, fn in _listeners():
        if not event.contains(model, name, fn):
            event.listen(model, name, fn)

