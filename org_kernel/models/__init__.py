"""ORM models. Importing this package registers every table on Base.metadata."""

from org_kernel.models.approval import StructureApproval
from org_kernel.models.change_log import StructureChangeLog
from org_kernel.models.change_request import StructureChangeRequest
from org_kernel.models.department import Department
from org_kernel.models.position import Position
from org_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "Department",
    "Position",
    "SequenceCounter",
    "StructureApproval",
    "StructureChangeLog",
    "StructureChangeRequest",
]
