"""
Organizational hierarchy and structure-change workflow kernel.

Layers (lowest first):
    db/         SQLAlchemy base, engine/session helpers, ORM immutability listeners
    models/     Department, Position, StructureChangeRequest, StructureApproval,
                StructureChangeLog, SequenceCounter tables
    domain/     Pure value objects, enums, transition table, graph and tree algorithms
    services/   Mutating services (flush, never commit)
    selectors/  Read-only queries returning frozen DTOs

Callers normally go through ``org_kernel.services.org_structure_service.OrgStructureService``.
"""

__version__ = "0.3.0"
