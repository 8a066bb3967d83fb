"""ORM model registry. Imports every mapper so it is registered with
Base.metadata before Alembic or SQLAlchemy runs.
"""

from kvmapper.infrastructure.persistence.models.records import IndexEntryRow, RecordRow

__all__ = [
    "RecordRow",
    "IndexEntryRow",
]
