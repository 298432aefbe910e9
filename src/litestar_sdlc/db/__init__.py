"""Database persistence layer for litestar-sdlc.

This module provides the SQLAlchemy model, repository and persistence store
for workflow instance snapshots.

Requires the [db] extra:
    pip install litestar-sdlc[db]
"""

from __future__ import annotations

from litestar_sdlc.db.models import WorkflowSnapshotModel
from litestar_sdlc.db.persistence import SQLAlchemyPersistence
from litestar_sdlc.db.repositories import WorkflowSnapshotRepository

__all__ = [
    "SQLAlchemyPersistence",
    "WorkflowSnapshotModel",
    "WorkflowSnapshotRepository",
]
