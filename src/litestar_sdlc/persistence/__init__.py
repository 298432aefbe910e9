"""Persistence stores and the snapshot serialization contract.

The SQLAlchemy-backed store lives in :mod:`litestar_sdlc.db` and requires the
[db] extra.
"""

from __future__ import annotations

from litestar_sdlc.persistence.memory import InMemoryPersistence
from litestar_sdlc.persistence.serialization import (
    apply_updates,
    clone_instance,
    instance_from_dict,
    instance_to_dict,
)

__all__ = [
    "InMemoryPersistence",
    "apply_updates",
    "clone_instance",
    "instance_from_dict",
    "instance_to_dict",
]
