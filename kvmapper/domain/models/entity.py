"""Entity base class for objects persisted through a KeyValueRepository.

Unlike the frozen value objects in records.py, entities are mutable: the
repository writes id, created_at and updated_at back onto the instance
during save().
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class Entity(BaseModel):
    """A persistable domain object.

    id is None until the first save, when the store assigns it.  Once set
    it cannot be changed to a different value (re-assigning the same value
    is allowed so the read path can stamp it unconditionally).

    Unknown keys in an attribute map are ignored on construction, so records
    carrying bookkeeping keys (e.g. the migration "_schema_version") still load.
    """

    model_config = ConfigDict(validate_assignment=True, extra="ignore")

    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        if name == "id" and self.id is not None and value != self.id:
            raise ValueError(
                f"{type(self).__name__}.id is immutable once assigned "
                f"(current={self.id!r}, attempted={value!r})"
            )
        super().__setattr__(name, value)
