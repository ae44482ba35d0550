"""Read-only lookup tables for resources and appointment types."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Generic, Iterable, List, Optional, TypeVar

from .errors import ResourceNotFoundError, ValidationError
from .models import AppointmentType, Resource, ResourceCategory

__all__ = ["AppointmentTypeCatalog", "ResourceRegistry"]

logger = logging.getLogger(__name__)

_Entry = TypeVar("_Entry", Resource, AppointmentType)


class _Catalog(Generic[_Entry]):
    _label = "entry"

    def __init__(self, entries: Optional[Iterable[_Entry]] = None) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()
        for entry in entries or ():
            self.register(entry)

    def register(self, entry: _Entry) -> _Entry:
        with self._lock:
            if entry.id in self._entries:
                raise ValidationError(f"Duplicate {self._label} id '{entry.id}'")
            self._entries[entry.id] = entry
        logger.debug("Registered %s %s (%s)", self._label, entry.id, entry.name)
        return entry

    def get(self, entry_id: str) -> _Entry:
        try:
            return self._entries[entry_id]
        except KeyError:
            raise ResourceNotFoundError(f"Unknown {self._label} '{entry_id}'") from None

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def all(self) -> List[_Entry]:
        return sorted(self._entries.values(), key=lambda entry: entry.id)


class ResourceRegistry(_Catalog[Resource]):
    """Catalog of schedulable resources keyed by id."""

    _label = "resource"

    def by_category(self, category: ResourceCategory) -> List[Resource]:
        category = ResourceCategory.parse(category)
        return [resource for resource in self.all() if resource.category is category]

    def require_all(self, resource_ids: Iterable[str]) -> List[Resource]:
        """Resolve every id or raise :class:`ResourceNotFoundError` naming the missing ones."""

        resource_ids = sorted(set(resource_ids))
        missing = [resource_id for resource_id in resource_ids if resource_id not in self]
        if missing:
            raise ResourceNotFoundError(f"Unknown resource(s): {', '.join(missing)}")
        return [self._entries[resource_id] for resource_id in resource_ids]


class AppointmentTypeCatalog(_Catalog[AppointmentType]):
    _label = "appointment type"
