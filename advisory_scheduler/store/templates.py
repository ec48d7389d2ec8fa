"""
Recurring availability store.

Holds the weekly templates per service type. The unique key
(service_type, day_of_week, start_minute) is enforced here, so two admins
saving the same template concurrently cannot both succeed. Templates are
never deleted, only deactivated.

The in-memory implementation backs tests and single-process deployments;
a database-backed store implements the same interface.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

from advisory_scheduler.errors import NotFoundError, TemplateConflictError
from advisory_scheduler.schemas.template_schema import RecurringTemplate

logger = logging.getLogger(__name__)


class TemplateStore(ABC):
    """Storage interface for recurring templates.

    Implementations raise StorageUnavailableError when the backend
    cannot be reached.
    """

    @abstractmethod
    async def add(self, template: RecurringTemplate) -> RecurringTemplate:
        """Insert a template. Raises TemplateConflictError on a duplicate key."""

    @abstractmethod
    async def replace(self, template: RecurringTemplate) -> RecurringTemplate:
        """Overwrite an existing template, re-checking the unique key."""

    @abstractmethod
    async def get(self, template_id: str) -> RecurringTemplate:
        """Fetch one template. Raises NotFoundError."""

    @abstractmethod
    async def find(
        self, service_type: Optional[str] = None, active_only: bool = True
    ) -> list[RecurringTemplate]:
        """List templates ordered by (day_of_week, start_minute)."""

    async def set_active(self, template_id: str, active: bool) -> RecurringTemplate:
        template = await self.get(template_id)
        if template.active == active:
            return template
        return await self.replace(template.model_copy(update={"active": active}))


class InMemoryTemplateStore(TemplateStore):
    """Process-local template store with a unique index."""

    def __init__(self) -> None:
        self._templates: dict[str, RecurringTemplate] = {}
        self._keys: dict[tuple[str, int, int], str] = {}
        self._lock = asyncio.Lock()

    def _check_key(self, template: RecurringTemplate) -> None:
        owner = self._keys.get(template.key)
        if owner is not None and owner != template.id:
            existing = self._templates[owner]
            raise TemplateConflictError(
                f"A template already exists for {existing.describe()}.",
                conflicts=[existing],
            )

    async def add(self, template: RecurringTemplate) -> RecurringTemplate:
        async with self._lock:
            if template.id in self._templates:
                raise TemplateConflictError(f"Template id {template.id} already exists.")
            self._check_key(template)
            stored = template.model_copy(deep=True)
            self._templates[stored.id] = stored
            self._keys[stored.key] = stored.id
        logger.debug("Template stored: %s", stored.describe())
        return stored.model_copy(deep=True)

    async def replace(self, template: RecurringTemplate) -> RecurringTemplate:
        async with self._lock:
            current = self._templates.get(template.id)
            if current is None:
                raise NotFoundError(f"Template {template.id} not found.")
            self._check_key(template)
            del self._keys[current.key]
            stored = template.model_copy(deep=True)
            self._templates[stored.id] = stored
            self._keys[stored.key] = stored.id
        return stored.model_copy(deep=True)

    async def get(self, template_id: str) -> RecurringTemplate:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFoundError(f"Template {template_id} not found.")
        return template.model_copy(deep=True)

    async def find(
        self, service_type: Optional[str] = None, active_only: bool = True
    ) -> list[RecurringTemplate]:
        found = [
            t.model_copy(deep=True)
            for t in self._templates.values()
            if (service_type is None or t.service_type == service_type)
            and (t.active or not active_only)
        ]
        return sorted(found, key=lambda t: (t.day_of_week, t.start_minute, t.service_type))
