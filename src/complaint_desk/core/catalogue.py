# src/complaint_desk/core/catalogue.py

from __future__ import annotations

import logging

from .errors import ValidationError
from .models import ComplaintType, FieldDefinition
from .ports import ComplaintStore

logger = logging.getLogger(__name__)


class TypeCatalogue:
    """Complaint types and their field definitions, loaded from the store."""

    def __init__(self, store: ComplaintStore) -> None:
        self._store = store
        self._types: list[ComplaintType] = []

    @property
    def types(self) -> list[ComplaintType]:
        return list(self._types)

    def get(self, type_id: str) -> ComplaintType | None:
        for t in self._types:
            if t.id == str(type_id):
                return t
        return None

    async def load(self) -> list[ComplaintType]:
        rows = await self._store.list_types()
        loaded: list[ComplaintType] = []
        for row in rows:
            try:
                loaded.append(ComplaintType.from_record(row))
            except (KeyError, ValueError, ValidationError):
                logger.warning("Skipping unusable complaint type row id=%r", row.get("id"), exc_info=True)
        self._types = loaded
        logger.debug("Loaded %d complaint types", len(loaded))
        return self.types

    async def create(
        self,
        name: str,
        instructions: str = "",
        fields: list[FieldDefinition] | None = None,
    ) -> ComplaintType:
        if not (name or "").strip():
            raise ValidationError("Complaint type name is required")
        draft = ComplaintType(id=None, name=name.strip(), instructions=instructions, fields=list(fields or []))
        row = await self._store.insert_type(draft.to_record())
        created = ComplaintType.from_record(row)
        self._types.append(created)
        logger.info("Complaint type created id=%s name=%r", created.id, created.name)
        return created

    async def save(self, complaint_type: ComplaintType) -> ComplaintType:
        if complaint_type.id is None:
            return await self.create(complaint_type.name, complaint_type.instructions, complaint_type.fields)
        if not complaint_type.name.strip():
            raise ValidationError("Complaint type name is required")
        row = await self._store.update_type(complaint_type.id, complaint_type.to_record())
        saved = ComplaintType.from_record(row)
        self._types = [saved if t.id == saved.id else t for t in self._types]
        logger.info("Complaint type saved id=%s", saved.id)
        return saved

    async def delete(self, type_id: str) -> None:
        await self._store.delete_type(type_id)
        self._types = [t for t in self._types if t.id != str(type_id)]
        logger.info("Complaint type deleted id=%s", type_id)
