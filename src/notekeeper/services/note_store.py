"""Note store — the notes collaborator as seen by the identity layer.

Learn: Note CRUD is ordinary owner-scoped querying. The identity layer
only needs the cascade hook (`delete_for_owner`) and counts, but the
query surface (filter / sort / paginate by owner) is kept here so there
is one place that knows how notes are stored.
"""

import re
import uuid
from typing import Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeeper.db.models import (
    DEFAULT_NOTE_COLOR,
    NOTE_CONTENT_MAX,
    NOTE_TAG_MAX,
    NOTE_TITLE_MAX,
    Note,
)
from notekeeper.errors import ValidationFailed

COLOR_PATTERN = re.compile(r"#[0-9a-fA-F]{6}")

SORTABLE_FIELDS = {
    "created_at": Note.created_at,
    "updated_at": Note.updated_at,
    "title": Note.title,
}


class NoteStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        owner_id: uuid.UUID,
        title: str,
        content: str,
        *,
        color: str = DEFAULT_NOTE_COLOR,
        pinned: bool = False,
        tags: Optional[list[str]] = None,
    ) -> Note:
        """Insert a note. Raises ValidationFailed when a field is out of bounds."""
        title = title.strip()
        tags = [t.strip() for t in tags or []]

        if not title or len(title) > NOTE_TITLE_MAX:
            raise ValidationFailed(f"Title must be 1-{NOTE_TITLE_MAX} characters")
        if not content or len(content) > NOTE_CONTENT_MAX:
            raise ValidationFailed(f"Content must be 1-{NOTE_CONTENT_MAX} characters")
        if not COLOR_PATTERN.fullmatch(color):
            raise ValidationFailed("Color must look like #rrggbb")
        if any(len(t) > NOTE_TAG_MAX for t in tags):
            raise ValidationFailed(f"Tags must be at most {NOTE_TAG_MAX} characters")

        note = Note(
            owner_id=owner_id,
            title=title,
            content=content,
            color=color,
            pinned=pinned,
            tags=tags,
        )
        self.db.add(note)
        await self.db.flush()
        return note

    async def list_for_owner(
        self,
        owner_id: uuid.UUID,
        *,
        search: Optional[str] = None,
        pinned: Optional[bool] = None,
        tag: Optional[str] = None,
        sort: str = "created_at",
        order: str = "desc",
        page: int = 1,
        limit: int = 20,
    ) -> list[Note]:
        """List an owner's notes. Pinned notes always sort first."""
        q = select(Note).where(Note.owner_id == owner_id)
        if search:
            pattern = f"%{search}%"
            q = q.where(or_(Note.title.ilike(pattern), Note.content.ilike(pattern)))
        if pinned is not None:
            q = q.where(Note.pinned == pinned)

        column = SORTABLE_FIELDS.get(sort, Note.created_at)
        q = q.order_by(
            Note.pinned.desc(),
            column.asc() if order == "asc" else column.desc(),
        )

        if tag:
            # Tags are a JSON list; filter in Python to stay dialect-neutral.
            result = await self.db.execute(q)
            notes = [n for n in result.scalars().all() if tag in (n.tags or [])]
            start = (page - 1) * limit
            return notes[start:start + limit]

        q = q.offset((page - 1) * limit).limit(limit)
        result = await self.db.execute(q)
        return list(result.scalars().all())

    async def count_for_owner(self, owner_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(Note).where(Note.owner_id == owner_id)
        )
        return result.scalar_one()

    async def delete_for_owner(self, owner_id: uuid.UUID) -> int:
        """Bulk-delete every note owned by `owner_id`. Does not commit."""
        result = await self.db.execute(
            delete(Note).where(Note.owner_id == owner_id)
        )
        return result.rowcount
