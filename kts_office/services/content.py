"""Website content: team members, testimonials, blog posts and contact messages."""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Any, Dict, List, Type

from pydantic import BaseModel

from kts_office.clients.query import Filter, Order
from kts_office.schemas.content import (
    BlogPostInput,
    ContactMessage,
    ContactMessageInput,
    ContactMessageList,
    ContentRecord,
    TeamMemberInput,
    TestimonialInput,
)
from kts_office.services.base import BackendService
from kts_office.services.exceptions import ConflictError, NotFoundError
from kts_office.services.permissions import AdminActor, PermissionFlag, require

logger = logging.getLogger(__name__)

MAX_SLUG_ATTEMPTS = 20


@dataclass(frozen=True)
class ContentSection:
    table: str
    schema: Type[BaseModel]
    manage_flag: PermissionFlag
    visible_column: str
    order: tuple[Order, ...]


SECTIONS: Dict[str, ContentSection] = {
    "team": ContentSection(
        "team_members",
        TeamMemberInput,
        PermissionFlag.MANAGE_SETTINGS,
        "is_visible",
        (Order("display_order"), Order("created_at")),
    ),
    "testimonials": ContentSection(
        "testimonials",
        TestimonialInput,
        PermissionFlag.MANAGE_SETTINGS,
        "is_visible",
        (Order("display_order"), Order("created_at")),
    ),
    "blog": ContentSection(
        "blog_posts",
        BlogPostInput,
        PermissionFlag.MANAGE_BLOG,
        "is_published",
        (Order("published_at", ascending=False), Order("created_at", ascending=False)),
    ),
}


def slugify(title: str) -> str:
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-z0-9]+", "-", ascii_title.lower()).strip("-")
    return slug or "post"


def section(kind: str) -> ContentSection:
    try:
        return SECTIONS[kind]
    except KeyError:
        raise NotFoundError(f"Unknown content section '{kind}'") from None


class ContentService(BackendService):
    async def list_public(self, kind: str) -> List[ContentRecord]:
        config = section(kind)
        rows = await self._select(
            config.table, [Filter(config.visible_column, "eq", True)], order=list(config.order)
        )
        return [ContentRecord(**row) for row in rows]

    async def list_all(self, kind: str, actor: AdminActor | None) -> List[ContentRecord]:
        config = section(kind)
        require(config.manage_flag, actor)
        rows = await self._select(config.table, order=list(config.order))
        return [ContentRecord(**row) for row in rows]

    async def get_post(self, slug: str) -> ContentRecord:
        """Return a published post and count the view."""

        rows = await self._select(
            "blog_posts",
            [Filter("slug", "eq", slug), Filter("is_published", "eq", True)],
            limit=1,
        )
        if not rows:
            raise NotFoundError(f"Blog post '{slug}' not found")
        row = rows[0]
        views = int(row.get("views_count") or 0) + 1
        updated = await self._update_one("blog_posts", row["id"], {"views_count": views})
        return ContentRecord(**updated)

    async def create(
        self, kind: str, payload: Dict[str, Any], actor: AdminActor | None
    ) -> ContentRecord:
        config = section(kind)
        require(config.manage_flag, actor)
        record = config.schema(**payload).model_dump()
        if kind == "blog":
            return await self._create_post(record)
        existing = await self._select(config.table)
        record["display_order"] = len(existing) + 1
        logger.info("Creating %s entry %s", kind, record.get("name"))
        return ContentRecord(**await self._insert(config.table, record))

    async def _create_post(self, record: Dict[str, Any]) -> ContentRecord:
        base = record.pop("slug", None) or slugify(record["title"])
        record["views_count"] = 0
        record["published_at"] = self._now().isoformat() if record.get("is_published") else None
        for attempt in range(MAX_SLUG_ATTEMPTS):
            slug = base if attempt == 0 else f"{base}-{attempt + 1}"
            try:
                row = await self._insert("blog_posts", {**record, "slug": slug})
            except ConflictError:
                continue
            logger.info("Created blog post %s", slug)
            return ContentRecord(**row)
        raise ConflictError(f"Could not find a free slug for '{base}'")

    async def update(
        self, kind: str, record_id: str, changes: Dict[str, Any], actor: AdminActor | None
    ) -> ContentRecord:
        config = section(kind)
        require(config.manage_flag, actor)
        allowed = set(config.schema.model_fields) | {"display_order"}
        patch = {key: value for key, value in changes.items() if key in allowed}
        current = await self._get(config.table, record_id, label=kind.capitalize())
        if kind == "blog":
            if "slug" in patch and not patch["slug"]:
                patch.pop("slug")
            if patch.get("is_published") and not current.get("published_at"):
                patch["published_at"] = self._now().isoformat()
        if not patch:
            return ContentRecord(**current)
        return ContentRecord(**await self._update_one(config.table, record_id, patch))

    async def toggle_visibility(
        self, kind: str, record_id: str, actor: AdminActor | None
    ) -> ContentRecord:
        config = section(kind)
        current = await self._get(config.table, record_id, label=kind.capitalize())
        return await self.update(
            kind, record_id, {config.visible_column: not current.get(config.visible_column)}, actor
        )

    async def delete(self, kind: str, record_id: str, actor: AdminActor | None) -> None:
        config = section(kind)
        require(config.manage_flag, actor)
        removed = await self._delete(config.table, [Filter("id", "eq", record_id)])
        if not removed:
            raise NotFoundError(f"{kind.capitalize()} {record_id} not found")

    async def upload_image(
        self,
        kind: str,
        filename: str,
        data: bytes,
        content_type: str,
        actor: AdminActor | None,
    ) -> str:
        config = section(kind)
        require(config.manage_flag, actor)
        key = f"{kind}/{int(self._now().timestamp() * 1000)}-{slugify(filename.rsplit('.', 1)[0])}"
        if "." in filename:
            key += "." + filename.rsplit(".", 1)[1].lower()
        logger.info("Uploading %s bytes to %s", len(data), key)
        return await self._guard(
            "upload file",
            self._backend.upload_file("content", key, data, content_type=content_type),
        )


class ContactService(BackendService):
    async def create(self, request: ContactMessageInput) -> ContactMessage:
        logger.info("New contact message from %s", request.email)
        row = await self._insert("contact_messages", {**request.model_dump(), "is_read": False})
        return ContactMessage(**row)

    async def list(
        self, actor: AdminActor | None, *, unread_only: bool = False
    ) -> ContactMessageList:
        require(PermissionFlag.VIEW_MESSAGES, actor)
        filters = [Filter("is_read", "eq", False)] if unread_only else []
        rows = await self._select(
            "contact_messages", filters, order=Order("created_at", ascending=False)
        )
        items = [ContactMessage(**row) for row in rows]
        return ContactMessageList(total=len(items), items=items)

    async def mark_read(self, message_id: str, actor: AdminActor | None) -> ContactMessage:
        require(PermissionFlag.VIEW_MESSAGES, actor)
        return ContactMessage(
            **await self._update_one("contact_messages", message_id, {"is_read": True})
        )
