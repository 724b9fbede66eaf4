from __future__ import annotations

import logging

from streetwise.core.entities import WorkType
from streetwise.core.tenancy import ScopeFilter
from streetwise.storage.base import RecordStore

logger = logging.getLogger(__name__)

DEFAULT_WORK_TYPES: tuple[dict[str, object], ...] = (
    {"name": "Panhandling", "icon": "💰", "color": "#10b981", "sort_order": 0, "is_default": True},
    {"name": "Street Performance", "icon": "🎵", "color": "#8b5cf6", "sort_order": 1, "is_default": False},
    {"name": "Food Delivery", "icon": "🚚", "color": "#3b82f6", "sort_order": 2, "is_default": False},
    {"name": "Odd Jobs", "icon": "🔧", "color": "#f59e0b", "sort_order": 3, "is_default": False},
    {"name": "Other", "icon": "✨", "color": "#6b7280", "sort_order": 4, "is_default": False},
)


def has_work_types(store: RecordStore, user_id: str | None = None, org_id: str | None = None) -> bool:
    if user_id:
        return bool(store.list_work_types(ScopeFilter(user_id=user_id)))
    if org_id:
        return bool(store.list_work_types(ScopeFilter(org_id=org_id)))
    return False


def ensure_defaults(
    store: RecordStore,
    user_id: str | None = None,
    org_id: str | None = None,
) -> list[WorkType]:
    """Give a user, or else an organization, the default work types.

    Does nothing once the owner has any active work type, so it is safe to
    call on every login.
    """
    if not user_id and not org_id:
        return []
    if has_work_types(store, user_id=user_id, org_id=org_id):
        return []

    owner = {"user_id": user_id, "org_id": None} if user_id else {"user_id": None, "org_id": org_id}
    created = [store.create_work_type({**template, **owner}) for template in DEFAULT_WORK_TYPES]
    logger.info(
        "Seeded %d default work types for %s %s",
        len(created),
        "user" if user_id else "organization",
        user_id or org_id,
    )
    return created
