from collections.abc import Mapping
from typing import Any

from app.utils.errors import NotFoundError, UnauthorizedError


def _owner_id(resource: Any) -> Any:
    # Cached snapshots are plain dicts; fresh rows are ORM objects.
    if isinstance(resource, Mapping):
        return resource.get("user_id")
    return getattr(resource, "user_id", None)


def ensure_exists(resource: Any, name: str) -> None:
    if resource is None:
        raise NotFoundError(f"{name} not found")


def verify_ownership(resource: Any, user_id: int) -> None:
    if _owner_id(resource) != user_id:
        raise UnauthorizedError()
