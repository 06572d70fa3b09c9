#!/usr/bin/env python3
"""
Privilege filtering for listed notification entities.

The authorization engine itself is external; it is reached through the
``Authorizer`` protocol. Listing operations only return entities the caller
may see, except the built-in ``mail-to-root`` target which every user may
use.
"""

from typing import Callable, Iterable, List, Optional, Protocol, Sequence, TypeVar

from notification.schema import BUILTIN_TARGET

T = TypeVar("T")

NOTIFICATION_PATH = "/mapping/notification"
CAN_SEE_PRIVS = ("Mapping.Modify", "Mapping.Use", "Mapping.Audit")
CAN_MODIFY_PRIVS = ("Mapping.Modify",)
CAN_READ_PRIVS = ("Mapping.Modify", "Mapping.Audit")

# Entities that every user may see, whatever the authorizer says
ALWAYS_VISIBLE = frozenset({BUILTIN_TARGET})


class Authorizer(Protocol):
    """Capability checks backed by the external authorization engine."""

    def check(
        self,
        subject: str,
        resource_path: str,
        capability_set: Sequence[str],
        allow_missing: bool,
    ) -> bool:
        """Return True if ``subject`` holds any of ``capability_set`` on the path.

        With ``allow_missing=False`` a missing capability raises
        ``PermissionDeniedError`` instead of returning False.
        """
        ...


def entity_path(name: Optional[str] = None) -> str:
    return f"{NOTIFICATION_PATH}/{name}" if name else NOTIFICATION_PATH


def _entity_name(entity) -> str:
    if isinstance(entity, dict):
        return entity["name"]
    return entity.name


def filter_entities(entities: Iterable[T], capability_check: Callable[[str], bool]) -> List[T]:
    """Keep the entities whose name passes ``capability_check``, in order."""
    visible: List[T] = []
    for entity in entities:
        name = _entity_name(entity)
        if name in ALWAYS_VISIBLE or capability_check(name):
            visible.append(entity)
    return visible


def visibility_check(authorizer: Authorizer, user: str) -> Callable[[str], bool]:
    """Build the per-name predicate used when listing entities for ``user``."""
    def check(name: str) -> bool:
        return authorizer.check(user, entity_path(name), CAN_SEE_PRIVS, True)
    return check
