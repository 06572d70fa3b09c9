#!/usr/bin/env python3
"""
Notification Config Service - management operations for endpoints and matchers.

Library-level counterpart of the notification management API. Every
mutation runs one locked read-modify-write cycle through
``ConfigStore.edit()``; reads work on a fresh snapshot without the lock.
Targeted operations consult the authorizer before the store is touched.
Listings are filtered down to the entities the caller may see.

Usage:
    service = NotificationConfigService(store, authorizer=acl, dispatcher=dispatcher)

    service.create_endpoint("gotify", {"name": "push", "server": "https://g", "token": "t"}, user="ops@pve")
    matcher = service.get_matcher("default-matcher", user="ops@pve")
    service.update_matcher(
        "default-matcher",
        {"match-severity": ["warning,error"]},
        delete=["comment"],
        digest=matcher["digest"],
        user="ops@pve",
    )
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from notification.dispatch import NotificationDispatcher
from notification.errors import PermissionDeniedError
from notification.matcher import Notification, resolve_targets
from notification.privileges import (
    ALWAYS_VISIBLE,
    CAN_MODIFY_PRIVS,
    CAN_READ_PRIVS,
    CAN_SEE_PRIVS,
    Authorizer,
    entity_path,
    filter_entities,
    visibility_check,
)
from notification.schema import ENDPOINT_TYPES
from notification.store import ConfigStore

logger = logging.getLogger(__name__)


class NotificationConfigService:
    """Management operations over the shared notification configuration."""

    def __init__(
        self,
        store: ConfigStore,
        authorizer: Optional[Authorizer] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        tz=None,
    ):
        self.store = store
        # Without an authorizer every caller is trusted (local tooling)
        self.authorizer = authorizer
        self.dispatcher = dispatcher or NotificationDispatcher(tz=tz)
        self.tz = tz

    # ------------------------------------------------------------------
    # Authorization helpers
    # ------------------------------------------------------------------

    def _require(self, user: Optional[str], name: Optional[str], privs: Sequence[str]) -> None:
        if self.authorizer is None:
            return
        path = entity_path(name)
        if not self.authorizer.check(user, path, privs, False):
            raise PermissionDeniedError(f"permission check failed for {user} on {path}")

    def _visible(self, entities: Iterable, user: Optional[str]) -> List:
        if self.authorizer is None:
            return list(entities)
        return filter_entities(entities, visibility_check(self.authorizer, user))

    # ------------------------------------------------------------------
    # Index and targets
    # ------------------------------------------------------------------

    @staticmethod
    def index() -> List[Dict[str, str]]:
        return [{"name": "endpoints"}, {"name": "matchers"}, {"name": "targets"}]

    @staticmethod
    def endpoint_types() -> List[Dict[str, str]]:
        return [{"name": kind} for kind in ENDPOINT_TYPES]

    def get_all_targets(self, user: Optional[str] = None) -> List[Dict[str, Any]]:
        """Every entity usable as a matcher target, with its type."""
        config, _ = self.store.read()
        targets = []
        for endpoint in config.list_endpoints():
            entry = {"name": endpoint.name, "type": endpoint.endpoint_type}
            if endpoint.comment is not None:
                entry["comment"] = endpoint.comment
            targets.append(entry)
        return self._visible(targets, user)

    def test_target(self, name: str, user: Optional[str] = None) -> None:
        """Send a test notification through one target."""
        if name not in ALWAYS_VISIBLE:
            self._require(user, name, CAN_SEE_PRIVS)
        config, _ = self.store.read()
        self.dispatcher.test_target(config, name)
        logger.info(f"Sent test notification to '{name}'")

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def list_endpoints(self, kind: str, user: Optional[str] = None) -> List[Dict[str, Any]]:
        config, _ = self.store.read()
        entities = [e.public_dict() for e in config.list_endpoints(kind)]
        return self._visible(entities, user)

    def get_endpoint(self, kind: str, name: str, user: Optional[str] = None) -> Dict[str, Any]:
        self._require(user, name, CAN_READ_PRIVS)
        config, digest = self.store.read()
        result = config.get_endpoint(name, kind).public_dict()
        result["digest"] = digest
        return result

    def create_endpoint(self, kind: str, values: Dict[str, Any], user: Optional[str] = None) -> None:
        self._require(user, None, CAN_MODIFY_PRIVS)
        with self.store.edit("create-endpoint", {"user": user}) as config:
            config.create_endpoint(kind, values)

    def update_endpoint(
        self,
        kind: str,
        name: str,
        values: Optional[Dict[str, Any]] = None,
        delete: Optional[List[str]] = None,
        digest: Optional[str] = None,
        user: Optional[str] = None,
    ) -> None:
        self._require(user, name, CAN_MODIFY_PRIVS)
        with self.store.edit("update-endpoint", {"user": user}) as config:
            config.update_endpoint(kind, name, values, delete, digest)

    def delete_endpoint(self, kind: str, name: str, user: Optional[str] = None) -> None:
        self._require(user, name, CAN_MODIFY_PRIVS)
        with self.store.edit("delete-endpoint", {"user": user}) as config:
            config.delete_endpoint(kind, name)

    # ------------------------------------------------------------------
    # Matchers
    # ------------------------------------------------------------------

    def list_matchers(self, user: Optional[str] = None) -> List[Dict[str, Any]]:
        config, _ = self.store.read()
        return self._visible([m.to_dict() for m in config.list_matchers()], user)

    def get_matcher(self, name: str, user: Optional[str] = None) -> Dict[str, Any]:
        self._require(user, name, CAN_READ_PRIVS)
        config, digest = self.store.read()
        result = config.get_matcher(name).to_dict()
        result["digest"] = digest
        return result

    def create_matcher(self, values: Dict[str, Any], user: Optional[str] = None) -> None:
        self._require(user, None, CAN_MODIFY_PRIVS)
        with self.store.edit("create-matcher", {"user": user}) as config:
            config.create_matcher(values)

    def update_matcher(
        self,
        name: str,
        values: Optional[Dict[str, Any]] = None,
        delete: Optional[List[str]] = None,
        digest: Optional[str] = None,
        user: Optional[str] = None,
    ) -> None:
        self._require(user, name, CAN_MODIFY_PRIVS)
        with self.store.edit("update-matcher", {"user": user}) as config:
            config.update_matcher(name, values, delete, digest)

    def delete_matcher(self, name: str, user: Optional[str] = None) -> None:
        self._require(user, name, CAN_MODIFY_PRIVS)
        with self.store.edit("delete-matcher", {"user": user}) as config:
            config.delete_matcher(name)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def match(self, notification: Notification) -> List[str]:
        """Target names for an event, evaluated on the current snapshot."""
        config, _ = self.store.read()
        return resolve_targets(config.list_matchers(), notification, self.tz)

    def dispatch(self, notification: Notification) -> Dict[str, bool]:
        config, _ = self.store.read()
        return self.dispatcher.dispatch(config, notification)
