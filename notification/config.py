#!/usr/bin/env python3
"""
Notification configuration snapshot.

``NotificationConfig`` is the in-memory form of the persisted configuration:
endpoints grouped by kind, matchers in stored order, and the digest of the
content it was loaded from. It exposes typed accessors and mutators; it
never touches storage itself (see ``notification.store``).

Usage:
    with store.edit() as config:
        config.add_endpoint(GotifyEndpoint(name="push", server="https://gotify", token="t"))
        config.update_matcher("default-matcher", {"mode": "any"}, digest=digest)
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Type

from notification.changes import apply_changes, build_changes
from notification.errors import ConflictError, EntityInUseError, NotFoundError, ValidationError
from notification.schema import (
    ENDPOINT_TYPES,
    ConfigDocument,
    Endpoint,
    Matcher,
    validate_entity,
)

logger = logging.getLogger(__name__)


def _endpoint_class(kind: str) -> Type[Endpoint]:
    try:
        return ENDPOINT_TYPES[kind]
    except KeyError:
        raise ValidationError(
            f"unknown endpoint type '{kind}' (allowed: {', '.join(ENDPOINT_TYPES)})"
        )


class NotificationConfig:
    """All endpoints and matchers at one point in time."""

    def __init__(self, document: Optional[ConfigDocument] = None, digest: Optional[str] = None):
        self.document = document if document is not None else ConfigDocument()
        # Digest of the content this snapshot was read from (None if never persisted)
        self.digest = digest

    def __eq__(self, other) -> bool:
        if not isinstance(other, NotificationConfig):
            return NotImplemented
        return self.document == other.document

    def __repr__(self) -> str:
        return (
            f"NotificationConfig(endpoints={len(self.list_endpoints())}, "
            f"matchers={len(self.document.matchers)}, digest={self.digest!r})"
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def list_endpoints(self, kind: Optional[str] = None) -> List[Endpoint]:
        """Endpoints of one kind, or of all kinds in kind order."""
        if kind is not None:
            _endpoint_class(kind)
            return list(getattr(self.document, kind))
        result: List[Endpoint] = []
        for each in ENDPOINT_TYPES:
            result.extend(getattr(self.document, each))
        return result

    def get_endpoint(self, name: str, kind: Optional[str] = None) -> Endpoint:
        for endpoint in self.list_endpoints(kind):
            if endpoint.name == name:
                return endpoint
        if kind:
            raise NotFoundError(f"{kind} endpoint '{name}' not found")
        raise NotFoundError(f"endpoint '{name}' not found")

    def find_endpoint(self, name: str) -> Optional[Endpoint]:
        """Like ``get_endpoint`` but returns None for unknown names."""
        for endpoint in self.list_endpoints():
            if endpoint.name == name:
                return endpoint
        return None

    def list_matchers(self) -> List[Matcher]:
        return list(self.document.matchers)

    def get_matcher(self, name: str) -> Matcher:
        for matcher in self.document.matchers:
            if matcher.name == name:
                return matcher
        raise NotFoundError(f"matcher '{name}' not found")

    def referrers(self, endpoint_name: str) -> List[str]:
        """Names of matchers whose target list contains ``endpoint_name``."""
        return [m.name for m in self.document.matchers if endpoint_name in m.targets]

    # ------------------------------------------------------------------
    # Endpoint mutators
    # ------------------------------------------------------------------

    def add_endpoint(self, endpoint: Endpoint) -> None:
        # Endpoint names are unique across all kinds
        if self.find_endpoint(endpoint.name) is not None:
            raise ConflictError(f"endpoint '{endpoint.name}' already exists")
        getattr(self.document, endpoint.endpoint_type).append(endpoint)
        logger.info(f"Added {endpoint.endpoint_type} endpoint '{endpoint.name}'")

    def create_endpoint(self, kind: str, values: Dict[str, Any]) -> Endpoint:
        """Validate raw values as an endpoint of ``kind`` and add it."""
        endpoint = validate_entity(_endpoint_class(kind), _drop_none(values))
        self.add_endpoint(endpoint)
        return endpoint

    def update_endpoint(
        self,
        kind: str,
        name: str,
        values: Optional[Dict[str, Any]] = None,
        delete: Optional[Iterable[str]] = None,
        digest: Optional[str] = None,
    ) -> Endpoint:
        self.check_digest(digest)
        current = self.get_endpoint(name, kind)
        changes = build_changes(_endpoint_class(kind), values, delete)
        updated = apply_changes(current, changes)
        section = getattr(self.document, kind)
        section[section.index(current)] = updated
        logger.info(f"Updated {kind} endpoint '{name}'")
        return updated

    def delete_endpoint(self, kind: str, name: str) -> None:
        endpoint = self.get_endpoint(name, kind)
        referrers = self.referrers(name)
        if referrers:
            raise EntityInUseError(name, referrers)
        getattr(self.document, kind).remove(endpoint)
        logger.info(f"Deleted {kind} endpoint '{name}'")

    # ------------------------------------------------------------------
    # Matcher mutators
    # ------------------------------------------------------------------

    def add_matcher(self, matcher: Matcher) -> None:
        if any(m.name == matcher.name for m in self.document.matchers):
            raise ConflictError(f"matcher '{matcher.name}' already exists")
        self._ensure_targets_exist(matcher)
        self.document.matchers.append(matcher)
        logger.info(f"Added matcher '{matcher.name}'")

    def create_matcher(self, values: Dict[str, Any]) -> Matcher:
        matcher = validate_entity(Matcher, _drop_none(values))
        self.add_matcher(matcher)
        return matcher

    def update_matcher(
        self,
        name: str,
        values: Optional[Dict[str, Any]] = None,
        delete: Optional[Iterable[str]] = None,
        digest: Optional[str] = None,
    ) -> Matcher:
        self.check_digest(digest)
        current = self.get_matcher(name)
        changes = build_changes(Matcher, values, delete)
        updated = apply_changes(current, changes)
        self._ensure_targets_exist(updated)
        matchers = self.document.matchers
        matchers[matchers.index(current)] = updated
        logger.info(f"Updated matcher '{name}'")
        return updated

    def delete_matcher(self, name: str) -> None:
        matcher = self.get_matcher(name)
        self.document.matchers.remove(matcher)
        logger.info(f"Deleted matcher '{name}'")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def check_digest(self, digest: Optional[str]) -> None:
        """Reject an update made against a stale snapshot."""
        if digest is None:
            return
        if digest != self.digest:
            raise ConflictError(
                "detected modified configuration - file changed by other user? Try again."
            )

    def _ensure_targets_exist(self, matcher: Matcher) -> None:
        for target in matcher.targets:
            if self.find_endpoint(target) is None:
                raise NotFoundError(f"target '{target}' of matcher '{matcher.name}' does not exist")


def _drop_none(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in (values or {}).items() if value is not None}
