"""
Notification Configuration Module

Versioned, shared configuration of notification endpoints (delivery
channels) and matchers (routing rules), plus the engine that decides which
endpoints receive a given notification.

Usage:
    from notification import ConfigStore, NotificationConfigService, Notification

    store = ConfigStore("/etc/notify/notifications.yaml")
    service = NotificationConfigService(store)

    service.create_matcher({
        "name": "errors-to-ops",
        "match-severity": ["warning,error"],
        "match-field": ["regex:host=^pve"],
        "target": ["mail-to-root"],
    })

    targets = service.match(Notification(severity="error", fields={"host": "pve1"}))
"""

from notification.errors import (
    NotificationConfigError,
    ValidationError,
    EntityInUseError,
    PermissionDeniedError,
    NotFoundError,
    ConflictError,
    ParseError,
    ConfigIOError,
    DeliveryError,
    LockTimeoutError,
)

from notification.schema import (
    BUILTIN_TARGET,
    Severity,
    Endpoint,
    SendmailEndpoint,
    GotifyEndpoint,
    SmtpEndpoint,
    Matcher,
    ConfigDocument,
    ENDPOINT_TYPES,
)

from notification.config import NotificationConfig
from notification.lock import ConfigLock
from notification.store import ConfigStore

from notification.matcher import (
    Notification,
    CompiledMatcher,
    matcher_fires,
    resolve_targets,
)

from notification.privileges import filter_entities
from notification.dispatch import EndpointChannel, LoggingChannel, NotificationDispatcher
from notification.service import NotificationConfigService

__all__ = [
    # Errors
    'NotificationConfigError',
    'ValidationError',
    'EntityInUseError',
    'PermissionDeniedError',
    'NotFoundError',
    'ConflictError',
    'ParseError',
    'ConfigIOError',
    'DeliveryError',
    'LockTimeoutError',
    # Schema
    'Severity',
    'Endpoint',
    'SendmailEndpoint',
    'GotifyEndpoint',
    'SmtpEndpoint',
    'Matcher',
    'ConfigDocument',
    'ENDPOINT_TYPES',
    # Store
    'NotificationConfig',
    'ConfigLock',
    'ConfigStore',
    'BUILTIN_TARGET',
    # Evaluation
    'Notification',
    'CompiledMatcher',
    'matcher_fires',
    'resolve_targets',
    'filter_entities',
    # Dispatch / service
    'EndpointChannel',
    'LoggingChannel',
    'NotificationDispatcher',
    'NotificationConfigService',
]
