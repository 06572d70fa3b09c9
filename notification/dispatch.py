#!/usr/bin/env python3
"""
Notification dispatch - hands matched targets to delivery channels.

Transports (SMTP, sendmail, gotify push) are external; they plug in as
``EndpointChannel`` implementations keyed by endpoint type. The dispatcher
resolves target names to endpoints and tolerates names that no longer
resolve: those are skipped and logged, never failing the whole delivery.

Usage:
    dispatcher = NotificationDispatcher({"gotify": MyGotifyChannel()})
    outcome = dispatcher.dispatch(config, Notification(severity="error"))
"""

import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Dict, Optional

from notification.config import NotificationConfig
from notification.errors import DeliveryError
from notification.matcher import Notification, resolve_targets
from notification.schema import ENDPOINT_TYPES, Endpoint, Severity

logger = logging.getLogger(__name__)


class EndpointChannel(ABC):
    """
    Abstract base class for delivery channels.

    One channel serves every endpoint of its ``endpoint_type``.
    """

    @property
    @abstractmethod
    def endpoint_type(self) -> str:
        """Return the endpoint type this channel delivers to."""
        pass

    @abstractmethod
    def send(self, endpoint: Endpoint, notification: Notification) -> bool:
        """
        Deliver a notification to one endpoint.

        Returns:
            True if sent successfully, False otherwise
        """
        pass


class LoggingChannel(EndpointChannel):
    """Channel that only logs deliveries (dry-run)."""

    def __init__(self, endpoint_type: str):
        self._endpoint_type = endpoint_type

    @property
    def endpoint_type(self) -> str:
        return self._endpoint_type

    def send(self, endpoint: Endpoint, notification: Notification) -> bool:
        logger.info(
            f"[DRY RUN] {self._endpoint_type} '{endpoint.name}' <- "
            f"[{notification.severity.value}] {notification.title}"
        )
        return True


def _is_dry_run_mode() -> bool:
    """Check if dispatch should fall back to log-only channels."""
    return os.environ.get('NOTIFICATION_DRY_RUN', '').lower() in ('true', '1', 'yes')


def build_test_notification() -> Notification:
    return Notification(
        severity=Severity.INFO,
        fields={"type": "test"},
        timestamp=datetime.now(timezone.utc),
        title="Test notification",
        body="This is a test of the notification target.",
    )


class NotificationDispatcher:
    """Routes notifications to endpoints through registered channels."""

    def __init__(self, channels: Optional[Dict[str, EndpointChannel]] = None, tz=None):
        self.channels: Dict[str, EndpointChannel] = dict(channels or {})
        self.tz = tz
        if not self.channels and _is_dry_run_mode():
            self.channels = {kind: LoggingChannel(kind) for kind in ENDPOINT_TYPES}

    def register(self, channel: EndpointChannel) -> None:
        self.channels[channel.endpoint_type] = channel

    def dispatch(self, config: NotificationConfig, notification: Notification) -> Dict[str, bool]:
        """
        Send a notification to every target its matchers select.

        Returns:
            Mapping of target name to delivery outcome. Targets that were
            skipped (no endpoint, no channel) map to False.
        """
        outcome: Dict[str, bool] = {}
        for name in resolve_targets(config.list_matchers(), notification, self.tz):
            endpoint = config.find_endpoint(name)
            if endpoint is None:
                logger.warning(f"Notification target '{name}' does not exist, skipping")
                outcome[name] = False
                continue
            outcome[name] = self._send(endpoint, notification)
        return outcome

    def test_target(self, config: NotificationConfig, name: str) -> None:
        """Send a test notification to one endpoint, raising on failure."""
        endpoint = config.get_endpoint(name)
        if not self._send(endpoint, build_test_notification()):
            raise DeliveryError(f"could not notify via target '{name}'")

    def _send(self, endpoint: Endpoint, notification: Notification) -> bool:
        channel = self.channels.get(endpoint.endpoint_type)
        if channel is None:
            logger.warning(
                f"No channel registered for {endpoint.endpoint_type} endpoint '{endpoint.name}', skipping"
            )
            return False
        try:
            sent = channel.send(endpoint, notification)
        except Exception as e:
            logger.error(f"Failed to notify via '{endpoint.name}': {e}")
            return False
        if not sent:
            logger.error(f"Channel reported failure for target '{endpoint.name}'")
        return bool(sent)
