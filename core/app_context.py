from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

from core.config_loader import AppConfig
from notification.dispatch import NotificationDispatcher
from notification.privileges import Authorizer
from notification.service import NotificationConfigService
from notification.store import ConfigStore


@dataclass
class AppContext:
    """Application context container that holds all wired dependencies.

    Built once from AppConfig so the CLI and embedding applications share
    the same store, dispatcher and service wiring.
    """
    config: AppConfig
    store: ConfigStore
    dispatcher: NotificationDispatcher
    service: NotificationConfigService
    tz: Optional[tzinfo] = None

    @classmethod
    def build(cls, config: AppConfig, authorizer: Optional[Authorizer] = None) -> "AppContext":
        """Build an AppContext from config.

        Args:
            config: Loaded application configuration
            authorizer: External authorization engine (None = trust caller)

        Returns:
            Fully wired AppContext instance
        """
        tz = cls._build_timezone(config)
        store = cls._build_store(config)
        dispatcher = NotificationDispatcher(tz=tz)
        service = NotificationConfigService(store, authorizer=authorizer, dispatcher=dispatcher, tz=tz)
        return cls(config=config, store=store, dispatcher=dispatcher, service=service, tz=tz)

    @staticmethod
    def _build_timezone(config: AppConfig) -> Optional[tzinfo]:
        if config.evaluation.timezone:
            return ZoneInfo(config.evaluation.timezone)
        return None

    @staticmethod
    def _build_store(config: AppConfig) -> ConfigStore:
        return ConfigStore(
            config.store.path,
            lock_path=config.store.lock_path,
            lock_timeout=config.store.lock_timeout_seconds,
            lock_poll_interval=config.store.lock_poll_seconds,
        )
