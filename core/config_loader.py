import yaml
import os
from typing import Optional, Literal
from pydantic import BaseModel, Field


class StoreConfig(BaseModel):
    """Where the shared notification configuration and its lock live."""
    path: str = "notifications.yaml"
    lock_path: Optional[str] = None  # Defaults to "<path>.lock"
    lock_timeout_seconds: float = Field(default=10.0, ge=0)
    lock_poll_seconds: float = Field(default=0.1, gt=0)


class EvaluationConfig(BaseModel):
    """Matcher evaluation settings."""
    # IANA zone for match-calendar windows, e.g. "Europe/Vienna".
    # None = system local time.
    timezone: Optional[str] = None


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class AppConfig(BaseModel):
    store: StoreConfig = StoreConfig()
    evaluation: EvaluationConfig = EvaluationConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(config_path: str = "config.yaml") -> AppConfig:
    # A missing settings file is fine: defaults plus env overrides
    data = {}
    if os.path.exists(config_path):
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

    # Allow env var override for the notification config location
    env_config_path = os.environ.get("NOTIFY_CONFIG_PATH")
    if env_config_path:
        data.setdefault('store', {})
        data['store']['path'] = env_config_path

    env_lock_path = os.environ.get("NOTIFY_LOCK_PATH")
    if env_lock_path:
        data.setdefault('store', {})
        data['store']['lock_path'] = env_lock_path

    env_lock_timeout = os.environ.get("NOTIFY_LOCK_TIMEOUT")
    if env_lock_timeout:
        data.setdefault('store', {})
        data['store']['lock_timeout_seconds'] = float(env_lock_timeout)

    env_timezone = os.environ.get("NOTIFY_TIMEZONE")
    if env_timezone:
        data.setdefault('evaluation', {})
        data['evaluation']['timezone'] = env_timezone

    return AppConfig(**data)
