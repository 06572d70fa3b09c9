#!/usr/bin/env python3
"""
Notification Config Store - persistence for endpoints and matchers.

The whole configuration lives in a single YAML file::

    sendmail:
    - name: mail-to-root
      mailto-user:
      - root@pam
    matcher:
    - name: default-matcher
      target:
      - mail-to-root

The digest is a SHA-256 over the canonical serialization, not over the raw
file, so comments and formatting do not change it. It is derived on read and
never stored in the file.

Writes go to a temp file in the same directory and are swapped in with
``os.replace``, so readers see either the old or the new file, never a
partial one. All mutation happens inside ``edit()``, which holds the
exclusive ``ConfigLock`` for the whole read-modify-write cycle.

Usage:
    store = ConfigStore("/etc/notify/notifications.yaml")
    config, digest = store.read()

    with store.edit() as config:
        config.delete_matcher("old-rule")
"""

import contextlib
import hashlib
import logging
import os
import stat
import tempfile
from typing import Any, Dict, Iterator, Optional, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from notification.config import NotificationConfig
from notification.errors import ConfigIOError, ParseError
from notification.lock import DEFAULT_POLL_SECONDS, DEFAULT_TIMEOUT_SECONDS, ConfigLock
from notification.schema import (
    BUILTIN_TARGET,
    ENDPOINT_TYPES,
    ConfigDocument,
    Matcher,
    SendmailEndpoint,
    format_validation_error,
)

logger = logging.getLogger(__name__)

DEFAULT_MATCHER = "default-matcher"
DEFAULT_FILE_MODE = 0o644


def default_document() -> ConfigDocument:
    """Configuration used when no file has been written yet."""
    return ConfigDocument(
        sendmail=[SendmailEndpoint(name=BUILTIN_TARGET, mailto_user=["root@pam"])],
        matchers=[Matcher(name=DEFAULT_MATCHER, target=[BUILTIN_TARGET])],
    )


def serialize(document: ConfigDocument) -> str:
    """Canonical YAML form: fixed section order, empty sections omitted."""
    data: Dict[str, Any] = {}
    for kind in ENDPOINT_TYPES:
        entries = [e.to_dict() for e in getattr(document, kind)]
        if entries:
            data[kind] = entries
    matchers = [m.to_dict() for m in document.matchers]
    if matchers:
        data["matcher"] = matchers
    if not data:
        return ""
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False, allow_unicode=True)


def parse(text: str) -> ConfigDocument:
    """Parse YAML text into a validated document, raising ``ParseError``."""
    try:
        data = yaml.safe_load(text) if text.strip() else {}
    except yaml.YAMLError as e:
        raise ParseError(f"invalid notification config: {e}")
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ParseError("invalid notification config: top level must be a mapping")
    try:
        return ConfigDocument.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError(f"invalid notification config: {format_validation_error(e)}")


def compute_digest(document: ConfigDocument) -> str:
    return hashlib.sha256(serialize(document).encode("utf-8")).hexdigest()


class ConfigStore:
    """Reads, writes and digests the persisted notification configuration."""

    def __init__(
        self,
        path: str,
        lock_path: Optional[str] = None,
        lock_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        lock_poll_interval: float = DEFAULT_POLL_SECONDS,
    ):
        self.path = path
        self.lock_path = lock_path or f"{path}.lock"
        self.lock_timeout = lock_timeout
        self.lock_poll_interval = lock_poll_interval

    @staticmethod
    def digest(config: NotificationConfig) -> str:
        """Content digest of a configuration snapshot."""
        return compute_digest(config.document)

    def read(self) -> Tuple[NotificationConfig, str]:
        """Load the current configuration and its digest. Side-effect free."""
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except FileNotFoundError:
            logger.debug(f"{self.path} does not exist, using default notification config")
            document = default_document()
        except UnicodeDecodeError as e:
            raise ParseError(f"invalid notification config: {self.path} is not valid UTF-8 ({e})")
        except OSError as e:
            raise ConfigIOError(f"cannot read {self.path}: {e}")
        else:
            document = parse(text)

        digest = compute_digest(document)
        return NotificationConfig(document, digest), digest

    def write(self, config: NotificationConfig) -> str:
        """Persist atomically and return the new digest."""
        text = serialize(config.document)
        directory = os.path.dirname(os.path.abspath(self.path))
        tmp_path = None
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=".{}.".format(os.path.basename(self.path)), suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                # mkstemp creates 0600, keep the mode of the file being replaced
                os.fchmod(f.fileno(), self._file_mode())
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            tmp_path = None
        except OSError as e:
            raise ConfigIOError(f"cannot write {self.path}: {e}")
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)

        digest = compute_digest(config.document)
        config.digest = digest
        logger.info(f"Wrote notification config to {self.path} (digest {digest[:12]})")
        return digest

    def _file_mode(self) -> int:
        try:
            return stat.S_IMODE(os.stat(self.path).st_mode)
        except FileNotFoundError:
            return DEFAULT_FILE_MODE

    def lock(self) -> ConfigLock:
        """A fresh lock handle for one read-modify-write cycle."""
        return ConfigLock(self.lock_path, timeout=self.lock_timeout, poll_interval=self.lock_poll_interval)

    @contextlib.contextmanager
    def edit(self, source: str = "config", metadata: Optional[Dict] = None) -> Iterator[NotificationConfig]:
        """Lock, read, yield for mutation, write, unlock.

        If the body raises, nothing is written and the lock is still
        released.
        """
        lock = self.lock()
        lock.acquire(source, metadata)
        try:
            config, _ = self.read()
            yield config
            self.write(config)
        finally:
            lock.release()
