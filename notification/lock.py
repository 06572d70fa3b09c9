import os
import fcntl
import json
import time
import logging
from typing import Optional, Dict

from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_delay,
    wait_fixed,
)

from notification.errors import ConfigIOError, LockTimeoutError

logger = logging.getLogger(__name__)

LOCK_FILE_PATH = "notifications.lock"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_POLL_SECONDS = 0.1


def _log_wait(retry_state) -> None:
    if retry_state.attempt_number == 1:
        logger.info("Notification config is locked by another writer, waiting...")


class ConfigLock:
    """
    Exclusive lock guarding read-modify-write cycles on the notification config.

    Uses ``flock`` on a lock file kept next to the shared configuration, so
    every writer that can see the configuration also sees the lock. Waiting
    is bounded: after ``timeout`` seconds ``LockTimeoutError`` is raised
    instead of blocking forever behind a crashed holder.

    Usage:
        lock = ConfigLock("/etc/notify/notifications.lock", timeout=10)
        with lock:
            ...  # read, validate, mutate, write
    """
    def __init__(
        self,
        lock_file: str = LOCK_FILE_PATH,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        poll_interval: float = DEFAULT_POLL_SECONDS,
    ):
        self.lock_file = lock_file
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.file_handle = None

    def _open_file(self):
        if not self.file_handle:
            try:
                self.file_handle = open(self.lock_file, "a+")
            except OSError as e:
                raise ConfigIOError(f"cannot open lock file {self.lock_file}: {e}")

    def _try_lock(self):
        # Raises BlockingIOError while another holder has the lock
        fcntl.flock(self.file_handle, fcntl.LOCK_EX | fcntl.LOCK_NB)

    @property
    def is_held(self) -> bool:
        return self.file_handle is not None

    def acquire(self, source: str = "config", metadata: Optional[Dict] = None) -> None:
        """
        Acquire the exclusive lock, waiting at most ``timeout`` seconds.

        Args:
            source: Identifier for the writer, stored for diagnostics
            metadata: Additional info to store (e.g., user, operation)

        Raises:
            LockTimeoutError: if the lock could not be acquired in time
        """
        if self.is_held:
            raise RuntimeError("ConfigLock is not re-entrant")

        self._open_file()
        try:
            for attempt in Retrying(
                retry=retry_if_exception_type(BlockingIOError),
                stop=stop_after_delay(self.timeout),
                wait=wait_fixed(self.poll_interval),
                before_sleep=_log_wait,
            ):
                with attempt:
                    self._try_lock()
        except RetryError:
            self._close()
            raise LockTimeoutError(
                f"can't lock file '{self.lock_file}' - got timeout after {self.timeout}s"
            )
        except OSError as e:
            self._close()
            raise ConfigIOError(f"can't lock file '{self.lock_file}': {e}")
        except BaseException:
            self._close()
            raise

        # Record the owner, truncating whatever a previous holder left
        self.file_handle.truncate(0)
        self.file_handle.seek(0)
        info = {
            "source": source,
            "pid": os.getpid(),
            "timestamp": time.time(),
            **(metadata or {})
        }
        json.dump(info, self.file_handle)
        self.file_handle.flush()
        logger.debug(f"Acquired notification config lock ({source})")

    def release(self):
        """Release the lock. Safe to call when not held."""
        if self.file_handle:
            try:
                self.file_handle.truncate(0)
                self.file_handle.seek(0)
                fcntl.flock(self.file_handle, fcntl.LOCK_UN)
            except OSError as e:
                logger.error(f"Error releasing notification config lock: {e}")
            finally:
                self._close()
            logger.debug("Released notification config lock")

    def _close(self):
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

    def get_lock_info(self) -> Optional[Dict]:
        """
        Read information about the current lock owner.
        Returns None if file doesn't exist or is empty/corrupt.
        """
        if not os.path.exists(self.lock_file):
            return None

        try:
            with open(self.lock_file, "r") as f:
                content = f.read().strip()
                if not content:
                    return None
                return json.loads(content)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read lock info: {e}")
            return None
