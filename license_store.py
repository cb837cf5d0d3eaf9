"""Local license key file.

The key file is write-once: after it holds a real key (anything other than
the "temp" sentinel) this client never overwrites it. Writes take an
exclusive lock on a sidecar lock file, re-read the key under that lock and
then atomically rename a temp file into place, so concurrent first-time
writers cannot both succeed and readers never see a partial file.
"""
import fcntl
import logging
import os
import re
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from exceptions import AlreadyLicensed, KeyWriteFailed, NotWritable

logger = logging.getLogger(__name__)

TEMP_LICENSE_KEY = "temp"
LICENSE_KEY_LINE_LENGTH = 50

_LINE_BREAKS = re.compile(r"[\r\n]+")


def format_license_key(key: str) -> str:
    """Wrap a key into fixed-width lines, each ended by the platform line terminator."""
    lines = [
        key[i:i + LICENSE_KEY_LINE_LENGTH]
        for i in range(0, len(key), LICENSE_KEY_LINE_LENGTH)
    ]
    return "".join(line + os.linesep for line in lines)


class LicenseStore:
    def __init__(self, key_path, config_path=None):
        self.key_path = Path(key_path)
        self.config_path = Path(config_path) if config_path is not None else self.key_path.parent
        self.lock_path = self.key_path.with_name(self.key_path.name + ".lock")

    def read(self) -> Optional[str]:
        """
        Return the installed license key, or None if there is no real key yet.
        """
        if not self.key_path.is_file():
            return None

        try:
            contents = self.key_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            # Removed between the check and the read
            return None

        key = _LINE_BREAKS.sub("", contents).strip()
        if not key or key == TEMP_LICENSE_KEY:
            return None

        return key

    def write(self, key: str) -> None:
        """
        Persist a newly issued license key.

        Raises:
            AlreadyLicensed: A valid key is already installed.
            NotWritable: The config directory cannot be written.
            KeyWriteFailed: The file system rejected the write.
        """
        if self.read() is not None:
            raise AlreadyLicensed(str(self.key_path))

        if not self.is_writable():
            raise NotWritable(str(self.config_path))

        try:
            with self._exclusive_lock():
                # Another writer may have won the race while we waited for the lock
                if self.read() is not None:
                    raise AlreadyLicensed(str(self.key_path))

                self._replace_atomically(format_license_key(key))
        except OSError as e:
            raise KeyWriteFailed(str(self.key_path), e) from e

        logger.info("Wrote license key file %s", self.key_path)

    def is_writable(self) -> bool:
        return self.config_path.is_dir() and os.access(self.config_path, os.W_OK)

    @contextmanager
    def _exclusive_lock(self):
        self.key_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.lock_path, "a") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _replace_atomically(self, contents: str) -> None:
        fd, tmp_path = tempfile.mkstemp(
            dir=self.key_path.parent,
            prefix=f".{self.key_path.name}.",
            suffix=".tmp",
        )
        try:
            # newline="" keeps os.linesep as written
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(contents)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.key_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
