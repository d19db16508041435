"""Crash-safe kubeconfig file storage.

Saving first copies the current file to a timestamped backup, then writes the
new content to a temporary file in the same directory and moves it over the
target. The target is either the previous content or the new content, never a
partial write.
"""

import contextlib
import errno
import os
import tempfile
from collections.abc import Mapping
from datetime import datetime, timedelta
from pathlib import Path

import yaml
from pydantic import ValidationError

from kubeconfig_updater.core.logging import get_logger
from kubeconfig_updater.exceptions import (
    BackupFailedError,
    DirectoryNotFoundError,
    KubeconfigInvalidError,
    KubeconfigStorageError,
    WriteFailedError,
)
from kubeconfig_updater.kubeconfig.models import Kubeconfig
from kubeconfig_updater.kubeconfig.paths import (
    get_secure_dir_mode,
    get_secure_file_mode,
    resolve_kubeconfig_path,
)


logger = get_logger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d-%H%M%S.%f"
BACKUP_ATTEMPTS = 5


def backup_path_for(path: Path, now: datetime | None = None) -> Path:
    """Build the backup file name for a kubeconfig path."""
    timestamp = (now or datetime.now()).strftime(BACKUP_TIMESTAMP_FORMAT)
    return path.with_name(f"{path.name}.backup.{timestamp}")


class KubeconfigStorage:
    """Load and save a kubeconfig file.

    The file path is resolved once, when the storage is created.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        """Initialize kubeconfig storage.

        Args:
            path: Explicit kubeconfig path, None to follow KUBECONFIG or the default
            environ: Environment used to resolve the path, defaults to os.environ
        """
        self.file_path = resolve_kubeconfig_path(path, environ)

    def exists(self) -> bool:
        return self.file_path.is_file()

    def get_location(self) -> str:
        return str(self.file_path)

    def load(self) -> Kubeconfig:
        """Load the kubeconfig.

        Returns:
            Parsed kubeconfig, or an empty one if the file does not exist

        Raises:
            DirectoryNotFoundError: If the path is a directory
            KubeconfigInvalidError: If the file is not a valid kubeconfig
            KubeconfigStorageError: If the file cannot be read
        """
        if self.file_path.is_dir():
            raise DirectoryNotFoundError(
                f"Kubeconfig path is a directory: {self.file_path}"
            )

        try:
            text = self.file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("kubeconfig_not_found", path=str(self.file_path))
            return Kubeconfig()
        except PermissionError as e:
            logger.error(
                "permission_denied",
                path=str(self.file_path),
                error=str(e),
                exc_info=e,
            )
            raise KubeconfigStorageError(f"Permission denied: {self.file_path}") from e
        except (OSError, UnicodeDecodeError) as e:
            logger.error(
                "file_read_error",
                path=str(self.file_path),
                error=str(e),
                exc_info=e,
            )
            raise KubeconfigStorageError(f"Error reading {self.file_path}: {e}") from e

        try:
            return Kubeconfig.from_yaml(text)
        except yaml.YAMLError as e:
            logger.error("yaml_decode_error", path=str(self.file_path), error=str(e))
            raise KubeconfigInvalidError(
                f"Invalid YAML in {self.file_path}: {e}"
            ) from e
        except ValidationError as e:
            logger.error(
                "kubeconfig_validation_error",
                path=str(self.file_path),
                errors=e.error_count(),
            )
            raise KubeconfigInvalidError(
                f"Invalid kubeconfig in {self.file_path}: {e}"
            ) from e

    def save(self, kubeconfig: Kubeconfig) -> Path | None:
        """Save the kubeconfig, backing up the current file first.

        Args:
            kubeconfig: Kubeconfig to write

        Returns:
            Path of the backup file, or None if there was no file to back up

        Raises:
            DirectoryNotFoundError: If the path is a directory
            BackupFailedError: If the backup cannot be written; nothing is saved
            WriteFailedError: If the new content cannot be written
        """
        dangling = kubeconfig.find_dangling_references()
        if dangling:
            logger.warning(
                "kubeconfig_dangling_references",
                path=str(self.file_path),
                count=len(dangling),
                references="; ".join(dangling),
            )

        try:
            self.file_path.parent.mkdir(
                mode=get_secure_dir_mode(), parents=True, exist_ok=True
            )
        except OSError as e:
            logger.error(
                "directory_create_error",
                path=str(self.file_path.parent),
                error=str(e),
                exc_info=e,
            )
            raise WriteFailedError(
                f"Failed to create directory {self.file_path.parent}: {e}"
            ) from e

        backup_path = self._create_backup()
        if backup_path is not None:
            logger.info("kubeconfig_backup_created", backup_path=str(backup_path))

        try:
            content = kubeconfig.to_yaml()
        except yaml.YAMLError as e:
            raise WriteFailedError(f"Failed to encode kubeconfig: {e}") from e

        self._write_atomic(content)

        try:
            self.file_path.chmod(get_secure_file_mode())
        except OSError as e:
            raise WriteFailedError(
                f"Failed to set permissions on {self.file_path}: {e}"
            ) from e

        logger.debug(
            "kubeconfig_write_success",
            path=str(self.file_path),
            size=len(content),
        )
        return backup_path

    def _create_backup(self) -> Path | None:
        """Copy the current file to a new timestamped backup file.

        Returns:
            Backup path, or None if the target does not exist yet

        Raises:
            DirectoryNotFoundError: If the target is a directory
            BackupFailedError: If the backup cannot be written
        """
        if self.file_path.is_dir():
            raise DirectoryNotFoundError(
                f"Kubeconfig path is a directory: {self.file_path}"
            )

        try:
            data = self.file_path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise BackupFailedError(
                f"Failed to read {self.file_path} for backup: {e}"
            ) from e

        flags = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)
        last: datetime | None = None
        for _ in range(BACKUP_ATTEMPTS):
            now = datetime.now()
            # Coarse clocks can repeat a timestamp between attempts
            if last is not None and now <= last:
                now = last + timedelta(microseconds=1)
            last = now
            backup_path = backup_path_for(self.file_path, now)
            try:
                fd = os.open(backup_path, flags, get_secure_file_mode())
            except FileExistsError:
                continue
            except OSError as e:
                raise BackupFailedError(
                    f"Failed to create backup {backup_path}: {e}"
                ) from e

            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
            except OSError as e:
                with contextlib.suppress(OSError):
                    backup_path.unlink()
                raise BackupFailedError(
                    f"Failed to write backup {backup_path}: {e}"
                ) from e
            return backup_path

        raise BackupFailedError(
            f"Failed to create a unique backup name for {self.file_path}"
        )

    def _write_atomic(self, content: str) -> None:
        """Write content to a temporary file and move it over the target.

        Raises:
            WriteFailedError: If any step fails; the temporary file is removed
        """
        temp_path: Path | None = None
        try:
            fd, temp_name = tempfile.mkstemp(
                prefix=f".{self.file_path.name}.",
                suffix=".tmp",
                dir=self.file_path.parent,
            )
            temp_path = Path(temp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(temp_path, self.file_path)
            temp_path = None

        except OSError as e:
            logger.error(
                "file_write_error",
                path=str(self.file_path),
                error=str(e),
                no_space=e.errno == errno.ENOSPC,
                exc_info=e,
            )
            raise WriteFailedError(f"Error writing {self.file_path}: {e}") from e

        finally:
            if temp_path is not None:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
