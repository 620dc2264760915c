import fnmatch
import logging
import os
import shutil
import zipfile
from datetime import datetime, timezone
from typing import Optional

from ..config import settings
from ..errors import NotFoundError, ServiceError, ValidationError
from ..models import BackupInfo

logger = logging.getLogger(__name__)

EXCLUDE_PATTERNS = ("*.old",)


class BackupService:
    def __init__(self, data_dir: Optional[str] = None, backup_dir: Optional[str] = None) -> None:
        self.data_dir = data_dir or settings.data_dir
        self.backup_dir = backup_dir or settings.backup_dir

    def list_backups(self) -> list[BackupInfo]:
        if not os.path.isdir(self.backup_dir):
            return []
        backups: list[BackupInfo] = []
        for name in os.listdir(self.backup_dir):
            path = os.path.join(self.backup_dir, name)
            if not name.endswith(".zip") or not os.path.isfile(path):
                continue
            stat = os.stat(path)
            backups.append(
                BackupInfo(
                    filename=name,
                    size=stat.st_size,
                    created=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                )
            )
        backups.sort(key=lambda b: b.created, reverse=True)
        return backups

    def create_backup(self) -> str:
        if not os.path.isdir(self.data_dir):
            raise NotFoundError(f"Source directory not found: {self.data_dir}")
        try:
            os.makedirs(self.backup_dir, exist_ok=True)
        except OSError as exc:
            raise ServiceError(500, f"Failed to create backup directory: {exc}") from exc

        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d-%H-%M-%S")
        filename = f"backup-{stamp}.zip"
        suffix = 1
        while os.path.exists(os.path.join(self.backup_dir, filename)):
            filename = f"backup-{stamp}-{suffix}.zip"
            suffix += 1
        target = os.path.join(self.backup_dir, filename)
        partial = target + ".partial"

        try:
            with zipfile.ZipFile(partial, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for root, _dirs, files in os.walk(self.data_dir):
                    for name in files:
                        if any(fnmatch.fnmatch(name, pattern) for pattern in EXCLUDE_PATTERNS):
                            continue
                        path = os.path.join(root, name)
                        archive.write(path, os.path.relpath(path, self.data_dir))
            os.replace(partial, target)
        except OSError as exc:
            raise ServiceError(500, f"Backup failed: {exc}") from exc
        finally:
            if os.path.exists(partial):
                os.remove(partial)

        logger.info("Created backup %s", filename)
        return filename

    def restore_backup(self, filename: str) -> None:
        path = self._backup_path(filename)
        if not os.path.isfile(path):
            raise NotFoundError("Backup file not found")

        base_real = os.path.realpath(self.data_dir)
        try:
            os.makedirs(base_real, exist_ok=True)
            with zipfile.ZipFile(path) as archive:
                for info in archive.infolist():
                    if info.filename.endswith("/"):
                        continue
                    dest_path = os.path.realpath(os.path.join(base_real, info.filename))
                    if not dest_path.startswith(base_real + os.sep):
                        raise ValidationError(f"Backup entry escapes data directory: {info.filename}")
                    os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                    with archive.open(info, "r") as src, open(dest_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
        except zipfile.BadZipFile as exc:
            raise ServiceError(500, f"Restore failed: {exc}") from exc
        except OSError as exc:
            raise ServiceError(500, f"Restore failed: {exc}") from exc

        logger.info("Restored backup %s into %s", filename, self.data_dir)

    def delete_backup(self, filename: str) -> None:
        path = self._backup_path(filename)
        if not os.path.isfile(path):
            raise NotFoundError("File not found")
        try:
            os.remove(path)
        except OSError as exc:
            raise ServiceError(500, f"Failed to delete backup: {exc}") from exc
        logger.info("Deleted backup %s", filename)

    def _backup_path(self, filename: str) -> str:
        if not filename or ".." in filename or "/" in filename or "\\" in filename:
            raise ValidationError("Invalid filename")
        return os.path.join(self.backup_dir, filename)
