import json
import logging
import os
import shutil
import tempfile
import threading
import zipfile
import zlib
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Optional

import httpx
from pydantic import ValidationError as ModelValidationError

from ..config import settings
from ..errors import InstallFailure, NotFoundError, ValidationError
from ..models import InstalledMod, InstallResult, Package

logger = logging.getLogger(__name__)

MANIFEST_NAME = ".thundermodman.json"
# zipfile reports unsupported, encrypted or truncated entries with these
ARCHIVE_ERRORS = (zipfile.BadZipFile, NotImplementedError, RuntimeError, EOFError, zlib.error)


class ModStore:
    """Installed mods on disk, one folder per package full name.

    Each folder carries a manifest describing the installed version and the
    files written, and that manifest is the only record of the install.
    Operations on the same full name are serialized.
    """

    def __init__(
        self,
        mods_dir: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.mods_dir = mods_dir or settings.mods_dir
        self.timeout = httpx.Timeout(settings.http_timeout_seconds)
        self.transport = transport
        self._locks: dict[str, list] = {}
        self._locks_guard = threading.Lock()

    def list_installed(self) -> list[InstalledMod]:
        if not os.path.isdir(self.mods_dir):
            return []
        installed: list[InstalledMod] = []
        for entry in sorted(os.listdir(self.mods_dir)):
            record = self._read_manifest(os.path.join(self.mods_dir, entry))
            if record is not None:
                installed.append(record)
        return installed

    def get_installed(self, full_name: str) -> Optional[InstalledMod]:
        return self._read_manifest(self._mod_dir(full_name))

    def install(self, package: Package) -> InstallResult:
        full_name = package.full_name
        target = self._mod_dir(full_name)
        if not package.download_url:
            raise InstallFailure(full_name, f"{full_name} {package.version} has no download URL")

        with self._locked(full_name):
            try:
                os.makedirs(self.mods_dir, exist_ok=True)
                tmp_handle = tempfile.NamedTemporaryFile(
                    dir=self.mods_dir, prefix=".tmp-", suffix=".zip", delete=False
                )
                archive_path = tmp_handle.name
                tmp_handle.close()
                staging_dir = tempfile.mkdtemp(dir=self.mods_dir, prefix=".staging-")
            except OSError as exc:
                raise InstallFailure(full_name, f"Failed to prepare mods directory: {exc}") from exc

            try:
                self._download_file(full_name, package.download_url, archive_path)
                files = self._extract_archive(full_name, archive_path, staging_dir)
                record = InstalledMod(
                    full_name=full_name,
                    version=package.version,
                    installed_at=datetime.now(timezone.utc),
                    files=files,
                )
                with open(os.path.join(staging_dir, MANIFEST_NAME), "w", encoding="utf-8") as handle:
                    handle.write(record.model_dump_json(indent=2))

                if os.path.exists(target):
                    shutil.rmtree(target)
                os.replace(staging_dir, target)
            except ARCHIVE_ERRORS as exc:
                raise InstallFailure(full_name, f"Archive for {full_name} is invalid: {exc}") from exc
            except OSError as exc:
                raise InstallFailure(full_name, f"Failed to write {full_name}: {exc}") from exc
            finally:
                if os.path.exists(archive_path):
                    try:
                        os.remove(archive_path)
                    except OSError:
                        pass
                shutil.rmtree(staging_dir, ignore_errors=True)

        logger.info("Installed %s %s (%d files)", full_name, package.version, len(files))
        return InstallResult(
            full_name=full_name,
            success=True,
            message=f"Installed {full_name} {package.version}",
        )

    def uninstall(self, full_name: str) -> InstallResult:
        target = self._mod_dir(full_name)
        with self._locked(full_name):
            if self._read_manifest(target) is None:
                raise NotFoundError(f"Mod not installed: {full_name}")
            try:
                shutil.rmtree(target)
            except OSError as exc:
                raise InstallFailure(full_name, f"Failed to remove {full_name}: {exc}") from exc

        logger.info("Uninstalled %s", full_name)
        return InstallResult(full_name=full_name, success=True, message=f"Uninstalled {full_name}")

    @contextmanager
    def _locked(self, full_name: str) -> Iterator[None]:
        # [lock, holders]; dropped once nobody holds or waits on it
        with self._locks_guard:
            entry = self._locks.setdefault(full_name, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(full_name, None)

    def _mod_dir(self, full_name: str) -> str:
        name = (full_name or "").strip()
        if not name or name in {".", ".."} or "/" in name or "\\" in name or name.startswith("."):
            raise ValidationError(f"Invalid package name: {full_name!r}")
        return os.path.join(self.mods_dir, name)

    def _read_manifest(self, mod_dir: str) -> Optional[InstalledMod]:
        path = os.path.join(mod_dir, MANIFEST_NAME)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as handle:
                return InstalledMod.model_validate(json.load(handle))
        except (OSError, ValueError, ModelValidationError) as exc:
            logger.warning("Ignoring unreadable manifest %s: %s", path, exc)
            return None

    def _extract_archive(self, full_name: str, archive_path: str, dest_dir: str) -> list[str]:
        base_real = os.path.realpath(dest_dir)
        files: list[str] = []
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                name = info.filename.replace("\\", "/")
                if not name or name.endswith("/"):
                    continue
                normalized = os.path.normpath(name.lstrip("/")).replace("\\", "/")
                if normalized in {"", ".", ".."} or normalized.startswith("../"):
                    raise InstallFailure(full_name, f"Archive entry escapes mod folder: {name}")
                if normalized == MANIFEST_NAME:
                    continue
                dest_path = os.path.realpath(os.path.join(base_real, normalized))
                if not dest_path.startswith(base_real + os.sep):
                    raise InstallFailure(full_name, f"Archive entry escapes mod folder: {name}")

                os.makedirs(os.path.dirname(dest_path), exist_ok=True)
                with archive.open(info, "r") as src, open(dest_path, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(normalized)
        return sorted(files)

    def _download_file(self, full_name: str, url: str, dest_path: str) -> None:
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                with client.stream(
                    "GET",
                    url,
                    headers={"User-Agent": "ThunderModMan/1.0"},
                    follow_redirects=True,
                ) as response:
                    if response.status_code >= 400:
                        raise InstallFailure(
                            full_name,
                            f"Download of {full_name} failed with status {response.status_code}",
                        )
                    with open(dest_path, "wb") as handle:
                        for chunk in response.iter_bytes():
                            handle.write(chunk)
        except httpx.TimeoutException as exc:
            raise InstallFailure(full_name, f"Download of {full_name} timed out: {exc}") from exc
        except httpx.RequestError as exc:
            raise InstallFailure(full_name, f"Download of {full_name} failed: {exc}") from exc
