import zipfile

import pytest

from thundermodman.errors import NotFoundError, ValidationError
from thundermodman.services.backup_service import BackupService


@pytest.fixture()
def service(tmp_path):
    data = tmp_path / "server"
    (data / "worlds_local").mkdir(parents=True)
    (data / "worlds_local" / "Dedicated.db").write_bytes(b"world")
    (data / "worlds_local" / "Dedicated.db.old").write_bytes(b"stale")
    (data / "adminlist.txt").write_text("1234", encoding="utf-8")
    return BackupService(data_dir=str(data), backup_dir=str(tmp_path / "backups"))


def test_create_backup_skips_old_files(service, tmp_path):
    filename = service.create_backup()

    assert filename.startswith("backup-") and filename.endswith(".zip")
    with zipfile.ZipFile(tmp_path / "backups" / filename) as archive:
        names = sorted(archive.namelist())
    assert names == ["adminlist.txt", "worlds_local/Dedicated.db"]


def test_list_backups_newest_first(service):
    first = service.create_backup()
    second = service.create_backup()

    listed = [b.filename for b in service.list_backups()]

    assert set(listed) == {first, second}
    assert first != second


def test_restore_overwrites_data(service, tmp_path):
    filename = service.create_backup()
    world = tmp_path / "server" / "worlds_local" / "Dedicated.db"
    world.write_bytes(b"corrupted")

    service.restore_backup(filename)

    assert world.read_bytes() == b"world"


def test_delete_backup(service):
    filename = service.create_backup()

    service.delete_backup(filename)

    assert service.list_backups() == []
    with pytest.raises(NotFoundError):
        service.delete_backup(filename)


@pytest.mark.parametrize("filename", ["../secrets.zip", "nested/backup.zip", "..\\evil.zip"])
def test_traversal_filenames_are_rejected(service, filename):
    with pytest.raises(ValidationError):
        service.restore_backup(filename)
    with pytest.raises(ValidationError):
        service.delete_backup(filename)


def test_missing_data_dir_is_not_found(tmp_path):
    service = BackupService(data_dir=str(tmp_path / "absent"), backup_dir=str(tmp_path / "b"))

    with pytest.raises(NotFoundError):
        service.create_backup()
