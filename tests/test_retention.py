import tarfile

from ormagent.updater.retention import ArchivePruner


def test_rotate_keeps_exactly_one_generation(tmp_path):
    (tmp_path / "app-20200101000000.tar.gz").write_bytes(b"old generation")
    (tmp_path / "service-1.0.0.tar.gz").write_bytes(b"unrelated")
    archived = tmp_path / "app-20260101120000"
    archived.mkdir()
    (archived / "run.sh").write_text("#!/bin/sh\n", encoding="utf-8")

    tarball = ArchivePruner(tmp_path, "app").rotate(archived)

    assert tarball == tmp_path / "app-20260101120000.tar.gz"
    assert not archived.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == [
        "app-20260101120000.tar.gz",
        "service-1.0.0.tar.gz",
    ]
    with tarfile.open(tarball, "r:gz") as tar:
        assert "app-20260101120000/run.sh" in tar.getnames()


def test_retained_archives_only_lists_app_tarballs(tmp_path):
    for name in ["app-1.tar.gz", "app-2.tar.gz", "app-3", "other.tar.gz", "app-4.tgz"]:
        (tmp_path / name).write_bytes(b"")

    names = [p.name for p in ArchivePruner(tmp_path, "app").retained_archives()]

    assert names == ["app-1.tar.gz", "app-2.tar.gz"]


def test_rotate_keeps_existing_tarball_over_leftover_directory(tmp_path):
    (tmp_path / "app-20200101000000.tar.gz").write_bytes(b"old generation")
    archived = tmp_path / "app-20260101120000"
    archived.mkdir()
    (archived / "run.sh").write_text("#!/bin/sh\n", encoding="utf-8")
    (archived / "payload.txt").write_text("previous release\n", encoding="utf-8")
    pruner = ArchivePruner(tmp_path, "app")
    pruner.compress(archived)
    (archived / "payload.txt").unlink()

    tarball = pruner.rotate(archived)

    assert not archived.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["app-20260101120000.tar.gz"]
    with tarfile.open(tarball, "r:gz") as tar:
        assert "app-20260101120000/payload.txt" in tar.getnames()


def test_rotate_after_directory_was_removed_only_prunes(tmp_path):
    (tmp_path / "app-20200101000000.tar.gz").write_bytes(b"old generation")
    archived = tmp_path / "app-20260101120000"
    archived.mkdir()
    (archived / "run.sh").write_text("#!/bin/sh\n", encoding="utf-8")
    pruner = ArchivePruner(tmp_path, "app")
    pruner.compress(archived)
    (archived / "run.sh").unlink()
    archived.rmdir()

    tarball = pruner.rotate(archived)

    assert tarball == tmp_path / "app-20260101120000.tar.gz"
    assert sorted(p.name for p in tmp_path.iterdir()) == ["app-20260101120000.tar.gz"]
