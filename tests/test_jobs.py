import errno
import threading
from pathlib import Path

import pytest
from sqlalchemy import select

from photovault.core.errors import Conflict, NotFound
from photovault.db.models import Image, ImageStatus
from photovault.jobs import JobManager, JobState, OrganizeJob, ScanJob, SyncJob
from photovault.jobs import organize_job
from photovault.jobs.base import Job


def _images(dbm):
    with dbm.session() as s:
        return list(s.execute(select(Image).order_by(Image.filename)).scalars())


class _BlockingJob(Job):
    kind = "block"

    def __init__(self):
        super().__init__()
        self.release = threading.Event()
        self.entered = threading.Event()

    def _execute(self):
        self.entered.set()
        self.release.wait(5)


def _cancel_after_first(job_cls):
    """ Subclass of job_cls that asks to stop as soon as the first item has begun. """
    class Cancelling(job_cls):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            self.begun = []

        def _begin_item(self, label):
            super()._begin_item(label)
            self.begun.append(label)
            self.cancel()

    return Cancelling


# --- Job manager

def test_one_active_job_per_kind():
    jobs = JobManager()
    first = jobs.submit(_BlockingJob())
    assert first.entered.wait(5)

    with pytest.raises(Conflict):
        jobs.submit(_BlockingJob())

    first.release.set()
    first.join(5)
    assert jobs.status(first.id).state is JobState.completed

    second = _BlockingJob()
    second.release.set()
    jobs.submit(second, background=False)
    assert second.state is JobState.completed
    assert jobs.latest("block") is second


def test_foreground_job_is_active_before_it_starts_running():
    jobs = JobManager()
    seen = []

    class Peeking(_BlockingJob):
        def run(self):
            seen.append((self.state, self.active))
            with pytest.raises(Conflict):
                jobs.submit(_BlockingJob(), background=False)
            self.release.set()
            return super().run()

    job = jobs.submit(Peeking(), background=False)

    assert seen == [(JobState.idle, True)]
    assert job.state is JobState.completed
    assert not job.active


def test_unknown_job_id():
    with pytest.raises(NotFound):
        JobManager().status("nope")


def test_crashing_job_fails():
    class Boom(Job):
        kind = "boom"

        def _execute(self):
            raise RuntimeError("kaput")

    job = Boom()
    assert job.run() is JobState.failed
    assert job.snapshot().message == "kaput"


# --- Scan

def test_scan_job_catalogs_source(dbm, write_file, tmp_path, thumbs):
    src = tmp_path / "incoming"
    write_file(src / "a.jpg")
    write_file(src / "nested" / "b.png")
    write_file(src / "raw.cr2")
    write_file(src / "notes.txt")
    write_file(src / ".hidden" / "c.jpg")

    job = ScanJob(dbm, src, thumbs)
    assert job.run() is JobState.completed

    imgs = _images(dbm)
    assert [i.filename for i in imgs] == ["a.jpg", "b.png", "raw.cr2"]
    assert all(i.vault_id is None and i.album_id is None for i in imgs)
    assert len(thumbs.dispatched) == 2
    status = job.snapshot()
    assert (status.progress.total, status.progress.completed) == (3, 3)
    assert status.progress.stats == {"added": 3}

    again = ScanJob(dbm, src, thumbs)
    again.run()
    assert again.snapshot().progress.stats == {"skipped": 3}
    assert len(_images(dbm)) == 3


def test_scan_job_saves_source_folder(dbm, registry, write_file, tmp_path):
    write_file(tmp_path / "in" / "a.jpg")
    ScanJob(dbm, tmp_path / "in").run()

    assert registry.settings().source_folder == str(tmp_path / "in")


def test_scan_job_missing_source(dbm, tmp_path):
    job = ScanJob(dbm, tmp_path / "nowhere")
    assert job.run() is JobState.failed


def test_scan_job_cancelled_before_start(dbm, write_file, tmp_path):
    write_file(tmp_path / "in" / "a.jpg")
    job = ScanJob(dbm, tmp_path / "in")
    job.cancel()

    assert job.run() is JobState.cancelled
    assert _images(dbm) == []


def test_scan_job_cancel_between_items_keeps_finished_work(dbm, write_file, tmp_path):
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        write_file(tmp_path / "in" / name)
    job = _cancel_after_first(ScanJob)(dbm, tmp_path / "in")

    assert job.run() is JobState.cancelled

    assert job.begun == [str(tmp_path / "in" / "a.jpg")]
    assert [i.absolute_path for i in _images(dbm)] == job.begun
    status = job.snapshot()
    assert (status.progress.total, status.progress.completed) == (3, 1)


# --- Organize

@pytest.fixture()
def staged(dbm, folders, images, vault, write_file, tmp_path):
    """ Three scanned source images: one assigned to Travel, one trashed, one not sure. """
    src = tmp_path / "incoming"
    for name in ("keep.jpg", "junk.jpg", "maybe.jpg"):
        write_file(src / name)
    ScanJob(dbm, src).run()
    travel = folders.create_folder("Travel", vault_id=vault.id)
    by_name = {i.filename: i.id for i in _images(dbm)}
    images.assign_images([by_name["keep.jpg"]], album_id=travel.id)
    images.assign_images([by_name["junk.jpg"]], status="trash")
    images.assign_images([by_name["maybe.jpg"]], status="not-sure")
    return src


def test_organize_moves_everything_and_forgets(dbm, registry, vault, staged):
    root = Path(vault.root_path)
    job = OrganizeJob(registry)

    summary = job.summary()
    assert [(m.album_name, m.count) for m in summary.album_moves] == [("Travel", 1)]
    assert (summary.trash_count, summary.not_sure_count, summary.total_images) == (1, 1, 3)

    assert job.run() is JobState.completed

    assert (root / "Travel" / "keep.jpg").exists()
    assert (root / "_Trash" / "junk.jpg").exists()
    assert (root / "_Sort Later" / "maybe.jpg").exists()
    assert list(staged.iterdir()) == []
    assert _images(dbm) == []
    assert job.snapshot().progress.stats == {"album": 1, "trash": 1, "sort-later": 1}


def test_organize_copy_keeps_originals_except_trash(dbm, registry, vault, staged):
    root = Path(vault.root_path)

    OrganizeJob(registry, delete_originals=False).run()

    assert (root / "Travel" / "keep.jpg").exists() and (staged / "keep.jpg").exists()
    assert (root / "_Sort Later" / "maybe.jpg").exists() and (staged / "maybe.jpg").exists()
    assert not (staged / "junk.jpg").exists()
    assert _images(dbm) == []


def test_organize_uses_copy_setting(registry, vault, staged):
    registry.update_settings(organize_action="copy")

    assert OrganizeJob(registry).delete_originals is False


def test_organize_system_trash(dbm, registry, vault, staged):
    registry.update_settings(trash_handling="system")
    sent = []

    OrganizeJob(registry, system_trash=lambda p: (sent.append(p.name), p.unlink())).run()

    assert sent == ["junk.jpg"]
    assert not (Path(vault.root_path) / "_Trash").exists()


def test_organize_collision_free_names(dbm, registry, vault, staged, write_file):
    write_file(Path(vault.root_path) / "Travel" / "keep.jpg", b"already here")

    OrganizeJob(registry).run()

    assert (Path(vault.root_path) / "Travel" / "keep (1).jpg").exists()


def test_organize_records_missing_sources_and_continues(dbm, registry, vault, staged):
    (staged / "junk.jpg").unlink()
    job = OrganizeJob(registry)

    assert job.run() is JobState.completed

    status = job.snapshot()
    assert [e.path for e in status.progress.errors] == [str(staged / "junk.jpg")]
    assert status.progress.completed == 3
    assert [i.filename for i in _images(dbm)] == ["junk.jpg"]


def test_organize_halts_on_fatal_error(dbm, registry, vault, staged, monkeypatch):
    real_move = organize_job.move_path
    calls = []

    def flaky_move(src, dst):
        calls.append(src)
        if len(calls) > 1:
            raise OSError(errno.ENOSPC, "No space left on device")
        real_move(src, dst)

    monkeypatch.setattr(organize_job, "move_path", flaky_move)
    job = OrganizeJob(registry)

    assert job.run() is JobState.failed

    assert len(calls) == 2
    assert len(_images(dbm)) == 2
    assert job.snapshot().progress.completed == 2


def test_organize_skips_images_already_in_place(dbm, registry, reconciler, images, vault, write_file):
    root = Path(vault.root_path)
    write_file(root / "Travel" / "a.jpg")
    reconciler.sync(vault.id)

    job = OrganizeJob(registry)
    assert job.summary().total_images == 0
    job.run()

    assert [i.filename for i in _images(dbm)] == ["a.jpg"]
    assert job.snapshot().progress.stats == {"in_place": 1}


def test_organize_cancel_keeps_everything(dbm, registry, staged):
    job = OrganizeJob(registry)
    job.cancel()

    assert job.run() is JobState.cancelled
    assert len(_images(dbm)) == 3


def test_organize_cancel_between_items_keeps_finished_work(dbm, registry, vault, staged):
    job = _cancel_after_first(OrganizeJob)(registry)

    assert job.run() is JobState.cancelled

    (first,) = job.begun
    first = Path(first)
    assert not first.exists()
    assert job.snapshot().progress.completed == 1
    remaining = _images(dbm)
    assert sorted(i.filename for i in remaining) == sorted(p.name for p in staged.iterdir())
    assert first.name not in {i.filename for i in remaining}
    assert len(remaining) == 2


# --- Sync

def test_sync_job_reports_per_vault(dbm, registry, reconciler, vault, write_file, tmp_path):
    write_file(Path(vault.root_path) / "A" / "x.jpg")
    missing = tmp_path / "missing"
    missing.mkdir()
    gone = registry.add_vault(missing)
    (missing / ".activity-log").unlink()
    missing.rmdir()

    job = SyncJob(reconciler)
    assert job.run() is JobState.completed

    assert [r.vault_id for r in job.reports] == [vault.id]
    errors = job.snapshot().progress.errors
    assert [e.path for e in errors] == [f"vault {gone.id}"]
