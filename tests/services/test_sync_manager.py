import threading
import time
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from gallery_sync.models import ItemType, JobStatus, Outcome
from gallery_sync.services.albums import album_id_for
from gallery_sync.services.ingest import MediaIngestor
from gallery_sync.services.pipeline.walker import DirectoryWalker
from gallery_sync.services.sync_manager import SyncManager, paths_overlap
from gallery_sync.storage import Album, Base, Media, Repository
from gallery_sync.utils.errors import (
    InvalidPathError,
    InvalidStateError,
    JobNotFoundError,
    OverlappingSyncError,
)


class GatedIngestor(MediaIngestor):
    """Blocks inside every file until released, so tests can act mid-job."""

    def __init__(self, database, blob_store) -> None:
        super().__init__(database, blob_store)
        self.entered = threading.Event()
        self.release = threading.Event()

    def ingest(self, unit):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().ingest(unit)


class GatedWalker(DirectoryWalker):
    """Blocks inside the walk until released."""

    def __init__(self, data_root) -> None:
        super().__init__(data_root)
        self.entered = threading.Event()
        self.release = threading.Event()

    def walk(self, directory):
        self.entered.set()
        self.release.wait(timeout=5)
        return super().walk(directory)


def _wait_for(manager: SyncManager, job_id, predicate, timeout: float = 10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        snapshot = manager.get_job(job_id)
        if predicate(snapshot):
            return snapshot
        time.sleep(0.02)
    raise AssertionError(f"Job {job_id} did not reach the expected state: {manager.get_job(job_id)}")


def _wait_until_finished(manager: SyncManager, job_id):
    return _wait_for(manager, job_id, lambda snapshot: snapshot.status.is_terminal)


def _count(database, model) -> int:
    with database.session() as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


@pytest.fixture
def gated(data_root, database, blob_store):
    ingestor = GatedIngestor(database, blob_store)
    manager = SyncManager(data_root, database, blob_store, max_workers=1, ingestor=ingestor)
    yield manager, ingestor
    ingestor.release.set()
    manager.shutdown()


@pytest.fixture
def gated_walk(data_root, database, blob_store):
    walker = GatedWalker(data_root)
    ingestor = GatedIngestor(database, blob_store)
    manager = SyncManager(data_root, database, blob_store, max_workers=1, walker=walker, ingestor=ingestor)
    yield manager, walker, ingestor
    walker.release.set()
    ingestor.release.set()
    manager.shutdown()


@pytest.fixture
def three_photos(data_root, make_image):
    for index, name in enumerate(["a.jpg", "b.jpg", "c.jpg"]):
        make_image(data_root / name, color=(index * 60, 100, 100))
    return data_root


def test_scenario_syncs_tree_into_albums_and_media(manager, database, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    make_image(data_root / "sub" / "b.jpg", color=(1, 2, 3))

    job_id = manager.start_sync("/")
    snapshot = _wait_until_finished(manager, job_id)

    assert snapshot.status is JobStatus.COMPLETED
    assert snapshot.total_tasks == 3
    assert snapshot.remaining_tasks == 0
    assert [result.item for result in snapshot.results] == ["/a.jpg", "/sub", "/sub/b.jpg"]
    assert [result.item_type for result in snapshot.results] == [ItemType.FILE, ItemType.FOLDER, ItemType.FILE]
    assert all(result.outcome is Outcome.SUCCESS for result in snapshot.results)
    assert snapshot.started_at is not None and snapshot.completed_at >= snapshot.started_at
    assert _count(database, Album) == 2
    assert _count(database, Media) == 2


def test_resync_is_idempotent(manager, database, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    make_image(data_root / "sub" / "b.jpg", color=(1, 2, 3))
    _wait_until_finished(manager, manager.start_sync("/"))

    snapshot = _wait_until_finished(manager, manager.start_sync("/"))

    assert snapshot.status is JobStatus.COMPLETED
    assert [result.outcome for result in snapshot.results] == [Outcome.SKIPPED] * 3
    assert _count(database, Album) == 2
    assert _count(database, Media) == 2


def test_changed_file_is_the_only_success(manager, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    make_image(data_root / "sub" / "b.jpg", color=(1, 2, 3))
    _wait_until_finished(manager, manager.start_sync("/"))

    make_image(data_root / "a.jpg", color=(9, 9, 9), size=(24, 24))
    snapshot = _wait_until_finished(manager, manager.start_sync("/"))

    successes = [result for result in snapshot.results if result.outcome is Outcome.SUCCESS]
    assert [result.item for result in successes] == ["/a.jpg"]


def test_corrupt_file_fails_alone(manager, database, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    (data_root / "b.jpg").write_bytes(b"garbage")
    make_image(data_root / "c.jpg", color=(5, 5, 5))

    snapshot = _wait_until_finished(manager, manager.start_sync(""))

    assert snapshot.status is JobStatus.COMPLETED
    outcomes = {result.item: result for result in snapshot.results}
    assert outcomes["/b.jpg"].outcome is Outcome.FAILED
    assert "decode failed for /b.jpg" in outcomes["/b.jpg"].error
    assert outcomes["/a.jpg"].outcome is Outcome.SUCCESS
    assert outcomes["/c.jpg"].outcome is Outcome.SUCCESS
    assert _count(database, Media) == 2


def test_missing_capture_time_is_a_warning(manager, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")

    snapshot = _wait_until_finished(manager, manager.start_sync("/"))

    assert snapshot.results[0].outcome is Outcome.SUCCESS
    assert snapshot.results[0].warning
    assert snapshot.results[0].error is None


def test_subtree_sync_creates_lineage(manager, database, data_root, make_image) -> None:
    make_image(data_root / "2024" / "trip" / "a.jpg")

    snapshot = _wait_until_finished(manager, manager.start_sync("2024/trip"))

    assert snapshot.path == "/2024/trip"
    assert [result.item for result in snapshot.results] == ["/2024/trip/a.jpg"]
    with database.unit_of_work() as repo:
        trip = repo.get_album(album_id_for("/2024/trip"))
        assert trip.parent_id == album_id_for("/2024")
        assert repo.get_album(album_id_for("/2024")).parent_id == album_id_for("/")


def test_absolute_path_inside_root_is_accepted(manager, data_root, make_image) -> None:
    make_image(data_root / "sub" / "a.jpg")

    snapshot = _wait_until_finished(manager, manager.start_sync(str(data_root / "sub")))

    assert snapshot.path == "/sub"
    assert snapshot.status is JobStatus.COMPLETED


@pytest.mark.parametrize("path", ["../outside", "missing", "a.jpg", "a\x00b", "x" * 5000])
def test_invalid_paths_are_rejected(manager, data_root, make_image, path) -> None:
    (data_root.parent / "outside").mkdir()
    make_image(data_root / "a.jpg")

    with pytest.raises(InvalidPathError):
        manager.start_sync(path)
    assert manager.list_jobs() == []


def test_storage_failure_before_walk_fails_job(manager, database, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    Base.metadata.drop_all(database.engine)

    snapshot = _wait_until_finished(manager, manager.start_sync("/"))

    assert snapshot.status is JobStatus.FAILED
    assert snapshot.results == ()
    assert snapshot.reason


def test_sibling_jobs_share_new_ancestors(data_root, database, blob_store, make_image, monkeypatch) -> None:
    make_image(data_root / "2024" / "a" / "x.jpg")
    make_image(data_root / "2024" / "b" / "y.jpg", color=(1, 2, 3))
    lookup = Repository.get_album
    both_missed_root = threading.Barrier(2, timeout=5)
    waited = set()

    def get_album_in_lockstep(self, album_id):
        found = lookup(self, album_id)
        thread_id = threading.get_ident()
        if found is None and album_id == album_id_for("/") and thread_id not in waited:
            waited.add(thread_id)
            both_missed_root.wait()
        return found

    monkeypatch.setattr(Repository, "get_album", get_album_in_lockstep)
    manager = SyncManager(data_root, database, blob_store, max_workers=2)
    try:
        first = manager.start_sync("2024/a")
        second = manager.start_sync("2024/b")
        snapshots = [_wait_until_finished(manager, job_id) for job_id in (first, second)]
    finally:
        manager.shutdown()

    assert [snapshot.status for snapshot in snapshots] == [JobStatus.COMPLETED, JobStatus.COMPLETED]
    assert len(waited) == 2
    with database.unit_of_work() as repo:
        for path in ("/", "/2024", "/2024/a", "/2024/b"):
            assert repo.get_album(album_id_for(path)) is not None
    assert _count(database, Album) == 4
    assert _count(database, Media) == 2


def test_job_stays_pending_until_units_are_counted(gated_walk, three_photos) -> None:
    manager, walker, ingestor = gated_walk
    job_id = manager.start_sync("/")
    assert walker.entered.wait(timeout=5)

    walking = manager.get_job(job_id)
    assert walking.status is JobStatus.PENDING
    assert walking.started_at is None
    assert (walking.total_tasks, walking.remaining_tasks) == (0, 0)
    with pytest.raises(InvalidStateError):
        manager.pause_job(job_id)

    walker.release.set()
    assert ingestor.entered.wait(timeout=5)
    running = manager.get_job(job_id)
    assert running.status is JobStatus.RUNNING
    assert running.started_at is not None
    assert running.total_tasks == 3
    assert running.remaining_tasks + len(running.results) == running.total_tasks

    ingestor.release.set()
    finished = _wait_until_finished(manager, job_id)
    assert finished.status is JobStatus.COMPLETED
    assert (finished.total_tasks, finished.remaining_tasks) == (3, 0)


def test_stop_during_walk_never_starts(gated_walk, three_photos) -> None:
    manager, walker, ingestor = gated_walk
    job_id = manager.start_sync("/")
    assert walker.entered.wait(timeout=5)

    stopped = manager.stop_job(job_id)
    walker.release.set()

    assert stopped.status is JobStatus.STOPPED
    time.sleep(0.2)
    snapshot = manager.get_job(job_id)
    assert snapshot.status is JobStatus.STOPPED
    assert snapshot.started_at is None
    assert snapshot.results == ()
    assert not ingestor.entered.is_set()


def test_pause_and_resume_preserve_results(gated, three_photos) -> None:
    manager, ingestor = gated
    job_id = manager.start_sync("/")
    assert ingestor.entered.wait(timeout=5)

    paused = manager.pause_job(job_id)
    assert paused.status is JobStatus.PAUSED
    ingestor.release.set()

    snapshot = _wait_for(manager, job_id, lambda snap: len(snap.results) == 1)
    time.sleep(0.1)
    snapshot = manager.get_job(job_id)
    assert snapshot.status is JobStatus.PAUSED
    assert len(snapshot.results) == 1
    assert snapshot.remaining_tasks == 2

    resumed = manager.pause_job(job_id)
    assert resumed.status is JobStatus.RUNNING
    snapshot = _wait_until_finished(manager, job_id)
    assert snapshot.status is JobStatus.COMPLETED
    assert [result.item for result in snapshot.results] == ["/a.jpg", "/b.jpg", "/c.jpg"]


def test_stop_running_job_between_units(gated, three_photos) -> None:
    manager, ingestor = gated
    job_id = manager.start_sync("/")
    assert ingestor.entered.wait(timeout=5)

    requested = manager.stop_job(job_id)
    assert requested.status is JobStatus.RUNNING
    ingestor.release.set()

    snapshot = _wait_until_finished(manager, job_id)
    assert snapshot.status is JobStatus.STOPPED
    assert len(snapshot.results) == 1
    assert snapshot.remaining_tasks + len(snapshot.results) == snapshot.total_tasks == 3
    assert manager.stop_job(job_id).status is JobStatus.STOPPED


def test_stop_wakes_paused_job(gated, three_photos) -> None:
    manager, ingestor = gated
    job_id = manager.start_sync("/")
    assert ingestor.entered.wait(timeout=5)
    manager.pause_job(job_id)
    ingestor.release.set()
    _wait_for(manager, job_id, lambda snap: len(snap.results) == 1)

    manager.stop_job(job_id)

    snapshot = _wait_until_finished(manager, job_id)
    assert snapshot.status is JobStatus.STOPPED
    assert snapshot.remaining_tasks == 2


def test_pending_job_stops_immediately_and_cannot_pause(gated, data_root, make_image) -> None:
    manager, ingestor = gated
    make_image(data_root / "one" / "a.jpg")
    make_image(data_root / "two" / "b.jpg")
    first = manager.start_sync("one")
    assert ingestor.entered.wait(timeout=5)
    second = manager.start_sync("two")

    assert manager.get_job(second).status is JobStatus.PENDING
    with pytest.raises(InvalidStateError):
        manager.pause_job(second)

    stopped = manager.stop_job(second)
    assert stopped.status is JobStatus.STOPPED
    assert stopped.started_at is None

    ingestor.release.set()
    assert _wait_until_finished(manager, first).status is JobStatus.COMPLETED
    assert manager.get_job(second).results == ()


def test_overlapping_sync_is_rejected(gated, data_root, make_image) -> None:
    manager, ingestor = gated
    make_image(data_root / "one" / "inner" / "a.jpg")
    make_image(data_root / "two" / "b.jpg")
    first = manager.start_sync("one")
    assert ingestor.entered.wait(timeout=5)

    for path in ("one", "one/inner", "/"):
        with pytest.raises(OverlappingSyncError) as excinfo:
            manager.start_sync(path)
        assert excinfo.value.conflicting_job_id == str(first)
    assert manager.start_sync("two")


def test_pause_terminal_job_is_invalid(manager, data_root, make_image) -> None:
    make_image(data_root / "a.jpg")
    job_id = manager.start_sync("/")
    _wait_until_finished(manager, job_id)

    with pytest.raises(InvalidStateError):
        manager.pause_job(job_id)


def test_stop_all_and_clear_finished(gated, data_root, make_image) -> None:
    manager, ingestor = gated
    make_image(data_root / "one" / "a.jpg")
    make_image(data_root / "two" / "b.jpg")
    make_image(data_root / "three" / "c.jpg")
    first = manager.start_sync("one")
    assert ingestor.entered.wait(timeout=5)
    second = manager.start_sync("two")
    third = manager.start_sync("three")
    manager.stop_job(third)

    assert manager.clear_finished_jobs() == 1
    assert {snapshot.id for snapshot in manager.list_jobs()} == {first, second}

    assert manager.stop_all_jobs() == 2
    ingestor.release.set()
    _wait_until_finished(manager, first)
    assert manager.stats()["stopped"] == 2
    assert manager.stats()["total"] == 2

    assert manager.clear_finished_jobs() == 2
    assert manager.list_jobs() == []


def test_list_jobs_filters_by_status_in_creation_order(manager, data_root, make_image) -> None:
    make_image(data_root / "one" / "a.jpg")
    make_image(data_root / "two" / "b.jpg")
    first = manager.start_sync("one")
    _wait_until_finished(manager, first)
    second = manager.start_sync("two")
    _wait_until_finished(manager, second)

    assert [snapshot.id for snapshot in manager.list_jobs()] == [first, second]
    assert [snapshot.id for snapshot in manager.list_jobs(JobStatus.COMPLETED)] == [first, second]
    assert manager.list_jobs(JobStatus.RUNNING) == []
    assert str(first) < str(second)


def test_unknown_jobs_raise_not_found(manager) -> None:
    with pytest.raises(JobNotFoundError):
        manager.get_job(uuid4())
    with pytest.raises(JobNotFoundError):
        manager.stop_job("not-a-uuid")


def test_is_path_syncing_tracks_active_jobs(gated, data_root, make_image) -> None:
    manager, ingestor = gated
    make_image(data_root / "one" / "a.jpg")
    job_id = manager.start_sync("one")
    assert ingestor.entered.wait(timeout=5)

    assert manager.is_path_syncing("/one")
    assert manager.is_path_syncing("/")
    assert not manager.is_path_syncing("/two")

    ingestor.release.set()
    _wait_until_finished(manager, job_id)
    assert not manager.is_path_syncing("/one")


def test_paths_overlap() -> None:
    assert paths_overlap("/a", "/a")
    assert paths_overlap("/a", "/a/b")
    assert paths_overlap("/a/b", "/a")
    assert paths_overlap("/", "/z")
    assert not paths_overlap("/a", "/ab")
    assert not paths_overlap("/a/b", "/a/c")
