"""
Test add/get/list behaviour of the versioning engine.

Covers deduplication, version numbering, restoration and rollback.
"""

import logging
import threading

import pytest

from version_store import (
    AddStatus,
    VersioningEngine,
    InvalidInputError,
    VersionNotFoundError,
    StorageError,
    StoreError,
    LogError,
    RestoreError,
)


class TestVersioning:
    """Test the add/get/list cycle."""

    @pytest.fixture
    def workdir(self, tmp_path, monkeypatch):
        """Working directory holding the versioned files."""
        monkeypatch.chdir(tmp_path)
        return tmp_path

    @pytest.fixture
    def engine(self, workdir):
        """Create a repository inside the working directory."""
        engine = VersioningEngine(workdir / '.versions', fsync=False)
        engine.initialize()
        return engine

    def test_report_scenario(self, engine, workdir):
        """Two edits, an unchanged re-add, then restores."""
        report = workdir / 'report.txt'

        report.write_text('v1 text')
        first = engine.add('report.txt', 'init')
        assert first.status is AddStatus.ADDED
        assert first.version == 1

        report.write_text('v2 text')
        second = engine.add('report.txt', 'fix')
        assert second.status is AddStatus.ADDED
        assert second.version == 2

        again = engine.add('report.txt', 'no change')
        assert again.status is AddStatus.ALREADY_EXISTS
        assert again.version == 2
        assert again.record.comment == 'fix'

        restored = engine.get('report.txt', 1)
        assert report.read_text() == 'v1 text'
        assert restored.comment == 'init'

        with pytest.raises(VersionNotFoundError):
            engine.get('report.txt', 3)

    def test_dedup_keeps_one_record_and_one_blob(self, engine, workdir):
        """Re-adding identical content writes nothing."""
        (workdir / 'a.txt').write_text('same')

        assert engine.add('a.txt', 'c1').added
        result = engine.add('a.txt', 'c2')

        assert result.status is AddStatus.ALREADY_EXISTS
        assert not result.added
        assert len(engine.list('a.txt')) == 1
        assert len(engine.content_store.list_digests()) == 1

    def test_dedup_is_per_filename(self, engine, workdir):
        """Identical content under two names is two versions, one blob."""
        (workdir / 'a.txt').write_text('shared')
        (workdir / 'b.txt').write_text('shared')

        assert engine.add('a.txt').added
        assert engine.add('b.txt').added

        assert len(engine.list()) == 2
        assert len(engine.content_store.list_digests()) == 1

    def test_readding_old_content_is_a_duplicate(self, engine, workdir):
        """Reverting to earlier content does not create a new version."""
        path = workdir / 'a.txt'
        path.write_text('one')
        engine.add('a.txt')
        path.write_text('two')
        engine.add('a.txt')

        path.write_text('one')
        result = engine.add('a.txt')

        assert result.status is AddStatus.ALREADY_EXISTS
        assert result.version == 1
        assert engine.version_count('a.txt') == 2

    def test_version_numbering(self, engine, workdir):
        """The i-th distinct add is restored by get(f, i)."""
        path = workdir / 'notes.md'
        contents = [f'revision {i}\n' for i in range(1, 6)]

        for i, text in enumerate(contents, start=1):
            path.write_text(text)
            assert engine.add('notes.md', f'rev {i}').version == i

        for i, text in enumerate(contents, start=1):
            engine.get('notes.md', i)
            assert path.read_text() == text

        with pytest.raises(VersionNotFoundError) as excinfo:
            engine.get('notes.md', len(contents) + 1)
        assert excinfo.value.version == len(contents) + 1

    def test_round_trip_binary_content(self, engine, workdir):
        """Restored bytes equal the stored bytes exactly."""
        data = bytes(range(256)) * 1024 + b'\x00\xff'
        path = workdir / 'blob.bin'
        path.write_bytes(data)
        engine.add('blob.bin')

        path.write_bytes(b'overwritten')
        engine.get('blob.bin', 1)

        assert path.read_bytes() == data

    def test_round_trip_empty_file(self, engine, workdir):
        """Empty files are versioned like any other."""
        path = workdir / 'empty'
        path.write_bytes(b'')
        engine.add('empty')
        path.write_bytes(b'filled')

        engine.get('empty', 1)

        assert path.read_bytes() == b''

    def test_get_to_destination(self, engine, workdir):
        """A version can be restored without touching the working file."""
        path = workdir / 'a.txt'
        path.write_text('old')
        engine.add('a.txt')
        path.write_text('new')

        engine.get('a.txt', 1, destination=workdir / 'a.old')

        assert (workdir / 'a.old').read_text() == 'old'
        assert path.read_text() == 'new'

    def test_get_restores_deleted_working_file(self, engine, workdir):
        """Restoring recreates a file that was removed."""
        path = workdir / 'gone.txt'
        path.write_text('keep me')
        engine.add('gone.txt')
        path.unlink()

        engine.get('gone.txt', 1)

        assert path.read_text() == 'keep me'

    def test_get_through_symlink_restores_target(self, engine, workdir):
        """Restoring a symlinked file rewrites its target and keeps the link."""
        real = workdir / 'real.txt'
        real.write_text('v1')
        link = workdir / 'link.txt'
        link.symlink_to(real)
        engine.add('link.txt')
        real.write_text('v2')

        engine.get('link.txt', 1)

        assert link.is_symlink()
        assert real.read_text() == 'v1'

    def test_add_reuses_repaired_blob(self, engine, workdir):
        """A tampered blob is rewritten when the same content is added again."""
        (workdir / 'a.txt').write_text('shared')
        (workdir / 'b.txt').write_text('shared')
        digest = engine.add('a.txt').record.digest
        engine.layout.get_blob_path(digest).write_bytes(b'tampered')

        engine.add('b.txt')
        engine.get('a.txt', 1, destination=workdir / 'a.restored')

        assert (workdir / 'a.restored').read_text() == 'shared'
        assert engine.verify()['corrupted'] == []

    def test_zero_chunk_size_is_rejected(self, engine, workdir, monkeypatch):
        """A zero read size must not record every file as empty."""
        from version_store.config import Config

        (workdir / 'a.txt').write_text('important data')
        monkeypatch.setattr(Config, 'HASH_CHUNK_SIZE', 0)

        with pytest.raises(ValueError):
            engine.add('a.txt')

        assert engine.list() == []
        assert engine.content_store.list_digests() == []

    def test_equivalent_paths_share_history(self, engine, workdir):
        """'./a.txt' and 'a.txt' are the same file."""
        path = workdir / 'a.txt'
        path.write_text('one')
        engine.add('./a.txt')
        path.write_text('two')
        engine.add('a.txt')

        assert [v.version for v in engine.list('./a.txt')] == [1, 2]

    def test_list_filter_and_order(self, engine, workdir):
        """list(name) filters; list() returns everything in insertion order."""
        a = workdir / 'a.txt'
        b = workdir / 'b.txt'

        a.write_text('a1')
        engine.add('a.txt', 'a first')
        b.write_text('b1')
        engine.add('b.txt', 'b first')
        a.write_text('a2')
        engine.add('a.txt', 'a second')

        only_a = engine.list('a.txt')
        assert [v.comment for v in only_a] == ['a first', 'a second']
        assert [v.version for v in only_a] == [1, 2]
        assert [v.sequence for v in only_a] == [1, 3]

        everything = engine.list()
        assert [v.comment for v in everything] == ['a first', 'b first', 'a second']
        assert [v.version for v in everything] == [1, 1, 2]
        assert engine.list_filenames() == ['a.txt', 'b.txt']

        assert engine.list('missing.txt') == []

    def test_list_on_uninitialized_repository(self, workdir):
        """Reading a repository that does not exist yet finds nothing."""
        engine = VersioningEngine(workdir / 'nowhere')

        assert engine.list() == []
        with pytest.raises(VersionNotFoundError):
            engine.get('a.txt', 1)

    def test_add_initializes_repository(self, workdir):
        """The first add creates the repository."""
        (workdir / 'a.txt').write_text('x')
        engine = VersioningEngine(workdir / 'fresh', fsync=False)

        assert engine.add('a.txt').added
        assert engine.layout.is_initialized()

    def test_comment_and_timestamp_recorded(self, engine, workdir):
        """Views expose the comment, digest and creation time."""
        (workdir / 'a.txt').write_text('x')
        result = engine.add('a.txt', 'première version')

        view = engine.list('a.txt')[0]
        assert view.comment == 'première version'
        assert view.digest == result.record.digest
        assert view.created_at > 0
        assert view.to_dict()['filename'] == 'a.txt'

    def test_history_and_statistics(self, engine, workdir):
        path = workdir / 'a.txt'
        path.write_text('one')
        engine.add('a.txt')
        path.write_text('two!')
        engine.add('a.txt')
        (workdir / 'b.txt').write_text('one')
        engine.add('b.txt')

        assert [v.version for v in engine.history('a.txt')] == [1, 2]

        stats = engine.get_statistics()
        assert stats['total_records'] == 3
        assert stats['total_files'] == 2
        assert stats['total_blobs'] == 2
        assert stats['total_size_bytes'] == 7


class TestInvalidInput:
    """Test that bad input is rejected before any side effect."""

    @pytest.fixture
    def engine(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        engine = VersioningEngine(tmp_path / '.versions', fsync=False)
        engine.initialize()
        return engine

    def test_add_missing_file(self, engine):
        with pytest.raises(InvalidInputError):
            engine.add('does-not-exist.txt')

    def test_add_directory(self, engine, tmp_path):
        (tmp_path / 'folder').mkdir()

        with pytest.raises(InvalidInputError):
            engine.add('folder')

    def test_add_oversize_filename(self, engine, tmp_path):
        """Names that do not fit the record are rejected, not truncated."""
        name = 'n' * 300
        with pytest.raises(InvalidInputError):
            engine.add(name)

        assert engine.list() == []

    def test_add_oversize_comment(self, engine, tmp_path):
        (tmp_path / 'a.txt').write_text('x')

        with pytest.raises(InvalidInputError):
            engine.add('a.txt', 'c' * 257)

        assert engine.list() == []

    def test_multibyte_comment_limit_counts_bytes(self, engine, tmp_path):
        """The comment bound applies to the UTF-8 encoding."""
        (tmp_path / 'a.txt').write_text('x')

        with pytest.raises(InvalidInputError):
            engine.add('a.txt', 'é' * 129)

        assert engine.add('a.txt', 'é' * 128).added

    @pytest.mark.parametrize('version', [0, -1, 1.5, '1', True, None])
    def test_get_rejects_bad_version(self, engine, version):
        with pytest.raises(InvalidInputError):
            engine.get('a.txt', version)


class TestFailureHandling:
    """Test step-specific errors and rollback."""

    @pytest.fixture
    def workdir(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        return tmp_path

    @pytest.fixture
    def engine(self, workdir):
        engine = VersioningEngine(workdir / '.versions', fsync=False)
        engine.initialize()
        return engine

    @staticmethod
    def _failing_append(record):
        raise StorageError("append", "versions.db", OSError("disk full"))

    def test_rollback_removes_new_blob(self, engine, workdir, monkeypatch):
        """A failed append removes the blob the same add created."""
        path = workdir / 'a.txt'
        path.write_text('v1')
        engine.add('a.txt')
        path.write_text('v2')

        monkeypatch.setattr(engine.log, 'append', self._failing_append)

        with pytest.raises(LogError) as excinfo:
            engine.add('a.txt')

        assert excinfo.value.rolled_back
        assert engine.version_count('a.txt') == 1
        assert len(engine.content_store.list_digests()) == 1

    def test_rollback_keeps_shared_blob(self, engine, workdir, monkeypatch):
        """A blob that already existed is not removed on rollback."""
        (workdir / 'a.txt').write_text('shared')
        (workdir / 'b.txt').write_text('shared')
        digest = engine.add('a.txt').record.digest

        monkeypatch.setattr(engine.log, 'append', self._failing_append)

        with pytest.raises(LogError):
            engine.add('b.txt')

        assert engine.content_store.exists(digest)
        assert engine.version_count('b.txt') == 0
        engine.get('a.txt', 1)

    def test_failed_rollback_is_logged(self, engine, workdir, monkeypatch, caplog):
        """If the blob cannot be removed, the orphan is reported, not raised."""
        (workdir / 'a.txt').write_text('v1')

        def failing_remove(digest):
            raise StorageError("remove_blob", digest, OSError("read-only"))

        monkeypatch.setattr(engine.log, 'append', self._failing_append)
        monkeypatch.setattr(engine.content_store, 'remove', failing_remove)

        with caplog.at_level(logging.ERROR, logger='version_store.engine'):
            with pytest.raises(LogError) as excinfo:
                engine.add('a.txt')

        assert not excinfo.value.rolled_back
        assert 'orphaned' in caplog.text
        assert engine.version_count('a.txt') == 0

    def test_store_failure(self, engine, workdir, monkeypatch):
        """A failed store aborts before anything is logged."""
        (workdir / 'a.txt').write_text('v1')

        def failing_put(source_path, digest):
            raise StorageError("write_file", digest, OSError("no space"))

        monkeypatch.setattr(engine.content_store, 'put', failing_put)

        with pytest.raises(StoreError) as excinfo:
            engine.add('a.txt')

        assert excinfo.value.operation == 'store'
        assert engine.list() == []

    def test_initialize_failure(self, engine, workdir, monkeypatch):
        """A repository that cannot be created is reported as a log failure."""
        (workdir / 'a.txt').write_text('v1')

        def failing_initialize():
            raise StorageError("initialize", str(workdir), OSError("read-only"))

        monkeypatch.setattr(engine.layout, 'initialize', failing_initialize)

        with pytest.raises(LogError) as excinfo:
            engine.add('a.txt')

        assert excinfo.value.operation == 'log'
        assert isinstance(excinfo.value.cause, StorageError)

    def test_lock_failure(self, engine, workdir, monkeypatch):
        (workdir / 'a.txt').write_text('v1')

        def failing_exclusive():
            raise StorageError("lock", "versions.lock", OSError("no locks"))

        monkeypatch.setattr(engine.lock, 'exclusive', failing_exclusive)

        with pytest.raises(LogError):
            engine.add('a.txt')

        assert engine.list() == []
        assert engine.content_store.list_digests() == []

    def test_restore_failure_when_blob_missing(self, engine, workdir):
        """A record whose blob vanished cannot be restored."""
        (workdir / 'a.txt').write_text('v1')
        digest = engine.add('a.txt').record.digest
        engine.layout.get_blob_path(digest).unlink()

        with pytest.raises(RestoreError):
            engine.get('a.txt', 1)

    def test_restore_failure_into_missing_directory(self, engine, workdir):
        (workdir / 'a.txt').write_text('v1')
        engine.add('a.txt')

        with pytest.raises(RestoreError):
            engine.get('a.txt', 1, destination=workdir / 'no' / 'such' / 'dir.txt')


class TestConcurrentAdds:
    """Test that the dedup check and append are atomic."""

    def test_parallel_adds_of_same_content(self, tmp_path, monkeypatch):
        """Racing adds of unchanged content record one version."""
        monkeypatch.chdir(tmp_path)
        (tmp_path / 'a.txt').write_text('contended')
        VersioningEngine(tmp_path / '.versions').initialize()

        results = []
        errors = []

        def worker():
            try:
                # Separate engines, as separate processes would have
                engine = VersioningEngine(tmp_path / '.versions', fsync=False)
                results.append(engine.add('a.txt'))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        statuses = [r.status for r in results]
        assert statuses.count(AddStatus.ADDED) == 1
        assert statuses.count(AddStatus.ALREADY_EXISTS) == 7
        assert len(VersioningEngine(tmp_path / '.versions').list()) == 1
