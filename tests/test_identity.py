"""Tests for node and session identity."""

import stat
import sys
import threading
import uuid

import pytest

from beacon.telemetry.identity import (
    FALLBACK_NODE_ID,
    IDENTITY_FILE_NAME,
    IdentityManager,
    IdentitySource,
    new_session_identity,
)


@pytest.fixture
def unwritable_dir(tmp_path):
    """A cache dir that can never be created: its parent is a regular file.

    Works even when the tests run as root, unlike chmod-based read-only dirs.
    """
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    return blocker / "beacon"


class TestNodeIdentity:
    def test_creates_and_persists(self, tmp_path):
        manager = IdentityManager(tmp_path / "cache")
        node = manager.get_node_identity()
        assert node.source is IdentitySource.CREATED
        assert manager.identity_path == tmp_path / "cache" / IDENTITY_FILE_NAME
        assert uuid.UUID(manager.identity_path.read_text().strip()) == node.value

    def test_second_run_reloads_same_value(self, tmp_path):
        first = IdentityManager(tmp_path).get_node_identity()
        second = IdentityManager(tmp_path).get_node_identity()
        assert second.value == first.value
        assert second.source is IdentitySource.PERSISTED

    def test_reads_existing_file(self, tmp_path):
        known = uuid.uuid4()
        (tmp_path / IDENTITY_FILE_NAME).write_text(f"{known}\n")
        node = IdentityManager(tmp_path).get_node_identity()
        assert node.value == known
        assert str(node) == str(known)

    def test_malformed_file_is_replaced(self, tmp_path):
        (tmp_path / IDENTITY_FILE_NAME).write_text("garbage")
        node = IdentityManager(tmp_path).get_node_identity()
        assert node.source is IdentitySource.CREATED
        assert node.value != FALLBACK_NODE_ID
        assert IdentityManager(tmp_path).get_node_identity().value == node.value

    def test_empty_file_is_replaced(self, tmp_path):
        (tmp_path / IDENTITY_FILE_NAME).write_bytes(b"")
        node = IdentityManager(tmp_path).get_node_identity()
        assert node.source is IdentitySource.CREATED

    def test_unwritable_storage_uses_fallback(self, unwritable_dir):
        node = IdentityManager(unwritable_dir).get_node_identity()
        assert node.value == FALLBACK_NODE_ID
        assert node.is_fallback

    def test_fallback_is_stable_across_runs(self, unwritable_dir):
        runs = [IdentityManager(unwritable_dir).get_node_identity().value for _ in range(3)]
        assert runs == [FALLBACK_NODE_ID] * 3

    def test_fallback_constant(self):
        assert str(FALLBACK_NODE_ID) == "2f998828-3f4a-4741-bf50-d11c6be42f50"

    def test_cached_per_manager(self, tmp_path):
        manager = IdentityManager(tmp_path)
        first = manager.get_node_identity()
        manager.identity_path.unlink()
        assert manager.get_node_identity() is first

    def test_no_temp_files_left_behind(self, tmp_path):
        IdentityManager(tmp_path).get_node_identity()
        assert [p.name for p in tmp_path.iterdir()] == [IDENTITY_FILE_NAME]

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
    def test_file_is_owner_only(self, tmp_path):
        manager = IdentityManager(tmp_path / "cache")
        manager.get_node_identity()
        mode = stat.S_IMODE(manager.identity_path.stat().st_mode)
        assert mode == stat.S_IRUSR | stat.S_IWUSR

    def test_concurrent_first_use_converges(self, tmp_path):
        managers = [IdentityManager(tmp_path) for _ in range(8)]
        results = []
        barrier = threading.Barrier(len(managers))

        def resolve(manager):
            barrier.wait()
            results.append(manager.get_node_identity().value)

        threads = [threading.Thread(target=resolve, args=(m,)) for m in managers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        persisted = IdentityManager(tmp_path).get_node_identity().value
        assert persisted != FALLBACK_NODE_ID
        assert len(results) == len(managers)
        assert all(r == persisted for r in results)

    def test_adopts_identifier_created_concurrently(self, tmp_path, monkeypatch):
        winner = uuid.uuid4()
        original_read = IdentityManager._read
        calls = []

        def read_racing_writer(self):
            # Another process publishes between our check and our write.
            if not calls:
                calls.append(True)
                (tmp_path / IDENTITY_FILE_NAME).write_text(f"{winner}\n")
                return None
            return original_read(self)

        monkeypatch.setattr(IdentityManager, "_read", read_racing_writer)
        node = IdentityManager(tmp_path).get_node_identity()
        assert node.value == winner
        assert not node.is_fallback
        assert (tmp_path / IDENTITY_FILE_NAME).read_text().strip() == str(winner)

    def test_write_never_replaces_published_identifier(self, tmp_path):
        existing = uuid.uuid4()
        (tmp_path / IDENTITY_FILE_NAME).write_text(f"{existing}\n")
        manager = IdentityManager(tmp_path)
        with pytest.raises(FileExistsError):
            manager._write(uuid.uuid4())
        assert manager.identity_path.read_text().strip() == str(existing)
        assert [p.name for p in tmp_path.iterdir()] == [IDENTITY_FILE_NAME]

    def test_concurrent_calls_on_one_manager_agree(self, tmp_path):
        manager = IdentityManager(tmp_path)
        results = []
        threads = [
            threading.Thread(target=lambda: results.append(manager.get_node_identity()))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len({r.value for r in results}) == 1


class TestSessionIdentity:
    def test_is_uuid(self):
        uuid.UUID(new_session_identity())

    def test_unique_per_call(self):
        assert new_session_identity() != new_session_identity()
