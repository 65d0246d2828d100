"""
Tests for filesystem path safety and the directory drive
"""

import asyncio
import pytest
import tempfile
import shutil
from pathlib import Path

from drivedav.fs import safe_join, DirectoryDrive, PathTraversalError, FileSystemError


class TestPathSafety:
    """Test path safety functions"""

    def setup_method(self):
        """Setup test environment"""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.root_path = self.temp_dir / "root"
        self.root_path.mkdir(parents=True)

        (self.root_path / "folder1").mkdir()
        (self.root_path / "folder1" / "subfolder").mkdir()
        (self.root_path / "test.txt").write_text("test content")

    def teardown_method(self):
        """Cleanup test environment"""
        if self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)

    def test_safe_join_normal_paths(self):
        """Test safe_join with normal paths"""

        result = safe_join(self.root_path, "test.txt")
        assert result == (self.root_path / "test.txt").resolve()

        result = safe_join(self.root_path, "folder1/subfolder/file.txt")
        assert result == (self.root_path / "folder1" / "subfolder" / "file.txt").resolve()

        # Leading slash should be handled
        result = safe_join(self.root_path, "/folder1/test.txt")
        assert result == (self.root_path / "folder1" / "test.txt").resolve()

    def test_safe_join_path_traversal_attempts(self):
        """Test safe_join blocks path traversal attempts"""

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "../outside.txt")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1/../../../outside.txt")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "folder1\\..\\..\\outside.txt")

    def test_percent_sequences_are_literal(self):
        """Keys arrive decoded; a second decode must not happen here"""

        result = safe_join(self.root_path, "folder1%2F..%2F..%2Foutside.txt")
        assert result == (self.root_path / "folder1%2F..%2F..%2Foutside.txt").resolve()

    def test_safe_join_edge_cases(self):
        """Test safe_join edge cases"""

        assert safe_join(self.root_path, "") == self.root_path.resolve()
        assert safe_join(self.root_path, "/") == self.root_path.resolve()
        assert safe_join(self.root_path, ".") == self.root_path.resolve()

        result = safe_join(self.root_path, "//folder1///subfolder//file.txt")
        assert result == (self.root_path / "folder1" / "subfolder" / "file.txt").resolve()

    def test_safe_join_special_characters(self):
        """Test safe_join with special characters"""

        result = safe_join(self.root_path, "folder with spaces/file name.txt")
        assert result == (self.root_path / "folder with spaces" / "file name.txt").resolve()

        result = safe_join(self.root_path, "测试文件夹/测试文件.txt")
        assert result == (self.root_path / "测试文件夹" / "测试文件.txt").resolve()

    def test_safe_join_symlink_attacks(self):
        """Test safe_join handles symlink attacks (if supported by OS)"""

        try:
            outside_dir = self.temp_dir / "outside"
            outside_dir.mkdir()
            (outside_dir / "secret.txt").write_text("secret data")

            symlink_path = self.root_path / "symlink"
            symlink_path.symlink_to(outside_dir)
        except OSError:
            pytest.skip("Symlinks not supported on this system")

        with pytest.raises(PathTraversalError):
            safe_join(self.root_path, "symlink/secret.txt")


async def _collect(stream):
    return b"".join([chunk async for chunk in stream])


async def _list(drive, prefix):
    return [key async for key in drive.list(prefix)]


class TestDirectoryDrive:
    """Directory backend against a temporary tree"""

    def test_write_stream_publishes_on_close(self, tmp_path):
        drive = DirectoryDrive(str(tmp_path))

        async def scenario():
            stream = await drive.create_write_stream("docs/a.txt")
            await stream.write(b"hello")
            # Nothing visible until the stream is closed
            assert await drive.get("docs/a.txt") is None
            await stream.close()
            return await drive.get("docs/a.txt")

        assert asyncio.run(scenario()) == b"hello"
        assert (tmp_path / "docs" / "a.txt").read_bytes() == b"hello"

    def test_abort_leaves_no_file(self, tmp_path):
        drive = DirectoryDrive(str(tmp_path))

        async def scenario():
            stream = await drive.create_write_stream("a.txt")
            await stream.write(b"partial")
            await stream.abort()

        asyncio.run(scenario())
        assert list(tmp_path.iterdir()) == []

    def test_stat_and_list(self, tmp_path):
        (tmp_path / "docs").mkdir()
        (tmp_path / "docs" / "a.txt").write_bytes(b"12345")
        (tmp_path / "docs" / ".b.txt.abc.part").write_bytes(b"in flight")
        (tmp_path / "top.bin").write_bytes(b"x")
        drive = DirectoryDrive(str(tmp_path))

        stat = asyncio.run(drive.stat("docs/a.txt"))
        assert stat.is_collection is False
        assert stat.size == 5
        assert stat.last_modified > 0

        assert asyncio.run(drive.stat("docs")).is_collection is True
        assert asyncio.run(drive.stat("missing")) is None

        assert asyncio.run(_list(drive, "")) == ["docs", "top.bin"]
        assert asyncio.run(_list(drive, "docs")) == ["docs/a.txt"]
        assert asyncio.run(_list(drive, "top.bin")) == []

    def test_ranged_read(self, tmp_path):
        (tmp_path / "data.bin").write_bytes(bytes(range(10)))
        drive = DirectoryDrive(str(tmp_path))

        assert asyncio.run(_collect(drive.open_read_stream("data.bin", start=2, end=5))) == bytes([2, 3, 4, 5])
        assert asyncio.run(_collect(drive.open_read_stream("data.bin"))) == bytes(range(10))

    def test_read_directory_fails(self, tmp_path):
        (tmp_path / "docs").mkdir()
        drive = DirectoryDrive(str(tmp_path))

        with pytest.raises(FileSystemError):
            asyncio.run(_collect(drive.open_read_stream("docs")))

    def test_delete(self, tmp_path):
        (tmp_path / "full").mkdir()
        (tmp_path / "full" / "keep.txt").write_bytes(b"k")
        (tmp_path / "empty").mkdir()
        (tmp_path / "gone.txt").write_bytes(b"g")
        drive = DirectoryDrive(str(tmp_path))

        asyncio.run(drive.delete("gone.txt"))
        asyncio.run(drive.delete("empty"))
        asyncio.run(drive.delete("full"))
        asyncio.run(drive.delete("never-existed.txt"))

        assert not (tmp_path / "gone.txt").exists()
        assert not (tmp_path / "empty").exists()
        assert (tmp_path / "full" / "keep.txt").exists()

    def test_root_is_not_writable(self, tmp_path):
        drive = DirectoryDrive(str(tmp_path))

        with pytest.raises(FileSystemError):
            asyncio.run(drive.create_write_stream(""))
