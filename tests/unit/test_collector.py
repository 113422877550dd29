"""
文件收集器单元测试

测试目录遍历、排除规则、大小统计等核心功能。
"""

from pathlib import Path

import pytest

from nsiforge.build.collector import FileCollector, FileInfo, directory_size, find_files_with_extensions


@pytest.fixture
def app_dir(tmp_path):
    """包含子目录的应用目录"""
    root = tmp_path / "app"
    (root / "subdir").mkdir(parents=True)
    (root / "file1.txt").write_text("content1")
    (root / "file2.txt").write_text("content2")
    (root / "subdir" / "file3.txt").write_text("content3")
    return root


class TestFileInfo:
    """FileInfo 测试"""

    def test_file_info_to_dict(self):
        """测试 FileInfo 转字典"""
        file_info = FileInfo(
            path=Path("C:/test/sub/file.txt"),
            relative_path=Path("sub/file.txt"),
            size=1024,
        )

        data = file_info.to_dict()
        assert data["path"] == "sub/file.txt"
        assert data["size"] == 1024
        assert data["is_directory"] is False


class TestFileCollector:
    """FileCollector 测试"""

    def test_init(self):
        """测试初始化"""
        collector = FileCollector()
        assert collector.collected_files == []
        assert collector.excluded_patterns == []
        assert collector.total_size == 0

    def test_collect_directory(self, app_dir):
        """测试收集目录"""
        collector = FileCollector()
        files = collector.collect_directory(app_dir)

        file_infos = [f for f in files if not f.is_directory]
        dir_infos = [f for f in files if f.is_directory]
        assert {f.relative_path.as_posix() for f in file_infos} == {
            "file1.txt", "file2.txt", "subdir/file3.txt",
        }
        assert [f.relative_path.name for f in dir_infos] == ["subdir"]

    def test_sorted_output(self, app_dir):
        """测试按相对路径排序"""
        files = FileCollector().collect_directory(app_dir)
        paths = [f.relative_path.as_posix() for f in files]
        assert paths == sorted(paths)

    def test_exclude_patterns(self, app_dir):
        """测试排除模式"""
        (app_dir / "debug.log").write_text("log")
        (app_dir / "temp.tmp").write_text("tmp")

        collector = FileCollector(["*.log", "*.tmp"])
        names = {f.relative_path.name for f in collector.collect_directory(app_dir)}

        assert "debug.log" not in names
        assert "temp.tmp" not in names
        assert "file1.txt" in names

    def test_exclude_directory(self, app_dir):
        """测试排除目录"""
        collector = FileCollector(["subdir/"])
        collector.collect_directory(app_dir)
        files = collector.filter_files_only()
        assert {f.relative_path.as_posix() for f in files} == {"file1.txt", "file2.txt"}

    def test_nonexistent_directory(self, tmp_path):
        """测试不存在的目录"""
        with pytest.raises(FileNotFoundError):
            FileCollector().collect_directory(tmp_path / "missing")

    def test_path_is_file(self, tmp_path):
        """测试路径不是目录"""
        path = tmp_path / "file.txt"
        path.write_text("x")
        with pytest.raises(ValueError):
            FileCollector().collect_directory(path)

    def test_get_statistics(self, app_dir):
        """测试获取统计信息"""
        collector = FileCollector()
        collector.collect_directory(app_dir)

        stats = collector.get_statistics()
        assert stats["total_files"] == 3
        assert stats["total_directories"] == 1
        assert stats["total_size"] == len("content1") * 3

    def test_is_excluded_no_patterns(self):
        """测试无排除模式"""
        assert not FileCollector()._is_excluded(Path("file.txt"))

    def test_match_pattern_glob(self):
        """测试 glob 模式匹配"""
        collector = FileCollector()

        assert collector._match_pattern("file.txt", "*.txt")
        assert collector._match_pattern("deep/dir/file.txt", "*.txt")
        assert not collector._match_pattern("file.log", "*.txt")

    def test_match_pattern_directory(self):
        """测试目录模式匹配"""
        collector = FileCollector()

        assert collector._match_pattern("temp/file.txt", "temp/")
        assert collector._match_pattern("temp/sub/file.txt", "temp/")
        assert not collector._match_pattern("other/file.txt", "temp/")

    def test_match_pattern_path_segments(self):
        """测试路径段匹配"""
        collector = FileCollector()

        assert collector._match_pattern("a/node_modules/b.js", "node_modules")
        assert collector._match_pattern("src/test/file.txt", "src/*/file.txt")
        assert not collector._match_pattern("src/main/file.txt", "src/test/file.txt")

    def test_create_file_info_nonexistent(self, tmp_path):
        """测试不存在文件返回 None"""
        file_info = FileCollector()._create_file_info(tmp_path / "none.txt", Path("none.txt"))
        assert file_info is None


class TestGlobalFunctions:
    """模块级函数测试"""

    def test_directory_size(self, app_dir):
        """测试目录大小"""
        assert directory_size(app_dir) == len("content1") * 3

    def test_find_files_with_extensions(self, app_dir):
        """测试按扩展名查找并跳过 node_modules"""
        (app_dir / "pack.ASAR").write_text("a")
        (app_dir / "node_modules").mkdir()
        (app_dir / "node_modules" / "inner.asar").write_text("b")

        found = find_files_with_extensions(app_dir, [".asar"])
        assert [f.relative_path.as_posix() for f in found] == ["pack.ASAR"]

    def test_find_files_missing_root(self, tmp_path):
        """测试根目录不存在时返回空列表"""
        assert find_files_with_extensions(tmp_path / "missing", [".asar"]) == []
