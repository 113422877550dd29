"""
文件收集器

遍历应用目录，统计载荷大小，并找出需要原样嵌入（不再压缩）的资源文件。
"""

import fnmatch
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence


@dataclass
class FileInfo:
    """文件信息"""
    path: Path  # 绝对路径
    relative_path: Path  # 相对于应用目录的路径
    size: int  # 文件大小（字节）
    is_directory: bool = False

    def to_dict(self) -> Dict[str, object]:
        return {
            'path': self.relative_path.as_posix(),
            'size': self.size,
            'is_directory': self.is_directory,
        }


class FileCollector:
    """文件收集器

    扫描应用目录并应用排除规则（glob 格式）。
    """

    def __init__(self, exclude_patterns: Optional[List[str]] = None):
        self.excluded_patterns: List[str] = list(exclude_patterns or [])
        self.collected_files: List[FileInfo] = []
        self.total_size: int = 0

    def collect_directory(self, app_dir: Path) -> List[FileInfo]:
        """收集目录下的全部文件

        Raises:
            FileNotFoundError: 目录不存在
            ValueError: 路径不是目录
        """
        if not app_dir.exists():
            raise FileNotFoundError(f"应用目录不存在: {app_dir}")
        if not app_dir.is_dir():
            raise ValueError(f"应用路径不是目录: {app_dir}")

        self.collected_files = []
        self.total_size = 0
        for item in self._walk_directory(app_dir):
            relative_path = item.relative_to(app_dir)
            if self._is_excluded(relative_path):
                continue
            file_info = self._create_file_info(item, relative_path)
            if file_info is None:
                continue
            self.collected_files.append(file_info)
            if not file_info.is_directory:
                self.total_size += file_info.size

        # 按相对路径排序，确保输出一致性
        self.collected_files.sort(key=lambda x: x.relative_path.as_posix())
        return self.collected_files

    def get_statistics(self) -> Dict[str, object]:
        """获取收集统计信息"""
        return {
            'total_files': sum(1 for f in self.collected_files if not f.is_directory),
            'total_directories': sum(1 for f in self.collected_files if f.is_directory),
            'total_size': self.total_size,
        }

    def filter_files_only(self) -> List[FileInfo]:
        return [f for f in self.collected_files if not f.is_directory]

    def _walk_directory(self, directory: Path) -> Iterator[Path]:
        """递归遍历目录（不包含目录本身）"""
        try:
            children = sorted(directory.iterdir())
        except OSError:
            # 忽略无权限访问的目录
            return
        for item in children:
            yield item
            if item.is_dir() and not item.is_symlink():
                yield from self._walk_directory(item)

    def _create_file_info(self, file_path: Path, relative_path: Path) -> Optional[FileInfo]:
        try:
            stat = file_path.stat()
        except OSError:
            # 忽略损坏的符号链接
            return None
        is_directory = file_path.is_dir()
        return FileInfo(
            path=file_path.resolve(),
            relative_path=relative_path,
            size=0 if is_directory else stat.st_size,
            is_directory=is_directory,
        )

    def _is_excluded(self, relative_path: Path) -> bool:
        if not self.excluded_patterns:
            return False
        path_str = relative_path.as_posix()
        return any(self._match_pattern(path_str, p.replace('\\', '/')) for p in self.excluded_patterns)

    def _match_pattern(self, path: str, pattern: str) -> bool:
        if fnmatch.fnmatch(path, pattern):
            return True

        # 目录模式（以 / 结尾）匹配目录本身及其内容
        if pattern.endswith('/'):
            dir_pattern = pattern.rstrip('/')
            if fnmatch.fnmatch(path, dir_pattern) or path.startswith(dir_pattern + '/'):
                return True

        if pattern.startswith('*.') and path.endswith(pattern[1:]):
            return True

        # 不含分隔符的模式匹配任意一级路径片段
        if '/' not in pattern:
            return any(fnmatch.fnmatch(part, pattern) for part in path.split('/'))
        return False


def directory_size(app_dir: Path) -> int:
    """目录内全部文件的字节数"""
    collector = FileCollector()
    collector.collect_directory(app_dir)
    return collector.total_size


def find_files_with_extensions(
    root: Path,
    extensions: Sequence[str],
    skip_dirs: Sequence[str] = ("node_modules",),
) -> List[FileInfo]:
    """查找指定扩展名的文件，跳过 skip_dirs 中的目录

    Returns:
        List[FileInfo]: 按相对路径排序；root 不存在时返回空列表
    """
    if not root.is_dir():
        return []

    wanted = {ext.lower() for ext in extensions}
    collector = FileCollector(list(skip_dirs))
    return [
        f for f in collector.collect_directory(root)
        if not f.is_directory and f.path.suffix.lower() in wanted
    ]
