"""
载荷归档器

把单个架构的应用目录打包成 7z 或 zip 归档，作为安装器内嵌（或 Web 安装器下载）的载荷。
- SevenZipArchiver：调用外部 7za
- ZipArchiver：标准库 zipfile，在进程内完成
"""

import asyncio
import re
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence

from ..config.schema import BuildConfig, CompressionLevel
from ..utils.logging import LogStage, debug, warning
from .build_context import ExternalProcessError
from .collector import FileCollector
from .process import ProcessRunner, run_checked

# 7za l 输出的最后一行：<总大小> <压缩后大小> <文件数> files
_LISTING_TOTAL = re.compile(r'(\d+)\s+\d+\s+\d+\s+files')

_SEVEN_ZIP_LEVELS = {
    CompressionLevel.STORE: 0,
    CompressionLevel.NORMAL: 7,
    CompressionLevel.MAXIMUM: 9,
}


class ArchiveError(ExternalProcessError):
    """打包失败"""
    pass


def parse_listing_total(output: str) -> Optional[int]:
    """从归档列表输出中解析解压后总字节数，无法解析时返回 None"""
    match = _LISTING_TOTAL.search(output)
    if match is None:
        return None
    return int(match.group(1))


class Archiver(ABC):
    """归档器抽象基类"""

    format: str = ""

    @property
    def extension(self) -> str:
        return self.format

    @abstractmethod
    async def archive(
        self,
        source_dir: Path,
        output_file: Path,
        compression: CompressionLevel,
        exclude_extensions: Sequence[str] = (),
        differential: bool = False,
    ) -> None:
        """打包目录

        Args:
            source_dir: 应用目录
            output_file: 输出归档
            compression: 压缩级别
            exclude_extensions: 不进入归档的扩展名（由安装器脚本单独嵌入）
            differential: 是否为差分更新优化（非固实压缩）

        Raises:
            ArchiveError: 打包失败
        """

    @abstractmethod
    async def list_unpacked_size(self, archive_file: Path) -> Optional[int]:
        """归档内全部条目解压后的字节数；仅用于估算，失败返回 None"""


class SevenZipArchiver(Archiver):
    """调用 7za 的归档器"""

    format = "7z"

    def __init__(self, runner: ProcessRunner, executable: str = "7za"):
        self.runner = runner
        self.executable = executable

    def build_arguments(
        self,
        output_file: Path,
        compression: CompressionLevel,
        exclude_extensions: Sequence[str] = (),
        differential: bool = False,
    ) -> List[str]:
        args = [self.executable, "a", "-bd", f"-mx={_SEVEN_ZIP_LEVELS[compression]}"]
        if differential:
            # 非固实压缩，块映射才能定位到单个文件的变化
            args.append("-ms=off")
        args.extend(["-mtm=off", "-mtc=off", "-mta=off"])
        for ext in exclude_extensions:
            args.append(f"-xr!*{ext}")
        args.extend([str(output_file), "."])
        return args

    async def archive(
        self,
        source_dir: Path,
        output_file: Path,
        compression: CompressionLevel,
        exclude_extensions: Sequence[str] = (),
        differential: bool = False,
    ) -> None:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        if output_file.exists():
            output_file.unlink()
        command = self.build_arguments(output_file, compression, exclude_extensions, differential)
        await run_checked(self.runner, command, f"打包失败: {source_dir}", ArchiveError, cwd=source_dir)

    async def list_unpacked_size(self, archive_file: Path) -> Optional[int]:
        try:
            result = await self.runner.run([self.executable, "l", str(archive_file)])
        except OSError as e:
            warning(f"无法列出归档内容 {archive_file.name}: {e}", stage=LogStage.SYMBOLS)
            return None
        if result.returncode != 0:
            warning(f"无法列出归档内容 {archive_file.name}（退出码 {result.returncode}）", stage=LogStage.SYMBOLS)
            return None
        total = parse_listing_total(result.stdout)
        if total is None:
            debug(f"无法解析归档列表输出: {archive_file.name}")
        return total


class ZipArchiver(Archiver):
    """标准库 zipfile 归档器"""

    format = "zip"

    def _write(
        self,
        source_dir: Path,
        output_file: Path,
        compression: CompressionLevel,
        exclude_extensions: Sequence[str],
    ) -> None:
        output_file.parent.mkdir(parents=True, exist_ok=True)
        method = zipfile.ZIP_STORED if compression is CompressionLevel.STORE else zipfile.ZIP_DEFLATED
        level = 9 if compression is CompressionLevel.MAXIMUM else 6
        excluded = {ext.lower() for ext in exclude_extensions}

        collector = FileCollector()
        try:
            with zipfile.ZipFile(output_file, 'w', method, compresslevel=level) as zf:
                for file_info in collector.collect_directory(source_dir):
                    archive_path = file_info.relative_path.as_posix()
                    if file_info.is_directory:
                        zf.writestr(zipfile.ZipInfo(archive_path + '/'), '')
                    elif file_info.path.suffix.lower() not in excluded:
                        zf.write(file_info.path, archive_path)
        except OSError as e:
            raise ArchiveError(f"Zip 打包失败 {source_dir}: {e}") from e

    async def archive(
        self,
        source_dir: Path,
        output_file: Path,
        compression: CompressionLevel,
        exclude_extensions: Sequence[str] = (),
        differential: bool = False,
    ) -> None:
        await asyncio.to_thread(self._write, source_dir, output_file, compression, exclude_extensions)

    async def list_unpacked_size(self, archive_file: Path) -> Optional[int]:
        def total() -> Optional[int]:
            try:
                with zipfile.ZipFile(archive_file) as zf:
                    return sum(info.file_size for info in zf.infolist())
            except (OSError, zipfile.BadZipFile):
                return None

        return await asyncio.to_thread(total)


class ArchiverFactory:
    """归档器工厂"""

    @staticmethod
    def create_archiver(config: BuildConfig, runner: ProcessRunner) -> Archiver:
        if config.installer.use_zip:
            return ZipArchiver()
        return SevenZipArchiver(runner, config.tools.seven_zip)
