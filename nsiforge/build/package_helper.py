"""
应用包打包

- PayloadPacker：把单个架构的应用目录打包成载荷归档（Web 安装器额外追加块映射）
- AppPackageHelper：按架构缓存打包结果，多个 BuildUnit（通用 + 按架构）共用同一份归档；
  引用计数归零时删除不需要保留的归档
"""

import asyncio
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from ..config.schema import Arch, BuildConfig, NsisInstallerOptions
from ..utils.logging import LogStage, debug, info, warning
from .archive import Archiver
from .blockmap import append_blockmap
from .build_context import ArtifactDescriptor, PackedPayload
from .collector import directory_size
from .differential import is_differential_aware
from .hashing import create_package_file_info

ELEVATE_HELPER_NAME = "elevate.exe"


class PayloadPacker:
    """单个 target 的载荷打包规则"""

    def __init__(self, config: BuildConfig, archiver: Archiver, out_dir: Path):
        self.config = config
        self.archiver = archiver
        self.out_dir = out_dir

    def archive_file(self, arch: Arch) -> Path:
        app = self.config.app
        return self.out_dir / f"{app.sanitized_name}-{app.version}-{arch.value}.nsis.{self.archiver.extension}"

    def exclude_extensions(self) -> List[str]:
        installer = self.config.installer
        if self.config.is_web_installer or not isinstance(installer, NsisInstallerOptions):
            return []
        return list(installer.pre_compressed_file_extensions or [])

    @property
    def keep_archives(self) -> bool:
        """Web 安装器的应用包本身就是发布产物"""
        return self.config.is_web_installer

    async def build_app_package(self, app_dir: Path, arch: Arch) -> ArtifactDescriptor:
        differential = is_differential_aware(self.config)
        archive_file = self.archive_file(arch)
        info(f"打包 {arch.value} 载荷: {archive_file.name}", stage=LogStage.PACK)
        await self.archiver.archive(
            app_dir,
            archive_file,
            self.config.compression,
            self.exclude_extensions(),
            differential=differential,
        )
        if differential and self.config.is_web_installer:
            return await append_blockmap(archive_file)
        return await create_package_file_info(archive_file)


class AppPackageHelper:
    """按架构缓存载荷打包结果"""

    def __init__(self, nsis_resources_dir: Optional[Path] = None):
        self.nsis_resources_dir = nsis_resources_dir
        self.ref_count = 0
        self._arch_to_payload: Dict[Arch, 'asyncio.Future[PackedPayload]'] = {}
        self._to_delete: List[Path] = []

    def retain(self) -> None:
        self.ref_count += 1

    async def pack_arch(self, arch: Arch, app_dir: Path, packer: PayloadPacker) -> PackedPayload:
        future = self._arch_to_payload.get(arch)
        if future is None:
            future = asyncio.ensure_future(self._pack(arch, app_dir, packer))
            self._arch_to_payload[arch] = future
        return await future

    async def _pack(self, arch: Arch, app_dir: Path, packer: PayloadPacker) -> PackedPayload:
        await self.copy_elevate_helper(app_dir, packer.config)
        unpacked_size = await asyncio.to_thread(directory_size, app_dir)
        file_info = await packer.build_app_package(app_dir, arch)
        if not packer.keep_archives:
            self._to_delete.append(Path(file_info.path))
        return PackedPayload(arch=arch, file_info=file_info, unpacked_size=unpacked_size)

    def should_pack_elevate_helper(self, config: BuildConfig) -> bool:
        installer = config.installer
        pack = getattr(installer, "pack_elevate_helper", True)
        if not pack and getattr(installer, "per_machine", False):
            warning("per_machine 为 true 时 pack_elevate_helper: false 被忽略", stage=LogStage.PACK)
            return True
        return pack

    async def copy_elevate_helper(self, app_dir: Path, config: BuildConfig) -> None:
        if not self.should_pack_elevate_helper(config):
            return
        if self.nsis_resources_dir is None:
            debug("未配置 nsis_resources_dir，跳过 elevate.exe", stage=LogStage.PACK)
            return
        source = self.nsis_resources_dir / ELEVATE_HELPER_NAME
        target = app_dir / "resources" / ELEVATE_HELPER_NAME
        if not source.exists():
            warning(f"找不到 {source}，跳过提权辅助程序", stage=LogStage.PACK)
            return

        def copy() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)

        await asyncio.to_thread(copy)

    async def finish_build(self) -> None:
        """引用计数归零时删除临时归档"""
        self.ref_count -= 1
        if self.ref_count > 0:
            return
        files, self._to_delete = self._to_delete, []
        for file_path in files:
            try:
                file_path.unlink()
                debug(f"已删除临时归档: {file_path.name}", stage=LogStage.DONE)
            except FileNotFoundError:
                pass
