"""
差分更新协调

根据安装器类型生成更新元数据：
- 独立安装器：在编译、签名完成后计算安装器本身的块映射
- Web 安装器：应用包在打包时已附带块映射，这里只生成 架构 → 应用包 的清单
"""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..config.schema import BuildConfig, NsisInstallerOptions
from ..utils.logging import LogStage, debug
from .blockmap import create_blockmap
from .build_context import ArtifactDescriptor


def is_differential_aware(config: BuildConfig) -> bool:
    """独立安装器是否需要块映射"""
    installer = config.installer
    return isinstance(installer, NsisInstallerOptions) and installer.differential_package


def is_admin_rights_required(config: BuildConfig) -> bool:
    """所有用户安装且（一键模式或打包了提权辅助程序）时，更新前需要管理员权限"""
    installer = config.installer
    if not isinstance(installer, NsisInstallerOptions) or not installer.per_machine:
        return False
    return installer.is_one_click or installer.pack_elevate_helper


def create_web_update_info(package_files: Mapping[str, ArtifactDescriptor]) -> Optional[Dict[str, Any]]:
    """Web 安装器的应用包清单，下载时由安装器查阅"""
    if not package_files:
        return None
    packages: Dict[str, Any] = {}
    for arch, file_info in package_files.items():
        file_name = Path(file_info.path).name
        entry = file_info.to_dict()
        entry['path'] = file_name
        entry['file'] = file_name
        packages[arch] = entry
    return {'packages': packages}


class DifferentialUpdateCoordinator:
    """按安装器类型选择差分更新数据的生成方式"""

    def __init__(self, config: BuildConfig):
        self.config = config

    async def create_update_info(
        self,
        installer_path: Path,
        package_files: Mapping[str, ArtifactDescriptor],
    ) -> Optional[Dict[str, Any]]:
        update_info: Optional[Dict[str, Any]] = None
        if self.config.is_web_installer:
            update_info = create_web_update_info(package_files)
        elif is_differential_aware(self.config):
            descriptor = await create_blockmap(installer_path)
            update_info = {
                'size': descriptor.size,
                'sha512': descriptor.sha512,
                'blockMapSize': descriptor.block_map_size,
            }
            debug(f"已生成块映射: {installer_path.name}.blockmap", stage=LogStage.UPDATE)

        if update_info is not None and is_admin_rights_required(self.config):
            update_info['isAdminRightsRequired'] = True
        return update_info
