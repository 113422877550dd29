"""
构建资源查找

自定义资源（图标、位图、许可协议、include 脚本等）先在构建资源目录中查找，
再在项目目录中查找。未配置时按约定文件名在构建资源目录中查找。
"""

import asyncio
from pathlib import Path
from typing import List, Optional, Tuple

from ..config.schema import BuildConfig
from .build_context import InvalidConfigurationError


# 显式配置后由 ResourceLocator 查找的资源选项
_INSTALLER_RESOURCE_OPTIONS = (
    "installer_icon",
    "uninstaller_icon",
    "installer_header_icon",
    "installer_header",
    "installer_sidebar",
    "uninstaller_sidebar",
    "include",
    "script",
    "license",
)


class ResourceLocator:
    """构建资源定位器"""

    def __init__(self, config: BuildConfig):
        self.config = config

    @property
    def build_resources_dir(self) -> Path:
        return self.config.resources_dir

    def _find(self, custom: Optional[str], default_name: Optional[str]) -> Optional[Path]:
        if custom:
            candidate = Path(custom)
            if candidate.is_absolute():
                if candidate.exists():
                    return candidate
            else:
                for base in (self.build_resources_dir, self.config.project_dir):
                    resolved = base / candidate
                    if resolved.exists():
                        return resolved
            raise InvalidConfigurationError(f"找不到配置的资源文件: {custom}")

        if default_name:
            resolved = self.build_resources_dir / default_name
            if resolved.exists():
                return resolved
        return None

    async def get_resource(self, custom: Optional[str], default_name: Optional[str] = None) -> Optional[Path]:
        """查找资源文件

        Args:
            custom: 配置中指定的资源（可为相对路径）
            default_name: 未配置时在构建资源目录中查找的约定文件名

        Returns:
            Optional[Path]: 资源路径；未配置且约定文件不存在时为 None

        Raises:
            InvalidConfigurationError: 显式配置的资源不存在
        """
        return await asyncio.to_thread(self._find, custom, default_name)

    async def get_icon_path(self) -> Optional[Path]:
        """应用图标，未配置时使用构建资源目录中的 icon.ico"""
        return await self.get_resource(self.config.app.icon, "icon.ico")

    async def is_directory(self, path: Path) -> bool:
        return await asyncio.to_thread(path.is_dir)

    def configured_resources(self) -> List[Tuple[str, str]]:
        """显式配置的资源，(选项名, 配置值)"""
        resources = []
        if self.config.app.icon:
            resources.append(("app.icon", self.config.app.icon))
        if not self.config.is_portable:
            for option in _INSTALLER_RESOURCE_OPTIONS:
                value = getattr(self.config.installer, option, None)
                if value:
                    resources.append((f"installer.{option}", value))
        return resources

    def missing_resources(self) -> List[str]:
        """检查显式配置的资源是否存在，返回以选项名开头的错误信息"""
        errors = []
        for option, value in self.configured_resources():
            try:
                self._find(value, None)
            except InvalidConfigurationError as e:
                errors.append(f"{option}: {e}")
        return errors
