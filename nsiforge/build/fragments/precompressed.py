"""
预压缩资源片段

视频等本身已压缩的资源不进入 7z 载荷，而是由 customFiles_<arch> 宏直接嵌入安装器。
"""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from ...config.schema import Arch, NsisInstallerOptions
from ..collector import find_files_with_extensions
from ..script_generator import ScriptGenerator

if TYPE_CHECKING:
    from .base import FragmentContext


def pre_compressed_extensions(ctx: 'FragmentContext') -> Sequence[str]:
    installer = ctx.config.installer
    if not isinstance(installer, NsisInstallerOptions):
        return ()
    return installer.pre_compressed_file_extensions or ()


async def pre_compressed_fragment(
    arch: Arch, app_dir: Path, extensions: Sequence[str]
) -> ScriptGenerator:
    """单个架构 resources 目录下的预压缩资源（跳过 node_modules）"""
    generator = ScriptGenerator()
    resources_dir = app_dir / "resources"
    assets = await asyncio.to_thread(find_files_with_extensions, resources_dir, extensions)
    if not assets:
        return generator

    body = ScriptGenerator()
    for asset in assets:
        relative = Path("resources") / asset.relative_path
        body.file("$INSTDIR\\" + "\\".join(relative.parts), asset.path)
    generator.macro(f"customFiles_{arch.value}", body)
    return generator
