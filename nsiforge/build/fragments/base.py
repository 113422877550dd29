"""
片段提供者的公共输入

每个提供者都是 (配置, 语言集合, 资源查找) → ScriptGenerator 片段的纯函数，
互不共享可变状态，由组合器在汇合后按固定顺序合并。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from ...config.schema import Arch, BuildConfig
from ..resources import ResourceLocator
from ..script_generator import ANSI_PLUGIN_ARCH, UNICODE_PLUGIN_ARCH
from .lang import LangConfigurator


@dataclass
class FragmentContext:
    config: BuildConfig
    locator: ResourceLocator
    lang: LangConfigurator
    templates_dir: Path
    # 渲染后的消息目录等临时 include 文件写到这里
    temp_dir: Path
    nsis_resources_dir: Optional[Path] = None
    archs: Dict[Arch, Path] = field(default_factory=dict)

    @property
    def include_dir(self) -> Path:
        return self.templates_dir / "include"

    @property
    def plugin_arch(self) -> str:
        return UNICODE_PLUGIN_ARCH if self.config.installer.unicode else ANSI_PLUGIN_ARCH
