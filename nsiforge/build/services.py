"""
构建协作者集合

编排器为每个 target 创建一份，通过 BuildContext 交给各构建步骤。
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..config.schema import BuildConfig
from .archive import Archiver
from .compiler import MakensisCompiler
from .differential import DifferentialUpdateCoordinator
from .events import ArtifactEventSink
from .package_helper import AppPackageHelper, PayloadPacker
from .process import ProcessRunner
from .resources import ResourceLocator
from .signing import Signer
from .symbol_builder import SymbolTableBuilder
from .symbols import SymbolTable
from .tasks import CancellationToken
from .uninstaller import UninstallerSubBuild

# 接收完整符号表；返回 True 表示到此为止，不再编译
EffectiveOptionsHook = Callable[[SymbolTable], Awaitable[bool]]


@dataclass
class BuildServices:
    config: BuildConfig
    target_name: str
    out_dir: Path
    templates_dir: Path
    temp_dir: Path
    runner: ProcessRunner
    archiver: Archiver
    packer: PayloadPacker
    package_helper: AppPackageHelper
    locator: ResourceLocator
    compiler: MakensisCompiler
    signer: Signer
    symbol_builder: SymbolTableBuilder
    uninstaller: UninstallerSubBuild
    differential: DifferentialUpdateCoordinator
    events: ArtifactEventSink
    cancellation_token: CancellationToken
    debug_logging: bool = False
    effective_options_hook: Optional[EffectiveOptionsHook] = None
