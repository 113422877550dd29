"""
构建上下文模块

定义构建过程中的共享数据结构和异常类。
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

from ..config.schema import Arch, BuildConfig

if TYPE_CHECKING:
    from .fragments.composer import ScriptComposer
    from .services import BuildServices
    from .symbols import SymbolTable
    from .uninstaller import UninstallerArtifact

# 进度回调类型
ProgressCallback = Callable[[str, int, int, str], None]


class BuildError(Exception):
    """构建错误"""
    pass


class InvalidConfigurationError(BuildError):
    """配置组合不合法，在启动任何外部进程之前报告"""
    pass


class BuildCancelledError(BuildError):
    """构建已被取消"""
    pass


class ExternalProcessError(BuildError):
    """外部进程失败，携带完整的命令输出"""

    def __init__(self, message: str, command: Optional[List[str]] = None,
                 exit_code: Optional[int] = None, output: str = ""):
        details = message
        if exit_code is not None:
            details += f" (退出码 {exit_code})"
        if output:
            details += f"\n{output}"
        super().__init__(details)
        self.command = command or []
        self.exit_code = exit_code
        self.output = output


class CompilerError(ExternalProcessError):
    """makensis 编译失败"""
    pass


class SigningError(ExternalProcessError):
    """签名失败"""
    pass


class OutputFileBusyError(BuildError):
    """输出文件持续被其他进程占用（例如杀毒软件）"""
    pass


@dataclass(frozen=True)
class ArtifactDescriptor:
    """产物描述：路径、大小和内容哈希（sha512，base64 编码）"""
    path: Path
    size: int
    sha512: str
    block_map_size: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            'path': str(self.path),
            'size': self.size,
            'sha512': self.sha512,
        }
        if self.block_map_size is not None:
            data['blockMapSize'] = self.block_map_size
        return data


@dataclass(frozen=True)
class PackedPayload:
    """单个架构打包后的载荷"""
    arch: Arch
    file_info: ArtifactDescriptor
    unpacked_size: int


@dataclass
class BuildUnit:
    """一次编译对应的一个安装器产物及其架构范围"""
    archs: Dict[Arch, Path]
    is_universal: bool = False

    @property
    def primary_arch(self) -> Optional[Arch]:
        """只包含一个架构时返回该架构"""
        if len(self.archs) == 1:
            return next(iter(self.archs))
        return None

    @property
    def arch_names(self) -> str:
        return ", ".join(arch.value for arch in self.archs)


@dataclass
class BuildContext:
    """构建上下文，包含单个 BuildUnit 构建过程中的共享数据"""
    config: BuildConfig
    unit: BuildUnit
    installer_path: Path
    installer_filename: str
    services: Optional['BuildServices'] = None
    progress_callback: Optional[ProgressCallback] = None
    safe_artifact_name: Optional[str] = None

    # 构建过程中生成的数据
    composer: Optional['ScriptComposer'] = None
    custom_script: bool = False
    payloads: Dict[Arch, PackedPayload] = field(default_factory=dict)
    package_files: Dict[str, ArtifactDescriptor] = field(default_factory=dict)
    estimated_size: Optional[int] = None
    symbols: Optional['SymbolTable'] = None
    uninstaller_symbols: Optional['SymbolTable'] = None
    template_script: Optional[str] = None
    shared_header: Optional[str] = None
    installer_script: Optional[str] = None
    uninstaller: Optional['UninstallerArtifact'] = None
    # 卸载器存根输出到 installer_path，主安装器编译成功前该文件不是有效产物
    stub_at_installer_path: bool = False
    update_info: Optional[Dict[str, Any]] = None
    # 有效选项回调要求停止时置位，后续步骤全部跳过
    stopped: bool = False

    build_stats: Dict[str, Any] = field(default_factory=lambda: {
        'start_time': 0,
        'end_time': 0,
        'compiler_invocations': 0,
        'installer_size': 0,
    })

    def report_progress(self, stage: str, percent: int, message: str = "") -> None:
        if self.progress_callback:
            self.progress_callback(stage, percent, 100, message)
