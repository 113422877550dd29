"""
卸载器子构建

NSIS 只能在运行安装器时写出卸载器，因此需要先编译一个只包含卸载逻辑的存根，
运行一次让它把真正的卸载器写到指定位置，签名后再嵌入主安装器。

状态机：Draft → Compiled → Materialized → Signed → Embedded，任一步失败进入 Failed，
抛出对应的 UninstallerBuildError 子类，整个 BuildUnit 随之失败。
"""

import asyncio
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..config.schema import BuildConfig
from ..utils.logging import LogStage, debug, info, warning
from ..utils.paths import to_compiler_path
from .build_context import BuildError, ExternalProcessError
from .compiler import MakensisCompiler
from .process import ProcessRunner, run_checked
from .signing import Signer
from .symbols import SymbolTable

POLL_INTERVAL = 0.3
POLL_ATTEMPTS = 100

BUILD_UNINSTALLER = "BUILD_UNINSTALLER"
UNINSTALLER_OUT_FILE = "UNINSTALLER_OUT_FILE"


class UninstallerState(str, Enum):
    DRAFT = "draft"
    COMPILED = "compiled"
    MATERIALIZED = "materialized"
    SIGNED = "signed"
    EMBEDDED = "embedded"
    FAILED = "failed"


class UninstallerBuildError(BuildError):
    """卸载器子构建失败"""
    pass


class UninstallerCompileError(UninstallerBuildError):
    pass


class UninstallerMaterializeError(UninstallerBuildError):
    pass


class UninstallerSignError(UninstallerBuildError):
    pass


class InvalidStateTransition(UninstallerBuildError):
    pass


def uninstaller_path_for(installer_path: Path, out_dir: Path) -> Path:
    """由安装器文件名派生，保证并发构建的不同 BuildUnit 互不冲突"""
    return out_dir / f"{installer_path.stem}__uninstaller.exe"


def discard_stub(installer_path: Path) -> None:
    """删除留在安装器路径上的存根，失败的 BuildUnit 不输出任何安装器"""
    try:
        installer_path.unlink()
        debug(f"已删除卸载器存根: {installer_path.name}", stage=LogStage.UNINSTALLER)
    except FileNotFoundError:
        pass


@dataclass
class UninstallerArtifact:
    """卸载器子产物"""
    path: Path
    state: UninstallerState = UninstallerState.DRAFT
    signed: bool = False

    def advance(self, expected: UninstallerState, target: UninstallerState) -> None:
        if self.state is not expected:
            raise InvalidStateTransition(f"卸载器状态 {self.state.value} 不能转换到 {target.value}")
        self.state = target

    def fail(self) -> None:
        self.state = UninstallerState.FAILED

    def cleanup(self) -> None:
        """删除卸载器文件，不留在输出目录中"""
        try:
            self.path.unlink()
            debug(f"已删除临时卸载器: {self.path.name}", stage=LogStage.UNINSTALLER)
        except FileNotFoundError:
            pass


class StubExecutor(ABC):
    """运行卸载器存根的方式"""

    name = ""

    def __init__(self, runner: ProcessRunner):
        self.runner = runner

    @abstractmethod
    def command(self, stub: Path) -> List[str]:
        ...

    def env(self) -> Optional[dict]:
        return None

    async def execute(self, stub: Path) -> None:
        await run_checked(self.runner, self.command(stub), f"运行卸载器存根失败 ({self.name})", env=self.env())


class NativeExecutor(StubExecutor):
    name = "native"

    def command(self, stub: Path) -> List[str]:
        return [str(stub)]


class WineExecutor(StubExecutor):
    name = "wine"

    def __init__(self, runner: ProcessRunner, wine: str = "wine"):
        super().__init__(runner)
        self.wine = wine

    def command(self, stub: Path) -> List[str]:
        return [self.wine, str(stub)]

    def env(self) -> Optional[dict]:
        # 避免存根请求提权
        return {"__COMPAT_LAYER": "RunAsInvoker"}


class VmExecutor(StubExecutor):
    name = "vm"

    def __init__(self, runner: ProcessRunner, vm_command: List[str]):
        super().__init__(runner)
        self.vm_command = list(vm_command)

    def command(self, stub: Path) -> List[str]:
        return self.vm_command + [str(stub)]


Sleep = Callable[[float], Awaitable[None]]


class UninstallerSubBuild:
    """驱动一次卸载器子构建"""

    def __init__(
        self,
        config: BuildConfig,
        compiler: MakensisCompiler,
        signer: Signer,
        runner: ProcessRunner,
        platform: str = sys.platform,
        sleep: Sleep = asyncio.sleep,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
    ):
        self.config = config
        self.compiler = compiler
        self.signer = signer
        self.runner = runner
        self.platform = platform
        self.sleep = sleep
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts

    def primary_executor(self) -> StubExecutor:
        if self.platform == "win32":
            return NativeExecutor(self.runner)
        return WineExecutor(self.runner, self.config.tools.wine)

    def fallback_executor(self) -> Optional[StubExecutor]:
        if self.config.tools.vm_command:
            return VmExecutor(self.runner, self.config.tools.vm_command)
        return None

    def draft(self, symbols: SymbolTable, installer_path: Path, out_dir: Path) -> tuple:
        """生成存根编译用的符号表副本（带 BUILD_UNINSTALLER 标记）"""
        artifact = UninstallerArtifact(uninstaller_path_for(installer_path, out_dir))
        stub_symbols = symbols.copy()
        stub_symbols.set_flag(BUILD_UNINSTALLER)
        if self.platform == "win32":
            stub_symbols.define(UNINSTALLER_OUT_FILE, str(artifact.path))
        else:
            stub_symbols.define(UNINSTALLER_OUT_FILE, to_compiler_path(artifact.path))
        return artifact, stub_symbols

    async def build(
        self,
        symbols: SymbolTable,
        script: str,
        installer_path: Path,
        out_dir: Path,
    ) -> UninstallerArtifact:
        """编译、运行、签名卸载器

        Args:
            symbols: 卸载器版本的符号表（不会被修改）
            script: 共享头部 + 卸载器片段 + 模板
            installer_path: 主安装器路径，存根也输出到这里（随后被主安装器覆盖）
            out_dir: 卸载器输出目录

        Raises:
            UninstallerBuildError: 任一步骤失败
        """
        artifact, stub_symbols = self.draft(symbols, installer_path, out_dir)
        try:
            await self._compile(artifact, stub_symbols, script)
            await self._materialize(artifact, installer_path)
            await self._sign(artifact)
        except BaseException:
            artifact.fail()
            artifact.cleanup()
            discard_stub(installer_path)
            raise
        return artifact

    async def _compile(self, artifact: UninstallerArtifact, stub_symbols: SymbolTable, script: str) -> None:
        info("编译卸载器存根", stage=LogStage.UNINSTALLER)
        try:
            await self.compiler.compile(stub_symbols, script)
        except BuildError as e:
            raise UninstallerCompileError(f"卸载器存根编译失败: {e}") from e
        artifact.advance(UninstallerState.DRAFT, UninstallerState.COMPILED)

    async def _materialize(self, artifact: UninstallerArtifact, stub: Path) -> None:
        primary = self.primary_executor()
        try:
            await primary.execute(stub)
            if not artifact.path.exists():
                raise UninstallerMaterializeError(f"存根运行后没有生成卸载器: {artifact.path}")
        except (ExternalProcessError, UninstallerMaterializeError) as e:
            fallback = self.fallback_executor()
            if fallback is None:
                raise UninstallerMaterializeError(f"无法生成卸载器 ({primary.name}): {e}") from e
            warning(f"{primary.name} 运行存根失败，改用虚拟机: {e}", stage=LogStage.UNINSTALLER)
            await self._materialize_in_vm(artifact, stub, fallback)
        artifact.advance(UninstallerState.COMPILED, UninstallerState.MATERIALIZED)

    async def _materialize_in_vm(self, artifact: UninstallerArtifact, stub: Path, executor: StubExecutor) -> None:
        try:
            await executor.execute(stub)
        except ExternalProcessError as e:
            raise UninstallerMaterializeError(f"虚拟机中运行存根失败: {e}") from e

        # 虚拟机命令可能先于安装器进程退出，轮询等待文件出现
        for _ in range(self.poll_attempts):
            if artifact.path.exists():
                return
            await self.sleep(self.poll_interval)
        if not artifact.path.exists():
            raise UninstallerMaterializeError(f"等待卸载器超时: {artifact.path}")

    async def _sign(self, artifact: UninstallerArtifact) -> None:
        try:
            artifact.signed = await self.signer.sign(artifact.path)
        except BuildError as e:
            raise UninstallerSignError(f"卸载器签名失败: {e}") from e
        artifact.advance(UninstallerState.MATERIALIZED, UninstallerState.SIGNED)

    def embed(self, artifact: UninstallerArtifact, parent: SymbolTable) -> None:
        """把宿主机路径写入主安装器符号表，并确保没有 BUILD_UNINSTALLER 标记"""
        artifact.advance(UninstallerState.SIGNED, UninstallerState.EMBEDDED)
        parent.remove(BUILD_UNINSTALLER)
        parent.define(UNINSTALLER_OUT_FILE, str(artifact.path))
        debug(f"卸载器已嵌入: {artifact.path.name}", stage=LogStage.UNINSTALLER)
