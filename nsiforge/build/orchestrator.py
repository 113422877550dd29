"""
构建编排

NsisTarget 对应一个逻辑 target（nsis / nsis-web / portable）：
- 按配置决定每个架构一个安装器，还是所有架构合并为一个通用安装器
- 通用模式下文件名模板包含 ${arch} 且有多个架构时，额外为每个架构各构建一个
- 同一 target 的所有 BuildUnit 经由单并发队列依次构建
"""

import asyncio
import shutil
import sys
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from ..config.schema import Arch, BuildConfig, InstallerMode
from ..utils.logging import LogStage, debug, info
from ..utils.paths import ensure_directory
from .archive import ArchiverFactory
from .build_context import BuildContext, BuildUnit, InvalidConfigurationError, ProgressCallback
from .build_pipeline import BuildPipeline
from .compiler import BusyCheck, MakensisCompiler, Sleep, is_file_free
from .differential import DifferentialUpdateCoordinator
from .events import ArtifactBuildStarted, ArtifactEventSink, LoggingEventSink
from .naming import ARCH_MACRO, UnknownMacroError, artifact_pattern, expand_macros, installer_file_name
from .package_helper import AppPackageHelper, PayloadPacker
from .process import ProcessRunner
from .resources import ResourceLocator
from .services import BuildServices, EffectiveOptionsHook
from .signing import Signer
from .symbol_builder import SymbolTableBuilder, menu_category
from .tasks import BuildQueue, CancellationToken
from .uninstaller import UninstallerSubBuild


DEFAULT_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

_TARGET_NAMES = {
    InstallerMode.ONE_CLICK: "nsis",
    InstallerMode.ASSISTED: "nsis",
    InstallerMode.WEB: "nsis-web",
    InstallerMode.PORTABLE: "portable",
}


def plan_build_units(config: BuildConfig, archs: Dict[Arch, Path]) -> List[BuildUnit]:
    """计算需要构建的 BuildUnit

    - 非通用模式：每个架构一个
    - 通用模式：一个包含全部架构的通用安装器；文件名模板含 ${arch} 且多于一个架构时，
      再为每个架构各加一个
    """
    if not archs:
        return []
    if not config.installer.build_universal_installer:
        return [BuildUnit({arch: app_dir}) for arch, app_dir in archs.items()]

    units = [BuildUnit(dict(archs), is_universal=True)]
    if ARCH_MACRO in artifact_pattern(config) and len(archs) > 1:
        units.extend(BuildUnit({arch: app_dir}) for arch, app_dir in archs.items())
    return units


class NsisTarget:
    """单个 target 的构建编排器"""

    def __init__(
        self,
        config: BuildConfig,
        runner: Optional[ProcessRunner] = None,
        events: Optional[ArtifactEventSink] = None,
        debug_logging: bool = False,
        cancellation_token: Optional[CancellationToken] = None,
        package_helper: Optional[AppPackageHelper] = None,
        effective_options_hook: Optional[EffectiveOptionsHook] = None,
        progress_callback: Optional[ProgressCallback] = None,
        busy_check: BusyCheck = is_file_free,
        sleep: Sleep = asyncio.sleep,
        platform: str = sys.platform,
    ):
        self.config = config
        self.debug_logging = debug_logging
        self.progress_callback = progress_callback
        self.cancellation_token = cancellation_token or CancellationToken()
        self.archs: Dict[Arch, Path] = {}
        self.pipeline = BuildPipeline()
        self.contexts: List[BuildContext] = []

        self.validate_configuration()

        runner = runner or ProcessRunner()
        self.package_helper = package_helper or AppPackageHelper(config.tools.nsis_resources_dir)
        self.package_helper.retain()
        self._queue = BuildQueue(self.cancellation_token)
        self._temp_dir: Optional[Path] = None

        templates_dir = config.tools.templates_dir or DEFAULT_TEMPLATES_DIR
        archiver = ArchiverFactory.create_archiver(config, runner)
        compiler = MakensisCompiler(config, runner, templates_dir, busy_check=busy_check, sleep=sleep)
        signer = Signer(runner, config.tools.sign_command)
        locator = ResourceLocator(config)
        self._services_args = dict(
            config=config,
            target_name=self.name,
            out_dir=config.output_dir,
            templates_dir=templates_dir,
            runner=runner,
            archiver=archiver,
            packer=PayloadPacker(config, archiver, config.output_dir),
            package_helper=self.package_helper,
            locator=locator,
            compiler=compiler,
            signer=signer,
            symbol_builder=SymbolTableBuilder(config, locator, self.cancellation_token, debug_logging),
            uninstaller=UninstallerSubBuild(config, compiler, signer, runner, platform=platform, sleep=sleep),
            differential=DifferentialUpdateCoordinator(config),
            events=events or LoggingEventSink(),
            cancellation_token=self.cancellation_token,
            debug_logging=debug_logging,
            effective_options_hook=effective_options_hook,
        )

    @property
    def name(self) -> str:
        return _TARGET_NAMES[self.config.mode]

    @property
    def should_build_universal_installer(self) -> bool:
        return self.config.installer.build_universal_installer

    @staticmethod
    def configuration_errors(config: BuildConfig) -> List[str]:
        """配置组合检查，返回全部错误，每条以选项名开头"""
        errors = []
        try:
            expand_macros(artifact_pattern(config), config.app, Arch.X64, "exe")
        except UnknownMacroError as e:
            errors.append(f"artifact_name: {e}")
        try:
            menu_category(config)
        except InvalidConfigurationError as e:
            errors.append(str(e))
        errors.extend(ResourceLocator(config).missing_resources())
        return errors

    def validate_configuration(self) -> None:
        """在启动任何外部进程之前检查配置组合

        Raises:
            InvalidConfigurationError: 配置不合法，错误信息包含选项名
        """
        errors = self.configuration_errors(self.config)
        if errors:
            raise InvalidConfigurationError("; ".join(errors))

    def _services(self) -> BuildServices:
        if self._temp_dir is None:
            self._temp_dir = Path(tempfile.mkdtemp(prefix="nsiforge-"))
        return BuildServices(temp_dir=self._temp_dir, **self._services_args)

    async def build(self, app_dir: Path, arch: Arch) -> None:
        """登记一个架构的应用目录；非通用模式下立即排入构建队列"""
        self.cancellation_token.raise_if_cancelled()
        self.archs[arch] = app_dir
        if not self.should_build_universal_installer:
            self._schedule(BuildUnit({arch: app_dir}))

    def plan_build_units(self) -> List[BuildUnit]:
        return plan_build_units(self.config, self.archs)

    def _schedule(self, unit: BuildUnit) -> None:
        debug(f"排入构建队列: {unit.arch_names} (universal={unit.is_universal})", stage=LogStage.BUILD)
        self._queue.add(lambda: self._build_unit(unit))

    async def finish_build(self) -> List[BuildContext]:
        """构建所有排队（通用模式下此时才计划）的 BuildUnit，完成后清理临时文件

        Returns:
            List[BuildContext]: 按构建顺序排列的上下文
        """
        try:
            if self.should_build_universal_installer:
                for unit in self.plan_build_units():
                    self._schedule(unit)
            await self._queue.await_tasks()
            return list(self.contexts)
        finally:
            await self.package_helper.finish_build()
            if self._temp_dir is not None:
                shutil.rmtree(self._temp_dir, ignore_errors=True)
                self._temp_dir = None

    async def _build_unit(self, unit: BuildUnit) -> BuildContext:
        config = self.config
        primary_arch = unit.primary_arch
        installer_filename = installer_file_name(config, primary_arch)
        out_dir = ensure_directory(config.output_dir)
        installer_path = out_dir / installer_filename

        fields = {'archs': unit.arch_names}
        if not config.is_portable:
            fields['oneClick'] = config.installer.is_one_click
            fields['perMachine'] = getattr(config.installer, "per_machine", False)
        services = self._services()
        services.events.artifact_build_started(ArtifactBuildStarted(
            target=self.name,
            file=installer_path,
            arch=primary_arch,
            fields=fields,
        ))

        context = BuildContext(
            config=config,
            unit=unit,
            installer_path=installer_path,
            installer_filename=installer_filename,
            services=services,
            progress_callback=self.progress_callback,
        )
        await self.pipeline.execute(context)
        self.contexts.append(context)
        if context.stopped:
            info(f"已停止: {installer_filename}", stage=LogStage.BUILD)
        return context
