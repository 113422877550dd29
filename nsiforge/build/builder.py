"""
构建器主类

同步入口：为一组架构目录构建当前配置对应的 target，并汇总结果。
"""

import asyncio
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..config.schema import Arch, BuildConfig
from ..utils.logging import LogStage, error, info, success
from .build_context import BuildError, ProgressCallback
from .events import ArtifactBuildCompleted, ArtifactEventSink, LoggingEventSink, RecordingEventSink
from .orchestrator import NsisTarget
from .process import ProcessRunner
from .services import EffectiveOptionsHook
from .tasks import CancellationToken


@dataclass
class BuildResult:
    """构建结果"""
    success: bool
    artifacts: List[ArtifactBuildCompleted] = field(default_factory=list)
    build_time: Optional[float] = None
    error: Optional[str] = None

    @property
    def output_paths(self) -> List[Path]:
        return [artifact.file for artifact in self.artifacts]


class Builder:
    """安装器构建器

    每次 build 调用创建一个 NsisTarget，按架构登记应用目录后等待全部产物完成。
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        events: Optional[ArtifactEventSink] = None,
        effective_options_hook: Optional[EffectiveOptionsHook] = None,
    ):
        self.runner = runner
        self.events = events or LoggingEventSink()
        self.effective_options_hook = effective_options_hook
        self.cancellation_token: Optional[CancellationToken] = None

    def build(
        self,
        config: BuildConfig,
        app_dirs: Dict[Arch, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BuildResult:
        """构建安装器

        Args:
            config: 配置对象
            app_dirs: 架构到应用目录的映射
            progress_callback: 进度回调函数

        Returns:
            BuildResult: 构建结果；BuildError 会被转换为失败结果
        """
        return asyncio.run(self.build_async(config, app_dirs, progress_callback))

    async def build_async(
        self,
        config: BuildConfig,
        app_dirs: Dict[Arch, Path],
        progress_callback: Optional[ProgressCallback] = None,
    ) -> BuildResult:
        start = time.time()
        recorder = RecordingEventSink(self.events)
        self.cancellation_token = CancellationToken()
        try:
            if not app_dirs:
                raise BuildError("至少需要一个架构的应用目录")
            for arch, app_dir in app_dirs.items():
                if not Path(app_dir).is_dir():
                    raise BuildError(f"应用目录不存在: {app_dir} ({arch.value})")

            target = NsisTarget(
                config,
                runner=self.runner,
                events=recorder,
                debug_logging=config.debug_logging,
                cancellation_token=self.cancellation_token,
                effective_options_hook=self.effective_options_hook,
                progress_callback=progress_callback,
            )
            info(f"构建 target: {target.name} ({', '.join(a.value for a in app_dirs)})", stage=LogStage.BUILD)
            for arch, app_dir in app_dirs.items():
                await target.build(Path(app_dir), arch)
            await target.finish_build()
        except BuildError as e:
            error(f"构建失败: {e}", stage=LogStage.BUILD)
            return BuildResult(
                success=False,
                artifacts=recorder.completed,
                build_time=time.time() - start,
                error=str(e),
            )

        build_time = time.time() - start
        success(f"全部产物构建完成，共 {len(recorder.completed)} 个，用时 {build_time:.1f}秒", stage=LogStage.DONE)
        return BuildResult(success=True, artifacts=recorder.completed, build_time=build_time)

    def cancel(self, reason: str = "构建已取消") -> None:
        """取消正在进行的构建"""
        if self.cancellation_token is not None:
            self.cancellation_token.cancel(reason)
