"""
构建管道模块

使用管道模式协调单个 BuildUnit 的构建步骤。
"""

import time
from typing import List, Optional

from ..utils.logging import LogStage, debug, error, info, success
from .build_context import BuildCancelledError, BuildContext, BuildError
from .uninstaller import discard_stub
from .steps import (
    BuildStep,
    InstallerCompilationStep,
    PayloadPackingStep,
    ScriptCompositionStep,
    SymbolTableStep,
    UninstallerStep,
    UpdateInfoStep,
)


class BuildPipeline:
    """构建管道，负责协调构建步骤的执行"""

    def __init__(self):
        """初始化构建管道"""
        self._steps: List[BuildStep] = []

        # 初始化默认构建步骤
        self._init_default_steps()

    def _init_default_steps(self):
        """初始化默认的构建步骤"""
        self._steps = [
            PayloadPackingStep(),
            SymbolTableStep(),
            ScriptCompositionStep(),
            UninstallerStep(),
            InstallerCompilationStep(),
            UpdateInfoStep(),
        ]

    def add_step(self, step: BuildStep, position: Optional[int] = None):
        """添加构建步骤"""
        if position is None:
            self._steps.append(step)
        else:
            self._steps.insert(position, step)

    def remove_step(self, step_name: str):
        """移除构建步骤"""
        self._steps = [step for step in self._steps if step.name != step_name]

    def get_steps(self) -> List[BuildStep]:
        """获取所有构建步骤"""
        return self._steps.copy()

    async def execute(self, context: BuildContext) -> BuildContext:
        """执行构建管道

        Args:
            context: 单个 BuildUnit 的构建上下文

        Returns:
            BuildContext: 构建上下文，包含所有构建结果

        Raises:
            BuildCancelledError: 构建被取消
            BuildError: 构建失败
        """
        context.build_stats['start_time'] = time.time()
        token = context.services.cancellation_token if context.services else None

        try:
            info(f"开始构建安装器: {context.installer_filename} ({context.unit.arch_names})", stage=LogStage.BUILD)
            debug(f"构建配置: mode={context.config.mode.value} universal={context.unit.is_universal}", stage=LogStage.BUILD)

            # 依次执行每个构建步骤
            for step in self._steps:
                if token is not None:
                    token.raise_if_cancelled()
                if context.stopped:
                    debug(f"跳过步骤: {step.description}", stage=LogStage.BUILD)
                    continue
                debug(f"执行步骤: {step.description}", stage=LogStage.BUILD)
                await step.execute(context)

            context.build_stats['end_time'] = time.time()
            build_time = context.build_stats['end_time'] - context.build_stats['start_time']
            if not context.stopped:
                success(f"安装器构建成功: {context.installer_path}", stage=LogStage.BUILD)
            info(f"构建时间: {build_time:.1f}秒")
            return context

        except BuildCancelledError:
            self._discard_uninstaller(context)
            raise

        except Exception as e:
            context.build_stats['end_time'] = time.time()
            self._discard_uninstaller(context)

            error_msg = str(e)
            error(f"构建失败: {error_msg}", stage=LogStage.BUILD)

            # 重新抛出异常，让调用者处理
            if isinstance(e, BuildError):
                raise
            raise BuildError(f"构建失败: {error_msg}") from e

    @staticmethod
    def _discard_uninstaller(context: BuildContext) -> None:
        if context.uninstaller is not None:
            context.uninstaller.cleanup()
        if context.stub_at_installer_path:
            discard_stub(context.installer_path)
            context.stub_at_installer_path = False

    def validate_pipeline(self) -> List[str]:
        """验证构建管道的完整性

        Returns:
            List[str]: 验证错误列表，空列表表示验证通过
        """
        errors = []

        if not self._steps:
            errors.append("构建管道中没有步骤")
            return errors

        # 检查步骤的进度范围是否连续
        prev_end = 0
        for step in self._steps:
            start, end = step.get_progress_range()
            if start != prev_end:
                errors.append(f"步骤 '{step.name}' 的进度范围不连续: 期望起始 {prev_end}%, 实际 {start}%")
            if start >= end:
                errors.append(f"步骤 '{step.name}' 的进度范围无效: {start}% - {end}%")
            prev_end = end

        if prev_end != 100:
            errors.append(f"构建管道的总进度范围不是100%: {prev_end}%")

        return errors
