"""
安装器编译步骤

组合最终脚本，调用 makensis 编译主安装器并签名。
无论编译成功与否，临时卸载器都在编译结束后删除。
"""

from ...utils.logging import LogStage, debug, info, success
from ...utils.paths import format_size
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class InstallerCompilationStep(BuildStep):
    """安装器编译步骤"""

    def __init__(self):
        super().__init__("compile", "编译安装器")

    def get_progress_range(self) -> tuple[int, int]:
        return (70, 90)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        if context.symbols is None or context.composer is None:
            raise BuildError("编译安装器前必须先生成符号表与共享头部")

        self.report_start(context)
        context.installer_script = (
            context.shared_header + await context.composer.final_script(context.template_script, True)
        )
        if services.debug_logging:
            debug(f"安装器脚本:\n{context.installer_script}", stage=LogStage.COMPILE)

        # 编译前的最后一个挂起点之后不再调度新工作
        services.cancellation_token.raise_if_cancelled()
        info(f"编译安装器: {context.installer_filename}", stage=LogStage.COMPILE)
        try:
            await services.compiler.compile(context.symbols, context.installer_script)
            context.build_stats['compiler_invocations'] += 1
            context.stub_at_installer_path = False
        finally:
            if context.uninstaller is not None:
                context.uninstaller.cleanup()

        await services.signer.sign(context.installer_path)

        if context.installer_path.exists():
            size = context.installer_path.stat().st_size
            context.build_stats['installer_size'] = size
            success(f"安装器已生成: {context.installer_filename} ({format_size(size)})", stage=LogStage.COMPILE)
