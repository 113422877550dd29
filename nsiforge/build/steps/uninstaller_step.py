"""
卸载器子构建步骤

便携版没有卸载器；使用自定义脚本时卸载器由脚本自行处理，不在这里编译与签名。
"""

from ...utils.logging import LogStage, debug, info
from ..build_context import BuildContext, BuildError
from .build_step import BuildStep


class UninstallerStep(BuildStep):
    """卸载器子构建步骤"""

    def __init__(self):
        super().__init__("uninstaller", "构建卸载器")

    def get_progress_range(self) -> tuple[int, int]:
        return (50, 70)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        if context.config.is_portable:
            return
        if context.custom_script:
            info("使用自定义脚本，卸载器不会被单独编译和签名", stage=LogStage.UNINSTALLER)
            return
        if context.uninstaller_symbols is None or context.symbols is None or context.composer is None:
            raise BuildError("卸载器子构建缺少符号表或脚本")

        self.report_start(context)
        script = context.shared_header + await context.composer.final_script(context.template_script, False)
        if services.debug_logging:
            debug(f"卸载器脚本:\n{script}", stage=LogStage.UNINSTALLER)

        artifact = await services.uninstaller.build(
            context.uninstaller_symbols,
            script,
            context.installer_path,
            services.out_dir,
        )
        context.uninstaller = artifact
        context.stub_at_installer_path = True
        services.uninstaller.embed(artifact, context.symbols)
        context.build_stats['compiler_invocations'] += 1
