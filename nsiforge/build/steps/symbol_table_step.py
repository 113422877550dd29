"""
符号表步骤
"""

from ...utils.logging import LogStage, info
from ..build_context import BuildContext
from .build_step import BuildStep


class SymbolTableStep(BuildStep):
    """生成安装器与卸载器的符号表"""

    def __init__(self):
        super().__init__("symbols", "生成符号表")

    def get_progress_range(self) -> tuple[int, int]:
        return (30, 40)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        self.report_start(context)

        symbols = await services.symbol_builder.build(
            context.installer_path,
            context.unit.archs,
            context.payloads,
            context.estimated_size,
        )
        context.symbols = symbols
        info(f"符号表: {len(symbols.defines)} 个 define", stage=LogStage.SYMBOLS)

        if services.effective_options_hook is not None and await services.effective_options_hook(symbols):
            info("有效选项回调要求停止构建", stage=LogStage.SYMBOLS)
            context.stopped = True
            return

        context.uninstaller_symbols = services.symbol_builder.uninstaller_variant(symbols)
