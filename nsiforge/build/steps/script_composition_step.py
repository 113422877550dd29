"""
脚本组合步骤

生成共享头部并读取模板正文（自定义 installer.nsi 优先）。
"""

import asyncio

from ...config.schema import NsisInstallerOptions
from ...utils.logging import LogStage, debug, info
from ..build_context import BuildContext
from ..fragments import FragmentContext, LangConfigurator, ScriptComposer
from .build_step import BuildStep

INSTALLER_TEMPLATE = "installer.nsi"
PORTABLE_TEMPLATE = "portable.nsi"


class ScriptCompositionStep(BuildStep):
    """脚本组合步骤"""

    def __init__(self):
        super().__init__("script", "组合安装脚本")

    def get_progress_range(self) -> tuple[int, int]:
        return (40, 50)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        config = context.config
        self.report_start(context)

        fragment_context = FragmentContext(
            config=config,
            locator=services.locator,
            lang=LangConfigurator(config.installer),
            templates_dir=services.templates_dir,
            temp_dir=services.temp_dir,
            nsis_resources_dir=config.tools.nsis_resources_dir,
            archs=dict(context.unit.archs),
        )
        context.composer = ScriptComposer(fragment_context, services.cancellation_token)
        context.shared_header = await context.composer.shared_header()

        if config.is_portable:
            template_path = services.templates_dir / PORTABLE_TEMPLATE
        else:
            installer = config.installer
            custom = installer.script if isinstance(installer, NsisInstallerOptions) else None
            custom_path = await services.locator.get_resource(custom, INSTALLER_TEMPLATE)
            context.custom_script = custom_path is not None
            template_path = custom_path or services.templates_dir / INSTALLER_TEMPLATE

        context.template_script = await asyncio.to_thread(template_path.read_text, 'utf-8')
        if context.custom_script:
            info(f"使用自定义脚本: {template_path}", stage=LogStage.SCRIPT)
        else:
            debug(f"使用模板: {template_path.name}", stage=LogStage.SCRIPT)
