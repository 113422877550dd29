"""
差分更新数据步骤

生成更新元数据并发出产物完成事件。
"""

from ...utils.logging import LogStage, debug
from ..build_context import BuildContext
from ..events import ArtifactBuildCompleted
from ..naming import safe_artifact_name_if_needed
from .build_step import BuildStep


class UpdateInfoStep(BuildStep):
    """差分更新数据步骤"""

    def __init__(self):
        super().__init__("update-info", "生成更新数据")

    def get_progress_range(self) -> tuple[int, int]:
        return (90, 100)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        self.report_start(context)

        context.safe_artifact_name = safe_artifact_name_if_needed(
            context.installer_filename, context.config, context.unit.primary_arch
        )
        context.update_info = await services.differential.create_update_info(
            context.installer_path, context.package_files
        )
        if context.update_info is not None:
            debug(f"更新数据: {context.update_info}", stage=LogStage.UPDATE)

        services.events.artifact_build_completed(ArtifactBuildCompleted(
            target=services.target_name,
            file=context.installer_path,
            arch=context.unit.primary_arch,
            update_info=context.update_info,
            safe_artifact_name=context.safe_artifact_name,
            is_write_update_info=not context.config.is_portable,
        ))
        context.report_progress(self.description, 100, "完成")
