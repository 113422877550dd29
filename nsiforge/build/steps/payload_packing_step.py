"""
载荷打包步骤

并发打包本 BuildUnit 的各架构载荷，并汇总归档列表中的解压大小作为注册表中的估算大小。
"""

from typing import List, Optional

from ...utils.logging import LogStage, debug, info
from ..build_context import BuildContext, PackedPayload
from ..events import ArtifactBuildCompleted
from ..tasks import AsyncTaskManager
from .build_step import BuildStep


class PayloadPackingStep(BuildStep):
    """载荷打包步骤"""

    def __init__(self):
        super().__init__("pack", "打包应用载荷")

    def get_progress_range(self) -> tuple[int, int]:
        return (0, 30)

    async def execute(self, context: BuildContext) -> None:
        services = self.services(context)
        config = context.config

        if config.is_portable and config.installer.use_zip:
            # 便携版 zip 模式直接引用应用目录，不需要打包
            debug("便携版 zip 模式，跳过载荷打包", stage=LogStage.PACK)
            return

        self.report_start(context, f"架构: {context.unit.arch_names}")
        manager = AsyncTaskManager(services.cancellation_token)
        for arch, app_dir in context.unit.archs.items():
            manager.add(
                lambda arch=arch, app_dir=app_dir: services.package_helper.pack_arch(arch, app_dir, services.packer)
            )
        payloads: List[PackedPayload] = await manager.await_tasks()

        for payload in payloads:
            context.payloads[payload.arch] = payload
            if config.is_web_installer:
                context.package_files[payload.arch.value] = payload.file_info
                services.events.artifact_build_completed(ArtifactBuildCompleted(
                    target=services.target_name,
                    file=payload.file_info.path,
                    arch=payload.arch,
                ))

        context.estimated_size = await self._estimate_size(context, payloads)
        info(f"载荷打包完成: {len(payloads)} 个架构", stage=LogStage.PACK)

    async def _estimate_size(self, context: BuildContext, payloads: List[PackedPayload]) -> Optional[int]:
        """各架构归档解压大小之和；任一架构无法解析时整体省略"""
        services = self.services(context)
        manager = AsyncTaskManager(services.cancellation_token)
        for payload in payloads:
            manager.add(lambda payload=payload: services.archiver.list_unpacked_size(payload.file_info.path))
        sizes: List[Optional[int]] = await manager.await_tasks()
        if not sizes or any(size is None for size in sizes):
            debug("无法计算估算大小，省略 ESTIMATED_SIZE", stage=LogStage.PACK)
            return None
        return sum(sizes)
