"""
构建步骤基类模块

定义构建步骤的抽象接口。步骤是异步的：外部进程、文件读写与等待都是挂起点。
"""

from abc import ABC, abstractmethod

from ..build_context import BuildContext, BuildError
from ..services import BuildServices


class BuildStep(ABC):
    """构建步骤抽象基类"""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    @abstractmethod
    async def execute(self, context: BuildContext) -> None:
        """执行构建步骤"""
        pass

    @abstractmethod
    def get_progress_range(self) -> tuple[int, int]:
        """获取此步骤的进度范围 (start_percent, end_percent)"""
        pass

    def services(self, context: BuildContext) -> BuildServices:
        if context.services is None:
            raise BuildError(f"步骤 {self.name} 缺少构建服务")
        return context.services

    def report_start(self, context: BuildContext, message: str = "") -> None:
        start, _ = self.get_progress_range()
        context.report_progress(self.description, start, message)
