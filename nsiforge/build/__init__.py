"""构建服务模块

提供 NSIS 安装器构建的核心功能。
"""

from .build_context import (
    BuildCancelledError,
    BuildError,
    CompilerError,
    ExternalProcessError,
    InvalidConfigurationError,
    OutputFileBusyError,
    SigningError,
)
from .builder import Builder, BuildResult
from .events import ArtifactBuildCompleted, ArtifactBuildStarted, LoggingEventSink, RecordingEventSink
from .orchestrator import NsisTarget, plan_build_units
from .symbols import SymbolTable

__all__ = [
    # 主构建器
    "Builder",
    "BuildResult",
    "NsisTarget",
    "plan_build_units",

    # 产物事件
    "ArtifactBuildStarted",
    "ArtifactBuildCompleted",
    "LoggingEventSink",
    "RecordingEventSink",

    "SymbolTable",

    # 错误
    "BuildError",
    "BuildCancelledError",
    "CompilerError",
    "ExternalProcessError",
    "InvalidConfigurationError",
    "OutputFileBusyError",
    "SigningError",
]
