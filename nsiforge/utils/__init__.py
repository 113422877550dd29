"""通用工具模块"""

from .logging import (
    configure_logging,
    LogStage,
    OutputLevel,
)

from .paths import (
    ensure_directory,
    format_size,
    sanitize_file_name,
    is_safe_artifact_name,
    to_compiler_path,
)

__all__ = [
    # 日志相关
    "configure_logging",
    "LogStage",
    "OutputLevel",

    # 路径相关
    "ensure_directory",
    "format_size",
    "sanitize_file_name",
    "is_safe_artifact_name",
    "to_compiler_path",
]
