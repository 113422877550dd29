"""
路径工具

提供路径处理相关的工具函数。
"""

import re
import sys
from pathlib import Path, PureWindowsPath
from typing import Union

# Windows 文件名非法字符
_ILLEGAL_CHARS = '<>:"/\\|?*'

_SAFE_ARTIFACT_NAME = re.compile(r'^[0-9A-Za-z._-]+$')


def ensure_directory(path: Union[str, Path]) -> Path:
    """确保目录存在

    Args:
        path: 目录路径

    Returns:
        Path: 目录路径
    """
    dir_path = Path(path)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def format_size(size_bytes: int) -> str:
    """格式化文件大小

    Args:
        size_bytes: 字节数

    Returns:
        str: 格式化的大小字符串
    """
    if size_bytes == 0:
        return "0 B"

    units = ["B", "KB", "MB", "GB", "TB"]
    unit_index = 0
    size = float(size_bytes)

    while size >= 1024.0 and unit_index < len(units) - 1:
        size /= 1024.0
        unit_index += 1

    if unit_index == 0:
        return f"{int(size)} {units[unit_index]}"
    return f"{size:.1f} {units[unit_index]}"


def sanitize_file_name(name: str) -> str:
    """将任意字符串转换为可用作文件名的形式

    Args:
        name: 原始名称

    Returns:
        str: 去除非法字符后的文件名
    """
    cleaned = ''.join('_' if ch in _ILLEGAL_CHARS or ord(ch) < 32 else ch for ch in name)
    # Windows 不允许文件名以点或空格结尾
    return cleaned.rstrip('. ') or '_'


def is_safe_artifact_name(file_name: str) -> bool:
    """文件名是否可以直接作为发布产物名（无空格、无非 ASCII 字符）"""
    return bool(_SAFE_ARTIFACT_NAME.match(file_name))


def to_compiler_path(path: Union[str, Path]) -> str:
    """转换为编译器/安装器可见的路径

    在 Windows 上原样返回；在其他平台上安装器通过 Wine 运行，
    宿主机根目录映射为 Z: 盘。
    """
    if sys.platform == "win32":
        return str(path)
    return str(PureWindowsPath("Z:\\", *Path(path).parts[1:]))
