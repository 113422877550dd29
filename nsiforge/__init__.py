"""
nsiforge - NSIS 安装器构建系统

Builds Windows NSIS installers (one-click, assisted, web and portable) from application directories.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .build.builder import Builder
from .config.schema import BuildConfig

__all__ = ["BuildConfig", "Builder", "__version__"]
