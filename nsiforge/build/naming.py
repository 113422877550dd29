"""
产物命名

文件名模板支持的宏：${productName} ${name} ${version} ${arch} ${ext} ${os}。
没有单一架构时 ${arch} 连同前面的分隔符一起去掉。
"""

import re
from typing import Optional

from ..config.schema import AppInfoModel, Arch, BuildConfig, InstallerMode
from ..utils.paths import is_safe_artifact_name

_ARCH_WITH_SEPARATOR = re.compile(r'[-_ ]?\$\{arch\}')
_MACRO = re.compile(r'\$\{([_a-zA-Z][_a-zA-Z0-9]*)\}')

ARCH_MACRO = "${arch}"


class UnknownMacroError(ValueError):
    pass


def expand_macros(pattern: str, app: AppInfoModel, arch: Optional[Arch] = None, ext: Optional[str] = None) -> str:
    """展开文件名模板中的宏

    Raises:
        UnknownMacroError: 模板中有不支持的宏
    """
    if arch is None:
        pattern = _ARCH_WITH_SEPARATOR.sub("", pattern)

    values = {
        'productName': app.display_name,
        'name': app.name,
        'version': app.version,
        'arch': arch.value if arch is not None else "",
        'ext': ext or "",
        'os': "win",
        'company': app.company or "",
    }

    def replace(match: 're.Match[str]') -> str:
        key = match.group(1)
        if key not in values:
            raise UnknownMacroError(f"文件名模板中不支持的宏: ${{{key}}}")
        return values[key]

    return _MACRO.sub(replace, pattern)


def arch_suffix(arch: Arch, default_arch: Arch) -> str:
    """默认架构不加后缀"""
    return "" if arch is default_arch else f"-{arch.value}"


def default_artifact_pattern(config: BuildConfig, primary_arch: Optional[Arch]) -> str:
    """未配置 artifact_name 时使用的模板"""
    if config.is_web_installer:
        return "${productName} Web Setup ${version}.${ext}"

    setup_text = "" if config.is_portable else "Setup "
    suffix = ""
    if not config.installer.build_universal_installer and primary_arch is not None:
        suffix = arch_suffix(primary_arch, config.default_arch)
    return "${productName} " + setup_text + "${version}" + suffix + ".${ext}"


def artifact_pattern(config: BuildConfig, primary_arch: Optional[Arch] = None) -> str:
    return config.installer.artifact_name or default_artifact_pattern(config, primary_arch)


def installer_file_name(config: BuildConfig, primary_arch: Optional[Arch]) -> str:
    return expand_macros(artifact_pattern(config, primary_arch), config.app, primary_arch, "exe")


def github_installer_name(config: BuildConfig, primary_arch: Optional[Arch]) -> str:
    """只包含安全字符的产物名，用于发布到不接受空格等字符的平台"""
    app = config.app
    suffix = ""
    if not config.installer.build_universal_installer and primary_arch is not None:
        suffix = arch_suffix(primary_arch, config.default_arch)

    if config.mode is InstallerMode.PORTABLE:
        classifier = ""
    elif config.mode is InstallerMode.WEB:
        classifier = "websetup-" if app.name.lower() == app.name else "WebSetup-"
    else:
        classifier = "setup-" if app.name.lower() == app.name else "Setup-"
    return f"{app.name}-{classifier}{app.version}{suffix}.exe"


def safe_artifact_name_if_needed(file_name: str, config: BuildConfig, primary_arch: Optional[Arch]) -> Optional[str]:
    """文件名含不安全字符时返回替代名，否则 None"""
    if is_safe_artifact_name(file_name):
        return None
    return github_installer_name(config, primary_arch)
