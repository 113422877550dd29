"""
许可协议页面片段

优先使用配置的（或构建资源目录中约定名称的）单个许可文件；
否则收集按语言命名的 license_<lang>.txt 等文件，缺失的语言回退到第一个文件。
"""

import asyncio
import re
from pathlib import Path
from typing import TYPE_CHECKING, List, NamedTuple, Optional, Sequence

from ...config.schema import NsisInstallerOptions
from ..script_generator import ScriptGenerator
from .languages import lcid_for, to_lang_with_region

if TYPE_CHECKING:
    from .base import FragmentContext

DEFAULT_LICENSE_NAMES = ("license.txt", "license.rtf", "license.html", "eula.txt", "eula.rtf")

_LANG_LICENSE_PATTERN = re.compile(r'^(?:license|eula)_([a-zA-Z]{2}(?:[_-][a-zA-Z]{2})?)\.(?:txt|rtf|html)$', re.IGNORECASE)


class LicenseFile(NamedTuple):
    lang_with_region: str
    file: Path


def find_language_licenses(resources_dir: Path) -> List[LicenseFile]:
    """构建资源目录中按语言命名的许可文件，按文件名排序"""
    if not resources_dir.is_dir():
        return []
    result: List[LicenseFile] = []
    for item in sorted(resources_dir.iterdir()):
        match = _LANG_LICENSE_PATTERN.match(item.name)
        if match and item.is_file():
            result.append(LicenseFile(to_lang_with_region(match.group(1)), item))
    return result


def single_license_page(license_file: Path, empty_license: Path) -> ScriptGenerator:
    generator = ScriptGenerator()
    if license_file.suffix.lower() == ".html":
        generator.macro("licensePage", [
            "!define MUI_PAGE_CUSTOMFUNCTION_SHOW LicenseShow",
            "Function LicenseShow",
            "  FindWindow $R0 `#32770` `` $HWNDPARENT",
            "  GetDlgItem $R0 $R0 1000",
            "EmbedHTML::Load /replace $R0 file://$PLUGINSDIR\\license.html",
            "FunctionEnd",
            f'!insertmacro MUI_PAGE_LICENSE "{empty_license}"',
        ])
        generator.macro("addLicenseFiles", [f'File /oname=$PLUGINSDIR\\license.html "{license_file}"'])
    else:
        generator.macro("licensePage", [f'!insertmacro MUI_PAGE_LICENSE "{license_file}"'])
    return generator


def multi_language_license_page(license_files: Sequence[LicenseFile], langs: Sequence[str]) -> ScriptGenerator:
    generator = ScriptGenerator()
    if not license_files:
        return generator

    lines: List[str] = []
    unspecified = list(langs)
    default_file = license_files[0].file
    for item in license_files:
        if item.lang_with_region in unspecified:
            unspecified.remove(item.lang_with_region)
        lcid = lcid_for(item.lang_with_region) or item.lang_with_region
        lines.append(f'LicenseLangString MUILicense {lcid} "{item.file}"')
    for lang in unspecified:
        lines.append(f'LicenseLangString MUILicense {lcid_for(lang)} "{default_file}"')
    lines.append('!insertmacro MUI_PAGE_LICENSE "$(MUILicense)"')
    generator.macro("licensePage", lines)
    return generator


async def license_fragment(ctx: 'FragmentContext') -> ScriptGenerator:
    """许可协议页面；没有任何许可文件时返回空片段"""
    installer = ctx.config.installer
    custom: Optional[str] = installer.license if isinstance(installer, NsisInstallerOptions) else None

    license_file = await ctx.locator.get_resource(custom)
    if license_file is None:
        for name in DEFAULT_LICENSE_NAMES:
            license_file = await ctx.locator.get_resource(None, name)
            if license_file is not None:
                break

    if license_file is not None:
        return single_license_page(license_file, ctx.templates_dir / "empty-license.txt")

    license_files = await asyncio.to_thread(find_language_licenses, ctx.locator.build_resources_dir)
    return multi_language_license_page(license_files, ctx.lang.langs)
