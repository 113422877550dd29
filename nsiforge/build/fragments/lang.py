"""
语言与消息目录片段

- LangConfigurator：确定安装器包含的语言集合
- addLangs 宏：为每种语言插入 MUI_LANGUAGE
- 消息目录（messages.yml / assistedMessages.yml）渲染为 LangString，写入临时 include 文件
"""

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ruamel.yaml import YAML

from ...utils.logging import debug
from ..script_generator import ScriptGenerator
from .languages import BUNDLED_LANGUAGES, DEFAULT_LANGUAGE, lcid_for, nsis_language_name, to_lang_with_region

if TYPE_CHECKING:
    from .base import FragmentContext


class LangConfigurator:
    """安装器语言集合

    非 Unicode 安装器或显式给出空语言列表时只包含一种语言；
    多语言模式下未配置语言列表则包含全部内置语言。
    """

    def __init__(self, installer: Any):
        raw = getattr(installer, "installer_languages", None)
        explicit_empty = raw is not None and len(raw) == 0
        if not installer.unicode or explicit_empty:
            self.is_multi_lang = False
        else:
            self.is_multi_lang = getattr(installer, "multi_language_installer", None) is not False

        if self.is_multi_lang:
            self.langs: List[str] = (
                list(BUNDLED_LANGUAGES) if raw is None else _unique(to_lang_with_region(it) for it in raw)
            )
        else:
            first = raw[0] if raw else DEFAULT_LANGUAGE
            self.langs = [to_lang_with_region(first)]


def _unique(items) -> List[str]:
    result: List[str] = []
    for item in items:
        if item not in result:
            result.append(item)
    return result


def create_add_langs_macro(lang: LangConfigurator) -> ScriptGenerator:
    """addLangs 宏片段"""
    generator = ScriptGenerator()
    generator.macro(
        "addLangs",
        [f'!insertmacro MUI_LANGUAGE "{nsis_language_name(it)}"' for it in lang.langs],
    )
    return generator


def _escape_message(value: str) -> str:
    return value.replace("\n", "$\\r$\\n")


def compute_message_translations(messages: Dict[str, Dict[str, str]], lang: LangConfigurator) -> List[str]:
    """把消息目录渲染为 LangString 指令

    目录中缺失的语言回退到英文翻译。

    Raises:
        ValueError: 某条消息的某种语言值为空，或缺少英文回退
    """
    included = set(lang.langs)
    result: List[str] = []
    for message_id, translations in messages.items():
        unspecified = list(lang.langs)
        for raw_lang, value in translations.items():
            lang_with_region = to_lang_with_region(raw_lang)
            if lang_with_region not in included:
                continue
            if value is None:
                raise ValueError(f"{message_id} 未提供 {raw_lang} 翻译")
            result.append(f'LangString {message_id} {lcid_for(lang_with_region)} "{_escape_message(value)}"')
            if lang_with_region in unspecified:
                unspecified.remove(lang_with_region)

        if unspecified:
            default = translations.get("en")
            if default is None:
                raise ValueError(f"{message_id} 缺少英文翻译")
            for lang_with_region in unspecified:
                result.append(f'LangString {message_id} {lcid_for(lang_with_region)} "{_escape_message(default)}"')
    return result


def load_message_catalog(path: Path) -> Dict[str, Dict[str, str]]:
    yaml = YAML(typ="safe", pure=True)
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.load(f)
    return dict(data or {})


async def message_catalog_fragment(ctx: 'FragmentContext', catalog_name: str) -> ScriptGenerator:
    """渲染内置消息目录并生成 include 片段"""
    catalog = ctx.templates_dir / catalog_name
    messages = await asyncio.to_thread(load_message_catalog, catalog)
    instructions = "\n".join(compute_message_translations(messages, ctx.lang))
    if ctx.config.debug_logging:
        debug(f"{catalog_name} 渲染结果:\n{instructions}")

    output = ctx.temp_dir / f"{Path(catalog_name).stem}.nsh"
    await asyncio.to_thread(output.write_text, instructions, 'utf-8')

    generator = ScriptGenerator()
    generator.include(output)
    return generator


def version_language_id(installer: Any) -> str:
    """VIAddVersionKey 使用的 LCID"""
    language: Optional[str] = getattr(installer, "language", None)
    return language or "1033"
