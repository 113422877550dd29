"""
文件关联片段

安装器：registerFileAssociations 宏，每个扩展名一条 APP_ASSOCIATE，自定义图标嵌入到
$INSTDIR\\resources 下。多个扩展名共用同一图标时只嵌入一次。
卸载器：unregisterFileAssociations 宏，每个扩展名一条 APP_UNASSOCIATE。
"""

from typing import TYPE_CHECKING, Set

from ..script_generator import ScriptGenerator

if TYPE_CHECKING:
    from .base import FragmentContext

DEFAULT_ICON = "$appExe,0"
OPEN_COMMAND = '"$appExe $\\"%1$\\""'


async def register_associations_fragment(ctx: 'FragmentContext') -> ScriptGenerator:
    generator = ScriptGenerator()
    associations = ctx.config.file_associations
    if not associations:
        return generator

    generator.include(ctx.include_dir / "FileAssociation.nsh")
    body = ScriptGenerator()
    embedded: Set[str] = set()
    command_text = f'"Open with {ctx.config.app.display_name}"'
    for item in associations:
        extensions = item.extensions
        custom_icon = await ctx.locator.get_resource(item.icon, f"{extensions[0]}.ico")
        installed_icon = DEFAULT_ICON
        if custom_icon is not None:
            installed_icon = f"$INSTDIR\\resources\\{custom_icon.name}"
            if installed_icon not in embedded:
                body.file(installed_icon, custom_icon)
                embedded.add(installed_icon)

        for ext in extensions:
            body.insert_macro(
                "APP_ASSOCIATE",
                f'"{ext}" "{item.name or ext}" "{item.description or ""}" '
                f'"{installed_icon}" {command_text} {OPEN_COMMAND}',
            )
    generator.macro("registerFileAssociations", body)
    return generator


async def unregister_associations_fragment(ctx: 'FragmentContext') -> ScriptGenerator:
    generator = ScriptGenerator()
    associations = ctx.config.file_associations
    if not associations:
        return generator

    generator.include(ctx.include_dir / "FileAssociation.nsh")
    body = ScriptGenerator()
    for item in associations:
        for ext in item.extensions:
            body.insert_macro("APP_UNASSOCIATE", f'"{ext}" "{item.name or ext}"')
    generator.macro("unregisterFileAssociations", body)
    return generator
