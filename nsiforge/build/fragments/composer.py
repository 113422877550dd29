"""
脚本组合

共享头部（安装器与卸载器子构建共用）与最终脚本都由若干片段组成。
互不依赖的片段并发计算，全部完成后按固定顺序合并，结果与完成顺序无关。
"""

from typing import Awaitable, Callable, List

from ...config.schema import AssistedInstallerModel, NsisInstallerOptions
from ...utils.logging import LogStage, debug
from ..script_generator import ScriptGenerator
from ..tasks import AsyncTaskManager, CancellationToken
from .associations import register_associations_fragment, unregister_associations_fragment
from .base import FragmentContext
from .lang import create_add_langs_macro, message_catalog_fragment
from .license import license_fragment
from .precompressed import pre_compressed_extensions, pre_compressed_fragment

# 安装器运行时识别的命令行标志
RUNTIME_FLAGS = (
    "updated",
    "force-run",
    "keep-shortcuts",
    "no-desktop-shortcut",
    "delete-app-data",
    "allusers",
    "currentuser",
)

Provider = Callable[[], Awaitable[ScriptGenerator]]


class ScriptComposer:
    """组合共享头部与最终脚本"""

    def __init__(self, ctx: FragmentContext, cancellation_token: CancellationToken):
        self.ctx = ctx
        self.cancellation_token = cancellation_token

    async def _run_providers(self, providers: List[Provider]) -> ScriptGenerator:
        manager = AsyncTaskManager(self.cancellation_token)
        for provider in providers:
            manager.add(provider)
        merged = ScriptGenerator()
        for fragment in await manager.await_tasks():
            merged.merge(fragment)
        return merged

    async def _plugin_dir(self) -> ScriptGenerator:
        generator = ScriptGenerator()
        if self.ctx.nsis_resources_dir is not None:
            arch = self.ctx.plugin_arch
            generator.add_plugin_dir(arch, self.ctx.nsis_resources_dir / "plugins" / arch)
        return generator

    async def _user_plugin_dir(self) -> ScriptGenerator:
        generator = ScriptGenerator()
        arch = self.ctx.plugin_arch
        user_dir = self.ctx.locator.build_resources_dir / arch
        if await self.ctx.locator.is_directory(user_dir):
            generator.add_plugin_dir(arch, user_dir)
        return generator

    async def _custom_include(self) -> ScriptGenerator:
        generator = ScriptGenerator()
        installer = self.ctx.config.installer
        custom = installer.include if isinstance(installer, NsisInstallerOptions) else None
        include = await self.ctx.locator.get_resource(custom, "installer.nsh")
        if include is not None:
            generator.add_include_dir(self.ctx.locator.build_resources_dir)
            generator.include(include)
        return generator

    async def shared_header(self) -> str:
        ctx = self.ctx
        generator = ScriptGenerator()
        generator.add_include_dir(ctx.include_dir)
        if ctx.nsis_resources_dir is not None:
            generator.add_include_dir(ctx.nsis_resources_dir / "include")
        generator.include("StdUtils.nsh")
        generator.flags(RUNTIME_FLAGS)
        generator.merge(create_add_langs_macro(ctx.lang))

        providers: List[Provider] = [
            self._plugin_dir,
            self._user_plugin_dir,
            lambda: message_catalog_fragment(ctx, "messages.yml"),
        ]
        if not ctx.config.is_portable:
            if isinstance(ctx.config.installer, AssistedInstallerModel):
                providers.append(lambda: message_catalog_fragment(ctx, "assistedMessages.yml"))
            providers.append(self._custom_include)

        generator.merge(await self._run_providers(providers))
        debug("共享头部已生成", stage=LogStage.SCRIPT)
        return generator.build()

    async def final_script(self, template: str, is_installer: bool) -> str:
        """片段 + 模板正文

        Args:
            template: installer.nsi / portable.nsi 或自定义脚本的文本
            is_installer: False 表示卸载器子构建
        """
        ctx = self.ctx
        providers: List[Provider] = []
        if is_installer:
            providers.append(lambda: license_fragment(ctx))

        if not ctx.config.is_portable:
            extensions = pre_compressed_extensions(ctx)
            if extensions:
                for arch, app_dir in ctx.archs.items():
                    providers.append(
                        lambda arch=arch, app_dir=app_dir: pre_compressed_fragment(arch, app_dir, extensions)
                    )
            if is_installer:
                providers.append(lambda: register_associations_fragment(ctx))
            else:
                providers.append(lambda: unregister_associations_fragment(ctx))

        generator = await self._run_providers(providers)
        return generator.build() + template
