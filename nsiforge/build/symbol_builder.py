"""
符号表构建器

由配置、各架构载荷（路径、哈希、解压大小）与安装器模式推导出 makensis 的 defines 与 commands。
需要查找资源文件（图标、位图）的部分并发执行，每个查找返回独立的 define 集合，汇合后按固定顺序合并。
"""

import math
import re
import uuid
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..config.schema import (
    AppInfoModel,
    Arch,
    AssistedInstallerModel,
    BuildConfig,
    CompressionLevel,
    NsisInstallerOptions,
    OneClickInstallerModel,
    PortableInstallerModel,
    WebInstallerModel,
)
from ..utils.logging import LogStage, debug
from ..utils.paths import sanitize_file_name
from .build_context import InvalidConfigurationError, PackedPayload
from .fragments.lang import version_language_id
from .hashing import sha512_base64_to_hex
from .naming import expand_macros
from .resources import ResourceLocator
from .symbols import SymbolTable
from .tasks import AsyncTaskManager, CancellationToken

# 派生安装器 GUID 的命名空间
GUID_NAMESPACE = uuid.UUID("50e065bc-3134-11e6-9bab-38c9862bdaf3")

UNINSTALL_REGISTRY_ROOT = "Software\\Microsoft\\Windows\\CurrentVersion\\Uninstall"
DEFAULT_SIDEBAR_BITMAP = "${NSISDIR}\\Contrib\\Graphics\\Wizard\\nsis3-metro.bmp"

CURRENT_APP_INSTALLER_FILE_NAME = "installer.exe"
CURRENT_APP_PACKAGE_FILE_NAME = "package.7z"

_SAFE_DIR_NAME = re.compile(r'^[-_+0-9a-zA-Z .]+$')

Defines = Dict[str, Optional[str]]


def derive_guid(app_id: str) -> str:
    """应用标识 → 确定性的安装器 GUID（UUID v5）"""
    return str(uuid.uuid5(GUID_NAMESPACE, app_id))


def uninstall_app_key(guid: str) -> str:
    """卸载注册表键名不能包含反斜杠"""
    return guid.replace("\\", " - ")


def bytes_to_kilobytes(size: int) -> str:
    """字节数 → 整数 KB，向上取整（NSIS 只接受整数 KB）"""
    return str(math.ceil(size / 1024))


def estimated_size_kilobytes(total: int) -> int:
    """估算大小（KB），四舍五入"""
    return (total + 512) // 1024


def installation_dir_name(app: AppInfoModel, safe: bool) -> str:
    """安装目录名：允许时使用产品文件名，否则使用规范化的应用名"""
    if safe and _SAFE_DIR_NAME.match(app.product_filename):
        return app.product_filename
    return app.sanitized_name


def installation_app_package_name(name: str) -> str:
    return name.replace("@", "").replace("/", "-")


def compute_version_key(app: AppInfoModel, lcid: str, short: bool = False) -> List[str]:
    """VIAddVersionKey 命令列表；短版本用于卸载器"""
    version = app.short_version if short and app.short_version else app.version
    file_version = app.short_version if short and app.short_version else app.file_version
    keys = [
        f'/LANG={lcid} ProductName "{app.display_name}"',
        f'/LANG={lcid} ProductVersion "{version}"',
        f'/LANG={lcid} LegalCopyright "{app.effective_copyright}"',
        f'/LANG={lcid} FileDescription "{app.effective_description}"',
        f'/LANG={lcid} FileVersion "{file_version}"',
    ]
    if app.legal_trademarks:
        keys.append(f'/LANG={lcid} LegalTrademarks "{app.legal_trademarks}"')
    if app.company:
        keys.append(f'/LANG={lcid} CompanyName "{app.company}"')
    return keys


def menu_category(config: BuildConfig) -> Optional[str]:
    installer = config.installer
    category = installer.menu_category if isinstance(installer, NsisInstallerOptions) else None
    if category is None or category is False:
        return None
    if category is True:
        if not config.app.company:
            raise InvalidConfigurationError("menu_category 为 true 时必须设置 app.company")
        return sanitize_file_name(config.app.company)
    return "\\".join(sanitize_file_name(part) for part in re.split(r'[/\\]', category) if part)


class SymbolTableBuilder:
    """符号表构建器"""

    def __init__(
        self,
        config: BuildConfig,
        locator: ResourceLocator,
        cancellation_token: CancellationToken,
        debug_logging: bool = False,
    ):
        self.config = config
        self.locator = locator
        self.cancellation_token = cancellation_token
        self.debug_logging = debug_logging

    @property
    def app(self) -> AppInfoModel:
        return self.config.app

    @property
    def guid(self) -> str:
        return self.config.installer.guid or derive_guid(self.app.app_id)

    async def build(
        self,
        installer_path: Path,
        archs: Mapping[Arch, Path],
        payloads: Mapping[Arch, PackedPayload],
        estimated_size: Optional[int] = None,
    ) -> SymbolTable:
        """构建安装器符号表

        Args:
            installer_path: 安装器输出路径
            archs: 本 BuildUnit 的 架构 → 应用目录
            payloads: 已打包的载荷（便携版使用 zip 目录模式时为空）
            estimated_size: 所有架构归档列表的解压总字节数，未知时为 None
        """
        symbols = SymbolTable()
        symbols.update(self.base_defines())
        self._commands(symbols, installer_path)

        icon = await self._installer_icon()
        if icon is not None:
            if self.config.is_portable:
                symbols.command("Icon", f'"{icon}"')
            else:
                symbols.define("MUI_ICON", str(icon))
                symbols.define("MUI_UNICON", str(icon))

        if self.config.is_portable and self.config.installer.use_zip:
            for arch, app_dir in archs.items():
                symbols.define(arch.dir_define_key, str(app_dir))
        else:
            symbols.update(self.payload_defines(payloads))

        symbols.update(self.all_types_defines(symbols.get("APP_FILENAME")))
        if isinstance(self.config.installer, PortableInstallerModel):
            symbols.update(self.portable_defines(self.config.installer))
        else:
            symbols.update(await self.mode_defines())

        if estimated_size:
            symbols.define("ESTIMATED_SIZE", estimated_size_kilobytes(estimated_size))

        self._compression(symbols)

        if self.debug_logging:
            debug(f"defines: {symbols.to_dict()['defines']}", stage=LogStage.SYMBOLS)
            debug(f"commands: {symbols.to_dict()['commands']}", stage=LogStage.SYMBOLS)
        return symbols

    def uninstaller_variant(self, symbols: SymbolTable) -> SymbolTable:
        """卸载器使用的副本；预发布版本使用短版本号，使各次构建的卸载器差异尽量小"""
        result = symbols.copy()
        if self.app.short_version is not None:
            result.define("VERSION", self.app.short_version)
            result.command("VIProductVersion", self.app.short_version_windows)
            result.command(
                "VIAddVersionKey",
                compute_version_key(self.app, version_language_id(self.config.installer), short=True),
            )
        return result

    # 各组 define

    def base_defines(self) -> Defines:
        app = self.app
        installer = self.config.installer
        guid = self.guid
        key = uninstall_app_key(guid)
        safe_dir_name = not installer.is_one_click or getattr(installer, "per_machine", False)

        defines: Defines = {
            "APP_ID": app.app_id,
            "APP_GUID": guid,
            "UNINSTALL_APP_KEY": key,
            "PRODUCT_NAME": app.display_name,
            "PRODUCT_FILENAME": app.product_filename,
            "APP_FILENAME": installation_dir_name(app, safe_dir_name),
            "APP_DESCRIPTION": app.effective_description,
            "VERSION": app.version,
            "PROJECT_DIR": str(self.config.project_dir),
            "BUILD_RESOURCES_DIR": str(self.config.resources_dir),
            "APP_PACKAGE_NAME": installation_app_package_name(app.name),
        }
        if self.debug_logging:
            defines["ENABLE_LOGGING"] = None
        if key != guid:
            defines["UNINSTALL_REGISTRY_KEY_2"] = f"{UNINSTALL_REGISTRY_ROOT}\\{guid}"

        if isinstance(installer, NsisInstallerOptions):
            urls = {
                "UNINSTALL_URL_HELP": installer.uninstall_url_help,
                "UNINSTALL_URL_INFO_ABOUT": installer.uninstall_url_info_about,
                "UNINSTALL_URL_UPDATE_INFO": installer.uninstall_url_update_info,
                "UNINSTALL_URL_README": installer.uninstall_url_readme,
            }
            for name, value in urls.items():
                value = value or app.homepage
                if value:
                    defines[name] = value
        return defines

    def payload_defines(self, payloads: Mapping[Arch, PackedPayload]) -> Defines:
        defines: Defines = {}
        for arch, payload in payloads.items():
            key = arch.define_key
            file_path = Path(payload.file_info.path)
            defines[key] = str(file_path)
            defines[f"{key}_NAME"] = file_path.name
            defines[f"{key}_HASH"] = sha512_base64_to_hex(payload.file_info.sha512)
            defines[f"{key}_UNPACKED_SIZE"] = bytes_to_kilobytes(payload.unpacked_size)
        return defines

    def all_types_defines(self, app_filename: Optional[str]) -> Defines:
        app = self.app
        installer = self.config.installer
        defines: Defines = {}
        if app.company:
            defines["COMPANY_NAME"] = app.company

        # 应用数据目录以产品文件名命名，卸载时需要删除
        if app_filename != app.product_filename:
            defines["APP_PRODUCT_FILENAME"] = app.product_filename

        if self.config.is_web_installer:
            defines["APP_PACKAGE_STORE_FILE"] = f"{app.updater_cache_dir_name}\\{CURRENT_APP_PACKAGE_FILE_NAME}"
        else:
            defines["APP_INSTALLER_STORE_FILE"] = f"{app.updater_cache_dir_name}\\{CURRENT_APP_INSTALLER_FILE_NAME}"

        if not self.config.is_web_installer:
            if installer.use_zip:
                defines["ZIP_COMPRESSION"] = None
            defines["COMPRESSION_METHOD"] = "zip" if installer.use_zip else "7z"
        return defines

    def portable_defines(self, installer: PortableInstallerModel) -> Defines:
        defines: Defines = {"REQUEST_EXECUTION_LEVEL": installer.request_execution_level.value}
        if isinstance(installer.unpack_dir_name, str):
            defines["UNPACK_DIR_NAME"] = installer.unpack_dir_name
        elif installer.unpack_dir_name is None:
            defines["UNPACK_DIR_NAME"] = uuid.uuid4().hex
        if installer.splash_image:
            defines["SPLASH_IMAGE"] = str((self.config.project_dir / installer.splash_image).resolve())
        return defines

    async def mode_defines(self) -> Defines:
        """安装模式相关的 define；资源查找并发执行"""
        installer = self.config.installer
        manager = AsyncTaskManager(self.cancellation_token)
        defines: Defines = {}

        if isinstance(installer, (OneClickInstallerModel, WebInstallerModel)):
            defines["ONE_CLICK"] = None
            if installer.run_after_finish:
                defines["RUN_AFTER_FINISH"] = None
            if isinstance(installer, WebInstallerModel):
                defines["APP_PACKAGE_URL"] = installer.app_package_url
            manager.add(lambda: self._header_icon(installer))
        elif isinstance(installer, AssistedInstallerModel):
            if not installer.run_after_finish:
                defines["HIDE_RUN_AFTER_FINISH"] = None
            manager.add(lambda: self._header_image(installer))
            manager.add(lambda: self._sidebars(installer))
            if installer.allow_elevation:
                defines["MULTIUSER_INSTALLMODE_ALLOW_ELEVATION"] = None
        else:
            raise InvalidConfigurationError(f"不支持的安装器模式: {installer.mode}")

        if installer.per_machine:
            defines["INSTALL_MODE_PER_ALL_USERS"] = None
        if installer.select_per_machine_by_default:
            defines["INSTALL_MODE_PER_ALL_USERS_DEFAULT"] = None
        if not installer.is_one_click or installer.per_machine:
            defines["INSTALL_MODE_PER_ALL_USERS_REQUIRED"] = None

        if isinstance(installer, AssistedInstallerModel):
            if installer.allow_to_change_installation_directory:
                defines["allowToChangeInstallationDirectory"] = None
            if installer.allow_to_add_shortcut:
                defines["ALLOW_TO_ADD_SHORTCUT"] = None
            if installer.remove_default_uninstall_welcome_page:
                defines["removeDefaultUninstallWelcomePage"] = None

        category = menu_category(self.config)
        if category is not None:
            defines["MENU_FILENAME"] = category
        defines["SHORTCUT_NAME"] = expand_macros(installer.shortcut_name or "${productName}", self.app)

        if getattr(installer, "delete_app_data_on_uninstall", False):
            defines["DELETE_APP_DATA_ON_UNINSTALL"] = None

        manager.add(lambda: self._uninstaller_icon(installer))

        defines["UNINSTALL_DISPLAY_NAME"] = expand_macros(
            installer.uninstall_display_name or "${productName} ${version}", self.app
        )
        if installer.create_desktop_shortcut is False:
            defines["DO_NOT_CREATE_DESKTOP_SHORTCUT"] = None
        elif installer.create_desktop_shortcut == "always":
            defines["RECREATE_DESKTOP_SHORTCUT"] = None
        if not installer.create_start_menu_shortcut:
            defines["DO_NOT_CREATE_START_MENU_SHORTCUT"] = None
        if installer.display_language_selector:
            defines["DISPLAY_LANG_SELECTOR"] = None

        for result in await manager.await_tasks():
            defines.update(result)
        return defines

    # 资源查找

    async def _installer_icon(self) -> Optional[Path]:
        installer = self.config.installer
        icon = None
        if isinstance(installer, NsisInstallerOptions):
            icon = await self.locator.get_resource(installer.installer_icon, "installerIcon.ico")
        return icon or await self.locator.get_icon_path()

    async def _header_icon(self, installer: OneClickInstallerModel) -> Defines:
        icon = await self.locator.get_resource(installer.installer_header_icon, "installerHeaderIcon.ico")
        return {} if icon is None else {"HEADER_ICO": str(icon)}

    async def _header_image(self, installer: AssistedInstallerModel) -> Defines:
        header = await self.locator.get_resource(installer.installer_header, "installerHeader.bmp")
        if header is None:
            return {}
        return {
            "MUI_HEADERIMAGE": None,
            "MUI_HEADERIMAGE_RIGHT": None,
            "MUI_HEADERIMAGE_BITMAP": str(header),
        }

    async def _sidebars(self, installer: AssistedInstallerModel) -> Defines:
        sidebar = await self.locator.get_resource(installer.installer_sidebar, "installerSidebar.bmp")
        bitmap = str(sidebar) if sidebar is not None else DEFAULT_SIDEBAR_BITMAP
        uninstaller_sidebar = await self.locator.get_resource(installer.uninstaller_sidebar, "uninstallerSidebar.bmp")
        return {
            "MUI_WELCOMEFINISHPAGE_BITMAP": bitmap,
            "MUI_UNWELCOMEFINISHPAGE_BITMAP": str(uninstaller_sidebar) if uninstaller_sidebar is not None else bitmap,
        }

    async def _uninstaller_icon(self, installer: NsisInstallerOptions) -> Defines:
        icon = await self.locator.get_resource(installer.uninstaller_icon, "uninstallerIcon.ico")
        if icon is None:
            return {}
        # MUI_UNICON 默认与应用图标相同，这里同时覆盖
        return {"UNINSTALLER_ICON": str(icon), "MUI_UNICON": str(icon)}

    # commands

    def _commands(self, symbols: SymbolTable, installer_path: Path) -> None:
        installer = self.config.installer
        symbols.command("OutFile", f'"{installer_path}"')
        symbols.command("VIProductVersion", self.app.version_in_windows_form())
        symbols.command("VIAddVersionKey", compute_version_key(self.app, version_language_id(installer)))
        symbols.command("Unicode", "true" if installer.unicode else "false")

    def _compression(self, symbols: SymbolTable) -> None:
        if self.config.compression is CompressionLevel.STORE:
            symbols.command("SetCompress", "off")
        else:
            # 不使用 /SOLID：固实压缩会先解压到临时文件，便携版不适用
            symbols.command("SetCompressor", "zlib")
            if not self.config.is_web_installer:
                symbols.define("COMPRESS", "auto")
