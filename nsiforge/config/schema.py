"""
配置 Schema 定义

使用 Pydantic 定义严格的 YAML 配置模型，支持验证和类型检查。
安装器模式是按 ``mode`` 字段区分的联合类型（one-click / assisted / web / portable），
每种模式只携带对其有效的选项，非法的选项组合在加载配置时即被拒绝。
"""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from ..utils.paths import sanitize_file_name

_VERSION_PATTERN = re.compile(r'^(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+]([\w.\-+]+))?$')

# 默认不再压缩的文件类型（视频、虚拟磁盘等本身已压缩的资源）
DEFAULT_PRE_COMPRESSED_EXTENSIONS = [".avi", ".mov", ".m4v", ".mp4", ".m4p", ".qt", ".mkv", ".webm", ".vmdk"]

# 仅对向导式（assisted）安装器有意义的选项
ASSISTED_ONLY_OPTIONS = (
    "allow_elevation",
    "allow_to_add_shortcut",
    "allow_to_change_installation_directory",
    "remove_default_uninstall_welcome_page",
    "installer_header",
    "installer_sidebar",
    "uninstaller_sidebar",
)


class Arch(str, Enum):
    """目标架构"""
    IA32 = "ia32"
    X64 = "x64"
    ARM64 = "arm64"

    @property
    def define_key(self) -> str:
        """符号表中该架构载荷的 define 前缀"""
        if self is Arch.X64:
            return "APP_64"
        if self is Arch.ARM64:
            return "APP_ARM64"
        return "APP_32"

    @property
    def dir_define_key(self) -> str:
        """便携版直接引用目录时使用的 define 名"""
        if self is Arch.X64:
            return "APP_DIR_64"
        if self is Arch.ARM64:
            return "APP_DIR_ARM64"
        return "APP_DIR_32"


class CompressionLevel(str, Enum):
    """压缩级别"""
    STORE = "store"
    NORMAL = "normal"
    MAXIMUM = "maximum"


class RequestExecutionLevel(str, Enum):
    """便携版请求的执行级别"""
    USER = "user"
    HIGHEST = "highest"
    ADMIN = "admin"


class InstallerMode(str, Enum):
    """安装器模式"""
    ONE_CLICK = "one-click"
    ASSISTED = "assisted"
    WEB = "web"
    PORTABLE = "portable"


class AppInfoModel(BaseModel):
    """应用信息模型"""
    id: Optional[str] = Field(None, description="应用标识（用于派生安装器 GUID）")
    name: str = Field(..., description="应用名称", min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, description="产品显示名称，默认与 name 相同")
    version: str = Field(..., description="版本号", min_length=1, max_length=40)
    description: Optional[str] = Field(None, description="产品描述", max_length=500)
    company: Optional[str] = Field(None, description="公司名称", max_length=100)
    copyright: Optional[str] = Field(None, description="版权信息", max_length=200)
    homepage: Optional[str] = Field(None, description="官网地址")
    build_number: Optional[str] = Field(None, description="构建号")
    legal_trademarks: Optional[str] = Field(None, description="商标信息")
    icon: Optional[str] = Field(None, description="应用图标 (.ico)")

    model_config = {"extra": "forbid", "str_strip_whitespace": True}

    @field_validator('version')
    @classmethod
    def validate_version(cls, v: str) -> str:
        """验证版本号格式"""
        if not _VERSION_PATTERN.match(v):
            raise ValueError("版本号格式不正确，支持格式：1.0.0、1.0、1.2.3-beta.1 等")
        return v

    @property
    def app_id(self) -> str:
        return self.id or f"com.nsiforge.{self.name}"

    @property
    def display_name(self) -> str:
        return self.product_name or self.name

    @property
    def product_filename(self) -> str:
        """可用作文件名的产品名"""
        return sanitize_file_name(self.display_name)

    @property
    def sanitized_name(self) -> str:
        return sanitize_file_name(self.name)

    @property
    def effective_copyright(self) -> str:
        if self.copyright:
            return self.copyright
        return f"Copyright © {datetime.now().year} {self.company or self.name}"

    @property
    def effective_description(self) -> str:
        return self.description or self.display_name

    @property
    def updater_cache_dir_name(self) -> str:
        return f"{self.sanitized_name.lower()}-updater"

    @property
    def file_version(self) -> str:
        if self.build_number:
            return f"{self.version}.{self.build_number}"
        return self.version

    def _version_parts(self):
        match = _VERSION_PATTERN.match(self.version)
        major, minor, patch, suffix = match.groups()
        return major, minor or "0", patch or "0", suffix

    def version_in_windows_form(self, include_build_number: bool = True) -> str:
        """VIProductVersion 要求 X.X.X.X 格式，预发布后缀必须去掉"""
        major, minor, patch, _ = self._version_parts()
        build = self.build_number if include_build_number else None
        if build is None or not build.isdigit():
            build = "0"
        return f"{major}.{minor}.{patch}.{build}"

    @property
    def short_version(self) -> Optional[str]:
        """预发布版本的短版本号（不含后缀），正式版为 None"""
        major, minor, patch, suffix = self._version_parts()
        if suffix is None:
            return None
        return f"{major}.{minor}.{patch}"

    @property
    def short_version_windows(self) -> Optional[str]:
        if self.short_version is None:
            return None
        return self.version_in_windows_form(include_build_number=False)


class FileAssociationModel(BaseModel):
    """文件关联模型"""
    ext: Union[str, List[str]] = Field(..., description="扩展名（不含点），可为列表")
    name: Optional[str] = Field(None, description="关联名称，默认为扩展名")
    description: Optional[str] = Field(None, description="文件类型描述")
    icon: Optional[str] = Field(None, description="图标文件名（相对于构建资源目录）")

    model_config = {"extra": "forbid"}

    @property
    def extensions(self) -> List[str]:
        raw = [self.ext] if isinstance(self.ext, str) else list(self.ext)
        return [normalize_ext(it) for it in raw]


def normalize_ext(ext: str) -> str:
    """去掉扩展名前导的点"""
    return ext[1:] if ext.startswith(".") else ext


class CommonInstallerOptions(BaseModel):
    """所有安装器模式共有的选项"""
    guid: Optional[str] = Field(None, description="安装器 GUID，默认由应用标识派生")
    unicode: bool = Field(True, description="是否构建 Unicode 安装器")
    warnings_as_errors: bool = Field(True, description="是否将编译器警告视为错误")
    use_zip: bool = Field(False, description="使用 zip 而非 7z 打包载荷")
    build_universal_installer: bool = Field(True, description="多架构是否合并为一个安装器")
    artifact_name: Optional[str] = Field(None, description="产物文件名模板")

    model_config = {"extra": "forbid"}

    @property
    def is_one_click(self) -> bool:
        return False


class NsisInstallerOptions(CommonInstallerOptions):
    """安装式（非便携版）安装器共有的选项"""
    per_machine: bool = Field(False, description="是否为所有用户安装")
    select_per_machine_by_default: bool = Field(False, description="安装模式页面默认选中所有用户")
    installer_icon: Optional[str] = Field(None, description="安装器图标")
    uninstaller_icon: Optional[str] = Field(None, description="卸载器图标")
    uninstall_display_name: Optional[str] = Field(None, description="控制面板中的显示名称")
    uninstall_url_help: Optional[str] = None
    uninstall_url_info_about: Optional[str] = None
    uninstall_url_update_info: Optional[str] = None
    uninstall_url_readme: Optional[str] = None
    include: Optional[str] = Field(None, description="自定义 include 脚本 (installer.nsh)")
    script: Optional[str] = Field(None, description="自定义安装脚本 (installer.nsi)")
    license: Optional[str] = Field(None, description="许可协议文件")
    display_language_selector: bool = Field(False, description="是否显示语言选择对话框")
    installer_languages: Optional[List[str]] = Field(None, description="安装器语言列表，如 en_US")
    language: Optional[str] = Field(None, description="版本信息使用的 LCID，默认 1033")
    multi_language_installer: Optional[bool] = Field(None, description="是否构建多语言安装器")
    pack_elevate_helper: bool = Field(True, description="是否打包 elevate 提权辅助程序")
    pre_compressed_file_extensions: Optional[List[str]] = Field(
        default_factory=lambda: list(DEFAULT_PRE_COMPRESSED_EXTENSIONS),
        description="不再压缩、直接嵌入的文件扩展名",
    )
    differential_package: bool = Field(True, description="是否生成差分更新数据")
    menu_category: Union[bool, str, None] = Field(None, description="开始菜单子目录")
    shortcut_name: Optional[str] = Field(None, description="快捷方式名称")
    create_desktop_shortcut: Union[bool, Literal["always"]] = Field(True, description="是否创建桌面快捷方式")
    create_start_menu_shortcut: bool = Field(True, description="是否创建开始菜单快捷方式")
    run_after_finish: bool = Field(True, description="安装完成后是否运行应用")

    @field_validator('installer_languages', 'pre_compressed_file_extensions', mode='before')
    @classmethod
    def validate_string_list(cls, v: Any) -> Any:
        """允许单个字符串写法"""
        if isinstance(v, str):
            return [v]
        return v

    @field_validator('pre_compressed_file_extensions')
    @classmethod
    def normalize_extensions(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return None
        return [it if it.startswith(".") else f".{it}" for it in v]


class OneClickInstallerModel(NsisInstallerOptions):
    """一键安装器：无任何用户选择"""
    mode: Literal["one-click"] = "one-click"
    installer_header_icon: Optional[str] = Field(None, description="进度条上方的图标")
    delete_app_data_on_uninstall: bool = Field(False, description="卸载时是否删除应用数据")

    @model_validator(mode='before')
    @classmethod
    def reject_assisted_only_options(cls, data: Any) -> Any:
        """向导式专有选项出现在一键模式下属于配置错误，而不是被静默忽略"""
        if isinstance(data, dict):
            for key in ASSISTED_ONLY_OPTIONS:
                if key in data and data[key] not in (None, False):
                    raise ValueError(
                        f"{key} 仅适用于向导式安装器（请设置 mode: assisted）"
                    )
        return data

    @property
    def is_one_click(self) -> bool:
        return True


class WebInstallerModel(OneClickInstallerModel):
    """Web 安装器：安装时再下载应用包"""
    mode: Literal["web"] = "web"
    app_package_url: str = Field(..., description="应用包下载地址", min_length=1)
    build_universal_installer: Literal[True] = Field(True, description="Web 安装器总是通用安装器")


class AssistedInstallerModel(NsisInstallerOptions):
    """向导式安装器"""
    mode: Literal["assisted"] = "assisted"
    allow_elevation: bool = Field(True, description="是否允许请求提权")
    allow_to_add_shortcut: bool = Field(False, description="是否允许用户选择创建快捷方式")
    allow_to_change_installation_directory: bool = Field(False, description="是否允许修改安装目录")
    remove_default_uninstall_welcome_page: bool = Field(False, description="移除默认卸载欢迎页")
    installer_header: Optional[str] = Field(None, description="MUI_HEADERIMAGE 位图")
    installer_sidebar: Optional[str] = Field(None, description="欢迎/完成页侧边栏位图")
    uninstaller_sidebar: Optional[str] = Field(None, description="卸载器侧边栏位图")


class PortableInstallerModel(CommonInstallerOptions):
    """便携版：解压到临时目录后直接运行"""
    mode: Literal["portable"] = "portable"
    request_execution_level: RequestExecutionLevel = Field(RequestExecutionLevel.USER)
    unpack_dir_name: Union[str, bool, None] = Field(
        None,
        description="解压目录名；false 表示每次使用唯一的 $PLUGINSDIR，未设置则每次构建随机生成",
    )
    splash_image: Optional[str] = Field(None, description="解压时显示的位图")

    @field_validator('unpack_dir_name')
    @classmethod
    def validate_unpack_dir_name(cls, v: Union[str, bool, None]) -> Union[str, bool, None]:
        if v is True:
            raise ValueError("unpack_dir_name 只能是字符串或 false")
        return v


InstallerModel = Annotated[
    Union[OneClickInstallerModel, AssistedInstallerModel, WebInstallerModel, PortableInstallerModel],
    Field(discriminator="mode"),
]


class ToolsModel(BaseModel):
    """外部工具配置"""
    makensis: Optional[Path] = Field(None, description="makensis 可执行文件")
    nsis_dir: Optional[Path] = Field(None, description="NSIS 安装目录（NSISDIR）")
    nsis_resources_dir: Optional[Path] = Field(None, description="插件、StdUtils.nsh、elevate.exe 所在目录")
    seven_zip: str = Field("7za", description="7-Zip 命令")
    wine: str = Field("wine", description="Wine 命令")
    vm_command: Optional[List[str]] = Field(None, description="在虚拟机中执行程序的命令前缀")
    sign_command: Optional[List[str]] = Field(None, description="签名命令，{file} 为待签名文件")
    templates_dir: Optional[Path] = Field(None, description="NSIS 模板目录，默认使用内置模板")

    model_config = {"extra": "forbid"}

    @field_validator('sign_command')
    @classmethod
    def validate_sign_command(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is not None and not v:
            raise ValueError("sign_command 不能为空列表")
        return v


class ConfigModel(BaseModel):
    """配置元信息模型"""
    version: int = Field(1, description="配置 schema 版本", ge=1)

    @field_validator('version')
    @classmethod
    def validate_config_version(cls, v: int) -> int:
        """验证配置版本"""
        SUPPORTED_VERSIONS = [1]
        if v not in SUPPORTED_VERSIONS:
            raise ValueError(f"不支持的配置版本 {v}，支持的版本: {SUPPORTED_VERSIONS}")
        return v


class BuildConfig(BaseModel):
    """nsiforge 主配置模型

    整个配置文件的根模型。
    """

    config: ConfigModel = Field(default_factory=ConfigModel, description="配置元信息")

    app: AppInfoModel = Field(..., description="应用信息")
    installer: InstallerModel = Field(default_factory=OneClickInstallerModel, description="安装器模式与选项")

    archs: List[Arch] = Field(default_factory=lambda: [Arch.X64], description="目标架构", min_length=1)
    default_arch: Arch = Field(Arch.X64, description="文件名中不加架构后缀的默认架构")
    compression: CompressionLevel = Field(CompressionLevel.NORMAL, description="压缩级别")
    file_associations: List[FileAssociationModel] = Field(default_factory=list, description="文件关联")

    output_dir: Path = Field(Path("dist"), description="输出目录")
    project_dir: Path = Field(Path("."), description="项目目录")
    build_resources_dir: Optional[Path] = Field(None, description="构建资源目录，默认 <project_dir>/build")

    tools: ToolsModel = Field(default_factory=ToolsModel, description="外部工具")
    debug_logging: bool = Field(False, description="在生成的安装器中启用日志")

    model_config = {
        "extra": "forbid",
        "str_strip_whitespace": True,
    }

    @model_validator(mode='before')
    @classmethod
    def map_legacy_one_click(cls, data: Any) -> Any:
        """兼容旧写法 installer.one_click；与 mode 互相矛盾时报错"""
        if not isinstance(data, dict):
            return data
        installer = data.get('installer')
        if not isinstance(installer, dict) or 'one_click' not in installer:
            return data

        installer = dict(installer)
        one_click = installer.pop('one_click')
        mode = installer.get('mode')
        if mode is None:
            installer['mode'] = InstallerMode.ONE_CLICK.value if one_click else InstallerMode.ASSISTED.value
        elif mode == InstallerMode.PORTABLE.value:
            raise ValueError("one_click 不适用于 portable 模式")
        elif bool(one_click) != (mode in (InstallerMode.ONE_CLICK.value, InstallerMode.WEB.value)):
            raise ValueError(f"one_click={one_click} 与 mode={mode} 互相矛盾，只能启用一种安装器模式")

        data = dict(data)
        data['installer'] = installer
        return data

    @field_validator('archs')
    @classmethod
    def validate_archs(cls, v: List[Arch]) -> List[Arch]:
        """去除重复架构并保持顺序"""
        result: List[Arch] = []
        for arch in v:
            if arch not in result:
                result.append(arch)
        return result

    @property
    def resources_dir(self) -> Path:
        return self.build_resources_dir or (self.project_dir / "build")

    @property
    def mode(self) -> InstallerMode:
        return InstallerMode(self.installer.mode)

    @property
    def is_portable(self) -> bool:
        return self.mode is InstallerMode.PORTABLE

    @property
    def is_web_installer(self) -> bool:
        return self.mode is InstallerMode.WEB

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        data = self.model_dump(exclude_none=True, by_alias=True)

        def convert_values(obj):
            if isinstance(obj, dict):
                return {k: convert_values(v) for k, v in obj.items()}
            elif isinstance(obj, list):
                return [convert_values(item) for item in obj]
            elif isinstance(obj, Enum):
                return obj.value
            elif isinstance(obj, Path):
                return str(obj)
            return obj

        return convert_values(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BuildConfig':
        """从字典创建配置实例"""
        return cls.model_validate(data)
