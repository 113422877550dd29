"""
nsiforge CLI 主入口

提供命令行接口，支持 build/validate/guid/info/example 等命令。
"""

import shutil
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..utils import configure_logging
from .commands import build, validate


# 创建主应用
app = typer.Typer(
    name="nsiforge",
    help="nsiforge - NSIS 安装器构建系统",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# 控制台输出
console = Console()


# 全局选项
def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"nsiforge v{__version__}")
        raise typer.Exit()


def verbose_callback(verbose: bool) -> None:
    """配置详细输出"""
    configure_logging(level="DEBUG" if verbose else "INFO")


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        help="显示版本信息"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        callback=verbose_callback,
        help="启用详细输出"
    )
) -> None:
    """nsiforge - NSIS 安装器构建系统

    使用 --help 查看可用命令的详细信息。
    """
    pass


# 注册子命令
app.command("build", help="构建安装器")(build.build_command)
app.command("validate", help="验证配置文件")(validate.validate_command)


@app.command("guid")
def guid_command(
    app_id: str = typer.Argument(..., help="应用标识，例如 com.example.app"),
) -> None:
    """显示由应用标识派生的安装器 GUID 和卸载注册表键"""
    from ..build.symbol_builder import derive_guid, uninstall_app_key

    guid = derive_guid(app_id)
    console.print(f"[blue]GUID[/blue]: {guid}")
    console.print(
        "[blue]卸载注册表键[/blue]: "
        f"Software\\Microsoft\\Windows\\CurrentVersion\\Uninstall\\{uninstall_app_key(guid)}"
    )


@app.command("info")
def info_command() -> None:
    """显示系统信息与外部工具检测结果"""
    import zstandard

    console.print("[bold]nsiforge 系统信息[/bold]")
    console.print()

    table = Table(title="版本信息")
    table.add_column("组件", style="cyan")
    table.add_column("版本", style="green")

    table.add_row("nsiforge", __version__)
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("zstandard", zstandard.__version__)

    console.print(table)
    console.print()

    tools_table = Table(title="外部工具")
    tools_table.add_column("工具", style="cyan")
    tools_table.add_column("状态", style="green")

    for tool in ("makensis", "7za", "wine"):
        found = shutil.which(tool)
        tools_table.add_row(tool, f"✓ {found}" if found else "✗ 未找到")

    console.print(tools_table)


@app.command("example")
def example_command(
    output: str = typer.Option(
        "nsiforge.yaml",
        "--output", "-o",
        help="输出配置文件路径"
    )
) -> None:
    """生成示例配置文件"""
    from ..config import save_config
    from ..config.schema import AppInfoModel, AssistedInstallerModel, BuildConfig

    config = BuildConfig(
        app=AppInfoModel(
            id="com.example.app",
            name="example-app",
            product_name="Example App",
            version="1.0.0",
            company="Example Inc.",
            description="这是一个示例应用程序",
        ),
        installer=AssistedInstallerModel(
            allow_to_change_installation_directory=True,
            license="license.txt",
        ),
    )

    try:
        save_config(config, output)
    except OSError as e:
        console.print(f"[red]生成示例配置失败: {e}[/red]")
        raise typer.Exit(1)

    console.print(f"✓ 示例配置文件已生成: [green]{output}[/green]")
    console.print("请根据需要修改配置文件，然后运行:")
    console.print(f"  [cyan]nsiforge build -c {output} -a x64=dist/win-unpacked[/cyan]")


if __name__ == "__main__":
    app()
