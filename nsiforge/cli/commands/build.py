"""
Build 命令实现

为一个或多个架构的应用目录构建安装器。
"""

import traceback
from pathlib import Path
from typing import Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from ...config import Arch, ConfigError, ConfigValidationError, load_config
from ...utils.logging import OutputLevel, set_log_file, set_log_level
from ...utils.paths import format_size


console = Console()


def parse_app_dirs(values: List[str]) -> Dict[Arch, Path]:
    """解析 ARCH=DIR 形式的参数"""
    app_dirs: Dict[Arch, Path] = {}
    for value in values:
        arch_name, sep, directory = value.partition("=")
        if not sep or not directory:
            raise typer.BadParameter(f"应为 ARCH=DIR 形式: {value}", param_hint="--app-dir")
        try:
            arch = Arch(arch_name.strip())
        except ValueError:
            allowed = ", ".join(a.value for a in Arch)
            raise typer.BadParameter(f"未知架构 '{arch_name}'，可选: {allowed}", param_hint="--app-dir")
        if arch in app_dirs:
            raise typer.BadParameter(f"架构重复: {arch.value}", param_hint="--app-dir")
        app_dirs[arch] = Path(directory)
    return app_dirs


def build_command(
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    app_dir: List[str] = typer.Option(..., "--app-dir", "-a", help="应用目录，格式 ARCH=DIR，可重复"),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="覆盖配置中的输出目录"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
    debug_script: bool = typer.Option(False, "--debug-script", help="在生成的安装器中启用日志"),
) -> None:
    """构建安装器

    示例:
        nsiforge build -c nsiforge.yaml -a x64=dist/win-unpacked
        nsiforge build -c nsiforge.yaml -a x64=out/x64 -a arm64=out/arm64 -o release
    """
    from ...build.builder import Builder

    config_path = Path(config)

    # 初始化日志：在任何输出前设置
    set_log_level(OutputLevel.DEBUG if verbose else OutputLevel.INFO)
    if log_file:
        try:
            set_log_file(log_file)
        except OSError:
            console.print(f"[yellow]无法写入日志文件: {log_file}[/yellow]")

    app_dirs = parse_app_dirs(app_dir)

    try:
        console.print(f"[cyan]正在加载配置文件[/cyan]: {config_path}")
        config_obj = load_config(config_path)
        updates = {}
        if output_dir:
            updates['output_dir'] = Path(output_dir)
        if debug_script:
            updates['debug_logging'] = True
        if updates:
            config_obj = config_obj.model_copy(update=updates)
    except ConfigValidationError as e:
        console.print("[red]配置验证失败:[/red]")
        console.print(e.format_errors())
        raise typer.Exit(1)
    except ConfigError as e:
        console.print(f"[red]配置错误[/red]: {e}")
        raise typer.Exit(1)

    def progress_callback(stage: str, current: int, total: int, message: str = "") -> None:
        """进度回调函数，显示进度"""
        if total > 0:
            percentage = (current / total) * 100
            if message:
                console.print(f"[blue]{stage}[/blue]: {message} ({percentage:.0f}%)")
            else:
                console.print(f"[blue]{stage}[/blue]: {percentage:.0f}%")

    console.print(f"[cyan]开始构建 {config_obj.mode.value} 安装器...[/cyan]")
    if verbose:
        console.print("[dim]已启用详细模式 -- 将输出调试级日志[/dim]")

    try:
        result = Builder().build(config_obj, app_dirs, progress_callback=progress_callback)
    except Exception as e:
        console.print(f"[red]✗ 构建过程中发生意外错误[/red]: {e}")
        if log_file:
            console.print(f"[yellow]详细错误信息:[/yellow]\n{traceback.format_exc()}")
        raise typer.Exit(1)

    if not result.success:
        console.print(f"[red]✗ 构建失败[/red]: {result.error}")
        if log_file:
            console.print(f"[yellow]请检查日志文件 {log_file} 获取详细信息。[/yellow]")
        raise typer.Exit(1)

    table = Table(title="构建产物")
    table.add_column("文件", style="cyan")
    table.add_column("架构", style="green")
    table.add_column("大小", style="yellow")
    for artifact in result.artifacts:
        size = format_size(artifact.file.stat().st_size) if artifact.file.exists() else "-"
        arch = artifact.arch.value if artifact.arch else "universal"
        table.add_row(str(artifact.file), arch, size)
    console.print(table)
    console.print(f"[green]✓ 构建完成[/green]，用时 {result.build_time:.1f}秒")
