"""
Validate 命令实现

验证配置文件：schema 校验之外，还检查文件名模板、开始菜单目录和资源文件。
"""

import json
from pathlib import Path
from typing import List

import typer
from rich.console import Console
from rich.table import Table

from ...config import BuildConfig, ConfigError, ConfigValidationError, load_config, validate_config


console = Console()


def semantic_errors(config: BuildConfig) -> List[str]:
    """schema 之外的配置组合检查（文件名模板、开始菜单目录、资源文件）"""
    from ...build.orchestrator import NsisTarget

    return NsisTarget.configuration_errors(config)


def validate_command(
    config: str = typer.Option(..., "--config", "-c", help="配置文件路径"),
    json_output: bool = typer.Option(False, "--json", help="输出 JSON 格式的错误信息"),
) -> None:
    """验证配置文件

    示例:
        nsiforge validate -c nsiforge.yaml
        nsiforge validate -c nsiforge.yaml --json
    """
    config_path = Path(config)

    if not config_path.exists():
        console.print(f"[red]配置文件不存在: {config_path}[/red]")
        raise typer.Exit(1)

    try:
        console.print(f"正在验证配置文件: [cyan]{config_path}[/cyan]")
        errors = validate_config(config_path)
        problems: List[str] = []
        if not errors:
            problems = semantic_errors(load_config(config_path))

        if not errors and not problems:
            console.print("[green]✓ 配置文件验证通过[/green]")
            return

        if json_output:
            error_data = {
                "file": str(config_path),
                "errors": errors,
                "problems": problems,
                "error_count": len(errors) + len(problems),
            }
            console.print(json.dumps(error_data, ensure_ascii=False, indent=2, default=str))
            raise typer.Exit(1)

        console.print(f"[red]配置文件验证失败 ({len(errors) + len(problems)} 个错误):[/red]")
        console.print()

        table = Table(title="验证错误")
        table.add_column("位置", style="cyan", no_wrap=True)
        table.add_column("错误信息", style="red")
        table.add_column("输入值", style="yellow")

        for error in errors:
            location = " -> ".join(str(item) for item in error.get('loc', []))
            message = error.get('msg', '未知错误')
            input_value = str(error.get('input', ''))
            if len(input_value) > 47:
                input_value = input_value[:47] + "..."
            table.add_row(location or "根级别", message, input_value or "-")
        for problem in problems:
            table.add_row("-", problem, "-")

        console.print(table)
        raise typer.Exit(1)

    except ConfigValidationError as e:
        console.print(e.format_errors())
        raise typer.Exit(1)
    except ConfigError as e:
        if json_output:
            error_data = {
                "file": str(config_path),
                "error": str(e),
                "error_type": "config_error",
            }
            console.print(json.dumps(error_data, ensure_ascii=False, indent=2))
        else:
            console.print(f"[red]配置错误: {e}[/red]")
        raise typer.Exit(1)
