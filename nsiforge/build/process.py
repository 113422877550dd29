"""
外部进程执行

所有外部工具（makensis、7za、签名工具、Wine、虚拟机）都通过 ProcessRunner 启动，
测试中可以替换为假的 runner。
"""

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Type

from ..utils.logging import debug
from .build_context import ExternalProcessError


@dataclass
class ProcessResult:
    """外部进程执行结果"""
    command: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def output(self) -> str:
        """合并后的输出，原样保留以便诊断"""
        parts = [p for p in (self.stdout.strip(), self.stderr.strip()) if p]
        return "\n".join(parts)


class ProcessRunner:
    """基于 asyncio 子进程的执行器"""

    async def run(
        self,
        command: List[str],
        *,
        input_text: Optional[str] = None,
        cwd: Optional[Path] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProcessResult:
        debug(f"执行: {' '.join(command)}")
        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        process = await asyncio.create_subprocess_exec(
            *command,
            stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
            env=full_env,
        )
        data = input_text.encode('utf-8') if input_text is not None else None
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(data), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise ExternalProcessError(f"进程执行超时: {command[0]}", command=command)

        return ProcessResult(
            command=list(command),
            returncode=process.returncode,
            stdout=stdout.decode('utf-8', errors='replace'),
            stderr=stderr.decode('utf-8', errors='replace'),
        )


async def run_checked(
    runner: ProcessRunner,
    command: List[str],
    message: str,
    error_class: Type[ExternalProcessError] = ExternalProcessError,
    **kwargs,
) -> ProcessResult:
    """执行命令，非零退出码时抛出携带原始输出的错误"""
    try:
        result = await runner.run(command, **kwargs)
    except FileNotFoundError as e:
        raise error_class(f"{message}: 找不到可执行文件 {command[0]}", command=command) from e

    if result.returncode != 0:
        raise error_class(message, command=command, exit_code=result.returncode, output=result.output)
    return result
