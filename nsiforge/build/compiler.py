"""
makensis 调用

符号表序列化为命令行参数，脚本文本通过标准输入传给编译器，磁盘上不产生临时脚本文件。
编译前先探测输出文件是否被其他进程（例如杀毒软件）锁定，锁定时按固定间隔重试。
"""

import asyncio
import errno
import shutil
import sys
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..config.schema import BuildConfig
from ..utils.logging import LogStage, debug, info
from .build_context import CompilerError, OutputFileBusyError
from .process import ProcessResult, ProcessRunner, run_checked
from .symbols import SymbolTable

BusyCheck = Callable[[Path], bool]
Sleep = Callable[[float], Awaitable[None]]

BUSY_RETRY_DELAY = 2.0
BUSY_MAX_ATTEMPTS = 30

_BUSY_ERRNOS = {errno.EBUSY}
# ERROR_SHARING_VIOLATION / ERROR_LOCK_VIOLATION：文件被其他进程打开
_BUSY_WINERRORS = {32, 33}


def compiler_arguments(symbols: SymbolTable, warnings_as_errors: bool = True) -> List[str]:
    """把符号表转换为 makensis 参数（不含可执行文件本身）"""
    args: List[str] = ["-WX"] if warnings_as_errors else []
    args.extend(["-INPUTCHARSET", "UTF8"])
    for define in symbols.defines:
        args.append(define.to_argument())
    for name, value in symbols.iter_commands():
        if isinstance(value, list):
            args.extend(f"-X{name} {item}" for item in value)
        else:
            args.append(f"-X{name} {value}")
    # 从标准输入读取脚本
    args.append("-")
    return args


def is_file_free(path: Path) -> bool:
    """以读写方式打开文件，判断是否被独占

    Raises:
        CompilerError: 文件不可写且不是被占用（例如只读文件）
    """
    try:
        with open(path, 'r+b'):
            return True
    except FileNotFoundError:
        return True
    except OSError as e:
        if e.errno in _BUSY_ERRNOS or getattr(e, 'winerror', None) in _BUSY_WINERRORS:
            return False
        raise CompilerError(f"输出文件不可写: {path}: {e}") from e


async def ensure_not_busy(
    path: Path,
    check: BusyCheck = is_file_free,
    sleep: Sleep = asyncio.sleep,
    delay: float = BUSY_RETRY_DELAY,
    max_attempts: int = BUSY_MAX_ATTEMPTS,
) -> int:
    """等待输出文件可写

    Returns:
        int: 实际等待的次数

    Raises:
        OutputFileBusyError: 超过最大探测次数仍被锁定
    """
    waits = 0
    while not check(path):
        if waits == 0:
            info(f"输出文件被占用（可能是杀毒软件），等待释放: {path.name}", stage=LogStage.COMPILE)
        if waits >= max_attempts:
            raise OutputFileBusyError(f"输出文件持续被占用: {path}")
        await sleep(delay)
        waits += 1
    return waits


def _platform_dir() -> str:
    if sys.platform == "darwin":
        return "mac"
    if sys.platform == "win32":
        return "Bin"
    return "linux"


def out_file_path(symbols: SymbolTable) -> Optional[Path]:
    value = symbols.get_command("OutFile")
    if not value or isinstance(value, list):
        return None
    return Path(value.replace('"', ''))


class MakensisCompiler:
    """makensis 编译器"""

    def __init__(
        self,
        config: BuildConfig,
        runner: ProcessRunner,
        templates_dir: Path,
        busy_check: BusyCheck = is_file_free,
        sleep: Sleep = asyncio.sleep,
        busy_delay: float = BUSY_RETRY_DELAY,
    ):
        self.config = config
        self.runner = runner
        self.templates_dir = templates_dir
        self.busy_check = busy_check
        self.sleep = sleep
        self.busy_delay = busy_delay
        self.invocations = 0

    def resolve_executable(self) -> str:
        """makensis 路径：显式配置 > NSIS 目录下的平台子目录 > PATH"""
        tools = self.config.tools
        if tools.makensis:
            return str(tools.makensis)
        if tools.nsis_dir:
            name = "makensis.exe" if sys.platform == "win32" else "makensis"
            return str(tools.nsis_dir / _platform_dir() / name)
        found = shutil.which("makensis")
        if found is None:
            raise CompilerError("找不到 makensis，请在 tools.makensis 或 tools.nsis_dir 中配置")
        return found

    async def compile(self, symbols: SymbolTable, script: str) -> ProcessResult:
        """冻结符号表并调用 makensis

        Raises:
            OutputFileBusyError: 输出文件持续被占用
            CompilerError: 编译失败，携带编译器输出
        """
        symbols.freeze()
        out_file = out_file_path(symbols)
        if out_file is not None:
            await ensure_not_busy(out_file, self.busy_check, self.sleep, self.busy_delay)

        command = [self.resolve_executable()]
        command.extend(compiler_arguments(symbols, self.config.installer.warnings_as_errors))

        env = {}
        if self.config.tools.nsis_dir:
            env['NSISDIR'] = str(self.config.tools.nsis_dir)

        self.invocations += 1
        debug(f"makensis 参数数量: {len(command) - 1}", stage=LogStage.COMPILE)
        return await run_checked(
            self.runner,
            command,
            "makensis 编译失败",
            CompilerError,
            input_text=script,
            cwd=self.templates_dir,
            env=env or None,
        )
