"""
签名

签名本身由外部命令完成（signtool、osslsigncode 等），这里只负责调用。
未配置签名命令时签名是空操作。
"""

from pathlib import Path
from typing import List, Optional

from ..utils.logging import LogStage, debug, info
from .build_context import SigningError
from .process import ProcessRunner, run_checked

FILE_PLACEHOLDER = "{file}"


class Signer:
    """外部签名命令包装"""

    def __init__(self, runner: ProcessRunner, sign_command: Optional[List[str]] = None):
        self.runner = runner
        self.sign_command = list(sign_command) if sign_command else None

    @property
    def enabled(self) -> bool:
        return self.sign_command is not None

    def build_command(self, file_path: Path) -> List[str]:
        command = [part.replace(FILE_PLACEHOLDER, str(file_path)) for part in self.sign_command]
        if not any(FILE_PLACEHOLDER in part for part in self.sign_command):
            command.append(str(file_path))
        return command

    async def sign(self, file_path: Path) -> bool:
        """原地签名文件

        Returns:
            bool: 是否实际执行了签名

        Raises:
            SigningError: 签名命令失败
        """
        if not self.enabled:
            debug(f"未配置签名命令，跳过签名: {file_path.name}", stage=LogStage.SIGN)
            return False

        await run_checked(self.runner, self.build_command(file_path), f"签名失败: {file_path.name}", SigningError)
        info(f"已签名: {file_path.name}", stage=LogStage.SIGN)
        return True
