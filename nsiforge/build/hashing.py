"""
哈希工具

载荷完整性 define 与最终产物校验和都使用 sha512，以 base64 编码表示。
NSIS 端需要十六进制字符串，由 sha512_base64_to_hex 转换。
"""

import asyncio
import base64
import binascii
import hashlib
from pathlib import Path
from typing import Union

from .build_context import ArtifactDescriptor


class HashCalculator:
    """哈希计算器"""

    def __init__(self, algorithm: str = "sha512"):
        """初始化哈希计算器

        Args:
            algorithm: 哈希算法名称
        """
        self.algorithm = algorithm.lower()
        if self.algorithm not in hashlib.algorithms_available:
            raise ValueError(f"不支持的哈希算法: {algorithm}")

        self._hasher = hashlib.new(self.algorithm)

    def update(self, data: Union[bytes, str]) -> None:
        if isinstance(data, str):
            data = data.encode('utf-8')
        self._hasher.update(data)

    def update_from_file(self, file_path: Path, chunk_size: int = 1024 * 1024) -> None:
        """从文件更新哈希

        Raises:
            IOError: 文件读取失败
        """
        try:
            with open(file_path, 'rb') as f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    self._hasher.update(chunk)
        except OSError as e:
            raise IOError(f"读取文件失败 {file_path}: {e}") from e

    def hexdigest(self) -> str:
        return self._hasher.hexdigest()

    def digest(self) -> bytes:
        return self._hasher.digest()

    def b64digest(self) -> str:
        return base64.b64encode(self._hasher.digest()).decode('ascii')

    @classmethod
    def hash_data(cls, data: Union[bytes, str], algorithm: str = "sha512") -> str:
        """计算数据哈希（base64）"""
        calculator = cls(algorithm)
        calculator.update(data)
        return calculator.b64digest()

    @classmethod
    def hash_file(cls, file_path: Path, algorithm: str = "sha512") -> str:
        """计算文件哈希（base64）"""
        calculator = cls(algorithm)
        calculator.update_from_file(file_path)
        return calculator.b64digest()


def sha512_base64_to_hex(value: str) -> str:
    """base64 摘要转为大写十六进制（NSIS 端只接受十六进制）"""
    return base64.b64decode(value).hex().upper()


def hex_to_base64(value: str) -> str:
    """sha512_base64_to_hex 的逆变换"""
    return base64.b64encode(binascii.unhexlify(value)).decode('ascii')


async def hash_file(file_path: Path) -> str:
    """异步计算文件 sha512（base64）"""
    return await asyncio.to_thread(HashCalculator.hash_file, file_path)


async def create_package_file_info(file_path: Path) -> ArtifactDescriptor:
    """为已存在的文件生成产物描述"""
    size = (await asyncio.to_thread(file_path.stat)).st_size
    return ArtifactDescriptor(path=file_path, size=size, sha512=await hash_file(file_path))
