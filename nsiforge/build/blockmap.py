"""
块映射（block-map）

按内容切分文件（gear 滚动哈希），为每个块记录 BLAKE2b 校验和与长度，
更新程序据此只下载发生变化的字节区间。映射以 JSON 表示，使用 zstd 压缩存储。

两种落盘方式：
- 独立安装器：写到安装器旁边的 ``<安装器>.blockmap``
- Web 安装器的应用包：追加到归档末尾，随后是 4 字节大端长度
"""

import asyncio
import base64
import hashlib
import json
import random
import struct
from pathlib import Path
from typing import Any, Dict, List, Tuple

import zstandard as zstd

from .build_context import ArtifactDescriptor
from .hashing import HashCalculator

BLOCK_MAP_VERSION = "2"
BLOCK_MAP_EXTENSION = ".blockmap"

MIN_CHUNK_SIZE = 8 * 1024
MAX_CHUNK_SIZE = 128 * 1024
# 平均块大小约 32KB
_BOUNDARY_MASK = (1 << 15) - 1
_HASH_MASK = (1 << 64) - 1
_CHECKSUM_SIZE = 18

# 固定种子，保证同样的内容总是得到同样的切分
_gear_random = random.Random(0x6e736966)
_GEAR = tuple(_gear_random.getrandbits(64) for _ in range(256))


def split_chunks(data: bytes) -> List[Tuple[int, int]]:
    """按内容切分，返回 (偏移, 长度) 列表"""
    chunks: List[Tuple[int, int]] = []
    length = len(data)
    start = 0
    while start < length:
        end = min(start + MAX_CHUNK_SIZE, length)
        position = start + MIN_CHUNK_SIZE
        if position >= end:
            chunks.append((start, end - start))
            break
        h = 0
        cut = end
        gear = _GEAR
        for index in range(position, end):
            h = ((h << 1) + gear[data[index]]) & _HASH_MASK
            if h & _BOUNDARY_MASK == 0:
                cut = index + 1
                break
        chunks.append((start, cut - start))
        start = cut
    return chunks


def _checksum(data: bytes) -> str:
    return base64.b64encode(hashlib.blake2b(data, digest_size=_CHECKSUM_SIZE).digest()).decode('ascii')


def compute_block_map(data: bytes) -> Dict[str, Any]:
    """计算数据的块映射"""
    checksums: List[str] = []
    sizes: List[int] = []
    for offset, size in split_chunks(data):
        checksums.append(_checksum(data[offset:offset + size]))
        sizes.append(size)
    return {
        'version': BLOCK_MAP_VERSION,
        'files': [{
            'name': 'file',
            'offset': 0,
            'checksums': checksums,
            'sizes': sizes,
        }],
    }


def encode_block_map(block_map: Dict[str, Any]) -> bytes:
    raw = json.dumps(block_map, separators=(',', ':')).encode('utf-8')
    return zstd.ZstdCompressor(level=19).compress(raw)


def decode_block_map(data: bytes) -> Dict[str, Any]:
    return json.loads(zstd.ZstdDecompressor().decompress(data).decode('utf-8'))


def read_appended_block_map(file_path: Path) -> Dict[str, Any]:
    """读取追加在文件末尾的块映射"""
    data = file_path.read_bytes()
    if len(data) < 4:
        raise ValueError(f"文件中没有块映射: {file_path}")
    (size,) = struct.unpack('>I', data[-4:])
    return decode_block_map(data[-4 - size:-4])


def _write_sidecar(file_path: Path) -> ArtifactDescriptor:
    data = file_path.read_bytes()
    encoded = encode_block_map(compute_block_map(data))
    file_path.with_name(file_path.name + BLOCK_MAP_EXTENSION).write_bytes(encoded)
    return ArtifactDescriptor(
        path=file_path,
        size=len(data),
        sha512=HashCalculator.hash_data(data),
        block_map_size=len(encoded),
    )


def _append(file_path: Path) -> ArtifactDescriptor:
    data = file_path.read_bytes()
    encoded = encode_block_map(compute_block_map(data))
    with open(file_path, 'ab') as f:
        f.write(encoded)
        f.write(struct.pack('>I', len(encoded)))
    return ArtifactDescriptor(
        path=file_path,
        size=file_path.stat().st_size,
        sha512=HashCalculator.hash_file(file_path),
        block_map_size=len(encoded),
    )


async def create_blockmap(file_path: Path) -> ArtifactDescriptor:
    """在文件旁写出块映射，返回文件的产物描述"""
    return await asyncio.to_thread(_write_sidecar, file_path)


async def append_blockmap(file_path: Path) -> ArtifactDescriptor:
    """把块映射追加到文件末尾，返回追加后文件的产物描述"""
    return await asyncio.to_thread(_append, file_path)
