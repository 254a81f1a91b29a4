#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
内置校验 Hook 实现

kfxmod 格式只使用 CRC32 (多项式 0xEDB88320)，与 zlib.crc32 完全一致。
"""

import zlib
from typing import BinaryIO, Iterable

from .base import ChecksumHook


class CRC32Hook(ChecksumHook):
    """
    CRC32 校验

    快速的完整性校验 (非密码学认证)，32 位整数输出。
    """

    @property
    def display_name(self) -> str:
        return "crc32"

    def compute(self, data: bytes, value: int = 0) -> int:
        return zlib.crc32(data, value) & 0xFFFFFFFF

    def compute_chunks(self, chunks: Iterable[bytes], value: int = 0) -> int:
        """
        对数据块序列累计计算

        Args:
            chunks: 数据块迭代器 (如 BinaryReader.iter_chunks)
            value: 初始累计值

        Returns:
            全部数据块的 CRC32
        """
        for chunk in chunks:
            value = self.compute(chunk, value)
        return value

    def compute_stream(self, file: BinaryIO, start: int, size: int,
                       chunk_size: int = 1024 * 1024) -> int:
        """
        分块计算文件对象中 [start, start + size) 区间的 CRC32

        Raises:
            EOFError: 文件不足 size 字节
        """
        file.seek(start)
        value = 0
        remaining = size
        while remaining > 0:
            chunk = file.read(min(chunk_size, remaining))
            if not chunk:
                raise EOFError(f"文件结束: 区间 [{start:#x}, {start + size:#x}) 不完整")
            value = self.compute(chunk, value)
            remaining -= len(chunk)
        return value
