#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
内置压缩 Hook 实现

NONE 为恒等变换，ZLIB 以最高压缩级别写入，LZ4 仅作保留声明。
"""

import zlib

from .base import CompressionHook
from ..core.schema import Compression
from ..exceptions import CorruptDataError, UnsupportedCompressionError


def _check_size(data: bytes, raw_size: int) -> bytes:
    if len(data) != raw_size:
        raise CorruptDataError(
            f"解压后大小不符: 期望 {raw_size} 字节, 实际 {len(data)} 字节"
        )
    return data


class NoneCompressionHook(CompressionHook):
    """不压缩"""

    @property
    def algo_id(self) -> int:
        return Compression.NONE

    @property
    def display_name(self) -> str:
        return "none"

    def compress(self, data: bytes) -> bytes:
        return data

    def decompress(self, data: bytes, raw_size: int) -> bytes:
        return _check_size(data, raw_size)


class ZlibCompressionHook(CompressionHook):
    """
    zlib (deflate) 压缩

    写入固定使用 Z_BEST_COMPRESSION，读取接受任意级别生成的 zlib 流。
    """

    def __init__(self, level: int = zlib.Z_BEST_COMPRESSION):
        """
        Args:
            level: 压缩级别 (0-9), 默认 9
        """
        self._level = level

    @property
    def algo_id(self) -> int:
        return Compression.ZLIB

    @property
    def display_name(self) -> str:
        return "zlib"

    def compress(self, data: bytes) -> bytes:
        return zlib.compress(data, self._level)

    def decompress(self, data: bytes, raw_size: int) -> bytes:
        decompressor = zlib.decompressobj()
        try:
            # 多读 1 字节以识别超长输出
            result = decompressor.decompress(data, raw_size + 1)
        except zlib.error as e:
            raise CorruptDataError(f"zlib 解压失败: {e}") from e
        if not decompressor.eof:
            if len(result) > raw_size:
                return _check_size(result, raw_size)
            raise CorruptDataError("zlib 数据流被截断")
        if decompressor.unused_data:
            raise CorruptDataError(
                f"zlib 数据流后有 {len(decompressor.unused_data)} 字节多余数据"
            )
        return _check_size(result, raw_size)


class LZ4ReservedHook(CompressionHook):
    """
    LZ4 (保留)

    格式中已声明但未实现，压缩和解压都立即失败，绝不静默回退为不压缩。
    """

    @property
    def algo_id(self) -> int:
        return Compression.LZ4

    @property
    def display_name(self) -> str:
        return "lz4"

    def compress(self, data: bytes) -> bytes:
        raise UnsupportedCompressionError(self.algo_id, self.display_name)

    def decompress(self, data: bytes, raw_size: int) -> bytes:
        raise UnsupportedCompressionError(self.algo_id, self.display_name)
