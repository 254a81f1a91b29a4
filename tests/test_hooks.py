#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Hooks 模块测试

测试 CRC32 校验、压缩 Hook 和注册表分派。
"""

import io
import zlib

import pytest

from kfxmod.core.schema import Compression
from kfxmod.exceptions import CorruptDataError, UnsupportedCompressionError
from kfxmod.hooks import (
    CRC32Hook,
    NoneCompressionHook,
    ZlibCompressionHook,
    LZ4ReservedHook,
    COMPRESSION_REGISTRY,
    compress,
    decompress,
    get_compression_hook,
    get_hook_name,
)


# ==================== CRC32 测试 ====================

class TestCRC32Hook:
    """CRC32Hook 测试"""

    def test_known_value(self):
        """标准 CRC-32 测试向量"""
        assert CRC32Hook().compute(b"123456789") == 0xCBF43926

    def test_empty(self):
        assert CRC32Hook().compute(b"") == 0

    def test_matches_zlib(self):
        data = bytes(range(256)) * 10
        assert CRC32Hook().compute(data) == zlib.crc32(data)

    def test_incremental(self):
        """显式传递累计值，分块结果与一次性计算相同"""
        hook = CRC32Hook()
        data = b"Dungeon Keeper " * 100

        value = 0
        for i in range(0, len(data), 7):
            value = hook.compute(data[i:i + 7], value)

        assert value == hook.compute(data)

    def test_compute_chunks(self):
        hook = CRC32Hook()
        chunks = [b"abc", b"", b"def"]
        assert hook.compute_chunks(chunks) == hook.compute(b"abcdef")

    def test_compute_stream(self):
        """按区间计算文件对象的 CRC32"""
        hook = CRC32Hook()
        data = b"HEADER" + b"payload" * 1000
        stream = io.BytesIO(data)

        assert hook.compute_stream(stream, 6, len(data) - 6, chunk_size=100) == \
            hook.compute(data[6:])

    def test_compute_stream_truncated(self):
        with pytest.raises(EOFError):
            CRC32Hook().compute_stream(io.BytesIO(b"short"), 0, 100)

    def test_verify(self):
        hook = CRC32Hook()
        assert hook.verify(b"123456789", 0xCBF43926)
        assert not hook.verify(b"123456780", 0xCBF43926)


# ==================== 压缩 Hook 测试 ====================

class TestNoneCompression:
    """NoneCompressionHook 测试"""

    def test_identity(self):
        hook = NoneCompressionHook()
        assert hook.compress(b"data") == b"data"
        assert hook.decompress(b"data", 4) == b"data"

    def test_size_mismatch(self):
        with pytest.raises(CorruptDataError, match="大小不符"):
            NoneCompressionHook().decompress(b"data", 5)


class TestZlibCompression:
    """ZlibCompressionHook 测试"""

    def test_uses_best_compression(self):
        """写入固定使用级别 9"""
        data = b"Hello, Imp! " * 200
        assert ZlibCompressionHook().compress(data) == zlib.compress(data, 9)

    @pytest.mark.parametrize("level", [1, 6, 9])
    def test_reads_any_level(self, level):
        """可以解压任意级别生成的数据流"""
        data = b"creature data " * 100
        assert ZlibCompressionHook().decompress(zlib.compress(data, level), len(data)) == data

    def test_corrupt_stream(self):
        with pytest.raises(CorruptDataError, match="zlib"):
            ZlibCompressionHook().decompress(b"not a zlib stream", 10)

    def test_truncated_stream(self):
        data = b"x" * 1000
        stream = zlib.compress(data)
        with pytest.raises(CorruptDataError):
            ZlibCompressionHook().decompress(stream[:-6], len(data))

    def test_output_longer_than_expected(self):
        data = b"0123456789"
        with pytest.raises(CorruptDataError, match="大小不符"):
            ZlibCompressionHook().decompress(zlib.compress(data), 5)

    def test_output_shorter_than_expected(self):
        data = b"0123456789"
        with pytest.raises(CorruptDataError, match="大小不符"):
            ZlibCompressionHook().decompress(zlib.compress(data), 20)

    def test_trailing_garbage(self):
        data = b"0123456789"
        with pytest.raises(CorruptDataError, match="多余数据"):
            ZlibCompressionHook().decompress(zlib.compress(data) + b"junk", len(data))


class TestLZ4Reserved:
    """LZ4 只是保留声明，两个方向都必须立即失败"""

    def test_compress_fails(self):
        with pytest.raises(UnsupportedCompressionError):
            LZ4ReservedHook().compress(b"data")

    def test_decompress_fails(self):
        with pytest.raises(UnsupportedCompressionError):
            LZ4ReservedHook().decompress(b"data", 4)


# ==================== 注册表测试 ====================

class TestRegistry:
    """Hook 注册表测试"""

    def test_every_variant_registered(self):
        """每个 Compression 成员都有实现"""
        for variant in Compression:
            assert variant in COMPRESSION_REGISTRY

    @pytest.mark.parametrize("variant,expected_cls", [
        (Compression.NONE, NoneCompressionHook),
        (Compression.ZLIB, ZlibCompressionHook),
        (Compression.LZ4, LZ4ReservedHook),
        (1, ZlibCompressionHook),
    ])
    def test_get_compression_hook(self, variant, expected_cls):
        assert isinstance(get_compression_hook(variant), expected_cls)

    def test_unknown_variant(self):
        with pytest.raises(UnsupportedCompressionError):
            get_compression_hook(42)

    @pytest.mark.parametrize("variant", [Compression.NONE, Compression.ZLIB])
    def test_compress_decompress(self, variant):
        data = b"map00001 " * 50
        assert decompress(variant, compress(variant, data), len(data)) == data

    def test_lz4_never_falls_back(self):
        """LZ4 不会静默退化为不压缩"""
        with pytest.raises(UnsupportedCompressionError):
            compress(Compression.LZ4, b"data")

    @pytest.mark.parametrize("variant,name", [
        (0, "none"),
        (1, "zlib"),
        (2, "lz4"),
        (9, "unknown(9)"),
    ])
    def test_get_hook_name(self, variant, name):
        assert get_hook_name(variant) == name
