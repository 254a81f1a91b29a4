#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Core Schema 模块测试

测试 Header 与 FileEntry 的字节布局和解码校验。
"""

import struct

import pytest

from kfxmod.core.schema import (
    ModPackHeader,
    FileEntry,
    Compression,
    MAGIC,
    FORMAT_VERSION,
    FILE_FLAG_EXECUTABLE,
    HEADER_FLAG_ENCRYPTED,
    HEADER_FLAG_SIGNED,
)
from kfxmod.exceptions import (
    InvalidHeaderError,
    CorruptDataError,
    UnsupportedCompressionError,
)


def make_header(**kwargs) -> ModPackHeader:
    """构造一个满足全部不变量的 Header"""
    values = dict(
        metadata_offset=64,
        metadata_size_compressed=100,
        metadata_size_uncompressed=200,
        file_table_offset=164,
        file_table_count=2,
        content_offset=164 + 2 * FileEntry.SIZE,
        total_size=164 + 2 * FileEntry.SIZE + 50,
    )
    values.update(kwargs)
    return ModPackHeader(**values)


# ==================== Header 测试 ====================

class TestModPackHeader:
    """ModPackHeader 测试"""

    def test_size_constant(self):
        """大小常量验证"""
        assert ModPackHeader.SIZE == 64
        assert struct.calcsize(ModPackHeader.FORMAT) == 64

    def test_default_values(self):
        """默认值验证"""
        header = ModPackHeader()

        assert header.magic == MAGIC
        assert header.format_version == FORMAT_VERSION
        assert header.flags == 0
        assert header.reserved == b'\x00' * 16

    def test_pack_layout(self):
        """字段按小端序依次排列"""
        header = make_header(checksum=0xDEADBEEF, flags=0x01020304)
        packed = header.pack()

        assert len(packed) == 64
        assert packed[:8] == b'KFXMOD\x00\x00'
        assert packed[8:10] == b'\x01\x00'
        assert packed[10:12] == b'\x01\x00'  # zlib
        assert packed[12:16] == (64).to_bytes(4, 'little')
        assert packed[40:44] == (0xDEADBEEF).to_bytes(4, 'little')
        assert packed[44:48] == bytes([4, 3, 2, 1])

    def test_pack_unpack_roundtrip(self):
        """序列化往返，保留 flags 和 reserved"""
        original = make_header(checksum=0x12345678, flags=0x80, reserved=b'\xAA' * 16)
        unpacked = ModPackHeader.unpack(original.pack())

        assert unpacked == original

    def test_unpack_short_data(self):
        """数据不足时报 InvalidHeader"""
        with pytest.raises(InvalidHeaderError):
            ModPackHeader.unpack(b'KFXMOD\x00\x00' + b'\x00' * 10)

    def test_unpack_bad_magic(self):
        """魔法数错误"""
        data = b'GRIM\x00\x00\x00\x00' + make_header().pack()[8:]
        with pytest.raises(InvalidHeaderError, match="魔法数"):
            ModPackHeader.unpack(data)

    @pytest.mark.parametrize("version", [0, FORMAT_VERSION + 1, 0xFFFF])
    def test_unpack_unsupported_version(self, version):
        """未知的格式版本必须拒绝"""
        data = make_header(format_version=version).pack()
        with pytest.raises(InvalidHeaderError) as exc_info:
            ModPackHeader.unpack(data)

        assert exc_info.value.actual == str(version)
        assert exc_info.value.exit_code == 11

    def test_sizes(self):
        """派生大小属性"""
        header = make_header()

        assert header.file_table_size == 2 * FileEntry.SIZE
        assert header.content_size == 50

    @pytest.mark.parametrize("flags,expected", [
        (0, []),
        (HEADER_FLAG_ENCRYPTED, ["encrypted"]),
        (HEADER_FLAG_ENCRYPTED | HEADER_FLAG_SIGNED, ["encrypted", "signed"]),
        (0x10 | HEADER_FLAG_SIGNED, ["signed", "0x10"]),
    ])
    def test_flag_names(self, flags, expected):
        assert ModPackHeader(flags=flags).flag_names() == expected


class TestHeaderInvariants:
    """Header 布局不变量测试"""

    def test_valid_header_has_no_issues(self):
        header = make_header()
        assert list(header.iter_issues(header.total_size)) == []

    @pytest.mark.parametrize("field,value", [
        ("metadata_offset", 60),
        ("file_table_offset", 170),
        ("content_offset", 164),
    ])
    def test_layout_violations(self, field, value):
        """偏移关系被破坏时报 InvalidHeader"""
        header = make_header(**{field: value})
        issues = list(header.iter_issues())

        assert issues
        assert all(isinstance(i, InvalidHeaderError) for i in issues)

    def test_total_size_mismatch(self):
        """total_size 与实际大小不符为 CorruptData"""
        header = make_header()
        issues = list(header.iter_issues(header.total_size - 1))

        assert len(issues) == 1
        assert isinstance(issues[0], CorruptDataError)

    def test_physical_size_optional(self):
        """不提供实际大小时不检查 total_size"""
        header = make_header()
        assert list(header.iter_issues(None)) == []


# ==================== FileEntry 测试 ====================

class TestFileEntry:
    """FileEntry 测试"""

    def test_size_constant(self):
        assert FileEntry.SIZE == 552
        assert struct.calcsize(FileEntry.FORMAT) == 552

    def test_pack_unpack_roundtrip(self):
        """序列化往返测试"""
        original = FileEntry(
            path="creatures/imp.cfg",
            offset=1024,
            compressed_size=300,
            uncompressed_size=900,
            compression=Compression.ZLIB,
            checksum=0xCAFEBABE,
            flags=FILE_FLAG_EXECUTABLE,
        )
        packed = original.pack()

        assert len(packed) == FileEntry.SIZE
        assert FileEntry.unpack(packed) == original

    def test_path_length_prefix(self):
        """路径长度按 UTF-8 字节数记录"""
        entry = FileEntry(path="中文/说明.txt")
        packed = entry.pack()

        assert struct.unpack_from('<H', packed)[0] == len("中文/说明.txt".encode("utf-8"))
        assert FileEntry.unpack(packed).path == "中文/说明.txt"

    def test_path_length_overflow(self):
        """声明的路径长度超过 512 字节"""
        packed = bytearray(FileEntry(path="a.txt").pack())
        packed[0:2] = (600).to_bytes(2, 'little')

        with pytest.raises(CorruptDataError):
            FileEntry.unpack(bytes(packed))

    def test_invalid_utf8_path(self):
        packed = bytearray(FileEntry(path="ab").pack())
        packed[40:42] = b'\xff\xfe'

        with pytest.raises(CorruptDataError, match="UTF-8"):
            FileEntry.unpack(bytes(packed))

    def test_is_executable(self):
        assert FileEntry(flags=FILE_FLAG_EXECUTABLE).is_executable
        assert not FileEntry().is_executable


# ==================== Compression 枚举测试 ====================

class TestCompression:
    """Compression 枚举测试"""

    @pytest.mark.parametrize("name,expected", [
        ("none", Compression.NONE),
        ("zlib", Compression.ZLIB),
        ("LZ4", Compression.LZ4),
    ])
    def test_from_name(self, name, expected):
        assert Compression.from_name(name) == expected

    def test_from_unknown_name(self):
        with pytest.raises(UnsupportedCompressionError):
            Compression.from_name("brotli")

    def test_from_unknown_id(self):
        with pytest.raises(UnsupportedCompressionError) as exc_info:
            Compression.from_id(7)

        assert exc_info.value.variant == 7

    def test_label(self):
        assert Compression.ZLIB.label == "zlib"
