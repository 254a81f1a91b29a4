#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 数据结构定义

定义格式常量、压缩类型、ModPackHeader 和 FileEntry。
所有结构按字段逐个编解码 (struct, Little-Endian)，布局与宿主平台无关。
"""

import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import ClassVar, Iterator, List, Optional

from ..exceptions import (
    ModPackError,
    InvalidHeaderError,
    CorruptDataError,
    UnsupportedCompressionError,
)


# ==================== 常量定义 ====================

MAGIC = b'KFXMOD\x00\x00'
FORMAT_VERSION = 1

# 路径字段固定长度 (bytes)
MAX_PATH_LENGTH = 512

# u32 偏移字段能表示的最大归档大小
MAX_ARCHIVE_SIZE = 0xFFFFFFFF

# 文件头标志位 (保留，仅用于诊断)
HEADER_FLAG_ENCRYPTED = 0x01
HEADER_FLAG_SIGNED = 0x02

HEADER_FLAG_NAMES = {
    HEADER_FLAG_ENCRYPTED: "encrypted",
    HEADER_FLAG_SIGNED: "signed",
}

# Entry 标志位
FILE_FLAG_EXECUTABLE = 0x02

# 元数据在源目录中的默认文件名
METADATA_FILENAME = "metadata.json"


class Compression(IntEnum):
    """压缩类型 (存储在 Header 和 Entry 的 compression 字段中)"""
    NONE = 0
    ZLIB = 1
    LZ4 = 2   # 保留，尚未实现

    @classmethod
    def from_id(cls, value: int) -> 'Compression':
        """从磁盘上的数值转换，未知 ID 抛出 UnsupportedCompressionError"""
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedCompressionError(value) from None

    @classmethod
    def from_name(cls, name: str) -> 'Compression':
        """从名称 (none / zlib / lz4) 转换"""
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise UnsupportedCompressionError(-1, name) from None

    @property
    def label(self) -> str:
        return self.name.lower()


# ==================== 文件头 ====================

@dataclass
class ModPackHeader:
    """
    文件头 (64 bytes)

    位于文件开头，描述元数据块、文件表和内容区的位置。
    flags 与 reserved 对本实现无意义，但重写归档时原样保留。
    """
    FORMAT: ClassVar[str] = '<8sHHIIIIIIIII16s'
    SIZE: ClassVar[int] = 64

    magic: bytes = MAGIC
    format_version: int = FORMAT_VERSION
    compression: int = Compression.ZLIB
    metadata_offset: int = SIZE  # 紧跟 Header
    metadata_size_compressed: int = 0
    metadata_size_uncompressed: int = 0
    file_table_offset: int = SIZE
    file_table_count: int = 0
    content_offset: int = SIZE
    total_size: int = SIZE
    checksum: int = 0           # CRC32 of bytes [SIZE, total_size)
    flags: int = 0
    reserved: bytes = field(default=b'\x00' * 16, repr=False)

    def pack(self) -> bytes:
        """序列化为字节"""
        return struct.pack(
            self.FORMAT,
            self.magic,
            self.format_version,
            int(self.compression),
            self.metadata_offset,
            self.metadata_size_compressed,
            self.metadata_size_uncompressed,
            self.file_table_offset,
            self.file_table_count,
            self.content_offset,
            self.total_size,
            self.checksum,
            self.flags,
            self.reserved
        )

    @classmethod
    def unpack(cls, data: bytes) -> 'ModPackHeader':
        """
        从字节反序列化

        Raises:
            InvalidHeaderError: 数据不足、魔法数不符或格式版本不受支持
        """
        if len(data) < cls.SIZE:
            raise InvalidHeaderError(
                "文件头不完整",
                expected=f"{cls.SIZE} 字节",
                actual=f"{len(data)} 字节"
            )
        values = struct.unpack(cls.FORMAT, data[:cls.SIZE])
        header = cls(
            magic=values[0],
            format_version=values[1],
            compression=values[2],
            metadata_offset=values[3],
            metadata_size_compressed=values[4],
            metadata_size_uncompressed=values[5],
            file_table_offset=values[6],
            file_table_count=values[7],
            content_offset=values[8],
            total_size=values[9],
            checksum=values[10],
            flags=values[11],
            reserved=values[12]
        )

        if header.magic != MAGIC:
            raise InvalidHeaderError(
                "无效的魔法数",
                expected=repr(MAGIC),
                actual=repr(header.magic)
            )
        # 未知的主版本必须拒绝，不能按旧布局降级解析
        if header.format_version == 0 or header.format_version > FORMAT_VERSION:
            raise InvalidHeaderError(
                "不支持的格式版本",
                expected=f"1..{FORMAT_VERSION}",
                actual=str(header.format_version)
            )
        return header

    @property
    def file_table_size(self) -> int:
        """文件表字节数"""
        return self.file_table_count * FileEntry.SIZE

    @property
    def content_size(self) -> int:
        """内容区字节数"""
        return self.total_size - self.content_offset

    def flag_names(self) -> List[str]:
        """已置位的标志名，未知位记为十六进制"""
        names = []
        for bit in range(32):
            mask = 1 << bit
            if self.flags & mask:
                names.append(HEADER_FLAG_NAMES.get(mask, f"{mask:#x}"))
        return names

    def iter_issues(self, physical_size: Optional[int] = None) -> Iterator[ModPackError]:
        """
        检查布局不变量

        Args:
            physical_size: 实际文件大小 (None 表示不检查)

        Yields:
            每个违反的不变量对应的异常实例 (不抛出)
        """
        if self.metadata_offset != self.SIZE:
            yield InvalidHeaderError(
                "metadata_offset 不等于文件头大小",
                expected=str(self.SIZE),
                actual=str(self.metadata_offset)
            )
        expected_table = self.metadata_offset + self.metadata_size_compressed
        if self.file_table_offset != expected_table:
            yield InvalidHeaderError(
                "file_table_offset 与元数据块末尾不符",
                expected=str(expected_table),
                actual=str(self.file_table_offset)
            )
        table_end = self.file_table_offset + self.file_table_size
        if self.content_offset < table_end:
            yield InvalidHeaderError(
                "content_offset 与文件表重叠",
                expected=f">= {table_end}",
                actual=str(self.content_offset)
            )
        if self.total_size < self.content_offset:
            yield InvalidHeaderError(
                "total_size 小于 content_offset",
                expected=f">= {self.content_offset}",
                actual=str(self.total_size)
            )
        if physical_size is not None and self.total_size != physical_size:
            yield CorruptDataError(
                f"total_size 为 {self.total_size}，实际文件大小为 {physical_size}"
            )


# ==================== 文件表条目 ====================

@dataclass
class FileEntry:
    """
    文件表条目 (552 bytes)

    offset 相对于内容区起点，checksum 为存储数据 (压缩后) 的 CRC32。
    """
    FORMAT: ClassVar[str] = '<HHIQQQI4s512s'
    SIZE: ClassVar[int] = 552

    path: str = ''
    offset: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    compression: int = Compression.NONE
    checksum: int = 0
    flags: int = 0
    reserved: bytes = field(default=b'\x00' * 4, repr=False)

    def pack(self) -> bytes:
        """序列化为字节"""
        encoded = self.path.encode('utf-8')
        return struct.pack(
            self.FORMAT,
            len(encoded),
            int(self.compression),
            self.flags,
            self.offset,
            self.compressed_size,
            self.uncompressed_size,
            self.checksum,
            self.reserved,
            encoded
        )

    @classmethod
    def unpack(cls, data: bytes, position: int = 0) -> 'FileEntry':
        """
        从字节反序列化

        只解析记录本身，路径合法性由 file_table 模块检查。

        Raises:
            CorruptDataError: 路径长度越界或不是合法 UTF-8
        """
        values = struct.unpack(cls.FORMAT, data[:cls.SIZE])
        path_length = values[0]
        if path_length > MAX_PATH_LENGTH:
            raise CorruptDataError(
                f"路径长度 {path_length} 超过上限 {MAX_PATH_LENGTH}",
                offset=position
            )
        try:
            path = values[8][:path_length].decode('utf-8')
        except UnicodeDecodeError:
            raise CorruptDataError("路径不是合法的 UTF-8", offset=position) from None
        return cls(
            path=path,
            offset=values[3],
            compressed_size=values[4],
            uncompressed_size=values[5],
            compression=values[1],
            checksum=values[6],
            flags=values[2],
            reserved=values[7]
        )

    @property
    def is_executable(self) -> bool:
        return bool(self.flags & FILE_FLAG_EXECUTABLE)
