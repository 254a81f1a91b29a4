#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
二进制 I/O 封装

提供 BinaryWriter 和 BinaryReader 类，封装所有底层文件操作，
使上层模块不需要直接操作文件指针。
"""

import mmap
import threading
from typing import BinaryIO, Optional

from ..hooks.checksum import CRC32Hook


class BinaryWriter:
    """
    二进制写入器

    封装写操作，同时累计写入位置和 (可选的) 跳过文件头后的 CRC32。
    """

    def __init__(self, file: BinaryIO, checksum_start: Optional[int] = None):
        """
        初始化写入器

        Args:
            file: 以 'wb' 模式打开的文件对象
            checksum_start: 从该位置起累计 CRC32 (None 表示不累计)
        """
        self._file = file
        self._position = 0
        self._checksum_start = checksum_start
        self._crc = 0
        self._hook = CRC32Hook()

    @property
    def position(self) -> int:
        """当前写入位置"""
        return self._position

    @property
    def checksum(self) -> int:
        """checksum_start 之后已写入数据的 CRC32"""
        return self._crc

    def write_bytes(self, data: bytes) -> int:
        """
        写入原始字节

        Args:
            data: 要写入的字节

        Returns:
            写入的字节数
        """
        start = self._checksum_start
        if start is not None and self._position + len(data) > start:
            skip = max(0, start - self._position)
            self._crc = self._hook.compute(data[skip:], self._crc)
        written = self._file.write(data)
        self._position += written
        return written

    def reserve(self, size: int) -> int:
        """
        预留空间 (写入零字节)

        用于预留 Header 等固定大小区域，稍后回写。

        Returns:
            预留区域的起始位置
        """
        start = self._position
        self.write_bytes(b'\x00' * size)
        return start

    def patch_bytes(self, position: int, data: bytes):
        """
        在指定位置回写数据 (不计入 CRC32)

        写入后恢复到原位置。
        """
        current = self._position
        self._file.seek(position)
        self._file.write(data)
        self._file.seek(current)


class BinaryReader:
    """
    二进制读取器

    支持 mmap (默认) 和传统 seek+read 两种模式。
    两种模式下 read_at() 都可被多个线程并发调用。
    """

    def __init__(self, file: BinaryIO, size: int, use_mmap: bool = True):
        """
        初始化读取器

        Args:
            file: 以 'rb' 模式打开的文件对象
            size: 文件实际大小
            use_mmap: 是否尝试使用 mmap
        """
        self._file = file
        self._size = size
        self._lock = threading.Lock()
        self._mmap: Optional[mmap.mmap] = None

        if use_mmap and size > 0:
            try:
                self._mmap = mmap.mmap(file.fileno(), 0, access=mmap.ACCESS_READ)
            except (OSError, ValueError):
                # mmap 不可用 (特殊文件系统等)，回退到传统模式
                self._mmap = None

    @property
    def size(self) -> int:
        """文件大小"""
        return self._size

    @property
    def is_mmap(self) -> bool:
        return self._mmap is not None

    def read_at(self, offset: int, size: int) -> bytes:
        """
        读取指定位置的数据

        mmap 模式下直接切片，传统模式下加锁 seek+read。

        Raises:
            EOFError: 文件不足请求的字节数
        """
        if self._mmap is not None:
            data = self._mmap[offset:offset + size]
        else:
            with self._lock:
                self._file.seek(offset)
                data = self._file.read(size)
        if len(data) < size:
            raise EOFError(
                f"文件结束: 期望在 {offset:#x} 读取 {size} 字节，实际只有 {len(data)} 字节"
            )
        return data

    def iter_chunks(self, offset: int, size: int, chunk_size: int = 1024 * 1024):
        """
        分块读取指定区间

        Yields:
            不超过 chunk_size 的数据块
        """
        end = offset + size
        while offset < end:
            step = min(chunk_size, end - offset)
            yield self.read_at(offset, step)
            offset += step

    def close(self) -> None:
        if self._mmap is not None:
            self._mmap.close()
            self._mmap = None
