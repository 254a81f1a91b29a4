#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
模组包构建器

布局: Header | 元数据块 | 文件表 | 内容区
采用两阶段写入: 先在内存中压缩全部条目并计算偏移，再一次性顺序写出。
"""

import io
import logging
import os
import stat
import tempfile
import threading
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Tuple

from ..core.batch import ProgressCallback, ProgressTracker, scan_directory
from ..core.binary_io import BinaryWriter
from ..core.file_table import check_path, encode_file_table
from ..core.schema import (
    ModPackHeader, FileEntry, Compression,
    FILE_FLAG_EXECUTABLE, MAX_ARCHIVE_SIZE, METADATA_FILENAME
)
from ..exceptions import (
    ModPackError, ChecksumMismatchError, InvalidMetadataError,
    OperationCancelledError, PathViolationError
)
from ..hooks.checksum import CRC32Hook
from ..hooks.registry import compress, get_hook_name
from ..metadata import ModPackMetadata, serialize_metadata
from ..utils import normalize_path

logger = logging.getLogger(__name__)


def _target_mode(path: str) -> int:
    """覆盖已有文件时沿用其权限，否则按当前 umask 取默认权限"""
    try:
        return stat.S_IMODE(os.stat(path).st_mode)
    except FileNotFoundError:
        umask = os.umask(0)
        os.umask(umask)
        return 0o666 & ~umask


@dataclass
class _PendingEntry:
    """
    待写入的条目

    local_path 与 stored 二选一: 前者在 build() 时读取并压缩，
    后者是从现有归档原样复制的存储数据。
    """
    path: str
    local_path: Optional[str] = None
    executable: bool = False
    stored: Optional[bytes] = None
    template: Optional[FileEntry] = None


@dataclass
class PackResult:
    """构建结果"""
    output_path: str
    entry_count: int
    total_size: int
    uncompressed_bytes: int
    stored_bytes: int
    checksum: int
    elapsed_time: float = 0.0
    report: Optional[object] = None   # validate_first 时的 ValidationReport

    @property
    def ratio(self) -> float:
        """压缩率 (存储大小 / 原始大小)"""
        if self.uncompressed_bytes == 0:
            return 1.0
        return self.stored_bytes / self.uncompressed_bytes


class PackWriter:
    """
    模组包构建器

    Example:
        >>> writer = PackWriter("tempest_keeper.kfxmod", metadata)
        >>> writer.add_dir("tempest_keeper/")
        >>> writer.build()
    """

    def __init__(
        self,
        output_path: Optional[str],
        metadata: ModPackMetadata,
        compression: int = Compression.ZLIB,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        """
        初始化构建器

        Args:
            output_path: 输出文件路径 (仅调用 build_bytes() 时可为 None)
            metadata: 模组元数据
            compression: 元数据块和新增条目使用的压缩类型
            progress_callback: 进度回调 (每个条目写入后通知)
            cancel_event: 置位后在下一个条目之前中止构建
        """
        self._output_path = output_path
        self._metadata = metadata
        self._compression = Compression.from_id(compression)
        self._progress_callback = progress_callback
        self._cancel_event = cancel_event

        self._entries: List[_PendingEntry] = []
        self._paths = set()
        self._header_flags = 0
        self._header_reserved = b'\x00' * 16
        self._crc = CRC32Hook()
        self._lock = threading.Lock()

    # ==================== 添加条目 ====================

    def _append(self, pending: _PendingEntry) -> None:
        check_path(pending.path)
        # 解包时根目录的 metadata.json 由元数据块生成
        if pending.path == METADATA_FILENAME:
            raise PathViolationError(pending.path, "根目录的 metadata.json 保留给元数据块")
        if pending.path in self._paths:
            raise PathViolationError(pending.path, "路径重复")
        self._paths.add(pending.path)
        self._entries.append(pending)

    def add_file(self, local_path: str, archive_path: Optional[str] = None) -> None:
        """
        添加单个文件

        文件内容在 build() 时才读取。

        Args:
            local_path: 本地文件路径
            archive_path: 归档内路径 (默认使用文件名)

        Raises:
            FileNotFoundError: 本地文件不存在
            PathViolationError: 归档内路径非法或重复
        """
        if not os.path.isfile(local_path):
            raise FileNotFoundError(f"文件不存在: {local_path}")
        if archive_path is None:
            archive_path = os.path.basename(local_path)

        mode = os.stat(local_path).st_mode
        self._append(_PendingEntry(
            path=normalize_path(archive_path),
            local_path=local_path,
            executable=bool(mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))
        ))

    def add_dir(self, local_dir: str, metadata_path: Optional[str] = None) -> int:
        """
        递归添加目录

        只收集普通文件 (跳过符号链接)，按归档内路径排序。
        根目录下的 metadata.json 和显式指定的元数据文件不会被打包。

        Returns:
            添加的文件数量
        """
        if not os.path.isdir(local_dir):
            raise NotADirectoryError(f"不是目录: {local_dir}")

        excluded = [os.path.join(local_dir, METADATA_FILENAME)]
        if metadata_path:
            excluded.append(metadata_path)
        if self._output_path:
            excluded.append(self._output_path)

        count = 0
        for item in scan_directory(local_dir, exclude_paths=excluded):
            self.add_file(item.local_path, item.archive_path)
            count += 1
        logger.debug("从 %s 收集到 %d 个文件", local_dir, count)
        return count

    def add_stored(self, entry: FileEntry, stored: bytes) -> None:
        """
        添加已压缩的存储数据 (原样复制，不重新压缩)

        Raises:
            ChecksumMismatchError: stored 与 entry.checksum 不符
        """
        actual = self._crc.compute(stored)
        if actual != entry.checksum:
            raise ChecksumMismatchError(entry.path, entry.checksum, actual)
        self._append(_PendingEntry(path=entry.path, stored=stored, template=entry))

    # ==================== 构建 ====================

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise OperationCancelledError()

    def _compress_entry(self, pending: _PendingEntry) -> Tuple[FileEntry, bytes]:
        if pending.stored is not None:
            tpl = pending.template
            return FileEntry(
                path=tpl.path,
                compressed_size=len(pending.stored),
                uncompressed_size=tpl.uncompressed_size,
                compression=tpl.compression,
                checksum=tpl.checksum,
                flags=tpl.flags,
                reserved=tpl.reserved
            ), pending.stored

        with open(pending.local_path, 'rb') as f:
            raw_data = f.read()
        stored = compress(self._compression, raw_data)
        entry = FileEntry(
            path=pending.path,
            compressed_size=len(stored),
            uncompressed_size=len(raw_data),
            compression=self._compression,
            # 校验存储数据，解压前即可发现损坏
            checksum=self._crc.compute(stored),
            flags=FILE_FLAG_EXECUTABLE if pending.executable else 0
        )
        return entry, stored

    def _prepare(self) -> Tuple[ModPackHeader, bytes, List[FileEntry], List[bytes], int]:
        """
        阶段 1: 压缩元数据与全部条目，计算布局

        Returns:
            (header, 元数据存储数据, 条目列表, 存储数据列表, 原始总字节数)
        """
        # 元数据先压缩，LZ4 等未实现的类型在读取任何文件前失败
        metadata_raw = serialize_metadata(self._metadata)
        metadata_stored = compress(self._compression, metadata_raw)

        tracker = ProgressTracker(
            total_files=len(self._entries),
            callback=self._progress_callback
        )
        entries: List[FileEntry] = []
        blobs: List[bytes] = []
        raw_total = 0
        offset = 0
        for pending in self._entries:
            self._check_cancelled()
            entry, stored = self._compress_entry(pending)
            entry.offset = offset
            offset += entry.compressed_size
            raw_total += entry.uncompressed_size
            entries.append(entry)
            blobs.append(stored)
            tracker.update(entry.path, entry.uncompressed_size)
        tracker.finish()
        self._check_cancelled()

        table_offset = ModPackHeader.SIZE + len(metadata_stored)
        content_offset = table_offset + len(entries) * FileEntry.SIZE
        total_size = content_offset + offset
        if total_size > MAX_ARCHIVE_SIZE:
            raise ModPackError(
                f"归档大小 {total_size} 字节超出格式上限 {MAX_ARCHIVE_SIZE} 字节"
            )

        header = ModPackHeader(
            compression=self._compression,
            metadata_offset=ModPackHeader.SIZE,
            metadata_size_compressed=len(metadata_stored),
            metadata_size_uncompressed=len(metadata_raw),
            file_table_offset=table_offset,
            file_table_count=len(entries),
            content_offset=content_offset,
            total_size=total_size,
            flags=self._header_flags,
            reserved=self._header_reserved
        )
        logger.debug(
            "布局: 元数据 %d->%d 字节, 文件表 @%#x (%d 条), 内容区 @%#x, 总计 %d 字节",
            len(metadata_raw), len(metadata_stored), table_offset,
            len(entries), content_offset, total_size
        )
        return header, metadata_stored, entries, blobs, raw_total

    def _write(self, f: BinaryIO) -> PackResult:
        """阶段 2: 顺序写出，最后回写带校验值的 Header"""
        header, metadata_stored, entries, blobs, raw_total = self._prepare()

        writer = BinaryWriter(f, checksum_start=ModPackHeader.SIZE)
        writer.reserve(ModPackHeader.SIZE)
        writer.write_bytes(metadata_stored)
        writer.write_bytes(encode_file_table(entries))
        for blob in blobs:
            writer.write_bytes(blob)

        header.checksum = writer.checksum
        writer.patch_bytes(0, header.pack())

        return PackResult(
            output_path=self._output_path or '',
            entry_count=len(entries),
            total_size=header.total_size,
            uncompressed_bytes=raw_total,
            stored_bytes=sum(len(b) for b in blobs),
            checksum=header.checksum
        )

    def build_bytes(self) -> bytes:
        """在内存中构建并返回完整归档"""
        with self._lock:
            buffer = io.BytesIO()
            self._write(buffer)
            return buffer.getvalue()

    def build(self) -> PackResult:
        """
        构建并原子地写入 output_path

        先写入同目录下的临时文件，fsync 后重新打开校验，
        通过后才替换目标文件。任何失败都会删除临时文件，目标文件保持原状。

        Raises:
            OperationCancelledError: 构建过程中 cancel_event 被置位
            UnsupportedCompressionError: 压缩类型未实现
        """
        if not self._output_path:
            raise ValueError("未指定输出路径")

        from .reader import PackReader

        with self._lock:
            directory = os.path.dirname(os.path.abspath(self._output_path))
            fd, temp_path = tempfile.mkstemp(
                prefix=".", suffix=".kfxmod.tmp", dir=directory
            )
            try:
                with os.fdopen(fd, 'w+b') as f:
                    result = self._write(f)
                    f.flush()
                    os.fsync(f.fileno())

                # 重新打开完整校验一次
                with PackReader(temp_path, strict=True):
                    pass

                os.chmod(temp_path, _target_mode(self._output_path))
                os.replace(temp_path, self._output_path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.remove(temp_path)
                raise

        logger.info(
            "已写入 %s: %d 个条目, %d 字节",
            self._output_path, result.entry_count, result.total_size
        )
        return result

    # ==================== 便捷构造 ====================

    @classmethod
    def create(
        cls,
        source_dir: str,
        metadata: ModPackMetadata,
        compression: int = Compression.ZLIB
    ) -> bytes:
        """从目录直接构建归档字节"""
        writer = cls(None, metadata, compression)
        writer.add_dir(source_dir)
        return writer.build_bytes()

    @classmethod
    def from_archive(
        cls,
        reader,
        output_path: Optional[str],
        metadata: Optional[ModPackMetadata] = None
    ) -> 'PackWriter':
        """
        基于已打开的归档创建构建器 (用于重新保存)

        条目顺序、存储数据、Header 的 flags 与 reserved 都原样保留，
        未修改时重新保存的结果与原文件逐字节一致。

        Args:
            reader: 已打开的 PackReader
            output_path: 输出路径
            metadata: 替换用的元数据 (None 表示沿用原元数据)
        """
        if metadata is None:
            metadata = reader.metadata
            if metadata is None:
                raise InvalidMetadataError("源归档的元数据未通过校验，无法沿用")
        header = reader.header
        writer = cls(output_path, metadata, header.compression)
        writer._header_flags = header.flags
        writer._header_reserved = header.reserved
        for entry in reader.iter_entries():
            writer.add_stored(entry, reader.read_stored(entry))
        logger.debug(
            "从 %s 载入 %d 个条目 (元数据压缩: %s)",
            reader.path, writer.entry_count, get_hook_name(header.compression)
        )
        return writer

    @property
    def entry_count(self) -> int:
        """已添加的条目数量"""
        return len(self._entries)

    @property
    def paths(self) -> List[str]:
        return [p.path for p in self._entries]
