#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
模组包读取器

打开时解码 Header、元数据和文件表，条目内容按需读取并解压。
支持 mmap 和传统文件读取模式。
"""

import fnmatch
import io
import logging
import os
import stat
from concurrent.futures import ThreadPoolExecutor
from typing import BinaryIO, Callable, Dict, Iterator, List, Optional, Union

from ..core.batch import BatchResult, ProgressCallback, ProgressTracker
from ..core.binary_io import BinaryReader
from ..core.file_table import decode_entries, iter_table_issues
from ..core.schema import ModPackHeader, FileEntry
from ..exceptions import (
    ModPackError,
    ChecksumMismatchError,
    CorruptDataError,
    EntryNotFoundError,
    PathViolationError,
)
from ..hooks.checksum import CRC32Hook
from ..hooks.registry import decompress
from ..metadata import ModPackMetadata, parse_metadata
from ..utils import normalize_path, is_within_directory

logger = logging.getLogger(__name__)

# 路径过滤: glob 模式或判定函数
PathFilter = Union[str, Callable[[str], bool]]

# 加载阶段
STAGES = ("header", "metadata", "file_table")


class PackReader:
    """
    模组包读取器

    strict=True (默认): 依次检查 Header、布局不变量、整档校验、元数据和文件表，
    遇到第一个问题即抛出异常。

    strict=False (检查模式): 只要求 Header 能解码，后续阶段的问题记录在
    load_errors 中。存在任何加载错误或整档校验失败时拒绝返回条目内容。
    """

    def __init__(self, path: str, strict: bool = True, use_mmap: bool = True):
        """
        打开归档

        Args:
            path: 归档文件路径
            strict: 是否严格模式
            use_mmap: 是否使用 mmap 模式

        Raises:
            InvalidHeaderError: Header 无法解码 (任何模式)
            ModPackError: 严格模式下的任何结构或校验错误
            OSError: 文件无法打开
        """
        self._path = path
        self._strict = strict
        self._crc = CRC32Hook()

        self._file: Optional[BinaryIO] = None
        self._reader: Optional[BinaryReader] = None
        self._header: Optional[ModPackHeader] = None
        self._metadata: Optional[ModPackMetadata] = None
        self._entries: List[FileEntry] = []
        self._index: Dict[str, FileEntry] = {}
        # 按加载阶段记录的问题 (检查模式)
        self._stage_errors: Dict[str, List[ModPackError]] = {stage: [] for stage in STAGES}
        self._archive_checksum: Optional[int] = None

        try:
            self._load(use_mmap)
        except BaseException:
            self.close()
            raise

    # ==================== 加载 ====================

    def _record(self, stage: str, error: ModPackError) -> None:
        """严格模式抛出，检查模式记录"""
        if self._strict:
            raise error
        logger.debug("加载 %s 时发现问题 (%s): %s", self._path, stage, error)
        self._stage_errors[stage].append(error)

    def _read_region(self, offset: int, size: int, what: str) -> bytes:
        try:
            return self._reader.read_at(offset, size)
        except EOFError as e:
            raise CorruptDataError(f"{what}被截断: {e}", offset=offset) from e

    def _load(self, use_mmap: bool) -> None:
        self._file = open(self._path, 'rb')
        size = os.fstat(self._file.fileno()).st_size
        self._reader = BinaryReader(self._file, size, use_mmap)

        # ========== 1. Header ==========
        head = self._reader.read_at(0, min(size, ModPackHeader.SIZE))
        self._header = ModPackHeader.unpack(head)

        # ========== 2. 布局不变量 ==========
        for issue in self._header.iter_issues(size):
            self._record("header", issue)

        # ========== 3. 整档校验 (检查模式下延迟计算) ==========
        if self._strict:
            self.verify_checksum()

        # ========== 4. 元数据 ==========
        try:
            self._metadata = self._load_metadata()
        except ModPackError as e:
            self._record("metadata", e)

        # ========== 5. 文件表 ==========
        try:
            self._load_file_table(size)
        except ModPackError as e:
            self._record("file_table", e)

        logger.debug(
            "已打开 %s: %d 个条目, %d 个加载错误",
            self._path, len(self._entries), len(self.load_errors)
        )

    def _load_metadata(self) -> ModPackMetadata:
        header = self._header
        stored = self._read_region(
            header.metadata_offset, header.metadata_size_compressed, "元数据块"
        )
        try:
            raw = decompress(header.compression, stored, header.metadata_size_uncompressed)
        except CorruptDataError as e:
            raise CorruptDataError(
                f"元数据块解压失败: {e}", offset=header.metadata_offset
            ) from e
        return parse_metadata(raw)

    def _load_file_table(self, size: int) -> None:
        header = self._header
        data = self._read_region(
            header.file_table_offset, header.file_table_size, "文件表"
        )
        self._entries = decode_entries(data, header.file_table_count, header.file_table_offset)
        for issue in iter_table_issues(
            self._entries, header.content_size, header.content_offset, size
        ):
            self._record("file_table", issue)
        for entry in self._entries:
            self._index.setdefault(entry.path, entry)

    # ==================== 校验 ====================

    def compute_checksum(self) -> int:
        """计算 Header 之后全部字节的 CRC32 (结果缓存)"""
        if self._archive_checksum is None:
            end = min(self._header.total_size, self._reader.size)
            start = ModPackHeader.SIZE
            self._archive_checksum = self._crc.compute_chunks(
                self._reader.iter_chunks(start, max(0, end - start))
            )
        return self._archive_checksum

    def verify_checksum(self) -> None:
        """
        校验整档 CRC32

        Raises:
            ChecksumMismatchError: 与 Header 记录值不符 (path 为 None)
        """
        actual = self.compute_checksum()
        if actual != self._header.checksum:
            raise ChecksumMismatchError(None, self._header.checksum, actual)

    def _ensure_trusted(self) -> None:
        """检查模式下，归档存在任何问题时拒绝返回内容"""
        errors = self.load_errors
        if errors:
            raise errors[0]
        self.verify_checksum()

    def is_trusted(self) -> bool:
        """没有加载错误且整档校验通过"""
        return not self.load_errors and self.compute_checksum() == self._header.checksum

    # ==================== 条目访问 ====================

    def exists(self, path: str) -> bool:
        """检查条目是否存在"""
        return normalize_path(path) in self._index

    def get_entry(self, path: str) -> FileEntry:
        """
        获取指定路径的条目

        Raises:
            EntryNotFoundError: 条目不存在
        """
        entry = self._index.get(normalize_path(path))
        if entry is None:
            raise EntryNotFoundError(path)
        return entry

    def read_stored(self, entry: FileEntry) -> bytes:
        """
        读取条目的存储数据 (不校验、不解压)

        Raises:
            CorruptDataError: 内容区被截断
        """
        offset = self._header.content_offset + entry.offset
        try:
            return self._reader.read_at(offset, entry.compressed_size)
        except EOFError as e:
            raise CorruptDataError(str(e), path=entry.path, offset=offset) from e

    def decode_entry(self, entry: FileEntry) -> bytes:
        """
        读取、校验并解压单个条目

        先校验存储数据的 CRC32，再解压。
        不检查整档状态，供 Validator 逐条检查使用。

        Raises:
            ChecksumMismatchError: 存储数据校验失败
            CorruptDataError: 解压失败或解压后大小不符
            UnsupportedCompressionError: 条目压缩类型未实现
        """
        stored = self.read_stored(entry)
        actual = self._crc.compute(stored)
        if actual != entry.checksum:
            raise ChecksumMismatchError(
                entry.path, entry.checksum, actual,
                offset=self._header.content_offset + entry.offset
            )
        try:
            return decompress(entry.compression, stored, entry.uncompressed_size)
        except CorruptDataError as e:
            raise CorruptDataError(
                str(e), path=entry.path,
                offset=self._header.content_offset + entry.offset
            ) from e

    def extract(self, path: str) -> bytes:
        """
        读取条目内容

        Args:
            path: 归档内路径

        Returns:
            解压后的原始内容

        Raises:
            EntryNotFoundError: 条目不存在
            ChecksumMismatchError: 条目或整档校验失败
            CorruptDataError: 数据损坏
        """
        if not self._strict:
            self._ensure_trusted()
        return self.decode_entry(self.get_entry(path))

    def open_entry(self, path: str) -> io.BytesIO:
        """以文件对象方式打开条目"""
        return io.BytesIO(self.extract(path))

    def extract_many(
        self,
        paths: List[str],
        max_workers: Optional[int] = None
    ) -> Dict[str, bytes]:
        """
        并行读取多个条目

        mmap 模式下多个线程可同时切片读取。
        任一条目失败时抛出该异常。

        Returns:
            {path: data} 字典
        """
        if not self._strict:
            self._ensure_trusted()
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            results = list(executor.map(self.extract, paths))
        return dict(zip(paths, results))

    def list_all(self) -> List[str]:
        """按存储顺序列出所有条目路径"""
        return [entry.path for entry in self._entries]

    def iter_entries(self) -> Iterator[FileEntry]:
        """按存储顺序迭代条目"""
        return iter(self._entries)

    # ==================== 解包 ====================

    @staticmethod
    def _match(path: str, path_filter: Optional[PathFilter]) -> bool:
        if path_filter is None:
            return True
        if callable(path_filter):
            return bool(path_filter(path))
        return (fnmatch.fnmatchcase(path, path_filter)
                or fnmatch.fnmatchcase(path.rsplit("/", 1)[-1], path_filter))

    def extract_all(
        self,
        output_dir: str,
        path_filter: Optional[PathFilter] = None,
        progress_callback: Optional[ProgressCallback] = None
    ) -> BatchResult:
        """
        解包条目到指定目录

        目标路径解析后必须位于 output_dir 之内，可执行标志会被还原。

        Args:
            output_dir: 输出目录
            path_filter: glob 模式 (匹配完整路径或文件名) 或判定函数
            progress_callback: 进度回调

        Returns:
            BatchResult 批量操作结果

        Raises:
            PathViolationError: 目标路径逃逸出 output_dir
        """
        if not self._strict:
            self._ensure_trusted()

        selected = [e for e in self._entries if self._match(e.path, path_filter)]
        tracker = ProgressTracker(
            total_files=len(selected),
            total_bytes=sum(e.uncompressed_size for e in selected),
            callback=progress_callback
        )
        skipped = [e.path for e in self._entries if not self._match(e.path, path_filter)]
        result = BatchResult(skipped_count=len(skipped), skipped_files=skipped)

        os.makedirs(output_dir, exist_ok=True)
        for entry in selected:
            target = os.path.join(output_dir, *entry.path.split("/"))
            if not is_within_directory(output_dir, target):
                raise PathViolationError(entry.path, "解包目标位于输出目录之外")

            data = self.decode_entry(entry)
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, 'wb') as f:
                f.write(data)
            if entry.is_executable:
                mode = os.stat(target).st_mode
                os.chmod(target, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

            result.success_count += 1
            result.total_bytes += len(data)
            result.written_files.append(entry.path)
            tracker.update(entry.path, len(data))

        result.elapsed_time = tracker.finish()
        logger.info(
            "已解包 %d 个条目到 %s (跳过 %d 个)",
            result.success_count, output_dir, result.skipped_count
        )
        return result

    # ==================== 属性 ====================

    @property
    def path(self) -> str:
        return self._path

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def header(self) -> ModPackHeader:
        return self._header

    @property
    def metadata(self) -> Optional[ModPackMetadata]:
        """
        元数据

        检查模式下，存在加载错误或整档校验失败时为 None。
        """
        if not self._strict and not self.is_trusted():
            return None
        return self._metadata

    @property
    def unverified_metadata(self) -> Optional[ModPackMetadata]:
        """
        解析出的元数据，不论整档校验是否通过

        供 Validator 在损坏归档上继续做依赖检查，不应用于安装或解包。
        """
        return self._metadata

    @property
    def entries(self) -> List[FileEntry]:
        return list(self._entries)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    @property
    def load_errors(self) -> List[ModPackError]:
        """检查模式下记录的全部加载问题 (按阶段顺序)"""
        return [e for stage in STAGES for e in self._stage_errors[stage]]

    def stage_errors(self, stage: str) -> List[ModPackError]:
        """指定阶段 (header / metadata / file_table) 的加载问题"""
        return list(self._stage_errors[stage])

    @property
    def physical_size(self) -> int:
        return self._reader.size

    @property
    def is_mmap(self) -> bool:
        return self._reader is not None and self._reader.is_mmap

    def close(self) -> None:
        """关闭文件"""
        if self._reader is not None:
            self._reader.close()
            self._reader = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> 'PackReader':
        return self

    def __exit__(self, *args) -> None:
        self.close()
