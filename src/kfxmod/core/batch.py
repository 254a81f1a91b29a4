#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
批量操作与进度回调

提供目录扫描、进度回调和批量结果统计的通用工具。
"""

import fnmatch
import logging
import os
import stat
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from ..utils import normalize_path

logger = logging.getLogger(__name__)


@dataclass
class FileItem:
    """
    待打包的文件项

    由 scan_directory() 生成。
    """
    local_path: str        # 本地文件路径
    archive_path: str      # 归档内路径


@dataclass
class ProgressInfo:
    """
    进度信息

    传递给进度回调函数的数据结构。
    """
    current: int              # 当前已处理条目数
    total: int                # 总条目数
    current_file: str         # 当前处理的条目路径
    bytes_processed: int      # 已处理字节数
    bytes_total: int          # 总字节数 (预估)
    elapsed_time: float       # 已耗时 (秒)

    @property
    def progress(self) -> float:
        """进度百分比 (0.0 - 1.0)"""
        if self.total == 0:
            return 0.0
        return self.current / self.total

    @property
    def rate(self) -> float:
        """处理速率 (bytes/second)"""
        if self.elapsed_time == 0:
            return 0.0
        return self.bytes_processed / self.elapsed_time


@dataclass
class BatchResult:
    """
    批量操作结果

    包含成功/跳过统计和详细信息。
    """
    success_count: int = 0
    skipped_count: int = 0
    total_bytes: int = 0
    elapsed_time: float = 0.0
    written_files: List[str] = field(default_factory=list)
    skipped_files: List[str] = field(default_factory=list)

    @property
    def total_count(self) -> int:
        return self.success_count + self.skipped_count


# 进度回调函数类型
ProgressCallback = Callable[[ProgressInfo], None]


class ProgressTracker:
    """
    进度跟踪器

    回调是"发出即忘"的通知: 回调抛出的异常只记录日志，
    不会中断或拖慢正在进行的操作。
    """

    def __init__(
        self,
        total_files: int,
        total_bytes: int = 0,
        callback: Optional[ProgressCallback] = None,
        callback_interval: float = 0.1  # 最小回调间隔 (秒)
    ):
        self._total_files = total_files
        self._total_bytes = total_bytes
        self._callback = callback
        self._callback_interval = callback_interval

        self._current_file = 0
        self._processed_bytes = 0
        self._last_path = ''
        self._start_time = time.time()
        self._last_callback_time = 0.0
        self._pending = False

    def update(self, file_path: str, bytes_processed: int = 0) -> None:
        """
        更新进度

        Args:
            file_path: 当前处理的条目路径
            bytes_processed: 本次处理的字节数
        """
        self._current_file += 1
        self._processed_bytes += bytes_processed
        self._last_path = file_path
        self._pending = True

        if self._callback:
            now = time.time()
            # 限制回调频率
            if now - self._last_callback_time >= self._callback_interval:
                self._notify(now)

    def _notify(self, now: float) -> None:
        info = ProgressInfo(
            current=self._current_file,
            total=self._total_files,
            current_file=self._last_path,
            bytes_processed=self._processed_bytes,
            bytes_total=self._total_bytes,
            elapsed_time=now - self._start_time
        )
        self._last_callback_time = now
        self._pending = False
        try:
            self._callback(info)
        except Exception:
            logger.warning("进度回调执行失败，已忽略", exc_info=True)

    def finish(self) -> float:
        """完成并返回总耗时 (最后一次进度一定会通知)"""
        now = time.time()
        if self._callback and self._pending:
            self._notify(now)
        return now - self._start_time


def _is_regular_file(path: Path) -> bool:
    """仅接受普通文件 (不跟随符号链接)"""
    try:
        return stat.S_ISREG(path.lstat().st_mode)
    except OSError:
        return False


def scan_directory(
    directory: str,
    exclude_paths: Iterable[str] = (),
    exclude_patterns: Optional[List[str]] = None
) -> Iterator[FileItem]:
    """
    递归扫描目录生成 FileItem

    结果按归档内路径排序，与文件系统遍历顺序无关，
    保证同一目录在任意平台上生成相同的条目顺序。

    Args:
        directory: 本地目录路径
        exclude_paths: 需要排除的本地文件 (如元数据文件、输出文件)
        exclude_patterns: 排除的文件名模式 (glob)

    Yields:
        FileItem 对象
    """
    base_path = Path(directory)
    excluded = {os.path.realpath(p) for p in exclude_paths}

    def should_exclude(path: Path) -> bool:
        if os.path.realpath(str(path)) in excluded:
            return True
        if not exclude_patterns:
            return False
        return any(fnmatch.fnmatch(path.name, pattern) for pattern in exclude_patterns)

    items: List[Tuple[str, str]] = []
    # os.walk 默认不进入指向目录的符号链接
    for root, _dirs, names in os.walk(directory):
        for name in names:
            file_path = Path(root) / name
            if _is_regular_file(file_path) and not should_exclude(file_path):
                rel_path = file_path.relative_to(base_path)
                items.append((normalize_path(str(rel_path)), str(file_path)))

    for archive_path, local_path in sorted(items):
        yield FileItem(local_path=local_path, archive_path=archive_path)
