#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
文件表编解码

文件表由 file_table_count 条定长 FileEntry 记录组成，顺序即解包顺序。
解码时强制检查路径合法性、路径唯一性和数据区越界。
"""

import re
from typing import Iterable, Iterator, List, Optional

from .schema import FileEntry, MAX_PATH_LENGTH
from ..exceptions import ModPackError, CorruptDataError, PathViolationError

_DRIVE_RE = re.compile(r'^[A-Za-z]:')


def path_violation(path: str) -> Optional[str]:
    """
    检查归档内路径是否合法

    Args:
        path: 归档内逻辑路径 (正斜杠分隔)

    Returns:
        违规原因，合法时返回 None
    """
    if not path:
        return "路径为空"
    if "\x00" in path:
        return "包含 NUL 字符"
    if "\\" in path:
        return "包含反斜杠"
    if path.startswith("/") or _DRIVE_RE.match(path):
        return "不允许绝对路径"
    for segment in path.split("/"):
        if segment == "..":
            return "不允许 '..' 片段"
        if segment in ("", "."):
            return "包含空片段或 '.' 片段"
    if len(path.encode("utf-8")) > MAX_PATH_LENGTH:
        return f"超过 {MAX_PATH_LENGTH} 字节上限"
    return None


def check_path(path: str) -> None:
    """
    校验单个路径

    Raises:
        PathViolationError: 路径不合法
    """
    reason = path_violation(path)
    if reason is not None:
        raise PathViolationError(path, reason)


def encode_file_table(entries: Iterable[FileEntry]) -> bytes:
    """
    编码文件表

    Raises:
        PathViolationError: 任一条目路径不合法
    """
    parts = []
    for entry in entries:
        check_path(entry.path)
        parts.append(entry.pack())
    return b''.join(parts)


def decode_entries(data: bytes, count: int, base_offset: int = 0) -> List[FileEntry]:
    """
    解码文件表记录 (不做语义检查)

    Args:
        data: 文件表原始字节
        count: 条目数
        base_offset: 文件表在归档中的偏移 (仅用于错误信息)

    Raises:
        CorruptDataError: 数据不足或记录损坏
    """
    expected = count * FileEntry.SIZE
    if len(data) < expected:
        raise CorruptDataError(
            f"文件表被截断: 期望 {expected} 字节, 实际 {len(data)} 字节",
            offset=base_offset
        )
    entries = []
    for i in range(count):
        start = i * FileEntry.SIZE
        entries.append(
            FileEntry.unpack(data[start:start + FileEntry.SIZE], base_offset + start)
        )
    return entries


def iter_table_issues(
    entries: List[FileEntry],
    content_size: int,
    content_offset: int = 0,
    archive_size: Optional[int] = None
) -> Iterator[ModPackError]:
    """
    检查文件表语义规则

    Args:
        entries: 解码后的条目
        content_size: 头部声明的内容区大小
        content_offset: 内容区在归档中的偏移
        archive_size: 实际文件大小 (None 表示不检查)

    Yields:
        每个违规对应的异常实例 (不抛出)
    """
    seen = set()
    for entry in entries:
        reason = path_violation(entry.path)
        if reason is not None:
            yield PathViolationError(entry.path, reason)
        if entry.path in seen:
            yield PathViolationError(entry.path, "路径重复")
        seen.add(entry.path)

        end = entry.offset + entry.compressed_size
        if end > content_size:
            yield CorruptDataError(
                f"数据区越界: {entry.offset}+{entry.compressed_size} 超出内容区 {content_size} 字节",
                path=entry.path,
                offset=content_offset + entry.offset
            )
        elif archive_size is not None and content_offset + end > archive_size:
            yield CorruptDataError(
                "数据区超出实际文件大小",
                path=entry.path,
                offset=content_offset + entry.offset
            )


def decode_file_table(
    data: bytes,
    count: int,
    content_size: int,
    content_offset: int = 0,
    archive_size: Optional[int] = None,
    base_offset: int = 0
) -> List[FileEntry]:
    """
    解码并校验文件表

    Returns:
        按存储顺序排列的条目列表

    Raises:
        PathViolationError: 路径非法或重复
        CorruptDataError: 记录损坏或数据区越界
    """
    entries = decode_entries(data, count, base_offset)
    for issue in iter_table_issues(entries, content_size, content_offset, archive_size):
        raise issue
    return entries
