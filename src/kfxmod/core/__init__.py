#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 核心模块

提供二进制 I/O 封装、数据结构定义、文件表编解码和批量操作工具。
"""

from .binary_io import BinaryReader, BinaryWriter
from .schema import ModPackHeader, FileEntry, Compression
from .file_table import (
    encode_file_table, decode_file_table, decode_entries,
    iter_table_issues, path_violation, check_path
)
from .batch import (
    ProgressInfo, BatchResult, ProgressTracker, scan_directory
)

__all__ = [
    "BinaryReader",
    "BinaryWriter",
    "ModPackHeader",
    "FileEntry",
    "Compression",
    # 文件表
    "encode_file_table",
    "decode_file_table",
    "decode_entries",
    "iter_table_issues",
    "path_violation",
    "check_path",
    # 批量操作
    "ProgressInfo",
    "BatchResult",
    "ProgressTracker",
    "scan_directory",
]
