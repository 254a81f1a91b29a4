#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 异常定义

所有异常均继承自 ModPackError，便于统一捕获。
每个异常类带有 kind (错误类别名) 和 exit_code (命令行退出码)。
"""

from typing import Optional


class ModPackError(Exception):
    """kfxmod 基础异常"""
    kind = "ModPackError"
    exit_code = 1


class ModPackIOError(ModPackError):
    """
    I/O 异常

    包装底层 OSError (文件不存在、权限不足、磁盘已满等)，保留原始信息。
    """
    kind = "IoError"
    exit_code = 10

    def __init__(self, path: str, cause: OSError):
        self.path = path
        self.cause = cause
        super().__init__(f"I/O 错误 '{path}': {cause}")


class InvalidHeaderError(ModPackError):
    """
    文件头无效异常

    魔法数错误、不支持的格式版本、读取不足或布局不变量被破坏时抛出。
    """
    kind = "InvalidHeader"
    exit_code = 11

    def __init__(self, message: str, expected: str = None, actual: str = None):
        self.expected = expected
        self.actual = actual
        if expected is not None and actual is not None:
            message = f"{message}: 期望 {expected}, 实际 {actual}"
        super().__init__(message)


class CorruptDataError(ModPackError):
    """
    数据损坏异常

    解压失败、解压后大小不符或内容区被截断时抛出。
    """
    kind = "CorruptData"
    exit_code = 12

    def __init__(self, message: str, path: Optional[str] = None,
                 offset: Optional[int] = None):
        self.path = path
        self.offset = offset
        if path is not None:
            message = f"'{path}': {message}"
        if offset is not None:
            message = f"{message} (偏移 {offset:#x})"
        super().__init__(message)


class ChecksumMismatchError(ModPackError):
    """
    校验失败异常

    条目或整个归档的 CRC32 与记录值不一致时抛出。
    path 为条目路径，整档校验时为 None。
    """
    kind = "ChecksumMismatch"
    exit_code = 13

    def __init__(self, path: Optional[str], expected: int, actual: int,
                 offset: Optional[int] = None):
        self.path = path
        self.expected = expected
        self.actual = actual
        self.offset = offset
        target = f"条目 '{path}'" if path is not None else "归档"
        message = f"{target} 校验失败: 期望 {expected:08x}, 实际 {actual:08x}"
        if offset is not None:
            message = f"{message} (偏移 {offset:#x})"
        super().__init__(message)


class InvalidMetadataError(ModPackError):
    """
    元数据无效异常

    JSON 格式错误或缺少必填字段 (mod_id, version, format_version) 时抛出。
    """
    kind = "InvalidMetadata"
    exit_code = 14

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        if field is not None:
            message = f"字段 '{field}': {message}"
        super().__init__(message)


class UnsupportedCompressionError(ModPackError):
    """
    不支持的压缩算法异常

    压缩类型已声明但未实现 (LZ4) 或 ID 未知时抛出。
    """
    kind = "UnsupportedCompression"
    exit_code = 15

    def __init__(self, variant: int, name: Optional[str] = None):
        self.variant = variant
        label = name if name else str(variant)
        super().__init__(f"不支持的压缩类型: {label}")


class PathViolationError(ModPackError):
    """
    路径违规异常

    条目路径为绝对路径、包含 '..' 等越界片段或与其他条目重复时抛出。
    """
    kind = "PathViolation"
    exit_code = 16

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"非法条目路径 '{path}': {reason}")


class EntryNotFoundError(ModPackError):
    """条目不存在异常"""
    kind = "EntryNotFound"
    exit_code = 17

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"条目不存在: {path}")


class OperationCancelledError(ModPackError):
    """
    操作取消异常

    协作式取消只在两个条目之间生效，不会留下写了一半的归档。
    """
    kind = "Cancelled"
    exit_code = 18

    def __init__(self, message: str = None):
        super().__init__(message or "操作已取消")
