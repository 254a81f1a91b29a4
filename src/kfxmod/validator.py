#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
归档校验器

重新推导全部校验值和结构不变量，遇到问题继续检查，汇总为完整报告。
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .archive.reader import PackReader
from .core.batch import ProgressCallback, ProgressTracker
from .exceptions import ModPackError, CorruptDataError, InvalidHeaderError
from .versioning import check_dependencies

logger = logging.getLogger(__name__)

# 超过该大小 (解压后) 的条目给出警告
DEFAULT_LARGE_ENTRY_THRESHOLD = 64 * 1024 * 1024


@dataclass(frozen=True)
class ValidationIssue:
    """单条校验结果"""
    kind: str                   # 错误类别 (ChecksumMismatch / PathViolation / LargeEntry ...)
    message: str
    path: Optional[str] = None  # 相关条目路径

    @classmethod
    def from_error(cls, error: ModPackError) -> 'ValidationIssue':
        return cls(error.kind, str(error), getattr(error, "path", None))

    def __str__(self) -> str:
        return f"[{self.kind}] {self.message}"


@dataclass
class ValidationReport:
    """
    校验报告

    有任何错误即为失败，只有警告仍视为通过。
    """
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.errors

    def kinds(self) -> List[str]:
        """错误类别列表 (按发现顺序)"""
        return [issue.kind for issue in self.errors]

    def format(self) -> str:
        """可读文本"""
        lines = [f"校验{'通过' if self.passed else '失败'}: "
                 f"{len(self.errors)} 个错误, {len(self.warnings)} 个警告"]
        lines.extend(f"  错误 {issue}" for issue in self.errors)
        lines.extend(f"  警告 {issue}" for issue in self.warnings)
        return "\n".join(lines)


class Validator:
    """
    归档校验器

    检查顺序: Header 不变量 -> 元数据 -> 依赖 (提供 available_mods 时)
    -> 文件表 -> 每个条目的校验与解压 -> 整档校验。
    """

    def __init__(
        self,
        available_mods: Optional[Dict[str, str]] = None,
        large_entry_threshold: int = DEFAULT_LARGE_ENTRY_THRESHOLD,
        progress_callback: Optional[ProgressCallback] = None
    ):
        """
        Args:
            available_mods: 已安装模组 {mod_id: version}，None 表示跳过依赖检查
            large_entry_threshold: 大条目警告阈值 (字节)
            progress_callback: 逐条目校验的进度回调
        """
        self._available_mods = available_mods
        self._large_entry_threshold = large_entry_threshold
        self._progress_callback = progress_callback

    def validate(self, pack: PackReader) -> ValidationReport:
        """校验已打开的归档 (建议以 strict=False 打开)"""
        report = ValidationReport()
        errors, warnings = report.errors, report.warnings
        header = pack.header

        # ========== 1. Header ==========
        for issue in header.iter_issues(pack.physical_size):
            errors.append(ValidationIssue.from_error(issue))
        if header.flags:
            warnings.append(ValidationIssue(
                "NonZeroFlags",
                f"Header flags 非零: {header.flags:#010x} ({', '.join(header.flag_names())})"
            ))
        if header.reserved != b'\x00' * len(header.reserved):
            warnings.append(ValidationIssue(
                "NonZeroReserved", "Header 保留字段非零"
            ))

        # ========== 2. 元数据 ==========
        for issue in pack.stage_errors("metadata"):
            errors.append(ValidationIssue.from_error(issue))

        # ========== 3. 依赖 ==========
        metadata = pack.unverified_metadata
        if metadata is not None and self._available_mods is not None:
            dep_errors, dep_warnings = check_dependencies(metadata, self._available_mods)
            errors.extend(ValidationIssue(p.kind, p.message) for p in dep_errors)
            warnings.extend(ValidationIssue(p.kind, p.message) for p in dep_warnings)

        # ========== 4. 文件表 ==========
        out_of_bounds = set()
        for issue in pack.stage_errors("file_table"):
            errors.append(ValidationIssue.from_error(issue))
            if isinstance(issue, CorruptDataError) and issue.path is not None:
                out_of_bounds.add(issue.path)

        # ========== 5. 条目内容 ==========
        entries = pack.entries
        tracker = ProgressTracker(
            total_files=len(entries),
            total_bytes=sum(e.uncompressed_size for e in entries),
            callback=self._progress_callback
        )
        for entry in entries:
            if entry.uncompressed_size > self._large_entry_threshold:
                warnings.append(ValidationIssue(
                    "LargeEntry",
                    f"条目 '{entry.path}' 解压后 {entry.uncompressed_size} 字节, "
                    f"超过 {self._large_entry_threshold} 字节",
                    entry.path
                ))
            if entry.path not in out_of_bounds:
                try:
                    pack.decode_entry(entry)
                except ModPackError as e:
                    errors.append(ValidationIssue.from_error(e))
            tracker.update(entry.path, entry.uncompressed_size)
        tracker.finish()

        # ========== 6. 整档校验 ==========
        try:
            pack.verify_checksum()
        except ModPackError as e:
            errors.append(ValidationIssue.from_error(e))

        logger.info(
            "校验 %s: %d 个错误, %d 个警告",
            pack.path, len(errors), len(warnings)
        )
        return report

    def validate_file(self, path: str) -> ValidationReport:
        """
        打开并校验归档文件

        Header 无法解码时报告中只有一条 InvalidHeader 错误。

        Raises:
            OSError: 文件无法打开
        """
        try:
            pack = PackReader(path, strict=False)
        except InvalidHeaderError as e:
            logger.info("校验 %s: Header 无法解码", path)
            return ValidationReport(errors=[ValidationIssue.from_error(e)])
        with pack:
            return self.validate(pack)
