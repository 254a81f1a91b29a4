#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod - KeeperFX 模组包 (.kfxmod) 读写库

提供模组包的打包、解包、信息查看和完整性校验。
"""

import logging

__version__ = "1.0.0"

# 异常类
from .exceptions import (
    ModPackError,
    ModPackIOError,
    InvalidHeaderError,
    CorruptDataError,
    ChecksumMismatchError,
    InvalidMetadataError,
    UnsupportedCompressionError,
    PathViolationError,
    EntryNotFoundError,
    OperationCancelledError,
)

# 数据结构
from .core.schema import ModPackHeader, FileEntry, Compression, FORMAT_VERSION
from .metadata import (
    ModPackMetadata,
    ModType,
    LoadPhase,
    Dependency,
    Conflict,
    LoadOrder,
    ChangelogEntry,
    CampaignConfig,
    ContentManifest,
    parse_metadata,
    serialize_metadata,
)

# 读写与校验
from .archive import PackWriter, PackResult, PackReader
from .validator import Validator, ValidationReport, ValidationIssue
from .versioning import compare_versions, version_satisfies, check_dependencies, resolve_load_order

# 高层接口
from .api import pack, unpack, info, validate, load_available_mods

# 库默认不输出日志，由应用配置 handler
logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # 版本
    "__version__",
    "FORMAT_VERSION",
    # 异常
    "ModPackError",
    "ModPackIOError",
    "InvalidHeaderError",
    "CorruptDataError",
    "ChecksumMismatchError",
    "InvalidMetadataError",
    "UnsupportedCompressionError",
    "PathViolationError",
    "EntryNotFoundError",
    "OperationCancelledError",
    # 数据结构
    "ModPackHeader",
    "FileEntry",
    "Compression",
    "ModPackMetadata",
    "ModType",
    "LoadPhase",
    "Dependency",
    "Conflict",
    "LoadOrder",
    "ChangelogEntry",
    "CampaignConfig",
    "ContentManifest",
    "parse_metadata",
    "serialize_metadata",
    # 读写
    "PackWriter",
    "PackResult",
    "PackReader",
    "Validator",
    "ValidationReport",
    "ValidationIssue",
    # 版本
    "compare_versions",
    "version_satisfies",
    "check_dependencies",
    "resolve_load_order",
    # 高层接口
    "pack",
    "unpack",
    "info",
    "validate",
    "load_available_mods",
]
