#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod Hook 系统

提供压缩、校验算法的可插拔接口。
"""

from .base import CompressionHook, ChecksumHook
from .checksum import CRC32Hook
from .compression import NoneCompressionHook, ZlibCompressionHook, LZ4ReservedHook
from .registry import (
    get_compression_hook,
    get_hook_name,
    compress,
    decompress,
    COMPRESSION_REGISTRY,
)

__all__ = [
    # 抽象基类
    "CompressionHook",
    "ChecksumHook",
    # 内置校验实现
    "CRC32Hook",
    # 内置压缩实现
    "NoneCompressionHook",
    "ZlibCompressionHook",
    "LZ4ReservedHook",
    # 注册表
    "get_compression_hook",
    "get_hook_name",
    "compress",
    "decompress",
    "COMPRESSION_REGISTRY",
]
