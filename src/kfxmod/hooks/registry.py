#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Hook 注册表

提供 Compression 枚举到压缩 Hook 的统一分派。
"""

from typing import Dict

from .base import CompressionHook
from .compression import NoneCompressionHook, ZlibCompressionHook, LZ4ReservedHook
from ..core.schema import Compression
from ..exceptions import UnsupportedCompressionError


# 内置压缩 Hook 列表 (新增压缩类型时只需在此添加)
_BUILTIN_COMPRESSION_HOOKS = [
    NoneCompressionHook,
    ZlibCompressionHook,
    LZ4ReservedHook,
]


def _build_compression_registry() -> Dict[Compression, CompressionHook]:
    """从 Hook 类自动构建 Compression -> Hook 实例映射"""
    registry = {}
    for hook_cls in _BUILTIN_COMPRESSION_HOOKS:
        instance = hook_cls()
        registry[Compression(instance.algo_id)] = instance

    # 每个枚举成员都必须有对应实现
    missing = [c.name for c in Compression if c not in registry]
    if missing:
        raise RuntimeError(f"压缩类型缺少 Hook 实现: {', '.join(missing)}")
    return registry


COMPRESSION_REGISTRY: Dict[Compression, CompressionHook] = _build_compression_registry()


def get_compression_hook(variant: int) -> CompressionHook:
    """
    根据压缩类型获取 Hook

    Raises:
        UnsupportedCompressionError: 未知的压缩类型 ID
    """
    return COMPRESSION_REGISTRY[Compression.from_id(variant)]


def compress(variant: int, data: bytes) -> bytes:
    """按声明的压缩类型压缩"""
    return get_compression_hook(variant).compress(data)


def decompress(variant: int, data: bytes, expected_size: int) -> bytes:
    """
    按声明的压缩类型解压

    Raises:
        CorruptDataError: 解压后大小与 expected_size 不符
        UnsupportedCompressionError: 压缩类型未实现
    """
    return get_compression_hook(variant).decompress(data, expected_size)


def get_hook_name(variant: int) -> str:
    """获取压缩类型的可读名称，未知 ID 返回 'unknown(N)'"""
    try:
        return get_compression_hook(variant).display_name
    except UnsupportedCompressionError:
        return f"unknown({variant})"
