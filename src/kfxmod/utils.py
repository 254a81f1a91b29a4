#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 工具函数

提供路径规范化、大小格式化等通用功能。
"""

import os


def normalize_path(path: str) -> str:
    """
    路径规范化 (用于把本地相对路径转换为归档内路径)

    1. 反斜杠统一为正斜杠
    2. 合并连续斜杠
    3. 移除首尾斜杠

    不会解析 '..'，越界片段由 path_violation() 拒绝。

    Examples:
        >>> normalize_path("creatures\\\\imp.cfg")
        'creatures/imp.cfg'
        >>> normalize_path("/levels//map00001.txt")
        'levels/map00001.txt'
    """
    path = path.replace("\\", "/")
    while "//" in path:
        path = path.replace("//", "/")
    return path.strip("/")


def is_within_directory(directory: str, target: str) -> bool:
    """判断 target 解析后是否位于 directory 之内"""
    base = os.path.realpath(directory)
    resolved = os.path.realpath(target)
    return os.path.commonpath([base, resolved]) == base


def format_size(size: int) -> str:
    """
    格式化字节数

    Examples:
        >>> format_size(11)
        '11 B'
        >>> format_size(2048)
        '2.0 KiB'
    """
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KiB", "MiB", "GiB"):
        value /= 1024
        if value < 1024 or unit == "GiB":
            break
    return f"{value:.1f} {unit}"
