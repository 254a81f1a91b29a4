#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 归档读写

提供模组包的构建和读取功能。
"""

from .writer import PackWriter, PackResult
from .reader import PackReader

__all__ = [
    "PackWriter",
    "PackResult",
    "PackReader",
]
