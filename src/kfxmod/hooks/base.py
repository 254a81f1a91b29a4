#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Hook 基类定义

定义压缩和校验的抽象接口。
"""

from abc import ABC, abstractmethod


class CompressionHook(ABC):
    """
    压缩算法钩子

    每个 Compression 枚举成员对应一个实现，由 registry 统一分派。
    """

    @property
    @abstractmethod
    def algo_id(self) -> int:
        """
        算法 ID

        存储在 Header / Entry 的 compression 字段中。
        0 保留为"无压缩"。
        """
        pass

    @property
    def display_name(self) -> str:
        """可读名称 (用于 info 输出)"""
        return type(self).__name__

    @abstractmethod
    def compress(self, data: bytes) -> bytes:
        """
        压缩数据

        Args:
            data: 原始数据

        Returns:
            压缩后的数据
        """
        pass

    @abstractmethod
    def decompress(self, data: bytes, raw_size: int) -> bytes:
        """
        解压数据

        Args:
            data: 压缩后的数据
            raw_size: 期望的原始大小

        Returns:
            解压后的数据

        Raises:
            CorruptDataError: 数据损坏或解压后大小与 raw_size 不符
        """
        pass


class ChecksumHook(ABC):
    """
    校验算法钩子

    校验值为整数，compute() 接受上一次的累计值，
    调用方显式传递累计值即可分块计算，无需全局状态。
    """

    @property
    @abstractmethod
    def display_name(self) -> str:
        pass

    @abstractmethod
    def compute(self, data: bytes, value: int = 0) -> int:
        """
        计算 (或继续累计) 校验值

        Args:
            data: 要校验的数据
            value: 之前数据块的累计校验值

        Returns:
            新的累计校验值
        """
        pass

    def verify(self, data: bytes, expected: int) -> bool:
        """
        验证校验值

        默认实现直接比较计算结果和期望值。
        """
        return self.compute(data) == expected
