#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
pytest 全局配置

提供共享 fixtures、自定义 markers 和测试工具。
"""

import json
import zlib
from pathlib import Path

import pytest

from kfxmod import PackWriter, parse_metadata
from kfxmod.core.schema import ModPackHeader, FileEntry


# ==================== 路径常量 ====================

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent


# ==================== 自定义 Markers ====================

def pytest_configure(config):
    """注册自定义 markers"""
    config.addinivalue_line("markers", "slow: 耗时较长的测试")


# ==================== 工具函数 ====================

def write_tree(root: Path, files: dict) -> Path:
    """按 {相对路径: 内容} 创建文件"""
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
    return root


def flip_byte(path: Path, offset: int) -> None:
    """翻转文件中指定位置的一个字节 (负数从末尾计算)"""
    data = bytearray(path.read_bytes())
    data[offset] ^= 0xFF
    path.write_bytes(bytes(data))


def rewrite_entry(archive: Path, index: int, **changes) -> None:
    """修改文件表中第 index 条记录并重新计算整档校验值"""
    data = bytearray(archive.read_bytes())
    header = ModPackHeader.unpack(bytes(data[:ModPackHeader.SIZE]))
    start = header.file_table_offset + index * FileEntry.SIZE
    entry = FileEntry.unpack(bytes(data[start:start + FileEntry.SIZE]))
    for name, value in changes.items():
        setattr(entry, name, value)
    data[start:start + FileEntry.SIZE] = entry.pack()
    header.checksum = zlib.crc32(bytes(data[ModPackHeader.SIZE:])) & 0xFFFFFFFF
    data[:ModPackHeader.SIZE] = header.pack()
    archive.write_bytes(bytes(data))


# ==================== 元数据 Fixtures ====================

TEMPEST_METADATA = {
    "mod_id": "tempest_keeper",
    "version": "1.0.0",
    "format_version": 1,
    "name": "Tempest Keeper",
    "author": "Keeper Team",
    "mod_type": "campaign",
}


@pytest.fixture
def metadata_dict() -> dict:
    """tempest_keeper 的元数据 (JSON 对象)"""
    return dict(TEMPEST_METADATA)


@pytest.fixture
def metadata(metadata_dict):
    """tempest_keeper 的 ModPackMetadata"""
    return parse_metadata(json.dumps(metadata_dict).encode("utf-8"))


# ==================== 目录 Fixtures ====================

@pytest.fixture
def tempest_dir(tmp_path, metadata_dict) -> Path:
    """
    tempest_keeper 模组目录

    包含 metadata.json 和一个 11 字节的 readme.txt
    """
    src = tmp_path / "tempest_keeper"
    return write_tree(src, {
        "metadata.json": json.dumps(metadata_dict, indent=2).encode("utf-8"),
        "readme.txt": b"Hello, Imp!",
    })


@pytest.fixture
def sample_files(tmp_path, metadata_dict) -> tuple:
    """
    创建多文件模组目录

    Returns:
        (目录路径, 文件内容字典 (不含 metadata.json))
    """
    files = {
        "readme.txt": b"Hello, Imp!",
        "creatures/imp.cfg": b"[attributes]\nName = IMP\nHealth = 75\n" * 20,
        "levels/map00001.txt": b"REM Tempest level\n" * 50,
        "sounds/roar.wav": bytes(range(256)) * 8,
        "中文/说明.txt": "地下城守护者".encode("utf-8"),
    }
    src = tmp_path / "sample_mod"
    write_tree(src, files)
    (src / "metadata.json").write_bytes(json.dumps(metadata_dict).encode("utf-8"))
    return src, files


# ==================== 归档 Fixtures ====================

@pytest.fixture
def tempest_archive(tmp_path, tempest_dir, metadata) -> Path:
    """
    预构建的 tempest_keeper.kfxmod (zlib)

    Returns:
        归档路径
    """
    output = tmp_path / "tempest_keeper.kfxmod"
    writer = PackWriter(str(output), metadata)
    writer.add_dir(str(tempest_dir))
    writer.build()
    return output


@pytest.fixture
def sample_archive(tmp_path, sample_files, metadata) -> tuple:
    """
    预构建的多文件归档

    Returns:
        (归档路径, 文件内容字典)
    """
    src, files = sample_files
    output = tmp_path / "sample.kfxmod"
    writer = PackWriter(str(output), metadata)
    writer.add_dir(str(src))
    writer.build()
    return output, files
