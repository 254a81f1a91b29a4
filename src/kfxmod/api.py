#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 高层接口

命令行和图形界面共用的 pack / unpack / info / validate 操作。
底层抛出的 OSError 在这一层统一包装为 ModPackIOError。
"""

import contextlib
import logging
import os
import threading
from typing import Dict, Iterator, List, Optional, Union

from .archive.reader import PackReader, PathFilter
from .archive.writer import PackWriter, PackResult
from .core.batch import BatchResult, ProgressCallback, scan_directory
from .core.file_table import path_violation
from .core.schema import Compression, METADATA_FILENAME
from .exceptions import ModPackError, ModPackIOError, PathViolationError
from .hooks.registry import get_hook_name
from .metadata import ModPackMetadata, load_metadata_file, serialize_metadata
from .utils import format_size
from .validator import ValidationReport, Validator

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".kfxmod"


@contextlib.contextmanager
def _io_errors(path: str) -> Iterator[None]:
    """把 OSError 包装为 ModPackIOError"""
    try:
        yield
    except OSError as e:
        raise ModPackIOError(getattr(e, "filename", None) or path, e) from e


def _resolve_compression(compression: Union[str, int]) -> Compression:
    if isinstance(compression, str):
        return Compression.from_name(compression)
    return Compression.from_id(compression)


def _preflight(source_dir: str, excluded: List[str]) -> None:
    """打包前检查全部文件路径与可读性"""
    for item in scan_directory(source_dir, exclude_paths=excluded):
        reason = path_violation(item.archive_path)
        if reason is not None:
            raise PathViolationError(item.archive_path, reason)
        if not os.access(item.local_path, os.R_OK):
            raise PermissionError(13, "文件不可读", item.local_path)


# ==================== pack ====================

def pack(
    source_dir: str,
    output_path: str,
    metadata_path: Optional[str] = None,
    compression: Union[str, int] = "zlib",
    validate_first: bool = False,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None
) -> PackResult:
    """
    把目录打包为模组包

    Args:
        source_dir: 源目录
        output_path: 输出文件路径
        metadata_path: 元数据文件 (默认 source_dir/metadata.json)
        compression: 压缩类型名称 (none / zlib / lz4) 或 ID
        validate_first: 打包前检查源文件，打包后校验生成的归档
        progress_callback: 进度回调
        cancel_event: 取消事件

    Returns:
        PackResult (validate_first 时 report 为校验报告)

    Raises:
        ModPackIOError: 源目录或元数据文件无法读取、输出无法写入
        InvalidMetadataError: 元数据无效
        UnsupportedCompressionError: 压缩类型未实现
    """
    variant = _resolve_compression(compression)
    if metadata_path is None:
        metadata_path = os.path.join(source_dir, METADATA_FILENAME)

    with _io_errors(source_dir):
        if not os.path.isdir(source_dir):
            raise NotADirectoryError(20, "不是目录", source_dir)
        metadata = load_metadata_file(metadata_path)
        if validate_first:
            _preflight(source_dir, [metadata_path, output_path])

        writer = PackWriter(
            output_path, metadata, variant,
            progress_callback=progress_callback,
            cancel_event=cancel_event
        )
        writer.add_dir(source_dir, metadata_path=metadata_path)
        result = writer.build()

        if validate_first:
            result.report = Validator().validate_file(output_path)

    logger.info(
        "已打包 %s -> %s (%d 个文件, %s)",
        source_dir, output_path, result.entry_count, format_size(result.total_size)
    )
    return result


# ==================== unpack ====================

def unpack(
    input_path: str,
    output_dir: str,
    metadata_only: bool = False,
    path_filter: Optional[PathFilter] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> BatchResult:
    """
    解包模组包

    输出目录中总会写入规范化的 metadata.json，
    因此对解包结果重新打包可以得到逐字节相同的归档。

    Args:
        input_path: 模组包路径
        output_dir: 输出目录
        metadata_only: 只写出 metadata.json
        path_filter: 条目过滤 (glob 模式或判定函数)
        progress_callback: 进度回调
    """
    with _io_errors(input_path), PackReader(input_path, strict=True) as reader:
        if reader.exists(METADATA_FILENAME):
            raise PathViolationError(
                METADATA_FILENAME, "条目与生成的 metadata.json 冲突，解包会覆盖该条目"
            )
        if metadata_only:
            names = reader.list_all()
            result = BatchResult(skipped_count=len(names), skipped_files=names)
            os.makedirs(output_dir, exist_ok=True)
        else:
            result = reader.extract_all(output_dir, path_filter, progress_callback)

        with open(os.path.join(output_dir, METADATA_FILENAME), 'wb') as f:
            f.write(serialize_metadata(reader.metadata))

    logger.info("已解包 %s -> %s", input_path, output_dir)
    return result


# ==================== info ====================

def describe(reader: PackReader) -> str:
    """生成已打开归档的可读摘要"""
    header = reader.header
    meta = reader.metadata
    entries = reader.entries
    raw_total = sum(e.uncompressed_size for e in entries)

    lines = [
        "=== 模组包信息 ===",
        f"模组 ID: {meta.mod_id}",
        f"名称: {meta.title}",
        f"版本: {meta.version}",
        f"作者: {meta.author or '-'}",
        f"类型: {meta.mod_type.display_name}",
        f"加载阶段: {meta.load_order.load_phase.display_name} (优先级 {meta.load_order.priority})",
    ]
    if meta.description:
        lines.append(f"描述: {meta.description}")
    if meta.homepage_url:
        lines.append(f"主页: {meta.homepage_url}")
    if meta.update_url:
        lines.append(f"更新地址: {meta.update_url}")
    if meta.min_keeperfx_version:
        lines.append(f"最低 KeeperFX 版本: {meta.min_keeperfx_version}")
    if meta.tags:
        lines.append(f"标签: {', '.join(meta.tags)}")
    for dep in meta.dependencies:
        kind = "依赖" if dep.required else "可选依赖"
        constraint = f" {dep.min_version}" if dep.min_version else ""
        lines.append(f"{kind}: {dep.mod_id}{constraint}")
    for conflict in meta.conflicts:
        lines.append(f"冲突: {conflict.mod_id}")

    lines.extend([
        f"格式版本: {header.format_version}",
        f"压缩: {get_hook_name(header.compression)}",
        f"文件数: {len(entries)}",
        f"元数据: {header.metadata_size_uncompressed} 字节 "
        f"(存储 {header.metadata_size_compressed} 字节)",
        f"内容: {format_size(raw_total)} (存储 {format_size(header.content_size)})",
        f"总大小: {format_size(header.total_size)}",
        f"校验值: {header.checksum:08x}",
    ])
    for entry in entries:
        lines.append(
            f"  {entry.path}  {entry.uncompressed_size} -> {entry.compressed_size} "
            f"[{get_hook_name(entry.compression)}]"
        )
    return "\n".join(lines)


def info(input_path: str) -> str:
    """
    读取模组包并返回可读摘要

    Raises:
        ModPackError: 归档无法通过严格检查
    """
    with _io_errors(input_path), PackReader(input_path, strict=True) as reader:
        return describe(reader)


# ==================== validate ====================

def validate(
    input_path: str,
    available_mods: Optional[Dict[str, str]] = None,
    progress_callback: Optional[ProgressCallback] = None
) -> ValidationReport:
    """
    校验模组包

    Args:
        input_path: 模组包路径
        available_mods: 已安装模组 {mod_id: version}，提供时检查依赖
    """
    with _io_errors(input_path):
        return Validator(available_mods, progress_callback=progress_callback).validate_file(
            input_path
        )


def load_available_mods(directory: str) -> Dict[str, str]:
    """
    收集目录中已安装的模组 {mod_id: version}

    识别 *.kfxmod 文件和含 metadata.json 的子目录 (已解包的模组)。
    无法读取的模组记录警告后跳过。
    """
    mods: Dict[str, str] = {}
    with _io_errors(directory):
        names = sorted(os.listdir(directory))

    for name in names:
        path = os.path.join(directory, name)
        try:
            meta = _read_installed(path)
        except (ModPackError, OSError) as e:
            logger.warning("跳过无法读取的模组 %s: %s", path, e)
            continue
        if meta is not None:
            mods[meta.mod_id] = meta.version
    logger.debug("在 %s 中找到 %d 个模组", directory, len(mods))
    return mods


def _read_installed(path: str) -> Optional[ModPackMetadata]:
    if os.path.isdir(path):
        metadata_path = os.path.join(path, METADATA_FILENAME)
        if os.path.isfile(metadata_path):
            return load_metadata_file(metadata_path)
        return None
    if path.endswith(ARCHIVE_SUFFIX):
        with PackReader(path, strict=True) as reader:
            return reader.metadata
    return None
