#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
kfxmod 命令行工具

用法:
    kfxmod pack <源目录> <输出.kfxmod> [--compression none|zlib|lz4] [--metadata 文件] [--validate]
    kfxmod unpack <输入.kfxmod> <输出目录> [--metadata-only] [--files 模式]
    kfxmod info <输入.kfxmod>
    kfxmod validate <输入.kfxmod> [--mods-dir 目录]
    kfxmod version

退出码: 0 成功, 1 校验未通过或其他错误, 2 参数错误, 10-18 对应各类异常。
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from . import __version__, api
from .core.schema import FORMAT_VERSION
from .exceptions import ModPackError

logger = logging.getLogger(__name__)

# 日志级别环境变量 (DEBUG / INFO / WARNING ...)
LOG_LEVEL_ENV = "KFXMOD_LOG_LEVEL"


def setup_logging(verbose: int = 0, quiet: bool = False) -> None:
    """
    配置根日志

    优先级: -q > -v > 环境变量 KFXMOD_LOG_LEVEL > WARNING
    """
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        name = os.environ.get(LOG_LEVEL_ENV, "").strip().upper()
        level = logging.getLevelName(name) if name else logging.WARNING
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kfxmod",
        description="KeeperFX 模组包 (.kfxmod) 打包、解包与校验工具"
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="输出更多日志 (可重复)")
    parser.add_argument("-q", "--quiet", action="store_true", help="只输出错误")
    sub = parser.add_subparsers(dest="command", metavar="<command>")
    sub.required = True

    p = sub.add_parser("pack", help="把目录打包为 .kfxmod")
    p.add_argument("source", help="源目录")
    p.add_argument("output", help="输出文件")
    p.add_argument("--compression", choices=("none", "zlib", "lz4"), default="zlib",
                   help="压缩类型 (默认 zlib)")
    p.add_argument("--metadata", help="元数据文件 (默认 <源目录>/metadata.json)")
    p.add_argument("--validate", action="store_true", help="打包前检查源文件，打包后校验归档")

    p = sub.add_parser("unpack", help="解包 .kfxmod")
    p.add_argument("input", help="模组包")
    p.add_argument("output", help="输出目录")
    p.add_argument("--metadata-only", action="store_true", help="只写出 metadata.json")
    p.add_argument("--files", metavar="PATTERN", help="只解包匹配的条目 (glob)")

    p = sub.add_parser("info", help="显示模组包信息")
    p.add_argument("input", help="模组包")

    p = sub.add_parser("validate", help="校验模组包完整性")
    p.add_argument("input", help="模组包")
    p.add_argument("--mods-dir", help="已安装模组目录 (用于依赖检查)")

    sub.add_parser("version", help="显示版本")
    return parser


# ==================== 子命令 ====================

def _cmd_pack(args: argparse.Namespace) -> int:
    result = api.pack(
        args.source, args.output,
        metadata_path=args.metadata,
        compression=args.compression,
        validate_first=args.validate
    )
    print(f"已创建 {result.output_path}: {result.entry_count} 个文件, "
          f"{result.total_size} 字节 (压缩率 {result.ratio:.1%})")
    if result.report is not None:
        print(result.report.format())
        if not result.report.passed:
            return 1
    return 0


def _cmd_unpack(args: argparse.Namespace) -> int:
    result = api.unpack(
        args.input, args.output,
        metadata_only=args.metadata_only,
        path_filter=args.files
    )
    print(f"已解包 {result.success_count} 个文件到 {args.output} "
          f"(跳过 {result.skipped_count} 个)")
    return 0


def _cmd_info(args: argparse.Namespace) -> int:
    print(api.info(args.input))
    return 0


def _cmd_validate(args: argparse.Namespace) -> int:
    available = api.load_available_mods(args.mods_dir) if args.mods_dir else None
    report = api.validate(args.input, available)
    print(report.format())
    return 0 if report.passed else 1


def _cmd_version(args: argparse.Namespace) -> int:
    print(f"kfxmod {__version__} (格式版本 {FORMAT_VERSION})")
    return 0


COMMANDS = {
    "pack": _cmd_pack,
    "unpack": _cmd_unpack,
    "info": _cmd_info,
    "validate": _cmd_validate,
    "version": _cmd_version,
}


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.quiet)
    try:
        return COMMANDS[args.command](args)
    except ModPackError as e:
        logger.debug("命令 %s 失败", args.command, exc_info=True)
        print(f"错误 [{e.kind}]: {e}", file=sys.stderr)
        return e.exit_code


if __name__ == "__main__":
    sys.exit(main())
