#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
版本比较与依赖检查

版本号按 major.minor.patch 数值比较，缺失部分视为 0。
约束支持 >= > <= < = ^ ~ 前缀，裸版本号表示精确匹配。
"""

import logging
import re
from typing import Dict, Iterable, List, NamedTuple, Tuple

from .exceptions import InvalidMetadataError
from .metadata import Dependency, ModPackMetadata

logger = logging.getLogger(__name__)

_NUMBER_RE = re.compile(r'\d+')

# 按前缀长度降序匹配
_OPERATORS = (">=", "<=", ">", "<", "=", "^", "~")


def parse_version(version: str) -> Tuple[int, int, int]:
    """
    解析版本号

    每段取开头的数字部分，无法解析的段视为 0。

    Examples:
        >>> parse_version("1.2.3")
        (1, 2, 3)
        >>> parse_version("2.0")
        (2, 0, 0)
        >>> parse_version("1.4.0-beta")
        (1, 4, 0)
    """
    parts = []
    for segment in version.strip().lstrip("vV").split(".")[:3]:
        match = _NUMBER_RE.match(segment)
        parts.append(int(match.group()) if match else 0)
    while len(parts) < 3:
        parts.append(0)
    return parts[0], parts[1], parts[2]


def compare_versions(a: str, b: str) -> int:
    """
    比较两个版本号

    Returns:
        -1 (a < b), 0 (相等), 1 (a > b)
    """
    va, vb = parse_version(a), parse_version(b)
    if va == vb:
        return 0
    return -1 if va < vb else 1


def version_satisfies(version: str, constraint: str) -> bool:
    """
    检查版本是否满足约束

    ^1.2.0 要求主版本相同且不低于 1.2.0，
    ~1.2.3 要求主次版本相同且不低于 1.2.3。
    空约束总是满足。
    """
    constraint = constraint.strip()
    if not constraint:
        return True

    for op in _OPERATORS:
        if constraint.startswith(op):
            target = constraint[len(op):].strip()
            break
    else:
        op, target = "=", constraint

    cmp = compare_versions(version, target)
    if op == ">=":
        return cmp >= 0
    if op == ">":
        return cmp > 0
    if op == "<=":
        return cmp <= 0
    if op == "<":
        return cmp < 0
    if op == "=":
        return cmp == 0

    have, want = parse_version(version), parse_version(target)
    if op == "^":
        return have[0] == want[0] and cmp >= 0
    # ~
    return have[:2] == want[:2] and cmp >= 0


def dependency_constraint(dependency: Dependency) -> str:
    """依赖的有效约束: 裸版本号表示最低版本"""
    value = dependency.min_version.strip()
    if value and not value.startswith(_OPERATORS):
        return ">=" + value
    return value


# ==================== 依赖检查 ====================

class DependencyProblem(NamedTuple):
    """依赖检查发现的问题"""
    kind: str       # MissingDependency / UnsatisfiedDependency / ...
    mod_id: str
    message: str


def check_dependencies(
    metadata: ModPackMetadata,
    available: Dict[str, str]
) -> Tuple[List[DependencyProblem], List[DependencyProblem]]:
    """
    对照已安装模组检查依赖与冲突

    Args:
        metadata: 待检查模组的元数据
        available: 已安装模组 {mod_id: version}

    Returns:
        (errors, warnings)
        缺失必需依赖或版本不满足为错误，
        缺失可选依赖或与已安装模组冲突为警告。
    """
    errors: List[DependencyProblem] = []
    warnings: List[DependencyProblem] = []

    for dep in metadata.dependencies:
        installed = available.get(dep.mod_id)
        if installed is None:
            if dep.required:
                errors.append(DependencyProblem(
                    "MissingDependency", dep.mod_id,
                    f"缺少必需依赖 '{dep.mod_id}'"
                ))
            else:
                warnings.append(DependencyProblem(
                    "MissingOptionalDependency", dep.mod_id,
                    f"未安装可选依赖 '{dep.mod_id}'"
                ))
            continue

        constraint = dependency_constraint(dep)
        if not version_satisfies(installed, constraint):
            problem = DependencyProblem(
                "UnsatisfiedDependency", dep.mod_id,
                f"依赖 '{dep.mod_id}' 版本 {installed} 不满足 {constraint}"
            )
            (errors if dep.required else warnings).append(problem)

    for conflict in metadata.conflicts:
        if conflict.mod_id in available:
            reason = f": {conflict.reason}" if conflict.reason else ""
            warnings.append(DependencyProblem(
                "Conflict", conflict.mod_id,
                f"与已安装模组 '{conflict.mod_id}' 冲突{reason}"
            ))

    logger.debug(
        "%s 依赖检查: %d 个错误, %d 个警告",
        metadata.mod_id, len(errors), len(warnings)
    )
    return errors, warnings


def resolve_load_order(mods: Iterable[ModPackMetadata]) -> List[ModPackMetadata]:
    """
    计算加载顺序

    先按加载阶段、再按优先级 (越大越晚)、最后按 mod_id 排序，
    然后把在列表中存在的依赖移到依赖方之前。

    Raises:
        InvalidMetadataError: mod_id 重复或存在循环依赖
    """
    ordered = sorted(
        mods,
        key=lambda m: (m.load_order.load_phase.order, m.load_order.priority, m.mod_id)
    )
    present = {}
    for mod in ordered:
        if mod.mod_id in present:
            raise InvalidMetadataError(f"模组 '{mod.mod_id}' 重复出现", "mod_id")
        present[mod.mod_id] = mod

    requires = {
        mod.mod_id: {d.mod_id for d in mod.dependencies if d.mod_id in present and d.mod_id != mod.mod_id}
        for mod in ordered
    }

    result: List[ModPackMetadata] = []
    placed = set()
    pending = list(ordered)
    while pending:
        for index, mod in enumerate(pending):
            if requires[mod.mod_id] <= placed:
                break
        else:
            cycle = ", ".join(m.mod_id for m in pending)
            raise InvalidMetadataError(f"存在循环依赖: {cycle}", "dependencies")
        result.append(pending.pop(index))
        placed.add(mod.mod_id)

    return result
