#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
版本与依赖模块测试
"""

import pytest

from kfxmod.exceptions import InvalidMetadataError
from kfxmod.metadata import (
    ModPackMetadata, Dependency, Conflict, LoadOrder, LoadPhase
)
from kfxmod.versioning import (
    parse_version,
    compare_versions,
    version_satisfies,
    dependency_constraint,
    check_dependencies,
    resolve_load_order,
)


def mod(mod_id, version="1.0.0", deps=(), conflicts=(), priority=0,
        phase=LoadPhase.AFTER_BASE) -> ModPackMetadata:
    return ModPackMetadata(
        mod_id=mod_id,
        version=version,
        dependencies=list(deps),
        conflicts=list(conflicts),
        load_order=LoadOrder(priority=priority, load_phase=phase),
    )


# ==================== 版本比较 ====================

class TestCompareVersions:
    """compare_versions 测试"""

    @pytest.mark.parametrize("raw,expected", [
        ("1.2.3", (1, 2, 3)),
        ("2.0", (2, 0, 0)),
        ("3", (3, 0, 0)),
        ("v1.4.0-beta", (1, 4, 0)),
        ("", (0, 0, 0)),
    ])
    def test_parse(self, raw, expected):
        assert parse_version(raw) == expected

    @pytest.mark.parametrize("a,b,expected", [
        ("1.0.0", "1.0.0", 0),
        ("1.0", "1.0.0", 0),
        ("1.0.1", "1.0.0", 1),
        ("1.9.0", "1.10.0", -1),
        ("2.0.0", "1.99.99", 1),
    ])
    def test_compare(self, a, b, expected):
        assert compare_versions(a, b) == expected


class TestVersionSatisfies:
    """version_satisfies 测试"""

    @pytest.mark.parametrize("version,constraint,expected", [
        ("1.2.0", ">=1.0.0", True),
        ("0.9.0", ">=1.0.0", False),
        ("1.0.0", ">1.0.0", False),
        ("1.0.1", ">1.0.0", True),
        ("1.0.0", "<=1.0.0", True),
        ("1.0.0", "<1.0.0", False),
        ("1.0.0", "1.0.0", True),
        ("1.0.1", "1.0.0", False),
        ("1.0.0", "=1.0", True),
        ("1.5.0", "^1.2.0", True),
        ("2.0.0", "^1.2.0", False),
        ("1.1.0", "^1.2.0", False),
        ("1.2.9", "~1.2.3", True),
        ("1.3.0", "~1.2.3", False),
        ("1.2.2", "~1.2.3", False),
        ("5.0.0", "", True),
        ("1.2.0", " >= 1.0.0 ", True),
    ])
    def test_constraints(self, version, constraint, expected):
        assert version_satisfies(version, constraint) is expected

    @pytest.mark.parametrize("min_version,expected", [
        ("1.0.0", ">=1.0.0"),
        ("^1.0.0", "^1.0.0"),
        ("", ""),
    ])
    def test_bare_dependency_means_minimum(self, min_version, expected):
        assert dependency_constraint(Dependency("base", min_version)) == expected


# ==================== 依赖检查 ====================

class TestCheckDependencies:
    """check_dependencies 测试"""

    def test_all_satisfied(self):
        meta = mod("tempest", deps=[Dependency("base", "1.0.0")])
        errors, warnings = check_dependencies(meta, {"base": "1.2.0"})

        assert errors == []
        assert warnings == []

    def test_missing_required(self):
        meta = mod("tempest", deps=[Dependency("base", "1.0.0")])
        errors, warnings = check_dependencies(meta, {})

        assert [e.kind for e in errors] == ["MissingDependency"]
        assert errors[0].mod_id == "base"

    def test_unsatisfied_version(self):
        meta = mod("tempest", deps=[Dependency("base", "2.0.0")])
        errors, _ = check_dependencies(meta, {"base": "1.5.0"})

        assert [e.kind for e in errors] == ["UnsatisfiedDependency"]

    def test_missing_optional_is_warning(self):
        meta = mod("tempest", deps=[Dependency("music", required=False)])
        errors, warnings = check_dependencies(meta, {})

        assert errors == []
        assert [w.kind for w in warnings] == ["MissingOptionalDependency"]

    def test_installed_conflict_is_warning(self):
        meta = mod("tempest", conflicts=[Conflict("calm", "same levels")])
        errors, warnings = check_dependencies(meta, {"calm": "1.0.0"})

        assert errors == []
        assert [w.kind for w in warnings] == ["Conflict"]
        assert "same levels" in warnings[0].message


# ==================== 加载顺序 ====================

class TestResolveLoadOrder:
    """resolve_load_order 测试"""

    def test_phase_then_priority_then_id(self):
        mods = [
            mod("late_map", phase=LoadPhase.AFTER_MAP),
            mod("b_high", priority=5),
            mod("a_low"),
            mod("c_low"),
            mod("campaign", phase=LoadPhase.AFTER_CAMPAIGN, priority=-10),
        ]
        order = [m.mod_id for m in resolve_load_order(mods)]

        assert order == ["a_low", "c_low", "b_high", "campaign", "late_map"]

    def test_dependencies_first(self):
        mods = [
            mod("addon", deps=[Dependency("zz_base")]),
            mod("zz_base", priority=10),
        ]
        order = [m.mod_id for m in resolve_load_order(mods)]

        assert order == ["zz_base", "addon"]

    def test_absent_dependency_ignored(self):
        mods = [mod("addon", deps=[Dependency("not_installed")])]
        assert [m.mod_id for m in resolve_load_order(mods)] == ["addon"]

    def test_cycle(self):
        mods = [
            mod("a", deps=[Dependency("b")]),
            mod("b", deps=[Dependency("a")]),
        ]
        with pytest.raises(InvalidMetadataError, match="循环依赖"):
            resolve_load_order(mods)

    def test_duplicate_mod(self):
        with pytest.raises(InvalidMetadataError):
            resolve_load_order([mod("a"), mod("a")])
