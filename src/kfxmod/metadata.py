#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
元数据块

元数据以 UTF-8 JSON 存储，未压缩的 JSON 文本是规范表示，压缩只是磁盘优化。

读取时字段名不区分大小写并忽略 '_' / '-' (兼容 mod_id / modId / ModId)，
写出时统一使用 snake_case 并按固定顺序排列。
未识别的字段原样保留，写出时排在已知字段之后。
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .exceptions import InvalidMetadataError

logger = logging.getLogger(__name__)


def _key(name: str) -> str:
    """字段名匹配键"""
    return name.replace("_", "").replace("-", "").replace(" ", "").lower()


# ==================== 枚举 ====================

class _LooseEnum(Enum):
    """按匹配键解析的字符串枚举"""

    @classmethod
    def parse(cls, value: Any, field_name: str):
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidMetadataError(f"无效的取值 {value!r}", field_name)
        if isinstance(value, int):
            # C 枚举序号
            members = list(cls)
            if 0 <= value < len(members):
                return members[value]
        elif isinstance(value, str):
            wanted = _key(value)
            for member in cls:
                if _key(member.value) == wanted or _key(member.name) == wanted:
                    return member
            alias = cls._aliases().get(wanted)
            if alias is not None:
                return alias
        else:
            raise InvalidMetadataError(f"应为字符串, 实际为 {type(value).__name__}", field_name)
        fallback = cls._fallback()
        if fallback is None:
            raise InvalidMetadataError(f"无效的取值 {value!r}", field_name)
        logger.warning("字段 '%s' 的取值 %r 无法识别，按 %s 处理", field_name, value, fallback.value)
        return fallback

    @classmethod
    def _aliases(cls) -> Dict[str, Any]:
        return {}

    @classmethod
    def _fallback(cls):
        return None


class ModType(_LooseEnum):
    """模组类型"""
    UNKNOWN = "unknown"
    CAMPAIGN = "campaign"
    CREATURE_PACK = "creature_pack"
    TEXTURE_PACK = "texture_pack"
    AUDIO_PACK = "audio_pack"
    CONFIG_MOD = "config_mod"
    CONTENT_PACK = "content_pack"
    TOTAL_CONVERSION = "total_conversion"
    ASSET_PACK = "asset_pack"

    @classmethod
    def _fallback(cls):
        return cls.UNKNOWN

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class LoadPhase(_LooseEnum):
    """加载阶段"""
    AFTER_BASE = "after_base"
    AFTER_CAMPAIGN = "after_campaign"
    AFTER_MAP = "after_map"

    @classmethod
    def _aliases(cls) -> Dict[str, Any]:
        return {"beforecampaign": cls.AFTER_BASE}

    @property
    def order(self) -> int:
        return list(LoadPhase).index(self)

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


# ==================== 字段读取辅助 ====================

def _split(data: Any, fields: Tuple[str, ...], where: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    把 JSON 对象拆分为 (已知字段, 未知字段)

    已知字段以规范名称为键。
    """
    if not isinstance(data, dict):
        raise InvalidMetadataError(f"应为对象, 实际为 {type(data).__name__}", where or None)
    lookup = {_key(name): name for name in fields}
    known: Dict[str, Any] = {}
    extra: Dict[str, Any] = {}
    for raw_key, value in data.items():
        name = lookup.get(_key(raw_key))
        if name is None:
            extra[raw_key] = value
            continue
        if name in known:
            raise InvalidMetadataError("字段重复出现 (大小写或分隔符不同)", _join(where, name))
        known[name] = value
    return known, extra


def _join(where: str, name: str) -> str:
    return f"{where}.{name}" if where else name


def _str(known: Dict[str, Any], name: str, where: str, default: str = "") -> str:
    value = known.get(name, default)
    if value is None:
        return default
    if not isinstance(value, str):
        raise InvalidMetadataError(f"应为字符串, 实际为 {type(value).__name__}", _join(where, name))
    return value


def _int(known: Dict[str, Any], name: str, where: str, default: int = 0) -> int:
    value = known.get(name, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidMetadataError(f"应为整数, 实际为 {value!r}", _join(where, name))
    return value


def _bool(known: Dict[str, Any], name: str, where: str, default: bool = False) -> bool:
    value = known.get(name, default)
    if not isinstance(value, bool):
        raise InvalidMetadataError(f"应为布尔值, 实际为 {value!r}", _join(where, name))
    return value


def _str_list(known: Dict[str, Any], name: str, where: str) -> List[str]:
    value = known.get(name, [])
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise InvalidMetadataError("应为字符串数组", _join(where, name))
    return list(value)


def _obj_list(known: Dict[str, Any], name: str, where: str) -> List[Any]:
    value = known.get(name, [])
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidMetadataError("应为数组", _join(where, name))
    return value


# ==================== 数据结构 ====================

@dataclass
class Dependency:
    """依赖声明"""
    FIELDS = ("mod_id", "min_version", "required", "update_url")

    mod_id: str = ""
    min_version: str = ""       # 裸版本号表示 ">="，也可写完整约束 (如 "^1.2.0")
    required: bool = True
    update_url: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str, required: bool = True) -> 'Dependency':
        # 旧版字段名 version_constraint
        if isinstance(data, dict):
            data = {("min_version" if _key(k) == "versionconstraint" else k): v
                    for k, v in data.items()}
        known, extra = _split(data, cls.FIELDS, where)
        mod_id = _str(known, "mod_id", where)
        if not mod_id:
            raise InvalidMetadataError("依赖缺少 mod_id", _join(where, "mod_id"))
        return cls(
            mod_id=mod_id,
            min_version=_str(known, "min_version", where),
            required=_bool(known, "required", where, required),
            update_url=_str(known, "update_url", where),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mod_id": self.mod_id,
            "min_version": self.min_version,
            "required": self.required,
            "update_url": self.update_url,
            **self.extra,
        }


@dataclass
class Conflict:
    """冲突声明"""
    FIELDS = ("mod_id", "reason")

    mod_id: str = ""
    reason: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'Conflict':
        known, extra = _split(data, cls.FIELDS, where)
        return cls(
            mod_id=_str(known, "mod_id", where),
            reason=_str(known, "reason", where),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"mod_id": self.mod_id, "reason": self.reason, **self.extra}


@dataclass
class LoadOrder:
    """加载顺序 (priority 越大越晚加载)"""
    FIELDS = ("priority", "load_phase")

    priority: int = 0
    load_phase: LoadPhase = LoadPhase.AFTER_BASE
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'LoadOrder':
        known, extra = _split(data, cls.FIELDS, where)
        return cls(
            priority=_int(known, "priority", where),
            load_phase=LoadPhase.parse(
                known.get("load_phase", LoadPhase.AFTER_BASE), _join(where, "load_phase")
            ),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"priority": self.priority, "load_phase": self.load_phase.value, **self.extra}


@dataclass
class ChangelogEntry:
    """更新日志条目"""
    FIELDS = ("version", "date", "changes")

    version: str = ""
    date: str = ""              # YYYY-MM-DD
    changes: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'ChangelogEntry':
        known, extra = _split(data, cls.FIELDS, where)
        changes = known.get("changes", [])
        if isinstance(changes, str):
            # 原始格式: 换行分隔的字符串
            known["changes"] = [line for line in changes.splitlines() if line.strip()]
        return cls(
            version=_str(known, "version", where),
            date=_str(known, "date", where),
            changes=_str_list(known, "changes", where),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "date": self.date,
            "changes": list(self.changes),
            **self.extra,
        }


@dataclass
class CampaignConfig:
    """战役模组专用配置"""
    FIELDS = ("levels_count", "has_multiplayer", "difficulty", "estimated_playtime")

    levels_count: int = 0
    has_multiplayer: bool = False
    difficulty: str = ""
    estimated_playtime: str = ""
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'CampaignConfig':
        known, extra = _split(data, cls.FIELDS, where)
        return cls(
            levels_count=_int(known, "levels_count", where),
            has_multiplayer=_bool(known, "has_multiplayer", where),
            difficulty=_str(known, "difficulty", where),
            estimated_playtime=_str(known, "estimated_playtime", where),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "levels_count": self.levels_count,
            "has_multiplayer": self.has_multiplayer,
            "difficulty": self.difficulty,
            "estimated_playtime": self.estimated_playtime,
            **self.extra,
        }


@dataclass
class ContentManifest:
    """内容清单: 模组提供了哪些类别的资源"""
    FLAGS = ("has_creatures", "has_configs", "has_levels", "has_audio", "has_graphics")
    LISTS = ("creatures_list", "new_objects", "modified_rules")
    FIELDS = FLAGS + LISTS

    has_creatures: bool = False
    has_configs: bool = False
    has_levels: bool = False
    has_audio: bool = False
    has_graphics: bool = False
    creatures_list: List[str] = field(default_factory=list)
    new_objects: List[str] = field(default_factory=list)
    modified_rules: List[str] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any, where: str) -> 'ContentManifest':
        known, extra = _split(data, cls.FIELDS, where)
        values = {name: _bool(known, name, where) for name in cls.FLAGS}
        values.update({name: _str_list(known, name, where) for name in cls.LISTS})
        return cls(extra=extra, **values)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {name: getattr(self, name) for name in self.FLAGS}
        result.update({name: list(getattr(self, name)) for name in self.LISTS})
        result.update(self.extra)
        return result

    @property
    def categories(self) -> List[str]:
        """已声明的资源类别"""
        return [name[len("has_"):] for name in self.FLAGS if getattr(self, name)]

    @property
    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in self.LISTS}


@dataclass
class ModPackMetadata:
    """
    模组元数据

    mod_id、version、format_version 为必填字段。
    """
    FIELDS = (
        "mod_id", "version", "format_version", "name", "display_name", "author",
        "description", "mod_type", "created_date", "updated_date", "homepage_url",
        "update_url", "min_keeperfx_version", "max_keeperfx_version", "tags",
        "dependencies", "optional_dependencies", "conflicts", "load_order",
        "changelog", "screenshots", "readme", "license", "campaign_config",
        "content_manifest",
    )
    REQUIRED = ("mod_id", "version", "format_version")

    mod_id: str
    version: str
    format_version: int = 1
    name: str = ""
    display_name: str = ""
    author: str = ""
    description: str = ""
    mod_type: ModType = ModType.UNKNOWN
    created_date: str = ""
    updated_date: str = ""
    homepage_url: str = ""
    update_url: str = ""
    min_keeperfx_version: str = ""
    max_keeperfx_version: str = ""
    tags: List[str] = field(default_factory=list)
    dependencies: List[Dependency] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    load_order: LoadOrder = field(default_factory=LoadOrder)
    changelog: List[ChangelogEntry] = field(default_factory=list)
    screenshots: List[str] = field(default_factory=list)
    readme: str = ""
    license: str = ""
    campaign_config: Optional[CampaignConfig] = None
    content_manifest: ContentManifest = field(default_factory=ContentManifest)
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> 'ModPackMetadata':
        """
        从 JSON 对象构建

        Raises:
            InvalidMetadataError: 缺少必填字段或字段类型错误
        """
        known, extra = _split(data, cls.FIELDS, "")
        for name in cls.REQUIRED:
            if known.get(name) in (None, ""):
                raise InvalidMetadataError("缺少必填字段", name)

        dependencies = [
            Dependency.from_dict(item, f"dependencies[{i}]")
            for i, item in enumerate(_obj_list(known, "dependencies", ""))
        ]
        # 旧版格式把可选依赖单独列出
        dependencies.extend(
            Dependency.from_dict(item, f"optional_dependencies[{i}]", required=False)
            for i, item in enumerate(_obj_list(known, "optional_dependencies", ""))
        )

        campaign = known.get("campaign_config")
        return cls(
            mod_id=_str(known, "mod_id", ""),
            version=_str(known, "version", ""),
            format_version=_int(known, "format_version", ""),
            name=_str(known, "name", ""),
            display_name=_str(known, "display_name", ""),
            author=_str(known, "author", ""),
            description=_str(known, "description", ""),
            mod_type=ModType.parse(known.get("mod_type", ModType.UNKNOWN), "mod_type"),
            created_date=_str(known, "created_date", ""),
            updated_date=_str(known, "updated_date", ""),
            homepage_url=_str(known, "homepage_url", ""),
            update_url=_str(known, "update_url", ""),
            min_keeperfx_version=_str(known, "min_keeperfx_version", ""),
            max_keeperfx_version=_str(known, "max_keeperfx_version", ""),
            tags=_str_list(known, "tags", ""),
            dependencies=dependencies,
            conflicts=[
                Conflict.from_dict(item, f"conflicts[{i}]")
                for i, item in enumerate(_obj_list(known, "conflicts", ""))
            ],
            load_order=LoadOrder.from_dict(known.get("load_order") or {}, "load_order"),
            changelog=[
                ChangelogEntry.from_dict(item, f"changelog[{i}]")
                for i, item in enumerate(_obj_list(known, "changelog", ""))
            ],
            screenshots=_str_list(known, "screenshots", ""),
            readme=_str(known, "readme", ""),
            license=_str(known, "license", ""),
            campaign_config=(
                CampaignConfig.from_dict(campaign, "campaign_config")
                if campaign is not None else None
            ),
            content_manifest=ContentManifest.from_dict(
                known.get("content_manifest") or {}, "content_manifest"
            ),
            extra=extra
        )

    def to_dict(self) -> Dict[str, Any]:
        """转换为规范的 JSON 对象 (固定字段顺序)"""
        result: Dict[str, Any] = {
            "mod_id": self.mod_id,
            "version": self.version,
            "format_version": self.format_version,
            "name": self.name,
            "display_name": self.display_name,
            "author": self.author,
            "description": self.description,
            "mod_type": self.mod_type.value,
            "created_date": self.created_date,
            "updated_date": self.updated_date,
            "homepage_url": self.homepage_url,
            "update_url": self.update_url,
            "min_keeperfx_version": self.min_keeperfx_version,
            "max_keeperfx_version": self.max_keeperfx_version,
            "tags": list(self.tags),
            "dependencies": [d.to_dict() for d in self.dependencies],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "load_order": self.load_order.to_dict(),
            "changelog": [c.to_dict() for c in self.changelog],
            "screenshots": list(self.screenshots),
            "readme": self.readme,
            "license": self.license,
        }
        if self.campaign_config is not None:
            result["campaign_config"] = self.campaign_config.to_dict()
        result["content_manifest"] = self.content_manifest.to_dict()
        result.update(self.extra)
        return result

    def validate(self) -> None:
        """
        检查必填字段 (用于手工构造的对象)

        Raises:
            InvalidMetadataError: 必填字段为空或类型错误
        """
        for name in ("mod_id", "version"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise InvalidMetadataError("缺少必填字段", name)
        if isinstance(self.format_version, bool) or not isinstance(self.format_version, int):
            raise InvalidMetadataError("应为整数", "format_version")

    @property
    def title(self) -> str:
        """显示用名称"""
        return self.display_name or self.name or self.mod_id


# ==================== 序列化 ====================

def serialize_metadata(metadata: ModPackMetadata) -> bytes:
    """
    序列化为 UTF-8 JSON

    输出确定: 对同一元数据总是得到相同字节，
    且 serialize(parse(serialize(m))) == serialize(m)。
    """
    metadata.validate()
    text = json.dumps(metadata.to_dict(), ensure_ascii=False, indent=2)
    return (text + "\n").encode("utf-8")


def parse_metadata(data: bytes) -> ModPackMetadata:
    """
    解析 UTF-8 JSON 元数据

    Raises:
        InvalidMetadataError: 编码错误、JSON 语法错误或缺少必填字段
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InvalidMetadataError(f"不是合法的 UTF-8 文本: {e}") from e
    try:
        document = json.loads(text)
    except (ValueError, RecursionError) as e:
        # 嵌套过深时 json 抛出 RecursionError
        raise InvalidMetadataError(f"JSON 解析失败: {e}") from e
    if not isinstance(document, dict):
        raise InvalidMetadataError(f"顶层应为对象, 实际为 {type(document).__name__}")
    return ModPackMetadata.from_dict(document)


def load_metadata_file(path: str) -> ModPackMetadata:
    """从本地 metadata.json 读取"""
    with open(path, 'rb') as f:
        return parse_metadata(f.read())
