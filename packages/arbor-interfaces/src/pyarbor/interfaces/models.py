from __future__ import annotations

import dataclasses
from typing import Any, ClassVar, Dict, List, Optional, Tuple

from pyarbor.common.slug import parameterize

# ancestry 列的分隔符，例如 "1/4/9" 表示 根(1) -> 4 -> 父节点(9)
ANCESTRY_SEPARATOR = "/"
# 标题中各层名称的连接符
TITLE_SEPARATOR = "/"


def decode_ancestry(ancestry: Optional[str]) -> List[int]:
    if not ancestry:
        return []
    return [int(part) for part in ancestry.split(ANCESTRY_SEPARATOR)]


def encode_ancestry(ids: List[int]) -> Optional[str]:
    # 根节点使用 NULL 而不是空字符串
    if not ids:
        return None
    return ANCESTRY_SEPARATOR.join(str(i) for i in ids)


@dataclasses.dataclass(frozen=True)
class InheritedField:
    field: str  # 例如 "puppet_proxy_id"
    relation: Optional[str]  # 例如 "puppet_proxy"；非 *_id 字段为 None
    target: Optional[str]  # 关联存储名称，例如 "smart_proxy"


@dataclasses.dataclass
class NestedNode:
    # 由具体类型覆盖，作为 matcher 的键命名空间
    type_tag: ClassVar[str] = ""
    # 由 nested_attribute_for 装饰器填充
    inherited_fields: ClassVar[Tuple[InheritedField, ...]] = ()

    name: str = ""
    id: Optional[int] = None
    ancestry: Optional[str] = None
    title: Optional[str] = None
    references: Dict[str, Any] = dataclasses.field(default_factory=dict)

    @property
    def ancestor_ids(self) -> List[int]:
        return decode_ancestry(self.ancestry)

    @property
    def parent_id(self) -> Optional[int]:
        ids = self.ancestor_ids
        return ids[-1] if ids else None

    @property
    def path_ids(self) -> List[int]:
        return self.ancestor_ids + ([self.id] if self.id is not None else [])

    @property
    def depth(self) -> int:
        return len(self.ancestor_ids)

    @property
    def is_root(self) -> bool:
        return not self.ancestry

    @property
    def child_ancestry(self) -> str:
        """子节点的 ancestry 值。节点必须已持久化。"""
        if self.id is None:
            raise ValueError("Unsaved node has no child ancestry.")
        if self.ancestry:
            return f"{self.ancestry}{ANCESTRY_SEPARATOR}{self.id}"
        return str(self.id)

    @property
    def label(self) -> str:
        # 已存储的标题是权威值；未计算前退回到名称
        return self.title or self.name

    def to_param(self) -> str:
        return parameterize(f"{self.id}-{self.label}")

    def copy(self) -> NestedNode:
        return dataclasses.replace(self, references=dict(self.references))


@dataclasses.dataclass
class MatcherRecord:
    match: str  # "hostgroup=eu/paris"
    value: str = ""
    lookup_key: str = ""
    id: Optional[int] = None

    @property
    def element(self) -> str:
        return self.match.split("=", 1)[0]

    @property
    def element_name(self) -> str:
        return self.match.split("=", 1)[1] if "=" in self.match else ""


@dataclasses.dataclass
class RelatedEntity:
    kind: str
    name: str
    id: Optional[int] = None
