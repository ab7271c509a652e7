import logging
import re
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pyarbor.interfaces.exceptions import ConfigurationError
from pyarbor.interfaces.models import InheritedField, NestedNode, RelatedEntity
from pyarbor.interfaces.storage import RelationStore

from .ancestry import AncestryPath

logger = logging.getLogger(__name__)

N = TypeVar("N", bound=Type[NestedNode])

_ID_FIELD = re.compile(r"^(\w+)_id$")

# 两个代理类关联共享同一个 smart_proxy 存储
RELATION_ALIASES: Dict[str, str] = {
    "puppet_proxy": "smart_proxy",
    "puppet_ca_proxy": "smart_proxy",
}


def declare_field(field: str) -> InheritedField:
    md = _ID_FIELD.match(field)
    if not md:
        return InheritedField(field=field, relation=None, target=None)
    relation = md.group(1)
    return InheritedField(field=field, relation=relation, target=RELATION_ALIASES.get(relation, relation))


def nested_attribute_for(*fields: str) -> Callable[[N], N]:
    """
    声明一组可沿祖先链继承的引用字段。

    对每个字段 `foo_id`，解析器会提供两个访问器：
    `inherited_foo_id` (自身值，否则最近祖先的值) 与 `foo` (解析后的关联实体)。
    """

    def decorator(cls: N) -> N:
        declared = {f.field: f for f in cls.inherited_fields}
        for field in fields:
            declared[field] = declare_field(field)
        cls.inherited_fields = tuple(declared.values())
        return cls

    return decorator


class RelationRegistry:
    def __init__(self, stores: Optional[Dict[str, RelationStore]] = None):
        self._stores: Dict[str, RelationStore] = dict(stores or {})

    def register(self, target: str, store: RelationStore):
        self._stores[target] = store

    def get(self, target: str) -> RelationStore:
        try:
            return self._stores[target]
        except KeyError:
            raise ConfigurationError(f"No relation store registered for '{target}'.") from None

    def targets(self) -> List[str]:
        return sorted(self._stores)

    def bind(self, kind: Type[NestedNode]):
        # 在配置阶段而不是查询阶段发现缺失的存储
        missing = sorted({f.target for f in kind.inherited_fields if f.target and f.target not in self._stores})
        if missing:
            raise ConfigurationError(f"{kind.__name__} declares relations without a store: {', '.join(missing)}")


class InheritedAttributeResolver:
    def __init__(self, ancestry: AncestryPath, registry: RelationRegistry):
        self.ancestry = ancestry
        self.registry = registry

    @staticmethod
    def declared(kind: Type[NestedNode], name: str) -> InheritedField:
        for decl in kind.inherited_fields:
            if name in (decl.field, decl.relation):
                return decl
        raise ConfigurationError(f"'{name}' is not a nested attribute of {kind.__name__}.")

    def inherited(self, node: NestedNode, field: str) -> Any:
        # 既接受字段名 (compute_profile_id)，也接受关联名 (compute_profile)
        key = self.declared(type(node), field).field

        own = node.references.get(key)
        if own is not None:
            return own
        if node.is_root:
            return None

        holders = [a for a in self.ancestry.ancestors(node) if a.references.get(key) is not None]
        # 祖先按 根 -> 叶 排序，最后一个即最近的祖先
        return holders[-1].references[key] if holders else None

    def resolve(self, node: NestedNode, relation: str) -> Optional[RelatedEntity]:
        decl = self.declared(type(node), relation)
        if decl.target is None:
            raise ConfigurationError(f"'{relation}' is not a reference field.")

        store = self.registry.get(decl.target)
        if node.ancestry:
            entity_id = self.inherited(node, decl.field)
        else:
            entity_id = node.references.get(decl.field)

        entity = store.find_by_id(entity_id)
        if entity is None and entity_id is not None:
            logger.debug(f"{decl.target} {entity_id} 不存在，{node.type_tag} {node.id} 的 {relation} 视为空")
        return entity

    def view(self, node: NestedNode) -> "InheritedView":
        return InheritedView(self, node)


class InheritedView:
    def __init__(self, resolver: InheritedAttributeResolver, node: NestedNode):
        self._resolver = resolver
        self._node = node
        self._accessors: Dict[str, Callable[[], Any]] = {}
        for decl in type(node).inherited_fields:
            self._accessors[f"inherited_{decl.field}"] = self._bind(resolver.inherited, decl.field)
            if decl.relation:
                self._accessors[decl.relation] = self._bind(resolver.resolve, decl.relation)

    def _bind(self, method: Callable[[NestedNode, str], Any], name: str) -> Callable[[], Any]:
        return lambda: method(self._node, name)

    def __getattr__(self, name: str) -> Any:
        accessors = self.__dict__.get("_accessors", {})
        if name in accessors:
            return accessors[name]()
        raise AttributeError(name)

    def __dir__(self) -> List[str]:
        return sorted(self._accessors)

    def as_dict(self) -> Dict[str, Any]:
        return {name: getter() for name, getter in self._accessors.items()}
