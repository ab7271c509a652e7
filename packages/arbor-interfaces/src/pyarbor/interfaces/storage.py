from abc import ABC, abstractmethod
from typing import Any, ContextManager, Dict, List, Optional, Protocol, Type

from .models import MatcherRecord, NestedNode, RelatedEntity


class NodeStore(ABC):
    @abstractmethod
    def get(self, kind: Type[NestedNode], node_id: int) -> Optional[NestedNode]:
        pass

    @abstractmethod
    def get_many(self, kind: Type[NestedNode], node_ids: List[int]) -> List[NestedNode]:
        pass

    @abstractmethod
    def all_of_kind(self, kind: Type[NestedNode]) -> List[NestedNode]:
        pass

    @abstractmethod
    def with_ancestry(self, kind: Type[NestedNode]) -> List[NestedNode]:
        pass

    @abstractmethod
    def children_of(self, kind: Type[NestedNode], child_ancestry: Optional[str]) -> List[NestedNode]:
        pass

    @abstractmethod
    def descendants_of(self, kind: Type[NestedNode], child_ancestry: str) -> List[NestedNode]:
        pass

    @abstractmethod
    def has_children(self, kind: Type[NestedNode], child_ancestry: str) -> bool:
        pass

    @abstractmethod
    def find_by_title(self, kind: Type[NestedNode], title: str) -> Optional[NestedNode]:
        pass

    @abstractmethod
    def find_sibling_by_name(
        self, kind: Type[NestedNode], ancestry: Optional[str], name: str
    ) -> Optional[NestedNode]:
        pass

    @abstractmethod
    def search(self, kind: Type[NestedNode], term: str, limit: int = 20) -> List[NestedNode]:
        pass

    @abstractmethod
    def insert(self, node: NestedNode) -> NestedNode:
        pass

    @abstractmethod
    def update(self, node: NestedNode) -> None:
        pass

    @abstractmethod
    def delete(self, node: NestedNode) -> None:
        pass

    @abstractmethod
    def rebase_ancestry(self, kind: Type[NestedNode], old_prefix: str, new_prefix: str) -> int:
        pass

    @abstractmethod
    def transaction(self) -> ContextManager[None]:
        pass


class MatcherStore(ABC):
    @abstractmethod
    def find_by_match(self, match: str) -> List[MatcherRecord]:
        pass

    @abstractmethod
    def rewrite_match(self, old_match: str, new_match: str) -> int:
        pass

    @abstractmethod
    def add(self, record: MatcherRecord) -> MatcherRecord:
        pass

    @abstractmethod
    def all(self) -> List[MatcherRecord]:
        pass


class RelationStore(ABC):
    @abstractmethod
    def find_by_id(self, entity_id: Optional[int]) -> Optional[RelatedEntity]:
        pass

    @abstractmethod
    def add(self, name: str) -> RelatedEntity:
        pass

    @abstractmethod
    def all(self) -> List[RelatedEntity]:
        pass


class ChangeListener(Protocol):
    def on_change(self, action: str, node: NestedNode, changes: Dict[str, Any]) -> None: ...
