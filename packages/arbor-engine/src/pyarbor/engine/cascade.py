import dataclasses
import logging
from typing import Callable, Dict, List, Optional

from pyarbor.interfaces.exceptions import CascadeError, FieldError, IntegrityError, ValidationError
from pyarbor.interfaces.models import NestedNode
from pyarbor.interfaces.storage import NodeStore

from .ancestry import AncestryPath
from .titles import compute_title
from .validation import TAKEN

logger = logging.getLogger(__name__)

STRATEGIES = ("prefix", "scan")


@dataclasses.dataclass
class TitleChange:
    node: NestedNode
    old_title: Optional[str]
    new_title: str
    matchers_rewritten: int = 0


class CascadeRetitler:
    def __init__(self, store: NodeStore, ancestry: AncestryPath, strategy: str = "prefix"):
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown cascade strategy '{strategy}', expected one of {STRATEGIES}")
        self.store = store
        self.ancestry = ancestry
        self.strategy = strategy

    def affected(self, node: NestedNode) -> List[NestedNode]:
        if self.strategy == "scan":
            return self.ancestry.descendants_by_scan(node)
        return self.ancestry.descendants(node)

    def retitle(
        self,
        node: NestedNode,
        on_retitled: Optional[Callable[[TitleChange], None]] = None,
    ) -> List[TitleChange]:
        descendants = self.affected(node)
        if not descendants:
            return []

        # 名称表：已提交的祖先 + 本节点 + 所有后代。按深度处理时，
        # 每个后代的祖先名称都已是最新值
        names: Dict[int, str] = {a.id: a.name for a in self.ancestry.ancestors(node)}
        names[node.id] = node.name
        names.update({d.id: d.name for d in descendants})

        changes: List[TitleChange] = []
        for descendant in descendants:
            try:
                missing = [i for i in descendant.ancestor_ids if i not in names]
                if missing:
                    raise IntegrityError(descendant.id, missing)

                new_title = compute_title(descendant.name, (names[i] for i in descendant.ancestor_ids))
                if new_title == descendant.title:
                    continue

                twin = self.store.find_by_title(type(descendant), new_title)
                if twin is not None and twin.id != descendant.id:
                    raise ValidationError([FieldError("title", TAKEN)])

                change = TitleChange(descendant, descendant.title, new_title)
                descendant.title = new_title
                self.store.update(descendant)
                logger.debug(f"🔁 {descendant.type_tag} {descendant.id}: '{change.old_title}' -> '{new_title}'")

                if on_retitled:
                    on_retitled(change)
                changes.append(change)
            except CascadeError:
                raise
            except Exception as e:
                logger.error(f"❌ 级联重命名在节点 {descendant.id} 处中止: {e}")
                raise CascadeError(descendant.id, e) from e

        logger.debug(f"级联完成: {node.type_tag} {node.id} 影响 {len(changes)}/{len(descendants)} 个后代")
        return changes
