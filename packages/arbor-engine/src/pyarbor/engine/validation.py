import logging
from typing import List, Optional

from pyarbor.interfaces.exceptions import FieldError
from pyarbor.interfaces.models import NestedNode
from pyarbor.interfaces.storage import NodeStore

from .titles import DEFAULT_MATCHER_MAX_LENGTH, validate_title_length

logger = logging.getLogger(__name__)

BLANK = "can't be blank"
TAKEN = "has already been taken"
CIRCULAR = "can't be a descendant of itself"


class NodeValidator:
    def __init__(self, store: NodeStore, max_length: int = DEFAULT_MATCHER_MAX_LENGTH):
        self.store = store
        self.max_length = max_length

    def validate(self, node: NestedNode, parent: Optional[NestedNode]) -> List[FieldError]:
        errors: List[FieldError] = []
        kind = type(node)

        if not node.name or not node.name.strip():
            errors.append(FieldError("name", BLANK))
        else:
            twin = self.store.find_sibling_by_name(kind, node.ancestry, node.name)
            if twin is not None and twin.id != node.id:
                errors.append(FieldError("name", TAKEN))

        if not node.title:
            errors.append(FieldError("title", BLANK))
        else:
            twin = self.store.find_by_title(kind, node.title)
            if twin is not None and twin.id != node.id:
                errors.append(FieldError("title", TAKEN))

        if node.id is not None and node.id in node.ancestor_ids:
            errors.append(FieldError("ancestry", CIRCULAR))

        length_error = validate_title_length(node, parent, self.max_length)
        if length_error:
            errors.append(length_error)

        if errors:
            logger.debug(f"{kind.type_tag} '{node.name}' 校验失败: {errors}")
        return errors
