from typing import Iterable, Optional

from pyarbor.interfaces.exceptions import FieldError
from pyarbor.interfaces.models import TITLE_SEPARATOR, NestedNode

# lookup_values.match 是一个带索引的 VARCHAR(255) 列
DEFAULT_MATCHER_MAX_LENGTH = 255


def compute_title(name: str, ancestor_names: Iterable[str] = ()) -> str:
    prefix = "".join(f"{a}{TITLE_SEPARATOR}" for a in ancestor_names)
    return prefix + name


def needs_retitle(node: NestedNode, stored: Optional[NestedNode]) -> bool:
    # 新记录的名称总是“已变更”
    if stored is None or not node.title:
        return True
    return node.name != stored.name or node.ancestry != stored.ancestry


def matcher_key(type_tag: str, title: str) -> str:
    return f"{type_tag}={title}"


def too_long_message(max_length: int) -> str:
    if max_length == 1:
        return "is too long (maximum is 1 character)"
    return f"is too long (maximum is {max_length} characters)"


def validate_title_length(
    node: NestedNode,
    parent: Optional[NestedNode],
    max_length: int = DEFAULT_MATCHER_MAX_LENGTH,
) -> Optional[FieldError]:
    if not node.name:
        return None

    # matcher 形如 "hostgroup=" + title，为 "类型标签=" 预留空间
    length_of_matcher = len(node.type_tag) + 1

    # 嵌套时标题还会带上 "父标题/" 前缀
    if parent is not None:
        length_of_matcher += len(parent.label) + 1

    max_length_for_name = max_length - length_of_matcher
    if max_length_for_name - len(node.name) < 0:
        return FieldError("name", too_long_message(max_length_for_name))
    return None
