import logging
from typing import Optional

from pyarbor.interfaces.storage import MatcherStore

from .titles import matcher_key

logger = logging.getLogger(__name__)


class MatcherSynchronizer:
    def __init__(self, store: MatcherStore):
        self.store = store

    def sync(self, type_tag: str, old_title: Optional[str], new_title: str) -> int:
        # 仅当已存储的标题确实发生变化时才需要改写
        if not old_title or old_title == new_title:
            return 0

        old_match = matcher_key(type_tag, old_title)
        new_match = matcher_key(type_tag, new_title)
        count = self.store.rewrite_match(old_match, new_match)
        if count:
            logger.debug(f"已改写 {count} 条 matcher: '{old_match}' -> '{new_match}'")
        return count
