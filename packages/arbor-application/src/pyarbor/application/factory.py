import logging
from pathlib import Path
from typing import Iterable, Optional

from pyarbor.engine.audit import LoggingChangeListener
from pyarbor.engine.config import ConfigManager
from pyarbor.engine.inheritance import RelationRegistry
from pyarbor.engine.kinds import relation_targets
from pyarbor.engine.sqlite_db import DatabaseManager
from pyarbor.engine.sqlite_storage import SQLiteMatcherStore, SQLiteNodeStore, SQLiteRelationStore
from pyarbor.engine.tree_engine import TreeEngine
from pyarbor.interfaces.storage import ChangeListener

from .utils import find_workspace_root

logger = logging.getLogger(__name__)


def create_engine(work_dir: Path, listeners: Optional[Iterable[ChangeListener]] = None) -> TreeEngine:
    project_root = find_workspace_root(work_dir) or work_dir
    config = ConfigManager(project_root)
    storage_type = config.get("storage.type", "sqlite")
    logger.debug(f"Engine factory configured with storage type: '{storage_type}'")

    if storage_type != "sqlite":
        raise NotImplementedError(f"Storage type '{storage_type}' is not supported.")

    db_manager = DatabaseManager(project_root)
    db_manager.init_schema()

    # 每个关联目标一个存储；puppet_proxy 与 puppet_ca_proxy 共用 smart_proxy
    relations = RelationRegistry({target: SQLiteRelationStore(db_manager, target) for target in relation_targets()})

    if listeners is None:
        listeners = [LoggingChangeListener()]

    # 将所有资源注入 Engine
    return TreeEngine(
        project_root,
        store=SQLiteNodeStore(db_manager),
        matchers=SQLiteMatcherStore(db_manager),
        relations=relations,
        config=config,
        listeners=listeners,
        db_manager=db_manager,
    )
