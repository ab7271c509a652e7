import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

from .config import ARBOR_DIR_NAME

logger = logging.getLogger(__name__)

DB_FILE_NAME = "arbor.sqlite"


class DatabaseManager:
    def __init__(self, work_dir: Path):
        self.db_path = work_dir / ARBOR_DIR_NAME / DB_FILE_NAME
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn: Optional[sqlite3.Connection] = None
        self._tx_depth = 0
        self._tx_lock = threading.RLock()

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                # 事务由 transaction() 显式管理
                self._conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA foreign_keys = ON;")
                logger.debug(f"🗃️  成功连接到数据库: {self.db_path}")
            except sqlite3.Error as e:
                logger.error(f"❌ 数据库连接失败: {e}")
                raise
        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("🗃️  数据库连接已关闭。")

    def __del__(self):
        self.close()

    def init_schema(self):
        conn = self._get_conn()
        try:
            with self.transaction():
                # nodes 表：所有嵌套类型共用，按 node_type 区分
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS nodes (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        node_type TEXT NOT NULL,
                        name TEXT NOT NULL,
                        ancestry TEXT,
                        title TEXT,
                        references_json TEXT NOT NULL DEFAULT '{}'
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS IDX_nodes_ancestry ON nodes(node_type, ancestry);")
                conn.execute("CREATE UNIQUE INDEX IF NOT EXISTS UIDX_nodes_title ON nodes(node_type, title);")

                # lookup_values 表：match 列带索引，长度受限
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS lookup_values (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        match VARCHAR(255) NOT NULL,
                        value TEXT,
                        lookup_key TEXT
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS IDX_lookup_values_match ON lookup_values(match);")

                # related_entities 表：继承字段所引用的实体
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS related_entities (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        kind TEXT NOT NULL,
                        name TEXT NOT NULL
                    );
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS IDX_related_kind ON related_entities(kind);")
            logger.debug("✅ 数据库 Schema 已初始化/验证。")
        except sqlite3.Error as e:
            logger.error(f"❌ 初始化 Schema 失败: {e}")
            raise

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        with self._tx_lock:
            conn = self._get_conn()
            outermost = self._tx_depth == 0
            if outermost:
                # IMMEDIATE: 立即获取写锁，避免并发请求读到过期的祖先标题
                conn.execute("BEGIN IMMEDIATE;")
            self._tx_depth += 1
            try:
                yield
            except BaseException:
                self._tx_depth -= 1
                if outermost:
                    conn.execute("ROLLBACK;")
                    logger.debug("↩️  事务已回滚。")
                raise
            else:
                self._tx_depth -= 1
                if outermost:
                    conn.execute("COMMIT;")

    def execute_write(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        conn = self._get_conn()
        try:
            with self.transaction():
                return conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error(f"❌ 数据库写入失败: {e} | SQL: {sql}")
            raise

    def query(self, sql: str, params: tuple = ()) -> list:
        conn = self._get_conn()
        try:
            return conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error(f"❌ 数据库查询失败: {e} | SQL: {sql}")
            raise
