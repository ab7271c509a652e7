import logging

import typer
from pyarbor.common.messaging import bus

from .commands import matcher, nodes, query, relation, workspace
from .rendering import TyperRenderer

# --- Global Setup ---
# 在入口处将 CLI 渲染器注入公共消息总线
bus.set_renderer(TyperRenderer())

# handler (stderr 或文件) 由具体命令在运行时配置
logger = logging.getLogger(__name__)


# --- App Definition ---
app = typer.Typer(
    add_completion=False,
    name="arbor",
    help="Arbor: 维护嵌套节点 (主机组、位置、组织) 的层级标题，并同步引用它们的 lookup matcher。",
)

# --- Command Registration ---
# 注册子命令应用
app.add_typer(matcher.matcher_app)
app.add_typer(relation.relation_app)

# 注册顶级命令
workspace.register(app)
nodes.register(app)
query.register(app)


# --- Entry Point ---
if __name__ == "__main__":
    app()
