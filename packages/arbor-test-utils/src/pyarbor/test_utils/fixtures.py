from pathlib import Path
from unittest.mock import MagicMock

import pytest
from pyarbor.application.factory import create_engine
from pyarbor.engine.tree_engine import TreeEngine
from pyarbor.test_utils.helpers import RecordingListener, create_memory_engine
from typer.testing import CliRunner

# --- Global & Core Fixtures ---


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def arbor_workspace(tmp_path: Path) -> Path:
    work_dir = tmp_path / "workspace"
    (work_dir / ".arbor").mkdir(parents=True)
    return work_dir


@pytest.fixture
def recorder() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def memory_engine(tmp_path: Path, recorder: RecordingListener) -> TreeEngine:
    # root_dir 对内存引擎只是一个占位符
    return create_memory_engine(tmp_path, listeners=[recorder])


@pytest.fixture
def sqlite_engine(arbor_workspace: Path, recorder: RecordingListener):
    engine = create_engine(arbor_workspace, listeners=[recorder])
    yield engine
    engine.close()


@pytest.fixture(params=["memory", "sqlite"])
def engine(request, tmp_path: Path, recorder: RecordingListener):
    # 同一组行为测试在两种存储后端上各跑一遍
    if request.param == "memory":
        yield create_memory_engine(tmp_path, listeners=[recorder])
        return
    work_dir = tmp_path / "workspace"
    (work_dir / ".arbor").mkdir(parents=True)
    instance = create_engine(work_dir, listeners=[recorder])
    yield instance
    instance.close()


# --- CLI Layer Fixtures ---


@pytest.fixture
def mock_cli_bus(monkeypatch):
    m_bus = MagicMock()
    # 让 bus.get 返回传入的 msg_id，方便测试断言语义
    m_bus.get.side_effect = lambda msg_id, **kwargs: msg_id

    patch_targets = [
        "pyarbor.cli.commands.helpers.bus",
        "pyarbor.cli.commands.nodes.bus",
        "pyarbor.cli.commands.query.bus",
        "pyarbor.cli.commands.workspace.bus",
        "pyarbor.cli.commands.matcher.bus",
        "pyarbor.cli.commands.relation.bus",
        "pyarbor.cli.ui_utils.bus",
        "pyarbor.engine.config.bus",
    ]
    for target in patch_targets:
        monkeypatch.setattr(target, m_bus, raising=False)
    return m_bus
