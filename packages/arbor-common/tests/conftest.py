from pyarbor.test_utils.fixtures import (
    arbor_workspace,
    engine,
    memory_engine,
    mock_cli_bus,
    recorder,
    runner,
    sqlite_engine,
)


def pytest_configure(config):
    config.addinivalue_line("markers", "timeout(seconds): kill test after a certain time")


__all__ = [
    "arbor_workspace",
    "engine",
    "memory_engine",
    "mock_cli_bus",
    "recorder",
    "runner",
    "sqlite_engine",
]
