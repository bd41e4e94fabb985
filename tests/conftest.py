import asyncio
import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import parrot`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

GENESIS_BALANCE = 1_000_000


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless PARROT_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('PARROT_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set PARROT_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    """Fresh configuration singleton, no PARROT_* overrides, default logging."""
    from parrot.offchain.config import ConfigManager

    for name in list(os.environ):
        if name.startswith('PARROT_') and name != 'PARROT_RUN_SLOW':
            monkeypatch.delenv(name)
    monkeypatch.setenv('HOME', str(tmp_path / 'home'))
    monkeypatch.chdir(tmp_path)
    ConfigManager._instance = None

    yield

    ConfigManager._instance = None
    root = logging.getLogger('parrot')
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.propagate = True
    root.setLevel(logging.NOTSET)


@pytest.fixture
def keyring():
    """Alice, Bob, Charlie and Dave development keys."""
    from parrot.keys import dev_keyring

    return dev_keyring()


@pytest.fixture
def ledger(keyring):
    """Connected in-memory ledger with every development account funded."""
    from parrot.offchain.memory import InMemoryLedger

    ledger = InMemoryLedger(genesis={k.identity: GENESIS_BALANCE for k in keyring.values()})
    asyncio.run(ledger.connect())
    return ledger


@pytest.fixture
def fast_poll():
    from parrot.offchain.resilience import PollPolicy

    return PollPolicy(interval_seconds=0.0, timeout_seconds=2.0, max_polls=5)
