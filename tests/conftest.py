import logging
import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import carledger`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from carledger.config import ConfigManager, LedgerConfig  # noqa: E402
from carledger.contract import CarContract  # noqa: E402
from carledger.events import EventBus  # noqa: E402
from carledger.identity import Caller  # noqa: E402
from carledger.observability import correlation_id_var  # noqa: E402
from carledger.store import InMemoryLedger, SteppingClock  # noqa: E402


ISSUER = "/C=US/ST=California/L=San Francisco/O=org1.example.com/CN=ca.org1.example.com"
ADMIN_ORG = "IBMMSP"


def make_identity(name: str, issuer: str = ISSUER) -> str:
    """Strong identity string for a client certificate with CN=name."""
    return f"x509::/C=US/ST=California/L=San Francisco/OU=client/CN={name}::{issuer}"


# =============================================================================
# ISOLATION
# =============================================================================

@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path_factory):
    """Keep CARLEDGER_* variables, the config singleton and log handlers per-test."""
    monkeypatch.setenv("HOME", str(tmp_path_factory.mktemp("home")))
    for name in list(os.environ):
        if name.startswith("CARLEDGER_"):
            monkeypatch.delenv(name, raising=False)
    ConfigManager().reset()
    token = correlation_id_var.set("")
    yield
    correlation_id_var.reset(token)
    ConfigManager().reset()
    root = logging.getLogger("carledger")
    for handler in list(root.handlers):
        if getattr(handler, "_carledger", False):
            root.removeHandler(handler)


# =============================================================================
# LEDGER FIXTURES
# =============================================================================

@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def store(clock):
    return InMemoryLedger(clock=clock)


@pytest.fixture
def config():
    return LedgerConfig()


@pytest.fixture
def bus():
    return EventBus(keep_history=True)


@pytest.fixture
def contract(store, bus, config):
    return CarContract(store, events=bus, config=config)


# =============================================================================
# CALLERS
# =============================================================================

@pytest.fixture
def identity_for():
    return make_identity


@pytest.fixture
def alice():
    return Caller(identity=make_identity("Alice"), org="Org1MSP")


@pytest.fixture
def bob():
    return Caller(identity=make_identity("Bob"), org="Org1MSP")


@pytest.fixture
def carol():
    return Caller(identity=make_identity("Carol"), org="Org2MSP")


@pytest.fixture
def admin():
    return Caller(identity=make_identity("Regulator"), org=ADMIN_ORG)
