import pytest
from fastapi.testclient import TestClient

from proven import InMemoryStateStore, Prover

from fakes import FakeFetcher, ScriptedInterpreter, make_host

OWNER_TOKEN = "owner-token"


@pytest.fixture
def owner_account():
    from proven_service.security import account_from_token
    return account_from_token(OWNER_TOKEN)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def interpreter():
    return ScriptedInterpreter()


@pytest.fixture
def prover(owner_account, fetcher, interpreter):
    host = make_host(block_number=100, fetcher=fetcher)
    return Prover.restore(host, interpreter, InMemoryStateStore(), owner_account)


@pytest.fixture
def client(prover, monkeypatch):
    """TestClient wired to a fake-backed prover; startup is not run."""
    from proven_service import main

    monkeypatch.setattr(main, "PROVER", prover)
    main.run_limiter.reset()
    main.admin_limiter.reset()
    return TestClient(main.app)


@pytest.fixture
def owner_headers():
    return {"x-api-key": OWNER_TOKEN}
