import pytest

import gangflow.customers as customers_module
import gangflow.persistence as persistence
from gangflow.config import GangflowConfig
from gangflow.customers import CustomerProfile, InMemoryCustomerStore
from gangflow.engine import WorkflowEngine
from gangflow.persistence import InMemoryWorkflowRepository


@pytest.fixture(autouse=True)
def _isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from a developer's config file and database URLs."""
    monkeypatch.setenv("GANGFLOW_CONFIG", str(tmp_path / "missing-config.yaml"))
    for var in ("GANGFLOW_DATABASE_URL", "DATABASE_URL", "GANGFLOW_CUSTOMER_DATABASE_URL"):
        monkeypatch.delenv(var, raising=False)
    persistence._repository_instance = None
    customers_module._store_instance = None
    yield
    persistence._repository_instance = None
    customers_module._store_instance = None


@pytest.fixture
def repo():
    return InMemoryWorkflowRepository()


@pytest.fixture
def customers():
    store = InMemoryCustomerStore()
    store._customers["u1"] = CustomerProfile(
        id="u1",
        email="a@b.com",
        name="Alex Printer",
        phone="+15555550100",
        marketing_opt_in=True,
        sms_opt_in=True,
        email_verified=True,
    )
    return store


@pytest.fixture
def engine(repo, customers):
    engine = WorkflowEngine(repository=repo, customers=customers, config=GangflowConfig())
    yield engine
    engine.close()
