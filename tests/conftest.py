import pytest
from fastapi.testclient import TestClient

from custodyseal.app.main import app, install_pipeline

from tests.helpers import make_pipeline


# Fresh pipeline per API test for isolation
@pytest.fixture()
def pipeline():
    p = make_pipeline()
    install_pipeline(p)
    yield p


@pytest.fixture()
def tampered_pipeline():
    p = make_pipeline(tamper=True)
    install_pipeline(p)
    yield p


@pytest.fixture()
def client():
    return TestClient(app)
