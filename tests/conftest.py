import os
import sys
import pytest

from datetime import timedelta
from pathlib import Path

from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).parent.parent))

from scanner_adapter.config import APIConfig, BuildInfo, Config, TrivyConfig
from scanner_adapter.main import create_app
from tests.utils.helpers import FakeEnqueuer, FakeStore, FakeWrapper


@pytest.fixture
def build_info():
    return BuildInfo(version="0.30.0", commit="a1b2c3d", date="2024-03-10T08:00:00Z")


@pytest.fixture
def config():
    return Config(
        api=APIConfig(addr=":8080", metrics_enabled=True),
        trivy=TrivyConfig(
            vuln_type="os,library",
            security_checks="vuln",
            severity="UNKNOWN,LOW,MEDIUM,HIGH,CRITICAL",
            timeout=timedelta(minutes=5),
        ),
    )


@pytest.fixture
def enqueuer():
    return FakeEnqueuer()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def wrapper():
    return FakeWrapper()


@pytest.fixture
def app(build_info, config, enqueuer, store, wrapper):
    return create_app(build_info, config, enqueuer, store, wrapper)


@pytest.fixture
def client(app):
    """Test client that hands 302 answers back instead of following them."""
    with TestClient(app, follow_redirects=False) as test_client:
        yield test_client


@pytest.fixture
def adapter_url():
    """
    Base URL of a running scanner adapter deployment (adapter, Redis and a worker).

    Integration tests are skipped unless SCANNER_ADAPTER_URL is set.
    """
    url = os.getenv("SCANNER_ADAPTER_URL")
    if not url:
        pytest.skip("SCANNER_ADAPTER_URL is not set")
    return url
