"""
Pytest fixtures for scenario tests.
"""
import sys
from pathlib import Path

import pytest
import requests

# Ensure scenario_tests is on path when running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent))

import scenario_config as config


@pytest.fixture(scope="session")
def token():
    """Customer bearer token. Must be set via SCENARIO_TEST_TOKEN."""
    if not config.TOKEN:
        pytest.skip("SCENARIO_TEST_TOKEN not set. Log in to SmartLend and export the issued JWT.")
    return config.TOKEN


@pytest.fixture(scope="session")
def admin_token():
    if not config.ADMIN_TOKEN:
        pytest.skip("SCENARIO_TEST_ADMIN_TOKEN not set.")
    return config.ADMIN_TOKEN


@pytest.fixture
def api_base(token):
    return config.API_BASE.rstrip("/")


@pytest.fixture
def api_headers(token):
    return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}


@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}", "Content-Type": "application/json"}


@pytest.fixture
def active_loan(api_base, api_headers):
    """First approved loan that still has an unpaid installment."""
    r = requests.get(f"{api_base}/api/loans", headers=api_headers, timeout=10)
    assert r.status_code == 200
    for loan in r.json()["loans"]:
        schedule = requests.get(
            f"{api_base}/api/loans/{loan['id']}/emis", headers=api_headers, timeout=10
        ).json()
        if schedule.get("next_payable_id") is not None:
            return schedule
    pytest.skip("No loan with an unpaid installment for this account.")
