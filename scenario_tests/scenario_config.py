"""
Configuration for scenario/E2E tests.
The gateway and the SmartLend API must be running.
Set SCENARIO_TEST_TOKEN to a customer JWT issued by SmartLend.
"""
import os

API_BASE = os.environ.get("SCENARIO_API_URL", "http://localhost:8002")

# Bearer token of a customer account with at least one approved loan
TOKEN = os.environ.get("SCENARIO_TEST_TOKEN", "")

# Optional: admin token for the admin endpoints
ADMIN_TOKEN = os.environ.get("SCENARIO_TEST_ADMIN_TOKEN", "")

PAY_IN_ORDER_MESSAGE = "Please pay EMIs in order. Pay the earliest pending EMI first."
