import os
import re
import pytest
from playwright.sync_api import Page, expect

BASE_URL = os.getenv("BACKOFFICE_BASE_URL", "http://127.0.0.1:8090")
REQUIRED_ENV = os.getenv("BACKOFFICE_E2E", "0")
USER = os.getenv("BACKOFFICE_USER", "")
PASSWORD = os.getenv("BACKOFFICE_PASSWORD", "")


def _login(page: Page):
    page.goto(f"{BASE_URL}/admin/login/")
    page.get_by_label("Username").fill(USER)
    page.get_by_label("Password").fill(PASSWORD)
    page.get_by_role("button", name=re.compile("Log in", re.I)).click()


@pytest.mark.e2e
@pytest.mark.skipif(REQUIRED_ENV != "1", reason="Set BACKOFFICE_E2E=1 to run Playwright E2E tests")
def test_admin_lists_daily_registers(page: Page):
    _login(page)
    expect(page.get_by_role("link", name="Daily sales logs")).to_be_visible()
    page.get_by_role("link", name="Daily sales logs").click()
    expect(page.get_by_role("heading", name=re.compile("daily sales log", re.I))).to_be_visible()


@pytest.mark.e2e
@pytest.mark.skipif(REQUIRED_ENV != "1", reason="Set BACKOFFICE_E2E=1 to run Playwright E2E tests")
def test_register_api_reachable_after_login(page: Page):
    _login(page)
    resp = page.request.get(f"{BASE_URL}/api/shops")
    assert resp.ok
    shops = resp.json()["shops"]
    if not shops:
        pytest.skip("No active shops for this user")
    resp = page.request.get(f"{BASE_URL}/api/register?shop={shops[0]['id']}")
    assert resp.ok
    assert [s["channel"] for s in resp.json()["sales"]] == ["cash", "upi", "swiggy", "zomato", "other"]
