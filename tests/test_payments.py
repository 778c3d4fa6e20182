"""
Checkout Tests
==============

Tests for ``POST /api/v1/payments/checkout``.
"""

import pytest

from app.config import get_settings
from app.main import app

from conftest import auth_headers

CHECKOUT_URL = "/api/v1/payments/checkout"


@pytest.mark.asyncio
async def test_checkout_form_for_caller(client):
    response = await client.post(
        CHECKOUT_URL,
        json={"nameFirst": "Thandi"},
        headers=auth_headers("user-123"),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["process_url"] == "https://sandbox.payfast.co.za/eng/process"
    fields = data["fields"]
    assert fields["custom_str1"] == "user-123"
    assert fields["name_first"] == "Thandi"
    # Falls back to the e-mail carried in the access token
    assert fields["email_address"] == "user-123@example.com"
    assert len(fields["signature"]) == 32


@pytest.mark.asyncio
async def test_requires_authentication(client):
    response = await client.post(CHECKOUT_URL, json={})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_unconfigured_merchant(client, test_settings):
    unconfigured = test_settings.model_copy(update={"PAYFAST_MERCHANT_KEY": ""})
    app.dependency_overrides[get_settings] = lambda: unconfigured

    response = await client.post(CHECKOUT_URL, json={}, headers=auth_headers("user-123"))

    assert response.status_code == 503
    assert response.json()["error"]["code"] == "PAY_001"
