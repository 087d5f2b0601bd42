"""
Tests for outbound email.
"""

from unittest.mock import AsyncMock, patch

import pytest
import resend

from app.core.email import send_account_provisioned, send_email


class TestSendEmail:
    @pytest.mark.asyncio
    async def test_without_api_key_only_logs(self):
        with (
            patch.object(resend, "api_key", None),
            patch("app.core.email.asyncio.to_thread", new=AsyncMock()) as to_thread,
        ):
            assert await send_email("a@example.com", "Hello", "<p>Hi</p>") is True

        to_thread.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_provider_failure_returns_false(self):
        with (
            patch.object(resend, "api_key", "re_test"),
            patch(
                "app.core.email.asyncio.to_thread",
                new=AsyncMock(side_effect=RuntimeError("provider down")),
            ),
        ):
            assert await send_email("a@example.com", "Hello", "<p>Hi</p>") is False


class TestAccountProvisionedEmail:
    @pytest.mark.asyncio
    async def test_contains_sign_in_details(self):
        with patch("app.core.email.send_email", new=AsyncMock(return_value=True)) as send:
            sent = await send_account_provisioned(
                to_email="aminata@example.com",
                applicant_name="Aminata <Kamara>",
                system_email="kvt000001@trainees.kendeh.edu",
                trainee_number="KVT000001",
                default_password="Password1",
            )

        assert sent is True
        html = send.await_args.kwargs["html_content"]
        assert "KVT000001" in html
        assert "kvt000001@trainees.kendeh.edu" in html
        assert "Aminata &lt;Kamara&gt;" in html
        assert send.await_args.kwargs["to_email"] == "aminata@example.com"
