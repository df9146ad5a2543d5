"""
Unit tests for SDK layer.

Tests metered call wrapping and the OpenAI client wrapper.
"""

from unittest.mock import Mock, patch

import pytest

from ai_quota_guard.core.errors import AdmissionDenied
from ai_quota_guard.sdk.metered import metered_call
from ai_quota_guard.sdk.openai_client import MeteredOpenAI


class TestMeteredCall:
    """Test metered execution of arbitrary calls."""

    def test_allowed_call_is_recorded(self, service, add_account):
        """The result is returned unchanged and one slot is consumed."""
        add_account("user-1", daily_call_count=2)
        fn = Mock(return_value={"tokens": 321})

        result = metered_call(
            service, "user-1", fn, "arg",
            request_type="summary",
            token_counter=lambda r: r["tokens"],
            flag=True,
        )

        assert result == {"tokens": 321}
        fn.assert_called_once_with("arg", flag=True)
        account = service.get_account("user-1")
        assert account.daily_call_count == 3
        assert account.total_tokens_used == 321
        entries = service.list_usage("user-1")
        assert len(entries) == 1
        assert entries[0].request_type == "summary"

    def test_denied_call_never_runs(self, service, add_account):
        add_account("user-1", daily_call_count=10)
        fn = Mock()

        with pytest.raises(AdmissionDenied) as excinfo:
            metered_call(service, "user-1", fn)

        fn.assert_not_called()
        assert excinfo.value.result.allowed is False
        assert "daily AI usage limit (10 requests)" in str(excinfo.value)
        assert service.list_usage("user-1") == []

    def test_failed_call_still_consumes_slot(self, service, add_account):
        """Usage is recorded with the estimate even when the call raises."""
        add_account("user-1")
        fn = Mock(side_effect=RuntimeError("provider down"))

        with pytest.raises(RuntimeError, match="provider down"):
            metered_call(service, "user-1", fn, payload={"prompt": "a" * 40})

        account = service.get_account("user-1")
        assert account.daily_call_count == 1
        assert account.total_tokens_used == 110

    def test_estimate_used_without_counter(self, service, add_account):
        add_account("user-1")

        metered_call(service, "user-1", lambda: "ok")

        assert service.get_account("user-1").total_tokens_used == 1000

    def test_counter_returning_none_keeps_estimate(self, service, add_account):
        add_account("user-1")

        metered_call(
            service, "user-1", lambda: "ok",
            token_counter=lambda r: None,
            payload={"input": "abcd"},
        )

        assert service.get_account("user-1").total_tokens_used == 101


class TestMeteredOpenAI:
    """Test MeteredOpenAI client wrapper."""

    @patch('ai_quota_guard.sdk.openai_client.OpenAI')
    def test_init_success(self, mock_openai_class, service):
        """Test successful initialization."""
        mock_openai_class.return_value = Mock()

        client = MeteredOpenAI(account_id="user-1", service=service, model="gpt-4")

        assert client.account_id == "user-1"
        assert client.model == "gpt-4"
        assert client.request_type == "chat"
        assert client.client is not None

    def test_init_missing_model(self, service):
        """Test initialization fails with missing model."""
        with pytest.raises(ValueError, match="model is required"):
            MeteredOpenAI(account_id="user-1", service=service, model="", client=Mock())

    def test_init_missing_account(self, service):
        """Test initialization fails with missing account."""
        with pytest.raises(ValueError, match="account_id is required"):
            MeteredOpenAI(account_id=" ", service=service, model="gpt-4", client=Mock())

    def test_chat_records_reported_usage(self, service, add_account):
        """Test successful chat call records the provider's token count."""
        add_account("user-1")
        mock_response = Mock()
        mock_response.usage.total_tokens = 150
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = mock_response

        client = MeteredOpenAI(
            account_id="user-1", service=service, model="gpt-4", client=mock_client
        )
        messages = [{"role": "user", "content": "Hello"}]
        response = client.chat(messages=messages)

        mock_client.chat.completions.create.assert_called_once_with(
            model="gpt-4",
            messages=messages,
            temperature=None,
            max_tokens=None
        )
        assert response == mock_response

        entries = service.list_usage("user-1")
        assert len(entries) == 1
        assert entries[0].tokens_used == 150
        assert entries[0].cost == pytest.approx(0.0003)
        assert entries[0].request_type == "chat"

    def test_chat_without_usage_falls_back_to_estimate(self, service, add_account):
        add_account("user-1")
        mock_response = Mock()
        mock_response.usage = None
        mock_client = Mock()
        mock_client.chat.completions.create.return_value = mock_response

        client = MeteredOpenAI(
            account_id="user-1", service=service, model="gpt-4", client=mock_client
        )
        client.chat(messages=[{"role": "user", "content": "12345678"}])

        assert service.list_usage("user-1")[0].tokens_used == 102

    def test_chat_denied_never_calls_openai(self, service, add_account):
        add_account("user-1", is_deactivated=True)
        mock_client = Mock()

        client = MeteredOpenAI(
            account_id="user-1", service=service, model="gpt-4", client=mock_client
        )
        with pytest.raises(AdmissionDenied, match="deactivated"):
            client.chat(messages=[{"role": "user", "content": "Hello"}])

        mock_client.chat.completions.create.assert_not_called()

    def test_chat_empty_messages(self, service):
        client = MeteredOpenAI(
            account_id="user-1", service=service, model="gpt-4", client=Mock()
        )
        with pytest.raises(ValueError, match="messages is required"):
            client.chat(messages=[])
