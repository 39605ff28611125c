"""Unit tests for the implicit completion policy, cancel token and opening messages."""

import pytest

from charis.agent.loop.cancel import CancelToken
from charis.agent.loop.completion import CompletionPolicy
from charis.agent.loop.system_prompt import (
    AGENT_SYSTEM_PROMPT,
    build_initial_messages,
    build_user_message,
    default_prompt,
)
from charis.core.exceptions import RunCancelledError

pytestmark = pytest.mark.unit


# ---------------------------------------------------------------------------
# CompletionPolicy
# ---------------------------------------------------------------------------


def test_long_text_completes():
    policy = CompletionPolicy(min_chars=300, max_iterations=15)
    assert policy.is_implicitly_complete("x" * 301, iteration=1)


def test_short_text_continues_early():
    policy = CompletionPolicy(min_chars=300, max_iterations=15)
    assert not policy.is_implicitly_complete("x" * 300, iteration=1)


def test_short_text_completes_on_penultimate_iteration():
    policy = CompletionPolicy(min_chars=300, max_iterations=15)
    assert not policy.is_implicitly_complete("ok", iteration=13)
    assert policy.is_implicitly_complete("ok", iteration=14)


def test_disabled_policy_only_stops_at_cap():
    policy = CompletionPolicy(enabled=False, min_chars=300, max_iterations=15)
    assert not policy.is_implicitly_complete("x" * 1000, iteration=14)
    assert policy.is_implicitly_complete("", iteration=15)


# ---------------------------------------------------------------------------
# CancelToken
# ---------------------------------------------------------------------------


def test_cancel_token():
    token = CancelToken()
    token.raise_if_cancelled()
    assert not token.cancelled

    token.cancel("Cancelled by user")
    token.cancel("second reason ignored")

    assert token.cancelled
    assert token.reason == "Cancelled by user"
    with pytest.raises(RunCancelledError, match="Cancelled by user"):
        token.raise_if_cancelled()


# ---------------------------------------------------------------------------
# Opening messages
# ---------------------------------------------------------------------------


def test_default_prompt():
    assert default_prompt("Acme") == "Analyze competitor ads for Acme"
    assert default_prompt(None) == "Analyze competitor ads for brand"


def test_user_message_appends_urls_and_brand():
    content = build_user_message("Audit", "Acme", ["https://a", "https://b"])
    assert content == "Audit\n\nAdditional URLs to analyze: https://a, https://b\n\nBrand/Company: Acme"


def test_initial_messages():
    messages = build_initial_messages("Audit")
    assert messages == [
        {"role": "system", "content": AGENT_SYSTEM_PROMPT},
        {"role": "user", "content": "Audit"},
    ]
