"""
Tests for EntitlementSync.

Covers:
- Repeated setup registers one listener and configures at most once
- Provider calls follow identity transition order
- Anonymous identities are never logged in
- Provider failures and timeouts are swallowed
- Missing API key leaves the provider untouched
- Teardown resets so setup can run again
"""

import asyncio
import logging

import pytest

from sprout.entitlements.sync import EntitlementSync, IdentityTransition
from sprout.identity.models import Identity


def _create_sync(identity_stream, entitlement_provider, api_key="appl_test", timeout=0.2):
    return EntitlementSync(
        identity_stream,
        entitlement_provider,
        api_key=api_key,
        provider_timeout=timeout,
    )


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_repeated_setup_registers_one_listener(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)

        assert sync.setup() is True
        assert sync.setup() is False
        assert sync.setup() is False

        identity_stream.emit(Identity(id="user_a", is_anonymous=False))
        await sync.drain()

        assert identity_stream.listener_count == 1
        assert entitlement_provider.operations() == ["configure", "log_in"]
        await sync.teardown()

    @pytest.mark.asyncio
    async def test_configure_runs_once_across_transitions(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        identity_stream.emit(Identity(id="user_a", is_anonymous=False))
        identity_stream.emit(None)
        identity_stream.emit(Identity(id="user_b", is_anonymous=False))
        await sync.drain()

        assert entitlement_provider.operations().count("configure") == 1
        await sync.stop()

    @pytest.mark.asyncio
    async def test_teardown_resets_flags_and_listener(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()
        identity_stream.emit(Identity(id="user_a", is_anonymous=False))
        await sync.drain()

        await sync.teardown()

        assert sync.subscribed is False
        assert sync.configured is False
        assert identity_stream.listener_count == 0

        identity_stream.emit(Identity(id="user_b", is_anonymous=False))
        assert ("log_in", "user_b") not in entitlement_provider.calls

        assert sync.setup() is True
        assert identity_stream.listener_count == 1
        await sync.teardown()

    @pytest.mark.asyncio
    async def test_current_identity_processed_first(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start(current_identity=Identity(id="user_a", is_anonymous=False))

        identity_stream.emit(None)
        await sync.drain()

        assert entitlement_provider.calls == [
            ("configure", "appl_test"),
            ("log_in", "user_a"),
            ("log_out", None),
        ]
        await sync.stop()


# =============================================================================
# Ordering and filtering
# =============================================================================


class TestTransitions:
    @pytest.mark.asyncio
    async def test_calls_follow_transition_order(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        identity_stream.emit(Identity(id="A", is_anonymous=False))
        identity_stream.emit(None)
        identity_stream.emit(Identity(id="B", is_anonymous=False))
        await sync.drain()

        assert entitlement_provider.calls == [
            ("configure", "appl_test"),
            ("log_in", "A"),
            ("log_out", None),
            ("log_in", "B"),
        ]
        await sync.stop()

    @pytest.mark.asyncio
    async def test_anonymous_identity_not_logged_in(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        identity_stream.emit(Identity(id="anon_u", is_anonymous=True))
        await sync.drain()

        assert "log_in" not in entitlement_provider.operations()
        assert "log_out" not in entitlement_provider.operations()
        await sync.stop()

    @pytest.mark.asyncio
    async def test_linked_identity_logged_in_with_same_id(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        identity = Identity(id="anon_u", is_anonymous=True)
        identity_stream.emit(identity)
        identity.mark_linked("password", email="a@b.co")
        identity_stream.emit(identity)
        await sync.drain()

        assert entitlement_provider.calls == [
            ("configure", "appl_test"),
            ("log_in", "anon_u"),
        ]
        await sync.stop()

    def test_transition_captured_at_emit_time(self):
        identity = Identity(id="anon_u", is_anonymous=True)
        transition = IdentityTransition.capture(identity)

        identity.mark_linked("password")

        assert transition.is_anonymous is True
        assert IdentityTransition.capture(None).is_sign_out is True


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    @pytest.mark.asyncio
    async def test_no_api_key_makes_no_provider_calls(self, identity_stream, entitlement_provider):
        sync = _create_sync(identity_stream, entitlement_provider, api_key=None)

        assert sync.start() is True
        identity_stream.emit(Identity(id="user_a", is_anonymous=False))
        identity_stream.emit(None)
        await sync.drain()

        assert entitlement_provider.calls == []
        assert sync.subscribed is True
        assert sync.configured is False
        await sync.stop()

    @pytest.mark.asyncio
    async def test_log_in_failure_is_swallowed(self, identity_stream, entitlement_provider, caplog):
        entitlement_provider.fail_on.add("log_in")
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        with caplog.at_level(logging.WARNING, logger="sprout.entitlements.sync"):
            identity_stream.emit(Identity(id="A", is_anonymous=False))
            identity_stream.emit(None)
            await sync.drain()

        assert entitlement_provider.operations() == ["configure", "log_in", "log_out"]
        assert "Entitlement provider call failed" in caplog.text
        await sync.stop()

    @pytest.mark.asyncio
    async def test_log_in_timeout_does_not_block_later_transitions(
        self, identity_stream, entitlement_provider
    ):
        entitlement_provider.block_on.add("log_in")
        sync = _create_sync(identity_stream, entitlement_provider, timeout=0.05)
        sync.start()

        identity_stream.emit(Identity(id="A", is_anonymous=False))
        identity_stream.emit(None)
        await asyncio.wait_for(sync.drain(), timeout=2)

        assert entitlement_provider.operations() == ["configure", "log_in", "log_out"]
        await sync.stop()

    @pytest.mark.asyncio
    async def test_failed_configure_is_retried_on_next_transition(
        self, identity_stream, entitlement_provider
    ):
        entitlement_provider.fail_on.add("configure")
        sync = _create_sync(identity_stream, entitlement_provider)
        sync.start()

        identity_stream.emit(Identity(id="A", is_anonymous=False))
        await sync.drain()
        assert sync.configured is False
        assert "log_in" not in entitlement_provider.operations()

        entitlement_provider.fail_on.clear()
        identity_stream.emit(Identity(id="B", is_anonymous=False))
        await sync.drain()

        assert sync.configured is True
        assert entitlement_provider.calls[-1] == ("log_in", "B")
        assert entitlement_provider.operations().count("configure") == 2
        await sync.stop()
