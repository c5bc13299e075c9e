"""
Unit tests for social.graze.paymcp.server.context
"""

import asyncio

import pytest

from social.graze.paymcp.common.types import TokenData
from social.graze.paymcp.server.config import Settings, build_config
from social.graze.paymcp.server.context import (
    current_context,
    paymcp_config,
    paymcp_context,
    paymcp_resource,
    paymcp_user,
    save_pass_through_token,
)
from social.graze.paymcp.server.token import TokenCheck

RESOURCE = "https://example.com/mcp"


@pytest.fixture
def config(fake_fetch, memory_store):
    return build_config(
        Settings(destination="testDestination", metrics_backend="none"),
        fake_fetch,
        store=memory_store,
    )


class TestRequestContext:
    """Test context binding."""

    def test_empty_outside_request(self):
        assert current_context() is None
        assert paymcp_config() is None
        assert paymcp_resource() is None
        assert paymcp_user() is None

    @pytest.mark.asyncio
    async def test_bound_inside_block(self, config):
        async with paymcp_context(config, RESOURCE, TokenData(active=True, sub="testUser")):
            assert paymcp_config() is config
            assert paymcp_resource() == RESOURCE
            assert paymcp_user() == "testUser"

        assert current_context() is None

    @pytest.mark.asyncio
    async def test_no_user_without_token_data(self, config):
        async with paymcp_context(config, RESOURCE):
            assert paymcp_resource() == RESOURCE
            assert paymcp_user() is None

    @pytest.mark.asyncio
    async def test_reset_after_error(self, config):
        """The context is cleared even when the block raises."""
        with pytest.raises(RuntimeError):
            async with paymcp_context(config, RESOURCE, TokenData(active=True, sub="a")):
                raise RuntimeError("handler failed")

        assert paymcp_user() is None

    @pytest.mark.asyncio
    async def test_propagates_to_tasks_and_callbacks(self, config):
        """Tasks and loop callbacks scheduled inside the block see its context."""
        loop = asyncio.get_running_loop()
        seen = loop.create_future()

        async def in_task():
            await asyncio.sleep(0)
            return paymcp_user()

        async with paymcp_context(config, RESOURCE, TokenData(active=True, sub="testUser")):
            task = asyncio.create_task(in_task())
            loop.call_soon(lambda: seen.set_result(paymcp_user()))

        assert await task == "testUser"
        assert await seen == "testUser"

    @pytest.mark.asyncio
    async def test_concurrent_requests_isolated(self, config):
        """Concurrent requests each see their own user."""

        async def handle(user):
            async with paymcp_context(config, RESOURCE, TokenData(active=True, sub=user)):
                await asyncio.sleep(0)
                return paymcp_user()

        assert await asyncio.gather(handle("a"), handle("b")) == ["a", "b"]


class TestSavePassThroughToken:
    """Test storing the inbound token."""

    @pytest.mark.asyncio
    async def test_saved_under_empty_resource(self, config, memory_store):
        check = TokenCheck(passes=True, token="tok", data=TokenData(active=True, sub="testUser"))

        await save_pass_through_token(config, check)

        saved = await memory_store.get_access_token("testUser", "")
        assert saved.access_token == "tok"
        assert saved.resource_url == ""

    @pytest.mark.asyncio
    async def test_skipped_without_subject(self, config, memory_store):
        check = TokenCheck(passes=True, token="tok", data=TokenData(active=True))

        await save_pass_through_token(config, check)

        assert await memory_store.get_access_token("", "") is None

    @pytest.mark.asyncio
    async def test_skipped_without_token(self, config, memory_store):
        check = TokenCheck(passes=True, data=TokenData(active=True, sub="testUser"))

        await save_pass_through_token(config, check)

        assert await memory_store.get_access_token("testUser", "") is None
