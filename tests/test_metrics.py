"""
Unit Tests for Metrics Abstraction Layer

Test Coverage:
- MetricsClient interface implementations
- Backend selection via factory function
- Delegation to the aio-statsd Telegraf client
"""

from unittest.mock import AsyncMock, Mock, patch

import pytest

from social.graze.paymcp.server.metrics import (
    MetricsClient,
    NoOpMetricsClient,
    TelegrafMetricsClient,
    create_metrics_client,
)


class TestMetricsClientInterface:
    """Test the abstract MetricsClient interface."""

    def test_interface_is_abstract(self):
        """MetricsClient should be abstract and not instantiable."""
        with pytest.raises(TypeError):
            MetricsClient()


class TestNoOpMetricsClient:
    """Test the NoOpMetricsClient implementation."""

    @pytest.fixture
    def noop_client(self):
        return NoOpMetricsClient()

    def test_noop_metrics(self, noop_client):
        """NoOp metrics should not raise exceptions."""
        noop_client.increment("test.counter", 1, {"tag": "value"})
        noop_client.increment("test.counter")
        noop_client.gauge("test.gauge", 42.5)
        noop_client.timer("test.timer", 1.234, {"tag": "value"})

    @pytest.mark.asyncio
    async def test_noop_lifecycle(self, noop_client):
        """NoOp connect and close should not raise exceptions."""
        await noop_client.connect()
        await noop_client.close()


class TestTelegrafMetricsClient:
    """Test the TelegrafMetricsClient wrapper."""

    @pytest.fixture
    def mock_telegraf_client(self):
        mock = Mock()
        mock.connect = AsyncMock()
        mock.close = AsyncMock()
        return mock

    @pytest.fixture
    def telegraf_client(self, mock_telegraf_client):
        return TelegrafMetricsClient(mock_telegraf_client)

    def test_telegraf_increment(self, telegraf_client, mock_telegraf_client):
        """Telegraf increment should delegate to underlying client."""
        telegraf_client.increment("test.counter", 3, {"method": "POST"})

        mock_telegraf_client.increment.assert_called_once_with(
            "test.counter", 3, tag_dict={"method": "POST"}
        )

    def test_telegraf_increment_no_tags(self, telegraf_client, mock_telegraf_client):
        """Missing tags are sent as an empty dict."""
        telegraf_client.increment("test.counter")

        mock_telegraf_client.increment.assert_called_once_with(
            "test.counter", 1, tag_dict={}
        )

    def test_telegraf_gauge_and_timer(self, telegraf_client, mock_telegraf_client):
        telegraf_client.gauge("test.gauge", 42.0, {"status": "ok"})
        telegraf_client.timer("test.timer", 1.234, {"endpoint": "/mcp"})

        mock_telegraf_client.gauge.assert_called_once_with(
            "test.gauge", 42.0, tag_dict={"status": "ok"}
        )
        mock_telegraf_client.timer.assert_called_once_with(
            "test.timer", 1.234, tag_dict={"endpoint": "/mcp"}
        )

    @pytest.mark.asyncio
    async def test_telegraf_lifecycle(self, telegraf_client, mock_telegraf_client):
        """Connect and close delegate to the underlying client."""
        await telegraf_client.connect()
        await telegraf_client.close()

        mock_telegraf_client.connect.assert_awaited_once()
        mock_telegraf_client.close.assert_awaited_once()


class TestCreateMetricsClient:
    """Test backend selection."""

    def test_none_backend(self):
        assert isinstance(create_metrics_client("none"), NoOpMetricsClient)

    def test_backend_name_case_insensitive(self):
        assert isinstance(create_metrics_client("NONE"), NoOpMetricsClient)

    def test_telegraf_backend(self):
        """The telegraf backend wraps a TelegrafStatsdClient for host and port."""
        with patch(
            "social.graze.paymcp.server.metrics.TelegrafStatsdClient"
        ) as statsd_class:
            client = create_metrics_client("telegraf", host="statsd", port=9125)

        assert isinstance(client, TelegrafMetricsClient)
        statsd_class.assert_called_once_with(host="statsd", port=9125, debug=False)

    def test_invalid_backend(self):
        with pytest.raises(ValueError, match="Invalid metrics backend"):
            create_metrics_client("otel")
