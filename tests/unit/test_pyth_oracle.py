"""Unit tests for Pyth oracle — price response parsing and error handling."""
from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from position_monitor.config import PythConfig
from position_monitor.errors import DataIntegrityError, DataSourceUnavailable
from position_monitor.oracles.pyth import PythOracle, parse_price


@pytest.fixture()
def oracle() -> PythOracle:
    return PythOracle(
        PythConfig(
            hermes_url="https://hermes.example.com/v2/updates/price/latest",
            feeds={"SUI": "aaa111", "BTC": "bbb222", "USDC": "ccc333"},
        )
    )


def _make_pyth_response(items: list[dict]) -> dict:
    return {"parsed": items}


def _mock_session(status: int = 200, data: dict | None = None) -> AsyncMock:
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.json = AsyncMock(return_value=data or {})
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)

    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=mock_response)
    mock_session.__aenter__ = AsyncMock(return_value=mock_session)
    mock_session.__aexit__ = AsyncMock(return_value=None)
    return mock_session


class TestParsePrice:
    def test_exact_decimal(self) -> None:
        assert parse_price({"price": "350000000", "expo": "-8"}) == Decimal("3.5")

    def test_malformed(self) -> None:
        with pytest.raises(DataIntegrityError):
            parse_price({"price": "abc", "expo": "-8"})


class TestPythOracleFetchPrices:
    @pytest.mark.asyncio
    async def test_parses_response_correctly(self, oracle: PythOracle) -> None:
        mock_session = _mock_session(
            200,
            _make_pyth_response(
                [
                    {"id": "aaa111", "price": {"price": "350000000", "expo": "-8"}},
                    {"id": "bbb222", "price": {"price": "10000000000000", "expo": "-8"}},
                    {"id": "ccc333", "price": {"price": "100000000", "expo": "-8"}},
                ]
            ),
        )

        with patch("position_monitor.oracles.pyth.aiohttp.ClientSession", return_value=mock_session):
            with patch("position_monitor.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices()

        assert prices["SUI"] == Decimal("3.5")
        assert prices["BTC"] == Decimal("100000")
        assert prices["USDC"] == Decimal("1")

    @pytest.mark.asyncio
    async def test_http_error_raises(self, oracle: PythOracle) -> None:
        mock_session = _mock_session(500)

        with patch("position_monitor.oracles.pyth.aiohttp.ClientSession", return_value=mock_session):
            with patch("position_monitor.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(DataSourceUnavailable, match="HTTP 500"):
                    await oracle.fetch_prices()

    @pytest.mark.asyncio
    async def test_network_error_raises(self, oracle: PythOracle) -> None:
        mock_session = _mock_session()
        mock_session.get = MagicMock(side_effect=ConnectionError("timeout"))

        with patch("position_monitor.oracles.pyth.aiohttp.ClientSession", return_value=mock_session):
            with patch("position_monitor.oracles.pyth.aiohttp.TCPConnector"):
                with pytest.raises(DataSourceUnavailable) as exc_info:
                    await oracle.fetch_prices()

        assert exc_info.value.retryable is True
        assert exc_info.value.source == "pyth"

    @pytest.mark.asyncio
    async def test_symbol_filter(self, oracle: PythOracle) -> None:
        mock_session = _mock_session(
            200,
            _make_pyth_response(
                [{"id": "aaa111", "price": {"price": "350000000", "expo": "-8"}}]
            ),
        )

        with patch("position_monitor.oracles.pyth.aiohttp.ClientSession", return_value=mock_session):
            with patch("position_monitor.oracles.pyth.aiohttp.TCPConnector"):
                prices = await oracle.fetch_prices(symbols=["SUI"])

        assert "SUI" in prices
        # BTC and USDC not requested
        assert "BTC" not in prices
        assert "ids[]=aaa111" in mock_session.get.call_args[0][0]

    @pytest.mark.asyncio
    async def test_empty_feeds_returns_empty(self) -> None:
        oracle = PythOracle(PythConfig(hermes_url="https://x.com", feeds={}))
        prices = await oracle.fetch_prices()
        assert prices == {}
