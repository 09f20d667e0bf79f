"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from decimal import Decimal
from pathlib import Path

import pytest

from position_monitor.config import (
    AppConfig,
    ChainConfig,
    EmailConfig,
    MonitorConfig,
    NotificationsConfig,
    PriceOracleConfig,
    ProtocolConfig,
    PythConfig,
    RetryConfig,
    TelegramConfig,
    ThresholdsConfig,
    UserConfig,
    WalletConfig,
)
from position_monitor.models import Asset, Position, PositionMetadata, User


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_thresholds() -> ThresholdsConfig:
    return ThresholdsConfig(health_factor_critical=1.5, health_factor_near_liquidation=1.1)


@pytest.fixture()
def fast_retry() -> RetryConfig:
    return RetryConfig(max_attempts=3, initial_delay=0.0, max_delay=0.0, jitter=False)


@pytest.fixture()
def sample_monitor_config(
    sample_thresholds: ThresholdsConfig, fast_retry: RetryConfig
) -> MonitorConfig:
    return MonitorConfig(
        check_interval_minutes=5,
        fetch_timeout_seconds=1.0,
        thresholds=sample_thresholds,
        retry=fast_retry,
    )


@pytest.fixture()
def sample_chain_config() -> ChainConfig:
    return ChainConfig(
        kind="sui",
        rpc_endpoints=("https://rpc1.example.com", "https://rpc2.example.com"),
        rpc_timeout=10,
    )


@pytest.fixture()
def sample_protocol_config() -> ProtocolConfig:
    return ProtocolConfig(
        chain="sui",
        adapter="alphalend",
        contracts={
            "lending_protocol_id": "0xabc",
            "package_id": "0xdef",
            "positions_table_id": "0x111",
            "markets_table_id": "0x222",
        },
        liquidation_threshold=85.0,
        token_decimals={"SUI": 9, "USDC": 6, "BTC": 8, "XBTC": 8},
        token_aliases={"XBTC": "BTC"},
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.pyth.network/v2/updates/price/latest",
        feeds={"SUI": "abc123", "BTC": "def456", "USDC": "ghi789"},
    )


@pytest.fixture()
def sample_app_config(
    sample_monitor_config: MonitorConfig,
    sample_chain_config: ChainConfig,
    sample_protocol_config: ProtocolConfig,
    sample_pyth_config: PythConfig,
) -> AppConfig:
    return AppConfig(
        monitor=sample_monitor_config,
        users=(UserConfig(id="user-1", telegram_chat_id="777"),),
        wallets=(
            WalletConfig(
                label="test-wallet",
                user_id="user-1",
                chain="sui",
                address="0xWALLET123",
                protocols=("alphalend",),
            ),
        ),
        chains={"sui": sample_chain_config},
        protocols={"alphalend": sample_protocol_config},
        price_oracle=PriceOracleConfig(provider="pyth", pyth=sample_pyth_config),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
            email=EmailConfig(enabled=False),
        ),
    )


# ---------------------------------------------------------------------------
# Model fixtures
# ---------------------------------------------------------------------------


def make_position(
    health_factor: float | None = 1.7,
    collateral_usd: str = "10000",
    debt_usd: str = "5000",
    *,
    position_id: str = "pos-1",
    user_id: str = "user-1",
    protocol: str = "alphalend",
    wallet_address: str = "0xWALLET123",
    liquidation_threshold: str | None = "85",
) -> Position:
    """Build a SUI-collateral / USDC-debt snapshot (SUI priced at $100)."""
    collateral = (
        (
            Asset(
                symbol="SUI",
                amount=format(Decimal(collateral_usd) / 100, "f"),
                value_usd=collateral_usd,
            ),
        )
        if Decimal(collateral_usd) > 0
        else ()
    )
    debt = (
        (Asset(symbol="USDC", amount=debt_usd, value_usd=debt_usd),)
        if Decimal(debt_usd) > 0
        else ()
    )
    return Position(
        id=position_id,
        user_id=user_id,
        protocol=protocol,
        wallet_address=wallet_address,
        chain_id=0,
        health_factor=health_factor,
        collateral=collateral,
        debt=debt,
        metadata=PositionMetadata(liquidation_threshold=liquidation_threshold),
    )


@pytest.fixture()
def sample_position() -> Position:
    return make_position()


@pytest.fixture()
def sample_user() -> User:
    return User(id="user-1", wallet_address="0xWALLET123", telegram_chat_id="777")


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    monitor:
      check_interval_minutes: 5
      fetch_timeout_seconds: 20
      thresholds:
        health_factor_critical: 1.5
        health_factor_near_liquidation: 1.1
      change_detection:
        health_factor_epsilon: 0.001
        usd_epsilon: 0.5
      retry:
        max_attempts: 4
        initial_delay: 0.5
    users:
      - id: alice
        telegram_chat_id: "555"
        preferences:
          risk_profile: conservative
          alert_thresholds:
            health_factor: 1.8
            price_change: 5
          notification_channels: [telegram]
    wallets:
      - label: test-wallet
        user_id: alice
        chain: sui
        address: "0xTEST"
        protocols: [alphalend]
    chains:
      sui:
        kind: sui
        rpc_endpoints: ["https://rpc.example.com"]
        rpc_timeout: 10
    protocols:
      alphalend:
        chain: sui
        contracts:
          lending_protocol_id: "0xabc"
          package_id: "0xdef"
          positions_table_id: "0x111"
          markets_table_id: "0x222"
        liquidation_threshold: 85.0
        token_decimals: {SUI: 9, USDC: 6}
        token_aliases: {XBTC: BTC}
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {SUI: "aaa", BTC: "bbb"}
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
      email:
        enabled: false
    event_store:
      path: ""
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


# ---------------------------------------------------------------------------
# Sample on-chain data
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_collateral_entry() -> dict:
    return {
        "fields": {
            "key": "1",
            "value": "500000000000",  # 500 SUI in raw shares
        }
    }


@pytest.fixture()
def sample_market_info() -> dict:
    return {
        "coin_type": {"fields": {"name": "0x2::sui::SUI"}},
        "xtoken_ratio": {"fields": {"value": str(10**18)}},
    }


@pytest.fixture()
def sample_loan_entry() -> dict:
    return {
        "fields": {
            "amount": "5000000000",  # 5000 USDC (6 decimals)
            "coin_type": {"fields": {"name": "0xabc::coin::USDC"}},
        }
    }


@pytest.fixture()
def sample_prices() -> dict[str, Decimal]:
    return {
        "SUI": Decimal("3.5"),
        "BTC": Decimal("100000"),
        "USDC": Decimal("1"),
        "USDT": Decimal("1"),
        "ETH": Decimal("3500"),
    }


@pytest.fixture()
def position_factory():
    return make_position
