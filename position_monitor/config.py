"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import AlertChannel

logger = logging.getLogger(__name__)

CHAIN_KINDS = ("sui", "evm")

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ThresholdsConfig:
    health_factor_critical: float = 1.5
    health_factor_near_liquidation: float = 1.1


@dataclass(frozen=True)
class ChangeDetectionConfig:
    health_factor_epsilon: float = 0.0001
    usd_epsilon: float = 0.01


@dataclass(frozen=True)
class RetryConfig:
    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_minutes: int = 15
    fetch_timeout_seconds: float = 30.0
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)
    change_detection: ChangeDetectionConfig = field(default_factory=ChangeDetectionConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)


@dataclass(frozen=True)
class UserConfig:
    id: str = ""
    telegram_chat_id: str | None = None
    risk_profile: str | None = None
    health_factor_threshold: float | None = None
    price_change_threshold: float | None = None
    notification_channels: tuple[AlertChannel, ...] | None = None


@dataclass(frozen=True)
class WalletConfig:
    label: str = ""
    user_id: str = ""
    chain: str = ""
    address: str = ""
    protocols: tuple[str, ...] = ()


@dataclass(frozen=True)
class ChainConfig:
    kind: str = "sui"
    chain_id: int = 0
    rpc_endpoints: tuple[str, ...] = ()
    rpc_timeout: int = 30


@dataclass(frozen=True)
class ProtocolConfig:
    chain: str = ""
    adapter: str = ""
    contracts: dict[str, str] = field(default_factory=dict)
    liquidation_threshold: float = 85.0
    token_decimals: dict[str, int] = field(default_factory=dict)
    token_aliases: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class EmailConfig:
    enabled: bool = False
    alert_email: str = ""
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    sender_email: str = ""
    sender_password: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    email: EmailConfig = field(default_factory=EmailConfig)


@dataclass(frozen=True)
class EventStoreConfig:
    path: str = ""


@dataclass(frozen=True)
class AppConfig:
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    users: tuple[UserConfig, ...] = ()
    wallets: tuple[WalletConfig, ...] = ()
    chains: dict[str, ChainConfig] = field(default_factory=dict)
    protocols: dict[str, ProtocolConfig] = field(default_factory=dict)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)
    event_store: EventStoreConfig = field(default_factory=EventStoreConfig)

    def user(self, user_id: str) -> UserConfig | None:
        for u in self.users:
            if u.id == user_id:
                return u
        return None


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


def _optional_float(value: Any) -> float | None:
    return None if value is None or value == "" else float(value)


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    th = raw.get("thresholds", {})
    cd = raw.get("change_detection", {})
    rt = raw.get("retry", {})
    return MonitorConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
        fetch_timeout_seconds=float(raw.get("fetch_timeout_seconds", 30.0)),
        thresholds=ThresholdsConfig(
            health_factor_critical=float(th.get("health_factor_critical", 1.5)),
            health_factor_near_liquidation=float(
                th.get("health_factor_near_liquidation", 1.1)
            ),
        ),
        change_detection=ChangeDetectionConfig(
            health_factor_epsilon=float(cd.get("health_factor_epsilon", 0.0001)),
            usd_epsilon=float(cd.get("usd_epsilon", 0.01)),
        ),
        retry=RetryConfig(
            max_attempts=int(rt.get("max_attempts", 3)),
            initial_delay=float(rt.get("initial_delay", 1.0)),
            max_delay=float(rt.get("max_delay", 30.0)),
            backoff_multiplier=float(rt.get("backoff_multiplier", 2.0)),
            jitter=bool(rt.get("jitter", True)),
        ),
    )


def _build_users(raw: list[dict[str, Any]]) -> tuple[UserConfig, ...]:
    users: list[UserConfig] = []
    for u in raw:
        prefs = u.get("preferences", {})
        thresholds = prefs.get("alert_thresholds", {})
        channels = prefs.get("notification_channels")
        users.append(
            UserConfig(
                id=str(u.get("id", "")),
                telegram_chat_id=u.get("telegram_chat_id") or None,
                risk_profile=prefs.get("risk_profile"),
                health_factor_threshold=_optional_float(thresholds.get("health_factor")),
                price_change_threshold=_optional_float(thresholds.get("price_change")),
                notification_channels=(
                    tuple(AlertChannel(c) for c in channels) if channels is not None else None
                ),
            )
        )
    return tuple(users)


def _build_wallets(raw: list[dict[str, Any]]) -> tuple[WalletConfig, ...]:
    wallets: list[WalletConfig] = []
    for w in raw:
        label = w.get("label", "")
        wallets.append(
            WalletConfig(
                label=label,
                user_id=str(w.get("user_id") or label),
                chain=w.get("chain", ""),
                address=w.get("address", ""),
                protocols=tuple(w.get("protocols", [])),
            )
        )
    return tuple(wallets)


def _build_chains(raw: dict[str, Any]) -> dict[str, ChainConfig]:
    chains: dict[str, ChainConfig] = {}
    for name, cfg in raw.items():
        chains[name] = ChainConfig(
            kind=cfg.get("kind", "sui"),
            chain_id=int(cfg.get("chain_id", 0)),
            # unset ${VAR} endpoints interpolate to ""
            rpc_endpoints=tuple(e for e in cfg.get("rpc_endpoints", []) if e),
            rpc_timeout=int(cfg.get("rpc_timeout", 30)),
        )
    return chains


def _build_protocols(raw: dict[str, Any]) -> dict[str, ProtocolConfig]:
    protocols: dict[str, ProtocolConfig] = {}
    for name, cfg in raw.items():
        protocols[name] = ProtocolConfig(
            chain=cfg.get("chain", ""),
            adapter=cfg.get("adapter", name),
            contracts=dict(cfg.get("contracts", {})),
            liquidation_threshold=float(cfg.get("liquidation_threshold", 85.0)),
            token_decimals=dict(cfg.get("token_decimals", {})),
            token_aliases=dict(cfg.get("token_aliases", {})),
        )
    return protocols


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    em = raw.get("email", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
        email=EmailConfig(
            enabled=bool(em.get("enabled", False)),
            alert_email=em.get("alert_email", ""),
            smtp_server=em.get("smtp_server", "smtp.gmail.com"),
            smtp_port=int(em.get("smtp_port", 587)),
            sender_email=em.get("sender_email", ""),
            sender_password=em.get("sender_password", ""),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from the package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    try:
        cfg = AppConfig(
            monitor=_build_monitor(raw.get("monitor", {})),
            users=_build_users(raw.get("users", [])),
            wallets=_build_wallets(raw.get("wallets", [])),
            chains=_build_chains(raw.get("chains", {})),
            protocols=_build_protocols(raw.get("protocols", {})),
            price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
            notifications=_build_notifications(raw.get("notifications", {})),
            event_store=EventStoreConfig(
                path=(raw.get("event_store") or {}).get("path", "") or ""
            ),
        )
    except (TypeError, AttributeError) as e:
        raise ValueError(f"Malformed configuration: {e}") from e

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    thresholds = cfg.monitor.thresholds
    if thresholds.health_factor_critical <= 0 or thresholds.health_factor_near_liquidation <= 0:
        raise ValueError("Health factor thresholds must be positive")
    if cfg.monitor.fetch_timeout_seconds <= 0:
        raise ValueError("fetch_timeout_seconds must be positive")

    for name, chain in cfg.chains.items():
        if chain.kind not in CHAIN_KINDS:
            raise ValueError(f"Chain '{name}' has unknown kind '{chain.kind}'")

    for name, proto in cfg.protocols.items():
        if proto.chain not in cfg.chains:
            raise ValueError(f"Protocol '{name}' references unknown chain '{proto.chain}'")

    if not cfg.wallets:
        raise ValueError("At least one wallet must be configured")

    user_ids = {u.id for u in cfg.users}
    for wallet in cfg.wallets:
        if not wallet.address:
            raise ValueError(f"Wallet '{wallet.label}' has no address")
        if wallet.chain not in cfg.chains:
            raise ValueError(
                f"Wallet '{wallet.label}' references unknown chain '{wallet.chain}'"
            )
        if cfg.users and wallet.user_id not in user_ids:
            raise ValueError(
                f"Wallet '{wallet.label}' references unknown user '{wallet.user_id}'"
            )
        for proto in wallet.protocols:
            if proto not in cfg.protocols:
                raise ValueError(
                    f"Wallet '{wallet.label}' references unknown protocol '{proto}'"
                )
