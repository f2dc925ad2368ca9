from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Iterable

from dotenv import load_dotenv


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class ClientConfig:
    env_name: str
    api_base_url: str
    connect_timeout_seconds: float = 5.0
    read_timeout_seconds: float = 15.0
    retries: int = 3
    retry_backoff_seconds: float = 0.3
    max_connections: int = 20
    verify_ssl: bool = True
    view_poll_interval_seconds: float = 2.0
    rated_carriers: frozenset[str] = field(default_factory=lambda: frozenset({"NZC"}))
    background_refresh: bool = False

    @property
    def normalized_env(self) -> str:
        return self.env_name.lower().strip()

    def requires_rate_quote(self, carrier_code: str | None) -> bool:
        return (carrier_code or "").upper() in self.rated_carriers


def _require(values: dict[str, str | None], required: Iterable[str]) -> None:
    missing = [key for key in required if not values.get(key)]
    if missing:
        raise ConfigError(f"Missing required config values: {', '.join(missing)}")


def _coerce_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _read_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected a number, got {raw!r}") from exc


def _read_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid {name}: expected an integer, got {raw!r}") from exc


def _read_codes(name: str, default: str) -> frozenset[str]:
    raw = os.getenv(name, default)
    return frozenset(code.strip().upper() for code in raw.split(",") if code.strip())


def _validate(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


def load_config(env_file: str | None = None) -> ClientConfig:
    """Load packing station config from the environment with optional .env override."""
    load_dotenv(env_file)

    env_name = (os.getenv("PACKSTATION_ENV") or "dev").strip()
    env_key = env_name.upper()

    api_base_url = (
        (os.getenv(f"PACKSTATION_API_BASE_URL_{env_key}") or "").strip()
        or (os.getenv("PACKSTATION_API_BASE_URL") or "").strip()
    )

    timeout_seconds = _read_float("PACKSTATION_TIMEOUT_SECONDS", "10")
    _validate(
        timeout_seconds > 0,
        f"Invalid PACKSTATION_TIMEOUT_SECONDS: expected > 0, got {timeout_seconds}",
    )

    connect_timeout_seconds = _read_float(
        "PACKSTATION_CONNECT_TIMEOUT_SECONDS", str(min(timeout_seconds, 5.0))
    )
    _validate(
        connect_timeout_seconds > 0,
        (
            "Invalid PACKSTATION_CONNECT_TIMEOUT_SECONDS: "
            f"expected > 0, got {connect_timeout_seconds}"
        ),
    )

    read_timeout_seconds = _read_float(
        "PACKSTATION_READ_TIMEOUT_SECONDS",
        str(max(timeout_seconds, connect_timeout_seconds)),
    )
    _validate(
        read_timeout_seconds > 0,
        f"Invalid PACKSTATION_READ_TIMEOUT_SECONDS: expected > 0, got {read_timeout_seconds}",
    )

    retries = _read_int("PACKSTATION_RETRIES", "3")
    _validate(retries >= 0, f"Invalid PACKSTATION_RETRIES: expected >= 0, got {retries}")

    retry_backoff_seconds = _read_float("PACKSTATION_RETRY_BACKOFF_SECONDS", "0.3")
    _validate(
        retry_backoff_seconds >= 0,
        (
            "Invalid PACKSTATION_RETRY_BACKOFF_SECONDS: "
            f"expected >= 0, got {retry_backoff_seconds}"
        ),
    )

    max_connections = _read_int("PACKSTATION_MAX_CONNECTIONS", "20")
    _validate(
        max_connections >= 1,
        f"Invalid PACKSTATION_MAX_CONNECTIONS: expected >= 1, got {max_connections}",
    )

    view_poll_interval_seconds = _read_float("PACKSTATION_VIEW_POLL_SECONDS", "2.0")
    _validate(
        view_poll_interval_seconds > 0,
        (
            "Invalid PACKSTATION_VIEW_POLL_SECONDS: "
            f"expected > 0, got {view_poll_interval_seconds}"
        ),
    )

    verify_ssl = _coerce_bool(os.getenv("PACKSTATION_VERIFY_SSL"), True)
    background_refresh = _coerce_bool(os.getenv("PACKSTATION_BACKGROUND_REFRESH"), False)
    rated_carriers = _read_codes("PACKSTATION_RATED_CARRIERS", "NZC")

    values = {"PACKSTATION_API_BASE_URL": api_base_url}
    _require(values, ["PACKSTATION_API_BASE_URL"])

    return ClientConfig(
        env_name=env_name,
        api_base_url=api_base_url.rstrip("/"),
        connect_timeout_seconds=connect_timeout_seconds,
        read_timeout_seconds=read_timeout_seconds,
        retries=retries,
        retry_backoff_seconds=retry_backoff_seconds,
        max_connections=max_connections,
        verify_ssl=verify_ssl,
        view_poll_interval_seconds=view_poll_interval_seconds,
        rated_carriers=rated_carriers,
        background_refresh=background_refresh,
    )
