"""Configuration models for caseforge."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Literal, Mapping

StorageBackend = Literal["memory", "sqlalchemy"]

_TRUTHY = {"1", "true", "yes"}


@dataclass(slots=True)
class StorageConfig:
    """Where session tokens and audit entries are persisted."""

    backend: StorageBackend = "memory"
    dsn: str | None = None
    echo_sql: bool = False

    def resolve_dsn(self) -> str | None:
        if self.dsn:
            return self.dsn
        if self.backend == "sqlalchemy":
            return "sqlite+aiosqlite:///./caseforge.db"
        return None


@dataclass(slots=True)
class RateLimitRule:
    max_requests: int
    window_ms: int


@dataclass(slots=True)
class LockoutPolicy:
    max_attempts: int = 5
    reset_interval_ms: int = 60_000
    block_duration_ms: int = 300_000


@dataclass(slots=True)
class IdempotencyConfig:
    session_ttl_ms: int = 600_000
    debounce_ms: int = 300


@dataclass(slots=True)
class RiskConfig:
    """Per-minute frequencies above which an action is High risk."""

    window_ms: int = 60_000
    high_thresholds: Mapping[str, int] = field(
        default_factory=lambda: {"open_case": 20, "sell_item": 10, "sell_all": 10}
    )
    medium_ratio: float = 0.7


@dataclass(slots=True)
class RetryConfig:
    """Backoff for read-only projection refreshes. Money moves never retry."""

    max_attempts: int = 3
    base_delay_ms: int = 200
    max_delay_ms: int = 2_000


@dataclass(slots=True)
class SagaConfig:
    compensate_on_commit_failure: bool = False
    credit_operation_type: str = "bulk_skin_sale"


def _default_rate_limits() -> dict[str, RateLimitRule]:
    return {
        "open_case": RateLimitRule(max_requests=10, window_ms=60_000),
        "sell_item": RateLimitRule(max_requests=5, window_ms=30_000),
        "sell_all": RateLimitRule(max_requests=5, window_ms=30_000),
    }


@dataclass(slots=True)
class CaseForgeConfig:
    """Top-level configuration container."""

    storage: StorageConfig = field(default_factory=StorageConfig)
    rate_limits: dict[str, RateLimitRule] = field(default_factory=_default_rate_limits)
    lockout: LockoutPolicy = field(default_factory=LockoutPolicy)
    lockout_overrides: dict[str, LockoutPolicy] = field(default_factory=dict)
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    saga: SagaConfig = field(default_factory=SagaConfig)
    rpc_timeout_seconds: float = 15.0
    bot_token: str = ""

    def rate_limit_for(self, action: str) -> RateLimitRule:
        try:
            return self.rate_limits[action]
        except KeyError as exc:
            raise KeyError(f"No rate limit configured for action {action}") from exc

    @classmethod
    def from_env(cls) -> "CaseForgeConfig":
        """Create config from environment variables prefixed with CASEFORGE_."""
        prefix = "CASEFORGE_"
        storage = StorageConfig(
            backend=os.getenv(f"{prefix}STORAGE_BACKEND", "memory"),  # type: ignore[arg-type]
            dsn=os.getenv(f"{prefix}STORAGE_DSN"),
            echo_sql=os.getenv(f"{prefix}STORAGE_ECHO_SQL", "false").lower() in _TRUTHY,
        )

        rate_limits = _default_rate_limits()
        rate_limits.update(_parse_rate_limits(os.getenv(f"{prefix}RATE_LIMITS")))

        lockout = LockoutPolicy(
            max_attempts=int(os.getenv(f"{prefix}LOCKOUT_MAX_ATTEMPTS", "5")),
            reset_interval_ms=int(os.getenv(f"{prefix}LOCKOUT_RESET_MS", "60000")),
            block_duration_ms=int(os.getenv(f"{prefix}LOCKOUT_BLOCK_MS", "300000")),
        )

        risk = RiskConfig()
        thresholds = _parse_int_mapping(
            os.getenv(f"{prefix}RISK_THRESHOLDS"), f"{prefix}RISK_THRESHOLDS"
        )
        if thresholds:
            risk.high_thresholds = {**risk.high_thresholds, **thresholds}

        return cls(
            storage=storage,
            rate_limits=rate_limits,
            lockout=lockout,
            idempotency=IdempotencyConfig(
                session_ttl_ms=int(os.getenv(f"{prefix}SESSION_TTL_MS", "600000")),
                debounce_ms=int(os.getenv(f"{prefix}DEBOUNCE_MS", "300")),
            ),
            risk=risk,
            retry=RetryConfig(
                max_attempts=int(os.getenv(f"{prefix}RETRY_MAX_ATTEMPTS", "3")),
                base_delay_ms=int(os.getenv(f"{prefix}RETRY_BASE_DELAY_MS", "200")),
                max_delay_ms=int(os.getenv(f"{prefix}RETRY_MAX_DELAY_MS", "2000")),
            ),
            saga=SagaConfig(
                compensate_on_commit_failure=os.getenv(
                    f"{prefix}SAGA_COMPENSATE_ON_COMMIT_FAILURE", "false"
                ).lower()
                in _TRUTHY,
            ),
            rpc_timeout_seconds=float(os.getenv(f"{prefix}RPC_TIMEOUT_SECONDS", "15")),
            bot_token=os.getenv(f"{prefix}BOT_TOKEN", ""),
        )


def _parse_rate_limits(raw: str | None) -> dict[str, RateLimitRule]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON for CASEFORGE_RATE_LIMITS") from exc
    if not isinstance(data, dict):
        raise ValueError("CASEFORGE_RATE_LIMITS must be a JSON object")
    rules: dict[str, RateLimitRule] = {}
    for action, rule in data.items():
        if not isinstance(rule, dict) or "max" not in rule or "windowMs" not in rule:
            raise ValueError(
                f"CASEFORGE_RATE_LIMITS entry '{action}' needs 'max' and 'windowMs'"
            )
        rules[str(action)] = RateLimitRule(
            max_requests=int(rule["max"]), window_ms=int(rule["windowMs"])
        )
    return rules


def _parse_int_mapping(raw: str | None, name: str) -> dict[str, int]:
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON for {name}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{name} must be a JSON object")
    return {str(k): int(v) for k, v in data.items()}
