"""Input and configuration validation for caseforge."""

from __future__ import annotations

from .config import CaseForgeConfig
from .domain.rewards import ActionType
from .domain.validation import is_valid_identifier, validate_identifier, validate_price


def validate_config(config: CaseForgeConfig) -> list[str]:
    """Return list of validation errors discovered in ``config``."""
    errors: list[str] = []

    for action in ActionType:
        if action.value not in config.rate_limits:
            errors.append(f"No rate limit configured for action '{action.value}'.")
    for action, rule in config.rate_limits.items():
        if rule.max_requests <= 0:
            errors.append(f"Rate limit for '{action}' must allow at least one request.")
        if rule.window_ms <= 0:
            errors.append(f"Rate limit window for '{action}' must be positive.")

    policies = {"default": config.lockout, **config.lockout_overrides}
    for name, policy in policies.items():
        if policy.max_attempts <= 0:
            errors.append(f"Lockout policy '{name}' has non-positive max_attempts.")
        if policy.reset_interval_ms <= 0:
            errors.append(f"Lockout policy '{name}' has non-positive reset interval.")
        if policy.block_duration_ms <= 0:
            errors.append(f"Lockout policy '{name}' has non-positive block duration.")

    if config.idempotency.session_ttl_ms <= 0:
        errors.append("Session token TTL must be positive.")
    if config.idempotency.debounce_ms < 0:
        errors.append("Debounce delay cannot be negative.")

    risk = config.risk
    if risk.window_ms <= 0:
        errors.append("Risk window must be positive.")
    if not 0 < risk.medium_ratio < 1:
        errors.append("Risk medium_ratio must be between 0 and 1.")
    for action, threshold in risk.high_thresholds.items():
        if threshold <= 0:
            errors.append(f"Risk threshold for '{action}' must be positive.")

    retry = config.retry
    if retry.max_attempts <= 0:
        errors.append("Retry max_attempts must be positive.")
    if retry.base_delay_ms < 0 or retry.max_delay_ms < retry.base_delay_ms:
        errors.append("Retry delays must satisfy 0 <= base_delay_ms <= max_delay_ms.")

    if config.rpc_timeout_seconds <= 0:
        errors.append("RPC timeout must be positive.")

    storage = config.storage
    if storage.backend not in ("memory", "sqlalchemy"):
        errors.append(f"Unsupported storage backend '{storage.backend}'.")

    return errors


__all__ = ["is_valid_identifier", "validate_config", "validate_identifier", "validate_price"]
