"""
Configuration for zkpoker.

Settings come from a YAML file (path argument or $ZKPOKER_CONFIG) and are
validated with pydantic. A handful of environment variables override the
file so deployments can repoint services without editing it:

    ZKPOKER_LOG_LEVEL, ZKPOKER_LEDGER_URL, ZKPOKER_CIRCUIT_URL,
    ZKPOKER_ATTESTATION_URL
"""

from __future__ import annotations
import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from zkpoker.core.rules import DEFAULT_BIG_BLIND, DEFAULT_BUY_IN, DEFAULT_SMALL_BLIND
from zkpoker.retry import RetryPolicy


logger = logging.getLogger(__name__)

CONFIG_ENV = "ZKPOKER_CONFIG"

ENV_OVERRIDES = {
    "ZKPOKER_LOG_LEVEL": ("logging", "level"),
    "ZKPOKER_LEDGER_URL": ("ledger", "url"),
    "ZKPOKER_CIRCUIT_URL": ("proof", "circuit_url"),
    "ZKPOKER_ATTESTATION_URL": ("proof", "attestation_url"),
}


class TableConfig(BaseModel):
    """Blinds, stacks and seats."""
    small_blind: int = Field(gt=0, default=DEFAULT_SMALL_BLIND)
    big_blind: int = Field(gt=0, default=DEFAULT_BIG_BLIND)
    buy_in: int = Field(gt=0, default=DEFAULT_BUY_IN)
    human_id: str = "human"
    bot_id: str = "bot"
    bot_agent: str = "call"
    decision_timeout: float = Field(gt=0, default=10.0)

    @model_validator(mode="after")
    def check_blinds(self) -> "TableConfig":
        if self.big_blind < self.small_blind:
            raise ValueError("big_blind must be >= small_blind")
        if self.buy_in < self.big_blind:
            raise ValueError("buy_in must cover at least one big blind")
        return self


class RetrySettings(BaseModel):
    max_attempts: int = Field(ge=1, default=3)
    base_delay: float = Field(ge=0, default=2.0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, base_delay=self.base_delay)


class LedgerConfig(BaseModel):
    """Where ledger writes go and how they are retried."""
    backend: str = "memory"
    url: Optional[str] = None
    signer: str = "house"
    timeout: float = Field(gt=0, default=10.0)
    confirm_delay: float = Field(ge=0, default=0.0)
    poll_interval: float = Field(gt=0, default=3.0)
    max_polls: int = Field(ge=1, default=15)
    sequence_retry: RetrySettings = RetrySettings(max_attempts=3, base_delay=4.0)
    busy_retry: RetrySettings = RetrySettings(max_attempts=4, base_delay=2.0)

    @field_validator("backend")
    @classmethod
    def check_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("memory", "http"):
            raise ValueError("ledger.backend must be 'memory' or 'http'")
        return value

    @model_validator(mode="after")
    def check_url(self) -> "LedgerConfig":
        if self.backend == "http" and not self.url:
            raise ValueError("ledger.url is required for the http backend")
        return self


class ProofConfig(BaseModel):
    """External proof services and the local verifier."""
    enabled: bool = False
    circuit_url: Optional[str] = None
    attestation_url: Optional[str] = None
    verifier_binary: str = "bb"
    commitment_backend: str = "service"
    nargo_binary: str = "nargo"
    commit_timeout: float = Field(gt=0, default=30.0)
    verification_key: Optional[str] = None
    prove_timeout: float = Field(gt=0, default=60.0)
    verify_timeout: float = Field(gt=0, default=30.0)
    attestation_retry: RetrySettings = RetrySettings(max_attempts=3, base_delay=2.0)

    @field_validator("commitment_backend")
    @classmethod
    def check_commitment_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in ("service", "nargo"):
            raise ValueError("proof.commitment_backend must be 'service' or 'nargo'")
        return value

    @model_validator(mode="after")
    def check_services(self) -> "ProofConfig":
        if self.enabled and not (self.circuit_url and self.verification_key):
            raise ValueError("proof.circuit_url and proof.verification_key are required when proofs are enabled")
        return self


class SettlementConfig(BaseModel):
    timeout: float = Field(gt=0, default=120.0)
    # LOCAL_ONLY hands whose salts stay available for a retry
    retain_unsettled: int = Field(ge=0, default=8)
    history: int = Field(ge=1, default=256)


class LoggingConfig(BaseModel):
    level: str = "INFO"

    @field_validator("level")
    @classmethod
    def check_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value


class Config(BaseModel):
    table: TableConfig = TableConfig()
    ledger: LedgerConfig = LedgerConfig()
    proof: ProofConfig = ProofConfig()
    settlement: SettlementConfig = SettlementConfig()
    logging: LoggingConfig = LoggingConfig()


def _apply_env_overrides(data: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if value:
            data.setdefault(section, {})[key] = value
            if var == "ZKPOKER_LEDGER_URL":
                data[section].setdefault("backend", "http")
            elif var == "ZKPOKER_CIRCUIT_URL":
                data[section].setdefault("enabled", True)
    return data


def load_config(path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Load configuration.

    Args:
        path: YAML file; falls back to $ZKPOKER_CONFIG, then to defaults
        environ: Environment mapping (os.environ if omitted)

    Raises:
        FileNotFoundError: An explicit config path does not exist
        pydantic.ValidationError: Invalid settings
    """
    environ = dict(os.environ if environ is None else environ)
    path = path or environ.get(CONFIG_ENV)

    data: Dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
        if loaded is None:
            logger.warning(f"Config file {path} is empty, using defaults")
        elif not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        else:
            data = loaded
        logger.info(f"Loaded configuration from {path}")

    return Config.model_validate(_apply_env_overrides(data, environ))
