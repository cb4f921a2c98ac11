"""
Tests for YAML configuration loading and environment overrides.
"""

import pydantic
import pytest
from zkpoker.config import Config, load_config
from zkpoker.retry import RetryPolicy


def write(tmp_path, text):
    path = tmp_path / "zkpoker.yaml"
    path.write_text(text, encoding="utf-8")
    return str(path)


class TestDefaults:

    def test_no_file(self):
        """Test defaults without a file or environment."""
        config = load_config(environ={})
        assert config.table.big_blind == 20
        assert config.table.small_blind == 10
        assert config.ledger.backend == "memory"
        assert not config.proof.enabled
        assert config.logging.level == "INFO"
        assert config.proof.commitment_backend == "service"
        assert config.settlement.retain_unsettled == 8
        assert config.settlement.history == 256

    def test_empty_file(self, tmp_path):
        """Test an empty file falls back to defaults."""
        assert load_config(write(tmp_path, ""), environ={}) == Config()

    def test_retry_policy(self):
        """Test retry settings build a policy."""
        policy = Config().ledger.busy_retry.policy()
        assert isinstance(policy, RetryPolicy)
        assert policy.max_attempts == 4


class TestYamlFile:

    def test_sections(self, tmp_path):
        """Test values from every section are read."""
        path = write(tmp_path, """
table:
  small_blind: 5
  big_blind: 10
  buy_in: 400
  bot_agent: random
ledger:
  backend: HTTP
  url: http://ledger.local
  sequence_retry:
    max_attempts: 5
    base_delay: 0.5
proof:
  enabled: true
  circuit_url: http://prover.local
  verification_key: /keys/vk
  commitment_backend: Nargo
settlement:
  timeout: 30
  retain_unsettled: 0
logging:
  level: debug
""")
        config = load_config(path, environ={})
        assert config.table.buy_in == 400
        assert config.table.bot_agent == "random"
        assert config.ledger.backend == "http"
        assert config.ledger.sequence_retry.max_attempts == 5
        assert config.proof.enabled
        assert config.proof.attestation_url is None
        assert config.settlement.timeout == 30
        assert config.settlement.retain_unsettled == 0
        assert config.proof.commitment_backend == "nargo"
        assert config.logging.level == "DEBUG"

    def test_path_from_environment(self, tmp_path):
        """Test ZKPOKER_CONFIG names the file."""
        path = write(tmp_path, "table:\n  buy_in: 300\n")
        config = load_config(environ={"ZKPOKER_CONFIG": path})
        assert config.table.buy_in == 300

    def test_missing_file(self, tmp_path):
        """Test an explicit path must exist."""
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.yaml"), environ={})

    def test_not_a_mapping(self, tmp_path):
        """Test a YAML list is rejected."""
        with pytest.raises(ValueError):
            load_config(write(tmp_path, "- a\n- b\n"), environ={})


class TestEnvironmentOverrides:

    def test_ledger_url_selects_http(self):
        """Test a ledger URL switches to the http backend."""
        config = load_config(environ={"ZKPOKER_LEDGER_URL": "http://ledger.env"})
        assert config.ledger.url == "http://ledger.env"
        assert config.ledger.backend == "http"

    def test_file_backend_wins(self, tmp_path):
        """Test an explicit backend in the file is kept."""
        path = write(tmp_path, "ledger:\n  backend: memory\n")
        config = load_config(path, environ={"ZKPOKER_LEDGER_URL": "http://ledger.env"})
        assert config.ledger.backend == "memory"
        assert config.ledger.url == "http://ledger.env"

    def test_circuit_url_needs_key(self):
        """Test enabling proofs from the environment still needs a verification key."""
        with pytest.raises(pydantic.ValidationError):
            load_config(environ={"ZKPOKER_CIRCUIT_URL": "http://prover.env"})

    def test_circuit_url_with_key(self, tmp_path):
        """Test proofs are enabled by the circuit URL."""
        path = write(tmp_path, "proof:\n  verification_key: /keys/vk\n")
        config = load_config(path, environ={
            "ZKPOKER_CIRCUIT_URL": "http://prover.env",
            "ZKPOKER_ATTESTATION_URL": "http://attest.env",
            "ZKPOKER_LOG_LEVEL": "warning",
        })
        assert config.proof.enabled
        assert config.proof.attestation_url == "http://attest.env"
        assert config.logging.level == "WARNING"


class TestValidation:

    @pytest.mark.parametrize("text", [
        "table:\n  small_blind: 30\n  big_blind: 20\n",
        "table:\n  buy_in: 10\n",
        "table:\n  big_blind: 0\n",
        "ledger:\n  backend: sql\n",
        "ledger:\n  backend: http\n",
        "proof:\n  enabled: true\n",
        "logging:\n  level: chatty\n",
        "settlement:\n  timeout: 0\n",
        "proof:\n  commitment_backend: wasm\n",
        "settlement:\n  history: 0\n",
    ])
    def test_invalid(self, tmp_path, text):
        """Test inconsistent settings are rejected."""
        with pytest.raises(pydantic.ValidationError):
            load_config(write(tmp_path, text), environ={})
