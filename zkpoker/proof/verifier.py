"""
Layer-1 proof verification, run locally.
"""

from __future__ import annotations
import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

from zkpoker.errors import RemoteUnavailable
from zkpoker.proof.artifacts import ProofArtifact


logger = logging.getLogger(__name__)


class LocalVerifier(ABC):
    """Checks a proof against the circuit's verification key."""

    @abstractmethod
    async def verify(self, artifact: ProofArtifact) -> bool:
        """True if the proof verifies; False on a negative result."""


class BarretenbergVerifier(LocalVerifier):
    """
    Runs `bb verify` on the proof.

    The proof and its public inputs (32-byte big-endian fields, circuit
    order) are written to a scratch directory for the duration of the call.
    A missing binary or a hung process raises RemoteUnavailable, since no
    verdict was reached; only a completed run that exits non-zero is False.
    """

    def __init__(self, verification_key: str, binary: str = "bb", timeout: float = 30.0):
        self.verification_key = verification_key
        self.binary = binary
        self.timeout = timeout

    async def verify(self, artifact: ProofArtifact) -> bool:
        with tempfile.TemporaryDirectory(prefix="zkpoker-verify-") as scratch:
            proof_path = Path(scratch) / "proof"
            inputs_path = Path(scratch) / "public_inputs"
            proof_path.write_bytes(artifact.proof)
            inputs_path.write_bytes(
                b"".join(v.to_bytes(32, "big") for v in artifact.public_inputs.to_fields())
            )

            try:
                process = await asyncio.create_subprocess_exec(
                    self.binary, "verify",
                    "-k", self.verification_key,
                    "-p", str(proof_path),
                    "-i", str(inputs_path),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError:
                raise RemoteUnavailable(f"Verifier binary {self.binary!r} not found")

            try:
                _, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise RemoteUnavailable(f"{self.binary} verify timed out after {self.timeout}s")

        if process.returncode != 0:
            logger.warning(
                f"Local verification rejected proof {artifact.proof_hash[:16]}: "
                f"{stderr.decode(errors='replace').strip()}"
            )
            return False
        return True
