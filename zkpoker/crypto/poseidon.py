"""
Proof-domain commitment: Poseidon2 over the BN254 scalar field.

The hand circuit checks

    poseidon2_permutation([card0, card1, salt, 0], 4)[0] == commitment

so the commitment has to come out of that exact permutation, with the Noir
standard library's parameters. Both committers below run the same one-line
commit circuit through the toolchain that builds the hand circuit, which keeps
the two in lockstep across toolchain upgrades:

- NargoCommitter executes the circuit locally with `nargo execute`;
- CircuitClient.commit (zkpoker.proof.clients) asks the circuit service.
"""

from __future__ import annotations
import asyncio
import logging
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from zkpoker.errors import RemoteUnavailable


logger = logging.getLogger(__name__)

BN254_MODULUS = 0x30644E72E131A029B85045B68181585D2833E84879B9709143E1F593F0000001

COMMIT_PACKAGE = "poseidon2_commit"

COMMIT_CIRCUIT = """fn main(card0: u8, card1: u8, salt: Field) -> pub Field {
    let hash_state: [Field; 4] = [card0 as Field, card1 as Field, salt, 0];
    let result = std::hash::poseidon2_permutation(hash_state, 4);
    result[0]
}
"""

NARGO_TOML = f"""[package]
name = "{COMMIT_PACKAGE}"
type = "bin"
authors = [""]
compiler_version = ">=0.31.0"
[dependencies]
"""

OUTPUT_PATTERN = re.compile(r"Circuit output:\s*(0x[0-9a-fA-F]+)")


def parse_field_hex(text: str) -> int:
    """
    Parse a 0x-prefixed field element.

    Raises:
        ValueError: Not hex, or not below the BN254 modulus
    """
    try:
        value = int(text, 16)
    except (TypeError, ValueError):
        raise ValueError(f"Not a hex field element: {text!r}")
    if not 0 <= value < BN254_MODULUS:
        raise ValueError(f"Value is not a BN254 field element: {text}")
    return value


def prover_toml(cards: Sequence[int], salt_field: int) -> str:
    """Inputs for the commit circuit; the salt goes in as a decimal string."""
    first, second = cards
    return f'card0 = {first}\ncard1 = {second}\nsalt = "{salt_field}"\n'


class CircuitCommitter(ABC):
    """Computes Poseidon2(card0, card1, salt) as the hand circuit does."""

    @abstractmethod
    async def commit(self, cards: Sequence[int], salt_field: int) -> int:
        """
        Raises:
            RemoteUnavailable: The toolchain or service produced no commitment
        """


class NargoCommitter(CircuitCommitter):
    """
    Runs the commit circuit with `nargo execute` in a scratch project.

    Same failure contract as BarretenbergVerifier: a missing binary, a hung
    process or output without a commitment raise RemoteUnavailable.
    """

    def __init__(self, binary: str = "nargo", timeout: float = 30.0):
        self.binary = binary
        self.timeout = timeout

    async def commit(self, cards: Sequence[int], salt_field: int) -> int:
        with tempfile.TemporaryDirectory(prefix="zkpoker-commit-") as scratch:
            project = Path(scratch)
            (project / "src").mkdir()
            (project / "Nargo.toml").write_text(NARGO_TOML, encoding="utf-8")
            (project / "src" / "main.nr").write_text(COMMIT_CIRCUIT, encoding="utf-8")
            (project / "Prover.toml").write_text(prover_toml(cards, salt_field), encoding="utf-8")

            try:
                process = await asyncio.create_subprocess_exec(
                    self.binary, "execute", "--package", COMMIT_PACKAGE,
                    cwd=scratch,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except FileNotFoundError:
                raise RemoteUnavailable(f"Circuit toolchain {self.binary!r} not found")

            try:
                stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()
                raise RemoteUnavailable(f"{self.binary} execute timed out after {self.timeout}s")

        output = stdout.decode(errors="replace") + stderr.decode(errors="replace")
        if process.returncode != 0:
            raise RemoteUnavailable(
                f"{self.binary} execute failed with exit code {process.returncode}: {output.strip()[:200]}"
            )

        match = OUTPUT_PATTERN.search(output)
        if match is None:
            raise RemoteUnavailable(f"No circuit output in {self.binary} execute result")
        try:
            return parse_field_hex(match.group(1))
        except ValueError as e:
            raise RemoteUnavailable(f"{self.binary} execute returned a bad commitment: {e}")
