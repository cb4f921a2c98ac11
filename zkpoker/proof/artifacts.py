"""
Proof and attestation data types.
"""

from __future__ import annotations
import base64
import hashlib
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

# The ledger stores proofs in a fixed 128-byte slot: the SHA-256 of the full
# proof followed by zero padding.
CONTRACT_PROOF_SIZE = 128


@dataclass(frozen=True)
class PublicInputs:
    """What the proof is about: bound commitment, board and claimed rank."""
    commitment: int
    community_cards: Tuple[int, ...]
    claimed_rank: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commitment": f"0x{self.commitment:064x}",
            "community_cards": list(self.community_cards),
            "claimed_rank": self.claimed_rank,
        }

    def to_fields(self) -> Tuple[int, ...]:
        """Public inputs in circuit order."""
        return (self.commitment, *self.community_cards, self.claimed_rank)


@dataclass(frozen=True)
class ProofArtifact:
    """An opaque proof plus the public inputs it was generated for."""
    proof: bytes
    public_inputs: PublicInputs

    @property
    def proof_hash(self) -> str:
        return hashlib.sha256(self.proof).hexdigest()

    @property
    def contract_proof(self) -> bytes:
        digest = hashlib.sha256(self.proof).digest()
        return digest + bytes(CONTRACT_PROOF_SIZE - len(digest))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof": base64.b64encode(self.proof).decode("ascii"),
            "proof_hash": self.proof_hash,
            "public_inputs": self.public_inputs.to_dict(),
        }


@dataclass(frozen=True)
class AttestationReceipt:
    """Answer of the remote attestation service."""
    verified: bool
    attestation_id: Optional[str] = None
    block_reference: Optional[str] = None
    tx_reference: Optional[str] = None


@dataclass
class Attestation:
    """
    Evidence that a proof was verified.

    fallback=True marks an attestation backed only by local verification
    (remote service unreachable). established turns True once the ledger
    has confirmed the record.
    """
    attestation_id: str
    proof_hash: str
    claimed_rank: int
    verified: bool
    remote_reference: Optional[str] = None
    fallback: bool = False
    established: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attestation_id": self.attestation_id,
            "proof_hash": self.proof_hash,
            "claimed_rank": self.claimed_rank,
            "verified": self.verified,
            "remote_reference": self.remote_reference,
            "fallback": self.fallback,
            "established": self.established,
        }


@dataclass
class VerifiedProof:
    """A proof that passed local verification, with its (pending) attestation."""
    player_id: str
    artifact: ProofArtifact
    attestation: Attestation
