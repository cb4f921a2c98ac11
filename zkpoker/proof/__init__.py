"""
Proof generation and two-layer verification.
"""

from zkpoker.proof.artifacts import Attestation, ProofArtifact, PublicInputs, VerifiedProof
from zkpoker.proof.clients import AttestationClient, CircuitClient
from zkpoker.proof.pipeline import ProofPipeline
from zkpoker.proof.verifier import BarretenbergVerifier, LocalVerifier

__all__ = [
    "Attestation",
    "ProofArtifact",
    "PublicInputs",
    "VerifiedProof",
    "AttestationClient",
    "CircuitClient",
    "ProofPipeline",
    "BarretenbergVerifier",
    "LocalVerifier",
]
