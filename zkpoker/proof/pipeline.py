"""
Proof pipeline: turns a player's showdown claim into a verified proof.

Two verification layers:

1. Local: the proof is checked against the circuit's verification key before
   anything leaves the process. A negative here is a VerificationFailure.
2. Remote attestation: an independent service checks the proof again. It is
   best effort. If the service is unreachable the pipeline continues on the
   local result and marks the attestation as a fallback. A remote "not
   verified" is never overridden.

An impossible rank claim is surfaced as ProofInfeasible; the pipeline never
retries with a different rank.
"""

from __future__ import annotations
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence

from zkpoker.core.card import Card, validate_card_ints
from zkpoker.core.hand import HandRank, circuit_rank
from zkpoker.core.rules import TOTAL_COMMUNITY_CARDS
from zkpoker.crypto.commitment import Commitment, salt_to_field
from zkpoker.errors import (
    CommitmentMismatch,
    ProofInfeasible,
    RemoteUnavailable,
    VerificationFailure,
)
from zkpoker.proof.artifacts import Attestation, ProofArtifact, PublicInputs, VerifiedProof
from zkpoker.proof.clients import AttestationClient, CircuitClient
from zkpoker.proof.verifier import LocalVerifier
from zkpoker.retry import RetryPolicy


logger = logging.getLogger(__name__)

FALLBACK_PREFIX = "local-verify-"


class ProofPipeline:
    """
    Generates and verifies hand-rank proofs.

    Args:
        circuit: Circuit-execution service
        verifier: Layer-1 local verifier
        attestation: Remote attestation service, None to run local-only
        attestation_retry: Retry policy for unreachable attestation service
        prove_timeout: Seconds to wait for the circuit before giving up
    """

    def __init__(
        self,
        circuit: CircuitClient,
        verifier: LocalVerifier,
        attestation: Optional[AttestationClient] = None,
        attestation_retry: RetryPolicy = RetryPolicy(max_attempts=3, base_delay=2.0),
        prove_timeout: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.circuit = circuit
        self.verifier = verifier
        self.attestation = attestation
        self.attestation_retry = attestation_retry
        self.prove_timeout = prove_timeout
        self._sleep = sleep

    async def prove_and_verify(
        self,
        hole_cards: Sequence[int],
        community_cards: Sequence[int],
        claimed_rank: int,
        commitment: Commitment,
        player_id: str = "",
        hand_id: Optional[int] = None,
    ) -> VerifiedProof:
        """
        Prove that hole_cards + community_cards make claimed_rank under the
        bound commitment, then verify the proof.

        Raises:
            CommitmentMismatch: hole_cards are not the committed cards
            ProofInfeasible: The claim is impossible or the circuit refused it
            VerificationFailure: A verifier rejected the proof
            RemoteUnavailable: The circuit service could not produce a proof
        """
        self._check_claim(hole_cards, community_cards, claimed_rank, commitment, hand_id)

        public = PublicInputs(
            commitment=commitment.circuit_commitment,
            community_cards=tuple(community_cards),
            claimed_rank=claimed_rank,
        )
        try:
            artifact = await asyncio.wait_for(
                self.circuit.prove(hole_cards, salt_to_field(commitment.salt), public),
                self.prove_timeout,
            )
        except asyncio.TimeoutError:
            raise RemoteUnavailable(
                f"Proof for {player_id} not produced within {self.prove_timeout}s",
                hand_id=hand_id,
            )
        except ProofInfeasible as e:
            e.hand_id = hand_id
            raise

        if not await self.verifier.verify(artifact):
            raise VerificationFailure(
                f"Local verification failed for {player_id} (proof {artifact.proof_hash[:16]})",
                hand_id=hand_id,
            )
        logger.info(f"Proof for {player_id} verified locally: rank {HandRank(claimed_rank).name}")

        attestation = await self._attest(artifact, player_id, hand_id)
        return VerifiedProof(player_id=player_id, artifact=artifact, attestation=attestation)

    def _check_claim(
        self,
        hole_cards: Sequence[int],
        community_cards: Sequence[int],
        claimed_rank: int,
        commitment: Commitment,
        hand_id: Optional[int],
    ) -> None:
        if not commitment.matches(hole_cards):
            raise CommitmentMismatch("Hole cards differ from the bound commitment", hand_id=hand_id)
        if not commitment.provable:
            raise ProofInfeasible("No circuit commitment was bound for this hand", hand_id=hand_id)
        if len(community_cards) != TOTAL_COMMUNITY_CARDS:
            raise ProofInfeasible(
                f"Proof needs a full board, got {len(community_cards)} cards", hand_id=hand_id
            )
        try:
            validate_card_ints(list(hole_cards) + list(community_cards))
        except ValueError as e:
            raise ProofInfeasible(str(e), hand_id=hand_id)
        if not 0 <= claimed_rank <= 9:
            raise ProofInfeasible(f"Rank {claimed_rank} out of range", hand_id=hand_id)

        # The circuit would reject it anyway; skip the round trip
        cards = [Card.from_int(c) for c in list(hole_cards) + list(community_cards)]
        actual = circuit_rank(cards)
        if actual != claimed_rank:
            raise ProofInfeasible(
                f"Claimed rank {claimed_rank} but cards make {actual}", hand_id=hand_id
            )

    async def _attest(self, artifact: ProofArtifact, player_id: str, hand_id: Optional[int]) -> Attestation:
        rank = artifact.public_inputs.claimed_rank
        if self.attestation is None:
            return self._fallback(artifact)

        try:
            receipt = await self.attestation_retry.run(
                lambda: self.attestation.attest(artifact),
                retry_on=(RemoteUnavailable,),
                sleep=self._sleep,
                label=f"attestation for {player_id}",
            )
        except RemoteUnavailable as e:
            logger.warning(f"Attestation service unavailable for {player_id}, using local result: {e}")
            return self._fallback(artifact)
        except VerificationFailure as e:
            e.hand_id = hand_id
            raise

        if not receipt.verified:
            raise VerificationFailure(
                f"Remote attestation rejected proof {artifact.proof_hash[:16]} for {player_id}",
                hand_id=hand_id,
            )
        if not receipt.attestation_id:
            logger.warning(f"Attestation for {player_id} verified without an id, using local id")
            attestation = self._fallback(artifact)
            attestation.remote_reference = receipt.tx_reference or receipt.block_reference
            return attestation
        return Attestation(
            attestation_id=receipt.attestation_id,
            proof_hash=artifact.proof_hash,
            claimed_rank=rank,
            verified=True,
            remote_reference=receipt.tx_reference or receipt.block_reference,
        )

    @staticmethod
    def _fallback(artifact: ProofArtifact) -> Attestation:
        return Attestation(
            attestation_id=f"{FALLBACK_PREFIX}{artifact.proof_hash[:16]}",
            proof_hash=artifact.proof_hash,
            claimed_rank=artifact.public_inputs.claimed_rank,
            verified=True,
            fallback=True,
        )
