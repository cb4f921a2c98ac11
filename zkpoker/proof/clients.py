"""
HTTP adapters for the external proof services.

CircuitClient drives the circuit-execution service, which runs the hand
circuit with the hole cards and salt as private inputs. The circuit
recomputes the rank itself, so a false claim makes it refuse to produce a
proof rather than produce a wrong one. The same service computes the
Poseidon2 circuit commitments bound at hand start.

AttestationClient submits a finished proof to the remote attestation
service for an independent check.
"""

from __future__ import annotations
import base64
import binascii
import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from zkpoker.crypto.poseidon import CircuitCommitter, parse_field_hex
from zkpoker.errors import ProofInfeasible, RemoteUnavailable, VerificationFailure
from zkpoker.proof.artifacts import AttestationReceipt, ProofArtifact, PublicInputs


logger = logging.getLogger(__name__)

# Client errors that mean "try later" rather than "refused"
RETRYABLE_4XX = (408, 429)


class _ServiceClient:
    """Shared httpx plumbing: transport failures become RemoteUnavailable."""

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _post(self, path: str, payload: Dict[str, Any]) -> httpx.Response:
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"{self.service_name} timed out: {e}")
        except httpx.RequestError as e:
            raise RemoteUnavailable(f"{self.service_name} unreachable: {e}")
        if response.status_code >= 500:
            raise RemoteUnavailable(f"{self.service_name} error {response.status_code}")
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def aclose(self) -> None:
        await self._client.aclose()


class CircuitClient(_ServiceClient, CircuitCommitter):
    """
    Circuit-execution service.

    POST /prove
        {"private_inputs": {"hole_cards": [..], "salt": "<decimal field>"},
         "public_inputs": {"commitment": "0x..", "community_cards": [..], "claimed_rank": n}}
    -> 200 {"proof": "<base64>"}
    -> 422 {"error": "..."} when the circuit's constraints fail

    POST /commit {"hole_cards": [..], "salt": "<decimal field>"}
    -> 200 {"commitment": "0x.."}, Poseidon2 from the commit circuit
    """

    service_name = "circuit service"

    async def prove(
        self,
        hole_cards: Sequence[int],
        salt_field: int,
        public_inputs: PublicInputs,
    ) -> ProofArtifact:
        response = await self._post("/prove", {
            "private_inputs": {"hole_cards": list(hole_cards), "salt": str(salt_field)},
            "public_inputs": public_inputs.to_dict(),
        })
        body = self._json(response)

        if response.status_code in (400, 422) or body.get("error"):
            raise ProofInfeasible(
                f"Circuit refused rank {public_inputs.claimed_rank}: "
                f"{body.get('error', response.status_code)}"
            )
        if response.status_code != 200 or "proof" not in body:
            raise RemoteUnavailable(f"Unexpected circuit response {response.status_code}")

        try:
            proof = base64.b64decode(body["proof"], validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise RemoteUnavailable("Circuit service returned a malformed proof")
        logger.debug(f"Circuit produced {len(proof)}-byte proof for rank {public_inputs.claimed_rank}")
        return ProofArtifact(proof=proof, public_inputs=public_inputs)

    async def commit(self, cards: Sequence[int], salt_field: int) -> int:
        response = await self._post("/commit", {"hole_cards": list(cards), "salt": str(salt_field)})
        body = self._json(response)
        if response.status_code != 200 or "commitment" not in body:
            raise RemoteUnavailable(
                f"Circuit service returned no commitment ({response.status_code}): {body.get('error', '')}"
            )
        try:
            return parse_field_hex(body["commitment"])
        except ValueError as e:
            raise RemoteUnavailable(f"Circuit service returned a bad commitment: {e}")


class AttestationClient(_ServiceClient):
    """
    Remote attestation service.

    POST /attestations {"proof": "<base64>", "proof_hash": "..", "public_inputs": {..}}
    -> 200 {"verified": bool, "attestation_id": "..", "block_hash": "..", "tx_hash": ".."}
    -> 4xx when the service refuses the submission; that is a verdict, not an outage
    """

    service_name = "attestation service"

    async def attest(self, artifact: ProofArtifact) -> AttestationReceipt:
        response = await self._post("/attestations", artifact.to_dict())
        body = self._json(response)
        if 400 <= response.status_code < 500 and response.status_code not in RETRYABLE_4XX:
            raise VerificationFailure(
                f"Attestation refused with HTTP {response.status_code}: {body.get('error', 'no reason given')}"
            )
        if response.status_code != 200:
            raise RemoteUnavailable(f"Unexpected attestation response {response.status_code}")
        return AttestationReceipt(
            verified=bool(body.get("verified", False)),
            attestation_id=body.get("attestation_id"),
            block_reference=body.get("block_hash"),
            tx_reference=body.get("tx_hash"),
        )
