"""
Ledger access.

LedgerClient is the narrow interface the sequencer needs: read an account's
current sequence number, submit a signed operation at a given sequence, and
poll a transaction's status. HttpLedgerClient talks to a JSON gateway in
front of the chain; InMemoryLedger (ledger.memory) implements the same
interface in-process.
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import logging

import httpx

from zkpoker.errors import LedgerBusy, LedgerRejected, RemoteUnavailable, SequenceConflict
from zkpoker.ledger.operations import LedgerOperation, TxStatus


logger = logging.getLogger(__name__)


class LedgerClient(ABC):
    """Abstract ledger connection."""

    @abstractmethod
    async def get_sequence(self, signer: str) -> int:
        """Current (last used) sequence number of the signer's account."""

    @abstractmethod
    async def submit(self, operation: LedgerOperation, sequence: int) -> str:
        """
        Submit an operation signed at the given sequence number.

        Returns:
            Transaction reference for status polling

        Raises:
            SequenceConflict: sequence is stale or already used
            LedgerBusy: ledger asked to try again later
            LedgerRejected: operation refused outright
            RemoteUnavailable: ledger unreachable
        """

    @abstractmethod
    async def get_status(self, tx_reference: str) -> TxStatus:
        """Current status of a submitted transaction."""

    async def aclose(self) -> None:
        pass


class HttpLedgerClient(LedgerClient):
    """
    Ledger gateway over HTTP.

    Endpoints:
        GET  /accounts/{signer}          -> {"sequence": int}
        POST /transactions               -> {"tx_reference": str}
        GET  /transactions/{reference}   -> {"status": "PENDING" | "SUCCESS" | "FAILED"}
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RemoteUnavailable(f"Ledger timed out on {method} {path}: {e}")
        except httpx.RequestError as e:
            raise RemoteUnavailable(f"Ledger unreachable on {method} {path}: {e}")

    @staticmethod
    def _body(response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def get_sequence(self, signer: str) -> int:
        response = await self._request("GET", f"/accounts/{signer}")
        if response.status_code >= 500:
            raise RemoteUnavailable(f"Ledger error {response.status_code} reading {signer}")
        if response.status_code != 200:
            raise LedgerRejected(f"Cannot read account {signer}: HTTP {response.status_code}")
        return int(self._body(response)["sequence"])

    async def submit(self, operation: LedgerOperation, sequence: int) -> str:
        response = await self._request(
            "POST",
            "/transactions",
            json={"operation": operation.to_dict(), "sequence": sequence},
        )
        body = self._body(response)
        code = str(body.get("code", "")).lower()

        if code in ("bad_seq", "txbadseq") or response.status_code == 409:
            raise SequenceConflict(
                f"Sequence {sequence} rejected for {operation.signer}", hand_id=operation.hand_id
            )
        if code == "try_again_later" or response.status_code in (429, 503):
            raise LedgerBusy(f"Ledger busy, {operation.kind.value} not accepted", hand_id=operation.hand_id)
        if response.status_code >= 500:
            raise RemoteUnavailable(f"Ledger error {response.status_code}", hand_id=operation.hand_id)
        if response.status_code >= 400:
            raise LedgerRejected(
                f"{operation.kind.value} rejected: {body.get('error', response.status_code)}",
                hand_id=operation.hand_id,
            )
        return str(body["tx_reference"])

    async def get_status(self, tx_reference: str) -> TxStatus:
        response = await self._request("GET", f"/transactions/{tx_reference}")
        if response.status_code == 404:
            return TxStatus.NOT_FOUND
        if response.status_code >= 500:
            raise RemoteUnavailable(f"Ledger error {response.status_code} polling {tx_reference}")
        status = str(self._body(response).get("status", "PENDING")).upper()
        try:
            return TxStatus(status)
        except ValueError:
            logger.warning(f"Unknown transaction status {status!r} for {tx_reference}")
            return TxStatus.PENDING

    async def aclose(self) -> None:
        await self._client.aclose()
