"""Adapter for REST back-ends that open a transaction with the document inlined as base64."""

import base64
from typing import ClassVar

from invoice_lab.extraction.base import PollingAdapter
from invoice_lab.extraction.exceptions import TransportError
from invoice_lab.extraction.mime_types import TRANSACTION_POLL_TYPES
from invoice_lab.extraction.models import CheckResult, Document, Done, Failed, JobHandle, Pending

_PENDING_STATES = frozenset({"CREATED", "RUNNING"})


class TransactionPollAdapter(PollingAdapter):
    """Create a transaction, poll its state, then read its result."""

    PROTOCOL: ClassVar[str] = "transaction_poll"
    SUPPORTED_TYPES: ClassVar[dict[str, str]] = TRANSACTION_POLL_TYPES

    DEFAULT_FEATURES: ClassVar[tuple[str, ...]] = ("DEFAULT",)
    DEFAULT_TIER: ClassVar[str] = "PREMIUM"

    def submit(self, document: Document) -> JobHandle:
        content = base64.b64encode(document.content).decode("ascii")
        payload = {
            "document": {"content": content, "mimeType": document.mime_type},
            "features": [{"type": feature} for feature in self.DEFAULT_FEATURES],
            "tier": self.DEFAULT_TIER,
        }
        self._log.info(
            f"Opening transaction for {document.filename} "
            f"({len(document.content)} bytes, base64 length {len(content)})"
        )
        response = self._request("Transaction API", "POST", "/v1/transactions", json=payload)
        body = self._json("Transaction API", response)
        transaction_id = body.get("transactionId") if isinstance(body, dict) else None
        if not transaction_id:
            raise TransportError(
                "Transaction API response has no transactionId",
                status_code=response.status_code,
                body=response.text,
            )
        self._log.info(f"Transaction {transaction_id} created")
        return JobHandle(value=str(transaction_id), kind="transaction")

    def check(self, handle: JobHandle) -> CheckResult:
        response = self._request(
            "Transaction status API", "GET", f"/v1/transactions/{handle.value}"
        )
        body = self._json("Transaction status API", response)
        state = str(body.get("status", "")).upper() if isinstance(body, dict) else ""

        if state == "DONE":
            return Done(payload=self.fetch_result(handle))
        if state == "FAILED":
            reason = body.get("error") or body.get("message") or "Transaction failed"
            return Failed(reason=str(reason))
        if state not in _PENDING_STATES:
            self._log.warning(f"Transaction {handle.value} reported unknown state {state!r}")
        return Pending(status=state)

    def fetch_result(self, handle: JobHandle) -> object:
        response = self._request(
            "Transaction result API", "GET", f"/v1/transactions/{handle.value}/result"
        )
        return self._json("Transaction result API", response)

    def _auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}
