from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Sequence
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from app.pdv.core.money import money_str
from app.pdv.db.models import Sale
from app.pdv.services.collaborators import (
    FISCAL_STATUSES,
    CaptureResult,
    FiscalCancelResult,
    FiscalDocument,
    FiscalServiceError,
)

logger = logging.getLogger(__name__)

_FISCAL_STATUS_ALIASES = {
    "authorized": "issued",
    "approved": "issued",
    "denied": "rejected",
    "canceled": "cancelled",
}


def map_fiscal_status(api_status: str | None) -> str:
    """Normalizes an authority status; anything unrecognized stays pending."""
    if not api_status:
        return "pending"
    status = api_status.strip().lower()
    status = _FISCAL_STATUS_ALIASES.get(status, status)
    return status if status in FISCAL_STATUSES else "pending"


def _build_session(max_connections: int) -> requests.Session:
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=max_connections, pool_maxsize=max_connections)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        return str(payload.get("message") or payload.get("detail") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"


class _HttpService:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float,
        session: requests.Session | None = None,
        max_connections: int = 10,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or _build_session(max_connections)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip("/"))

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, path: str, payload: dict[str, Any]) -> requests.Response:
        return self.session.post(self._url(path), json=payload, headers=self._headers(), timeout=self.timeout)


class HttpPaymentGateway(_HttpService):
    """Captures card, pix and voucher payments on an external gateway."""

    def capture(self, sale_ref: str, amount: Decimal, method: str) -> CaptureResult:
        try:
            response = self._post(
                "/payments",
                {"reference": sale_ref, "amount": money_str(amount), "method": method},
            )
        except requests.RequestException as exc:
            logger.warning("Payment gateway unreachable for sale %s: %s", sale_ref, exc)
            return CaptureResult(success=False, message=f"payment gateway unreachable: {exc.__class__.__name__}")
        if response.status_code >= 400:
            return CaptureResult(success=False, message=_error_message(response))
        data = response.json()
        return CaptureResult(
            success=bool(data.get("success")),
            transaction_id=data.get("transaction_id"),
            authorization_code=data.get("authorization_code"),
            message=str(data.get("message") or ""),
        )


class HttpFiscalService(_HttpService):
    """Issues and cancels fiscal documents on the fiscal authority's API."""

    def issue(self, sale: Sale, lines: Sequence[object], document_type: str) -> FiscalDocument:
        payload = self._document_payload(sale, lines, document_type)
        try:
            response = self._post("/documents", payload)
        except requests.RequestException as exc:
            raise FiscalServiceError(f"fiscal service unreachable: {exc.__class__.__name__}") from exc
        if response.status_code not in (200, 201):
            raise FiscalServiceError(f"fiscal issuance failed: {_error_message(response)}")
        data = response.json()
        return FiscalDocument(
            id=str(data["id"]),
            number=str(data.get("document_number") or ""),
            status=map_fiscal_status(data.get("status")),
            message=data.get("status_message"),
        )

    def cancel(self, document_id: str, reason: str) -> FiscalCancelResult:
        try:
            response = self._post(f"/documents/{document_id}/cancel", {"reason": reason})
        except requests.RequestException as exc:
            return FiscalCancelResult(success=False, message=f"fiscal service unreachable: {exc.__class__.__name__}")
        if response.status_code >= 400:
            return FiscalCancelResult(success=False, message=_error_message(response))
        return FiscalCancelResult(success=True, message="fiscal document cancelled")

    @staticmethod
    def _document_payload(sale: Sale, lines: Sequence[object], document_type: str) -> dict[str, Any]:
        return {
            "document_type": document_type,
            "reference": str(sale.id),
            "customer_id": str(sale.customer_id) if sale.customer_id else None,
            "items": [
                {
                    "sku": line.sku,
                    "name": line.name,
                    "quantity": line.quantity,
                    "unit_price": money_str(line.unit_price),
                    "total": money_str(line.total),
                    "tax_rate": format(line.tax_rate, "f"),
                    "tax_amount": money_str(line.tax_amount),
                }
                for line in lines
            ],
            "payments": [
                {"method": payment.method, "amount": money_str(payment.amount)} for payment in sale.payments
            ],
            "subtotal": money_str(sale.subtotal),
            "discount_amount": money_str(sale.discount_amount),
            "tax_amount": money_str(sale.tax_amount),
            "total": money_str(sale.total),
        }
