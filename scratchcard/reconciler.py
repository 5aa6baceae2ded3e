"""
HTTP boundary to the reward ledger.

The reconciler does not deduplicate: callers check the RevealGuard and the
card status first. It only translates transport and HTTP failures into the
errors in scratchcard.errors so the state machine can recover.
"""

import logging
from typing import List, Optional

import requests

from scratchcard.config import ScratchConfig
from scratchcard.errors import (AlreadyCredited, AlreadyRevealed, AuthRequired, CardNotFound,
                                NetworkFailure, Timeout, UnknownServerError)
from scratchcard.models import ScratchCard

logger = logging.getLogger(__name__)

AUTH_HINTS = ("token", "authentication", "access denied")


def _payload(resp: requests.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def error_from_response(resp: requests.Response, action: str):
    data = _payload(resp)
    message = data.get("message") or f"Failed to {action} scratch card"
    low = message.lower()
    code = resp.status_code
    if code in (401, 403) or any(h in low for h in AUTH_HINTS):
        return AuthRequired(message, code)
    if code == 404:
        return CardNotFound(message, code)
    if code == 400 or code == 409:
        amount = (data.get("data") or {}).get("amount")
        if "already credited" in low:
            if action == "reveal":
                return AlreadyRevealed(message, status="credited", amount=amount, status_code=code)
            return AlreadyCredited(message, amount=amount, status_code=code)
        if "already revealed" in low:
            if action == "credit":
                return UnknownServerError(message, code)
            return AlreadyRevealed(message, status="revealed", amount=amount, status_code=code)
        if "already expired" in low and action == "reveal":
            return AlreadyRevealed(message, status="expired", status_code=code)
    return UnknownServerError(message, code)


class RewardReconciler:
    def __init__(self, config: Optional[ScratchConfig] = None, session: Optional[requests.Session] = None):
        self.config = config or ScratchConfig()
        self.session = session or requests.Session()
        self.base_url = self.config.api_base_url.rstrip("/")

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.config.api_token:
            headers["Authorization"] = f"Bearer {self.config.api_token}"
        return headers

    def _request(self, method: str, path: str, action: str, **kw) -> dict:
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, headers=self._headers(),
                                        timeout=self.config.request_timeout, **kw)
        except requests.Timeout as e:
            raise Timeout(f"Timed out trying to {action} scratch card") from e
        except requests.RequestException as e:
            raise NetworkFailure(f"Network error while trying to {action} scratch card") from e

        if not resp.ok:
            err = error_from_response(resp, action)
            if isinstance(err, (AlreadyRevealed, AlreadyCredited)):
                logger.info("%s %s: %s", method, url, err)
            else:
                logger.error("%s %s -> %s: %s", method, url, resp.status_code, err)
            raise err
        data = _payload(resp)
        if data.get("success") is False:
            raise UnknownServerError(data.get("message") or f"Failed to {action} scratch card", resp.status_code)
        return data

    def reveal(self, card_id) -> dict:
        """POST /scratch-cards/reveal -> {amount, message, status}."""
        data = self._request("POST", "/scratch-cards/reveal", "reveal", json={"scratchCardId": card_id})
        body = data.get("data") or {}
        if body.get("amount") is None:
            raise UnknownServerError("Reveal response did not include an amount")
        return {"amount": body["amount"], "message": body.get("message"), "status": body.get("status", "revealed")}

    def credit(self, card_id) -> dict:
        """POST /scratch-cards/credit -> {amount}."""
        data = self._request("POST", "/scratch-cards/credit", "credit", json={"scratchCardId": card_id})
        body = data.get("data") or {}
        return {"amount": body.get("amount"), "balance": body.get("newBalance")}

    def list_cards(self, status: Optional[str] = None) -> List[ScratchCard]:
        """GET /scratch-cards; only the batch tool uses this."""
        params = {"status": status} if status else None
        data = self._request("GET", "/scratch-cards", "get", params=params)
        cards = (data.get("data") or {}).get("scratchCards") or []
        return [ScratchCard.from_dict(c) for c in cards]

    def close(self):
        self.session.close()
