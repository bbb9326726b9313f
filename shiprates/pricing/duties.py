"""Client for the external duty/tax estimation service.

The service is a black box: it either returns an estimate or fails. Callers
get a ``DutyEstimate`` or a ``DutyServiceUnavailable`` and nothing else.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import httpx

from ..config import settings
from ..errors import DutyServiceUnavailable

logger = logging.getLogger(__name__)


@dataclass
class DutyEstimate:
    duties_minor: int
    taxes_minor: int
    currency: str
    provider: str

    @property
    def total_minor(self) -> int:
        return self.duties_minor + self.taxes_minor


class DutyEstimator(Protocol):
    def estimate(self, destination_country: str, customs_value_minor: int, currency: str) -> DutyEstimate:
        ...


class HttpDutyEstimator:
    """POSTs ``/estimate`` on the configured duty API.

    Expected response body::

        {"available": true, "duties_minor": 1250, "taxes_minor": 980, "currency": "USD"}
    """

    provider = "duty-api"

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        origin_country: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.origin_country = origin_country or settings.origin_country
        self._transport = transport

    def estimate(self, destination_country: str, customs_value_minor: int, currency: str) -> DutyEstimate:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}
        payload = {
            "origin_country": self.origin_country,
            "destination_country": destination_country,
            "customs_value_minor": customs_value_minor,
            "currency": currency,
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                r = client.post(f"{self.base_url}/estimate", json=payload, headers=headers)
                r.raise_for_status()
                body = r.json()
        except httpx.HTTPError as e:
            raise DutyServiceUnavailable(f"duty service request failed: {e}") from e
        except ValueError as e:
            raise DutyServiceUnavailable("duty service returned invalid JSON") from e

        if not isinstance(body, dict) or not body.get("available", False):
            reason = body.get("reason") if isinstance(body, dict) else None
            raise DutyServiceUnavailable(reason or "duty estimate unavailable for this route")
        try:
            return DutyEstimate(
                duties_minor=int(body["duties_minor"]),
                taxes_minor=int(body.get("taxes_minor") or 0),
                currency=str(body.get("currency") or currency),
                provider=self.provider,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DutyServiceUnavailable("duty service returned an incomplete estimate") from e


def get_duty_estimator() -> Optional[DutyEstimator]:
    if not settings.duty_api_url:
        return None
    return HttpDutyEstimator(
        settings.duty_api_url,
        api_key=settings.duty_api_key,
        timeout=settings.duty_timeout,
    )
