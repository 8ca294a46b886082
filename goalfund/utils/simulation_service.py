from __future__ import annotations

import os
import time
from typing import Any, Dict, Optional

import requests
from pydantic import ValidationError

from goalfund.core.config import SETTINGS
from goalfund.core.schemas import SimulationResponse
from goalfund.utils.cache import TTLCache
from goalfund.utils.logging import get_logger

logger = get_logger("simulation_service")

MAX_SIMULATION_MONTHS = 12
_RETRIABLE_STATUS = (429, 500, 502, 503, 504)


class SimulationError(Exception):
    pass


class SimulationUnavailable(SimulationError):
    pass


class SimulationBadPayload(SimulationError):
    pass


class SimulationService:
    """
    Client for the external portfolio simulation API.
    - Short-horizon simulation (1..12 months) per client
    - Bounded timeout, retries with backoff for transient errors
    - Payload validated into ``SimulationResponse``
    - Optional TTL caching per (client, months)
    """

    def __init__(
        self,
        cache: Optional[TTLCache] = None,
        *,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout_seconds: Optional[int] = None,
        retries: Optional[int] = None,
        backoff_seconds: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.cache = cache
        self.session = session or requests.Session()

        self.base_url = (base_url if base_url is not None else SETTINGS.simulation_base_url or "").rstrip("/")
        self.api_token = api_token or os.getenv("SIMULATION_API_TOKEN") or None
        self.timeout = int(timeout_seconds or SETTINGS.simulation_timeout_seconds or 10)
        self.retries = max(1, int(retries if retries is not None else SETTINGS.simulation_retries))
        self.backoff_seconds = float(
            backoff_seconds if backoff_seconds is not None else SETTINGS.simulation_backoff_seconds
        )

    def simulate(self, client_ref: str, months: int, *, force_refresh: bool = False) -> SimulationResponse:
        ref = (client_ref or "").strip()
        if not ref:
            raise ValueError("client_ref is empty")
        if not 1 <= months <= MAX_SIMULATION_MONTHS:
            raise ValueError(f"months must be within 1..{MAX_SIMULATION_MONTHS}, got {months}")
        if not self.base_url:
            raise SimulationUnavailable("SIMULATION_BASE_URL not set")

        cache_key = ("simulate", ref, months)
        if self.cache is not None and not force_refresh:
            cached = self.cache.get(cache_key)
            if cached:
                val, _ = cached
                return val

        url = f"{self.base_url}/client/{ref}/simulate"
        data = self._post_json_with_retries(url, payload={"months": months})

        try:
            resp = SimulationResponse.model_validate(data)
        except ValidationError as e:
            raise SimulationBadPayload(f"Invalid simulation payload for client {ref}: {e.error_count()} error(s)") from e

        logger.info(f"simulation_ok client={ref} months={months} results={len(resp.results)}")
        if self.cache is not None:
            self.cache.set(cache_key, resp)
        return resp

    # -----------------------------
    # HTTP helpers with retries
    # -----------------------------
    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _sleep_before_retry(self, attempt: int) -> None:
        if self.backoff_seconds > 0 and attempt < self.retries:
            time.sleep(min(8.0, self.backoff_seconds * (2 ** (attempt - 1))))

    def _post_json_with_retries(self, url: str, *, payload: Dict[str, Any]) -> Any:
        last_err: Optional[Exception] = None
        for attempt in range(1, self.retries + 1):
            try:
                r = self.session.post(url, json=payload, headers=self._headers(), timeout=self.timeout)
                r.raise_for_status()
            except requests.HTTPError as e:
                last_err = e
                code = getattr(e.response, "status_code", None)
                logger.warning(f"simulation_http_error url={url} status={code} attempt={attempt}")
                if code in _RETRIABLE_STATUS:
                    self._sleep_before_retry(attempt)
                    continue
                raise SimulationUnavailable(f"Simulation request rejected: HTTP {code}") from e
            except (requests.Timeout, requests.ConnectionError) as e:
                last_err = e
                logger.warning(f"simulation_transport_error url={url} attempt={attempt} err={type(e).__name__}")
                self._sleep_before_retry(attempt)
                continue
            except requests.RequestException as e:
                raise SimulationUnavailable(f"Simulation request failed: {type(e).__name__}: {e}") from e

            try:
                return r.json()
            except ValueError as e:
                raise SimulationBadPayload(f"Simulation response is not JSON: {e}") from e

        raise SimulationUnavailable(f"Simulation request failed after {self.retries} attempt(s): {last_err}")
