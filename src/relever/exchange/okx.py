"""OKX v5 REST client: signed account/trade calls plus public market metadata."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Generator, List, Mapping, Optional

import httpx

from ..errors import ExchangeError
from ..result import as_result

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.okx.com"
DEFAULT_TIMEOUT_SECONDS = 30.0

BALANCE_PATH = "/api/v5/account/balance"
POSITIONS_PATH = "/api/v5/account/positions"
TICKER_PATH = "/api/v5/market/ticker"
INSTRUMENTS_PATH = "/api/v5/public/instruments"
ORDER_PATH = "/api/v5/trade/order"

ORDER_SIDES = ("buy", "sell")


@dataclass(frozen=True)
class OKXCredentials:
    api_key: str
    secret_key: str
    passphrase: str

    def __repr__(self) -> str:
        return f"OKXCredentials(api_key='{self.api_key[:4]}...')"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def iso_timestamp(moment: datetime) -> str:
    """OKX wants e.g. ``2020-12-08T09:08:57.715Z``."""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def sign(secret_key: str, timestamp: str, method: str, request_path: str, body: str = "") -> str:
    prehash = f"{timestamp}{method.upper()}{request_path}{body}"
    digest = hmac.new(secret_key.encode(), prehash.encode(), hashlib.sha256).digest()
    return base64.b64encode(digest).decode()


class OKXAuth(httpx.Auth):
    """Adds the four OK-ACCESS-* headers, signing every request with a fresh timestamp."""

    requires_request_body = True

    def __init__(
        self,
        credentials: OKXCredentials,
        *,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.credentials = credentials
        self._clock = clock

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        timestamp = iso_timestamp(self._clock())
        body = request.content.decode() if request.content else ""
        request_path = request.url.raw_path.decode()
        request.headers["OK-ACCESS-KEY"] = self.credentials.api_key
        request.headers["OK-ACCESS-SIGN"] = sign(
            self.credentials.secret_key,
            timestamp,
            request.method,
            request_path,
            body,
        )
        request.headers["OK-ACCESS-TIMESTAMP"] = timestamp
        request.headers["OK-ACCESS-PASSPHRASE"] = self.credentials.passphrase
        yield request


def _parse_float(value: Any, field: str, *, default: Optional[float] = None) -> float:
    if value is None or value == "":
        if default is not None:
            return default
        raise ExchangeError(f"OKX response is missing '{field}'")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ExchangeError(f"OKX response has non-numeric '{field}': {value!r}") from exc


def _first(data: List[Dict[str, Any]], what: str) -> Dict[str, Any]:
    if not data:
        raise ExchangeError(f"OKX returned no {what} data")
    return data[0]


def _error_message(payload: Mapping[str, Any]) -> str:
    message = payload.get("msg") or "unknown error"
    details = [
        f"{item.get('sCode')}: {item.get('sMsg')}"
        for item in payload.get("data") or []
        if isinstance(item, dict) and item.get("sMsg")
    ]
    if details:
        message = f"{message} ({'; '.join(details)})"
    return message


def format_size(size: float) -> str:
    return format(Decimal(repr(float(size))).normalize(), "f")


class OKXClient:
    """
    Async OKX client covering exactly what the rebalancer needs.

    Every public operation returns a ``Result``: ``Ok(value)`` on success or
    ``Err(ExchangeError)`` for API errors, transport failures and timeouts.
    Nothing is retried.
    """

    def __init__(
        self,
        credentials: OKXCredentials,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._auth = OKXAuth(credentials, clock=clock)
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "OKXClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
        signed: bool = True,
    ) -> List[Dict[str, Any]]:
        content = json.dumps(body) if body is not None else None
        try:
            response = await self._http.request(
                method,
                path,
                params=params,
                content=content,
                auth=self._auth if signed else None,
            )
        except httpx.HTTPError as exc:
            raise ExchangeError(f"{method} {path} failed: {exc!r}") from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExchangeError(
                f"{method} {path} returned HTTP {response.status_code} with a non-JSON body"
            ) from exc
        if not isinstance(payload, dict):
            raise ExchangeError(f"{method} {path} returned an unexpected payload: {payload!r}")

        code = str(payload.get("code", ""))
        if code != "0":
            raise ExchangeError(f"OKX API error {code}: {_error_message(payload)}", code=code)

        logger.debug("%s %s -> HTTP %s", method, path, response.status_code)
        return payload.get("data") or []

    @as_result
    async def get_equity(self) -> float:
        """Total account equity in USD, unrealized PnL included."""
        data = await self._request("GET", BALANCE_PATH)
        return _parse_float(_first(data, "balance").get("totalEq"), "totalEq")

    @as_result
    async def get_price(self, instrument: str) -> float:
        data = await self._request("GET", TICKER_PATH, params={"instId": instrument})
        return _parse_float(_first(data, "ticker").get("last"), "last")

    @as_result
    async def get_contract_value(self, instrument: str) -> float:
        """Base-currency amount represented by one contract (public endpoint)."""
        data = await self._request(
            "GET",
            INSTRUMENTS_PATH,
            params={"instType": "SWAP", "instId": instrument},
            signed=False,
        )
        return _parse_float(_first(data, "instrument").get("ctVal"), "ctVal")

    @as_result
    async def get_position(self, instrument: str) -> float:
        """
        Current long position in base-currency units.

        OKX reports swaps in contracts; the count is converted with the
        instrument's contract value. When that lookup fails the raw contract
        count is returned instead of failing the caller.
        """
        data = await self._request("GET", POSITIONS_PATH, params={"instId": instrument})
        contracts = 0.0
        for entry in data:
            if entry.get("instId") == instrument and entry.get("posSide") in ("long", "net"):
                contracts = _parse_float(entry.get("pos"), "pos", default=0.0)
                break

        if contracts == 0:
            return 0.0

        contract_value = await self.get_contract_value(instrument)
        if not contract_value.is_ok:
            logger.warning(
                "Contract value lookup for %s failed (%s); using raw contract count %s",
                instrument,
                contract_value.error,
                contracts,
            )
            return contracts
        if contract_value.value != 1:
            logger.warning(
                "%s contract value is %s %s; orders are sent with sz in base units, "
                "which OKX reads as contracts",
                instrument,
                contract_value.value,
                instrument.split("-")[0],
            )
        return contracts * contract_value.value

    @as_result
    async def place_order(self, instrument: str, side: str, size: float) -> str:
        """Market order, isolated margin, long position side. Returns the OKX order id."""
        if side not in ORDER_SIDES:
            raise ExchangeError(f"Order side must be one of {ORDER_SIDES}, got {side!r}")
        if not size > 0:
            raise ExchangeError(f"Order size must be positive, got {size}")

        # sz is the base-unit delta; OKX swaps read it as contracts (see get_position).
        body = {
            "instId": instrument,
            "tdMode": "isolated",
            "side": side,
            "ordType": "market",
            "sz": format_size(size),
            "posSide": "long",
        }
        data = await self._request("POST", ORDER_PATH, body=body)
        order = _first(data, "order")
        s_code = str(order.get("sCode", "0"))
        if s_code != "0":
            raise ExchangeError(
                f"OKX rejected order {s_code}: {order.get('sMsg') or 'unknown error'}",
                code=s_code,
            )
        order_id = order.get("ordId")
        if not order_id:
            raise ExchangeError("OKX order response is missing 'ordId'")
        logger.info("Placed %s market order for %s %s (ordId=%s)", side, body["sz"], instrument, order_id)
        return str(order_id)


__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_TIMEOUT_SECONDS",
    "OKXAuth",
    "OKXClient",
    "OKXCredentials",
    "format_size",
    "iso_timestamp",
    "sign",
]
