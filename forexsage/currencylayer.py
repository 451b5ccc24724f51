# currencylayer.py
#
# Thin client for the currencylayer exchange-rate API
# (https://currencylayer.com/documentation). Every endpoint is keyed by an
# access_key query parameter and answers {"success": bool, ...}.

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

import requests

logger = logging.getLogger(__name__)


class CurrencyLayerError(Exception):
    pass


def normalize_currencies(currencies: Any) -> list[str]:
    """
    Accepts ["NGN", "EUR"], "NGN,EUR", or a JSON-encoded list (LLMs
    sometimes pass the array as a string).
    """
    if isinstance(currencies, str):
        try:
            decoded = json.loads(currencies)
        except ValueError:
            decoded = currencies.split(",")
        currencies = decoded if isinstance(decoded, list) else [str(decoded)]
    return [str(c).strip().upper() for c in currencies if str(c).strip()]


def _strip_source(quotes: dict[str, float], source: str) -> dict[str, float]:
    # Quotes are keyed "USDNGN"; callers want {"NGN": rate}.
    return {
        (key[len(source):] if key.startswith(source) else key): rate
        for key, rate in quotes.items()
    }


class CurrencyLayerClient:
    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.currencylayer.com",
        session: requests.Session | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def _get(self, endpoint: str, **params: Any) -> dict[str, Any]:
        if not self.api_key:
            raise CurrencyLayerError("CURRENCYLAYER_API_KEY is not configured")

        query = {"access_key": self.api_key, "format": 1, **params}
        try:
            response = self._session.get(
                f"{self.base_url}/{endpoint}", params=query, timeout=self._timeout
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CurrencyLayerError(f"Failed to fetch {endpoint} rates: {e}") from e
        except ValueError as e:
            raise CurrencyLayerError(f"Invalid JSON from currencylayer {endpoint}: {e}") from e

        if not data.get("success"):
            info = (data.get("error") or {}).get("info") or "API error"
            raise CurrencyLayerError(info)
        return data

    def live(self, source: str, currencies: Any) -> dict[str, Any]:
        source = source.upper()
        data = self._get("live", source=source, currencies=",".join(normalize_currencies(currencies)))
        rates = _strip_source(data.get("quotes") or {}, source)
        return {
            "source": data.get("source", source),
            "timestamp": datetime.fromtimestamp(data["timestamp"], tz=timezone.utc).isoformat(),
            "rates": rates,
            "formatted": [
                {
                    "pair": f"{source}/{currency}",
                    "rate": rate,
                    "formattedRate": f"1 {source} = {rate:.4f} {currency}",
                }
                for currency, rate in rates.items()
            ],
        }

    def historical(self, date: str, source: str, currencies: Any) -> dict[str, Any]:
        source = source.upper()
        data = self._get(
            "historical",
            date=date,
            source=source,
            currencies=",".join(normalize_currencies(currencies)),
        )
        rates = _strip_source(data.get("quotes") or {}, source)
        return {
            "source": data.get("source", source),
            "date": data.get("date", date),
            "historical": data.get("historical", True),
            "rates": rates,
            "formatted": [
                {"pair": f"{source}/{currency}", "rate": rate, "date": data.get("date", date)}
                for currency, rate in rates.items()
            ],
        }

    def convert(self, from_currency: str, to_currency: str, amount: float) -> dict[str, Any]:
        if not from_currency or not to_currency or amount <= 0:
            raise CurrencyLayerError(
                "Invalid input: from, to currencies and positive amount are required"
            )
        from_currency, to_currency = from_currency.upper(), to_currency.upper()
        data = self._get("convert", amount=amount, to=to_currency, **{"from": from_currency})

        result = data["result"]
        quote = data["info"]["quote"]
        return {
            "from": from_currency,
            "to": to_currency,
            "amount": amount,
            "result": result,
            "rate": quote,
            "timestamp": datetime.fromtimestamp(data["info"]["timestamp"], tz=timezone.utc).isoformat(),
            "formatted": f"{amount:.2f} {from_currency} = {result:.2f} {to_currency}",
            "rateFormatted": f"1 {from_currency} = {quote:.4f} {to_currency}",
        }
