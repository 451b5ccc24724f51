import pytest
import requests

from forexsage.currencylayer import CurrencyLayerClient, CurrencyLayerError, normalize_currencies


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, response):
        self.response = response
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if isinstance(self.response, Exception):
            raise self.response
        return self.response


def make_client(response, api_key="test-key"):
    session = FakeSession(response)
    return CurrencyLayerClient(api_key, "https://api.currencylayer.com/", session=session), session


@pytest.mark.parametrize(
    "value, expected",
    [
        (["ngn", " eur "], ["NGN", "EUR"]),
        ("NGN,EUR,GBP", ["NGN", "EUR", "GBP"]),
        ('["NGN", "EUR"]', ["NGN", "EUR"]),
        ("NGN", ["NGN"]),
        ("NGN,,", ["NGN"]),
    ],
)
def test_normalize_currencies(value, expected):
    assert normalize_currencies(value) == expected


def test_live_rates():
    client, session = make_client(
        FakeResponse(
            {
                "success": True,
                "timestamp": 1700000000,
                "source": "USD",
                "quotes": {"USDNGN": 1500.25, "USDEUR": 0.92},
            }
        )
    )

    result = client.live("usd", "NGN,EUR")

    url, params, timeout = session.calls[0]
    assert url == "https://api.currencylayer.com/live"
    assert params == {"access_key": "test-key", "format": 1, "source": "USD", "currencies": "NGN,EUR"}
    assert timeout == 30.0

    assert result["source"] == "USD"
    assert result["timestamp"] == "2023-11-14T22:13:20+00:00"
    assert result["rates"] == {"NGN": 1500.25, "EUR": 0.92}
    assert result["formatted"][0] == {
        "pair": "USD/NGN",
        "rate": 1500.25,
        "formattedRate": "1 USD = 1500.2500 NGN",
    }


def test_historical_rates():
    client, session = make_client(
        FakeResponse(
            {
                "success": True,
                "historical": True,
                "date": "2024-01-02",
                "source": "EUR",
                "quotes": {"EURUSD": 1.0945},
            }
        )
    )

    result = client.historical("2024-01-02", "EUR", ["USD"])

    assert session.calls[0][1]["date"] == "2024-01-02"
    assert result["date"] == "2024-01-02"
    assert result["rates"] == {"USD": 1.0945}
    assert result["formatted"] == [{"pair": "EUR/USD", "rate": 1.0945, "date": "2024-01-02"}]


def test_convert():
    client, session = make_client(
        FakeResponse(
            {
                "success": True,
                "info": {"timestamp": 1700000000, "quote": 1.17},
                "result": 292.5,
            }
        )
    )

    result = client.convert("gbp", "eur", 250)

    params = session.calls[0][1]
    assert params["from"] == "GBP"
    assert params["to"] == "EUR"
    assert params["amount"] == 250
    assert result["formatted"] == "250.00 GBP = 292.50 EUR"
    assert result["rateFormatted"] == "1 GBP = 1.1700 EUR"
    assert result["rate"] == 1.17


@pytest.mark.parametrize("amount", [0, -5])
def test_convert_rejects_non_positive_amount(amount):
    client, session = make_client(FakeResponse({"success": True}))
    with pytest.raises(CurrencyLayerError, match="positive amount"):
        client.convert("USD", "EUR", amount)
    assert session.calls == []


def test_api_error_uses_info_message():
    client, _ = make_client(
        FakeResponse({"success": False, "error": {"code": 101, "info": "You have not supplied a valid API Access Key."}})
    )
    with pytest.raises(CurrencyLayerError, match="valid API Access Key"):
        client.live("USD", ["NGN"])


def test_missing_api_key_fails_before_any_request():
    client, session = make_client(FakeResponse({"success": True}), api_key="")
    with pytest.raises(CurrencyLayerError, match="CURRENCYLAYER_API_KEY"):
        client.live("USD", ["NGN"])
    assert session.calls == []


@pytest.mark.parametrize(
    "response",
    [
        requests.ConnectionError("connection refused"),
        FakeResponse({}, status_code=502),
        FakeResponse(ValueError("Expecting value")),
    ],
)
def test_transport_failures_become_currencylayer_errors(response):
    client, _ = make_client(response)
    with pytest.raises(CurrencyLayerError):
        client.live("USD", ["NGN"])
