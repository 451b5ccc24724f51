from mcp.server.fastmcp import FastMCP

from forexsage.config import Settings
from forexsage.currencylayer import CurrencyLayerClient, CurrencyLayerError

settings = Settings.from_env()
client = CurrencyLayerClient(settings.currencylayer_api_key, settings.currencylayer_base_url)


mcp = FastMCP("Currency Server")


@mcp.tool()
def get_live_rates(currencies: list[str], source: str = "USD") -> dict:
    """
    Real-time exchange rates from `source` to each of `currencies`.
    Use for "current", "latest" or "today" questions.
    Eg. source="USD", currencies=["NGN", "EUR"]
    """
    try:
        return {"success": True, "data": client.live(source, currencies)}
    except CurrencyLayerError as e:
        return {"success": False, "error": f"Unable to fetch exchange rates: {e}"}


@mcp.tool()
def get_historical_rates(date: str, currencies: list[str], source: str = "USD") -> dict:
    """
    Exchange rates from `source` to each of `currencies` on `date` (YYYY-MM-DD).
    """
    try:
        return {"success": True, "data": client.historical(date, source, currencies)}
    except CurrencyLayerError as e:
        return {"success": False, "error": f"Unable to fetch historical rates: {e}"}


@mcp.tool()
def convert_currency(amount: float, from_currency: str, to_currency: str) -> dict:
    """
    Converts `amount` of `from_currency` into `to_currency`.
    Eg. "100 USD = 92.34 EUR"
    """
    try:
        return {"success": True, "data": client.convert(from_currency, to_currency, amount)}
    except CurrencyLayerError as e:
        return {"success": False, "error": f"Unable to convert currency: {e}"}


# The agent launches this module over stdio:
#   python -m forexsage.currency_mcp_server

if __name__ == "__main__":
    mcp.run(transport="stdio")
