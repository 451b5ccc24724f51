"""ForexSage: currency-exchange analysis agent exposed over JSON-RPC / A2A."""

__version__ = "1.0.0"
