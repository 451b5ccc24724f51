# config.py
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    currencylayer_api_key: str = ""
    currencylayer_base_url: str = "https://api.currencylayer.com"
    model: str = "openai:gpt-4o-mini"
    max_turns: int = 3

    # Blocking requests give up waiting after this long
    sync_timeout_seconds: float = 55.0

    webhook_max_retries: int = 3
    webhook_timeout_seconds: float = 30.0
    pending_request_timeout_seconds: float = 60.0
    task_queue_size: int = 100

    host: str = "localhost"
    port: int = 10001

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            currencylayer_api_key=os.getenv("CURRENCYLAYER_API_KEY", ""),
            currencylayer_base_url=os.getenv(
                "CURRENCYLAYER_BASE_URL", "https://api.currencylayer.com"
            ),
            model=os.getenv("FOREXSAGE_MODEL", "openai:gpt-4o-mini"),
            max_turns=int(os.getenv("FOREXSAGE_MAX_TURNS", "3")),
            sync_timeout_seconds=float(os.getenv("SYNC_TIMEOUT_SECONDS", "55")),
            webhook_max_retries=int(os.getenv("WEBHOOK_MAX_RETRIES", "3")),
            webhook_timeout_seconds=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "30")),
            pending_request_timeout_seconds=float(
                os.getenv("PENDING_REQUEST_TIMEOUT_SECONDS", "60")
            ),
            task_queue_size=int(os.getenv("TASK_QUEUE_SIZE", "100")),
            host=os.getenv("HOST", "localhost"),
            port=int(os.getenv("PORT", "10001")),
        )
