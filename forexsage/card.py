# card.py
import json

from a2a.types import AgentCapabilities, AgentCard, AgentSkill

from forexsage import __version__
from forexsage.agent import AGENT_NAME
from forexsage.workflows import (
    ANALYSIS_EXAMPLE,
    COMPLETE_ANALYSIS_ID,
    DAILY_EXAMPLE,
    DAILY_REPORT_ID,
    EXAMPLE,
    WORKFLOW_ID,
)


def get_agent_card(base_url: str) -> AgentCard:
    """AgentCard for ForexSage, served at /.well-known/agent.json."""
    capabilities = AgentCapabilities(streaming=False, pushNotifications=True)
    skills = [
        AgentSkill(
            id="live_exchange_rates",
            name="Live Exchange Rates",
            description="Current exchange rates for any currency pair.",
            tags=["forex", "exchange rates"],
            examples=["What is the USD to NGN rate today?"],
        ),
        AgentSkill(
            id="convert_currency",
            name="Currency Conversion",
            description="Converts amounts between currencies at the live rate.",
            tags=["forex", "conversion"],
            examples=["How much is 250 GBP in EUR?"],
        ),
        AgentSkill(
            id="historical_rates",
            name="Historical Rates",
            description="Exchange rates for a specific past date.",
            tags=["forex", "historical"],
            examples=["What was EUR/USD on 2024-01-02?"],
        ),
        AgentSkill(
            id=WORKFLOW_ID,
            name="Multi-Currency Comparison",
            description=(
                f"Ranks a base currency against several others over a period. "
                f"POST JSON-RPC to /a2a/workflow/{WORKFLOW_ID} with params.triggerData."
            ),
            tags=["forex", "comparison", "workflow"],
            examples=[json.dumps(EXAMPLE)],
        ),
        AgentSkill(
            id=COMPLETE_ANALYSIS_ID,
            name="Complete Forex Analysis",
            description=(
                f"Current rate plus 30-day, 1-year and 2-year change and trend for one pair. "
                f"POST JSON-RPC to /a2a/workflow/{COMPLETE_ANALYSIS_ID} with params.triggerData."
            ),
            tags=["forex", "analysis", "workflow"],
            examples=[json.dumps(ANALYSIS_EXAMPLE)],
        ),
        AgentSkill(
            id=DAILY_REPORT_ID,
            name="Daily Forex Report",
            description=(
                f"Live rates and 7-day moves for a watchlist, with notable changes called out. "
                f"POST JSON-RPC to /a2a/workflow/{DAILY_REPORT_ID} with params.triggerData."
            ),
            tags=["forex", "report", "workflow"],
            examples=[json.dumps(DAILY_EXAMPLE)],
        ),
    ]
    return AgentCard(
        name="ForexSage",
        description="Currency exchange rate analysis agent backed by currencylayer.",
        url=f"{base_url.rstrip('/')}/a2a/agent/{AGENT_NAME}",
        version=__version__,
        defaultInputModes=["text"],
        defaultOutputModes=["text"],
        capabilities=capabilities,
        skills=skills,
    )
