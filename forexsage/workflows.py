# workflows.py
#
# Data-driven workflows. Each one fetches rates from currencylayer, computes
# percent changes against reference dates and has ForexSage write the report
# (no tools offered; the data is already in the prompt).
#
#   multi-currency-comparison   one base vs. several targets over a period
#   complete-forex-analysis     one pair over 30 days, 1 year and 2 years
#   daily-forex-report          a watchlist of pairs vs. one week ago
#
# All three expose generate(messages) so the task worker can run them like
# an agent: the queued form is one user message holding the trigger data.

from __future__ import annotations

import asyncio
import json
import logging
from datetime import date, timedelta
from typing import Any, Callable

from forexsage.currencylayer import CurrencyLayerClient, normalize_currencies
from forexsage.registry import AgentResponse

logger = logging.getLogger(__name__)

WORKFLOW_ID = "multi-currency-comparison"
COMPLETE_ANALYSIS_ID = "complete-forex-analysis"
DAILY_REPORT_ID = "daily-forex-report"

PERIOD_DAYS = {"7days": 7, "30days": 30, "90days": 90, "1year": 365, "2years": 730}
DEFAULT_PERIOD = "30days"
COMPARISON_PERIODS = ("7days", "30days", "90days", "1year")

ANALYSIS_DEPTHS = ("basic", "detailed", "comprehensive")
DEFAULT_DEPTH = "detailed"

# A weekly move beyond this many percent is called out in the daily report.
NOTABLE_CHANGE_PERCENT = 2.0

REQUIRED_FIELDS = {
    "baseCurrency": "string (e.g., USD)",
    "targetCurrencies": 'array of strings (e.g., ["NGN", "EUR", "GBP"])',
    "period": "7days | 30days | 90days | 1year (optional, default: 30days)",
}
EXAMPLE = {"baseCurrency": "USD", "targetCurrencies": ["NGN", "EUR", "GBP"], "period": "30days"}

ANALYSIS_REQUIRED_FIELDS = {
    "sourceCurrency": "string (e.g., USD)",
    "targetCurrency": "string (e.g., NGN)",
    "analysisDepth": "basic | detailed | comprehensive (optional, default: detailed)",
}
ANALYSIS_EXAMPLE = {"sourceCurrency": "USD", "targetCurrency": "NGN", "analysisDepth": "detailed"}

DAILY_REQUIRED_FIELDS = {"watchlist": "array of {source, target} objects"}
DAILY_EXAMPLE = {
    "watchlist": [
        {"source": "USD", "target": "NGN"},
        {"source": "EUR", "target": "USD"},
        {"source": "GBP", "target": "USD"},
    ]
}


def _is_code(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def percent_change(current: float, start: float) -> float:
    return (current - start) / start * 100


def trend_label(change: float) -> str:
    if change > 0:
        return "upward"
    if change < 0:
        return "downward"
    return "stable"


def format_change(change: float) -> str:
    return f"{'+' if change > 0 else ''}{change:.2f}%"


def validate_trigger_data(trigger_data: Any) -> str | None:
    """Returns a problem description, or None when the trigger data is usable."""
    if not isinstance(trigger_data, dict):
        return "triggerData is required"
    targets = trigger_data.get("targetCurrencies")
    if not _is_code(trigger_data.get("baseCurrency")):
        return "baseCurrency and targetCurrencies are required"
    if not isinstance(targets, list) or not targets or not all(isinstance(t, str) for t in targets):
        return "baseCurrency and targetCurrencies are required"
    period = trigger_data.get("period", DEFAULT_PERIOD)
    if period not in COMPARISON_PERIODS:
        return f"period must be one of {', '.join(COMPARISON_PERIODS)}"
    return None


def validate_analysis_data(trigger_data: Any) -> str | None:
    if not isinstance(trigger_data, dict):
        return "triggerData is required"
    if not _is_code(trigger_data.get("sourceCurrency")) or not _is_code(trigger_data.get("targetCurrency")):
        return "sourceCurrency and targetCurrency are required"
    if trigger_data.get("analysisDepth", DEFAULT_DEPTH) not in ANALYSIS_DEPTHS:
        return f"analysisDepth must be one of {', '.join(ANALYSIS_DEPTHS)}"
    return None


def validate_watchlist(trigger_data: Any) -> str | None:
    if not isinstance(trigger_data, dict):
        return "triggerData is required"
    watchlist = trigger_data.get("watchlist")
    if not isinstance(watchlist, list) or not watchlist:
        return "watchlist array is required"
    for entry in watchlist:
        if not isinstance(entry, dict) or not _is_code(entry.get("source")) or not _is_code(entry.get("target")):
            return "each watchlist entry needs source and target currency codes"
    return None


def compare_rates(
    base: str,
    current: dict[str, float],
    reference: dict[str, float],
) -> list[dict[str, Any]]:
    comparisons = []
    for currency, rate in current.items():
        start = reference.get(currency)
        if not start:
            logger.warning("No reference rate for %s/%s; skipping", base, currency)
            continue
        change = percent_change(rate, start)
        comparisons.append(
            {
                "currency": currency,
                "pair": f"{base}/{currency}",
                "currentRate": rate,
                "startRate": start,
                "change": change,
                "changeFormatted": format_change(change),
                "trend": trend_label(change),
            }
        )
    return sorted(comparisons, key=lambda c: c["change"], reverse=True)


def trigger_data_from_messages(messages: list[dict[str, str]], workflow_id: str = WORKFLOW_ID) -> dict[str, Any]:
    """The queued form of a workflow request is one user message holding the trigger data as JSON."""
    for message in reversed(messages):
        try:
            data = json.loads(message.get("content", ""))
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError(f"{workflow_id} expects JSON trigger data in the last message")


class _RatesWorkflow:
    """Shared plumbing: validation hook, queued entry point, report writing."""

    name: str
    title: str
    required_fields: dict[str, str]
    example: dict[str, Any]

    def __init__(
        self,
        client: CurrencyLayerClient,
        agent: Any,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._client = client
        self._agent = agent
        self._today = today

    def validate(self, trigger_data: Any) -> str | None:
        raise NotImplementedError

    async def execute(self, trigger_data: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    async def generate(self, messages: list[dict[str, str]]) -> AgentResponse:
        result = await self.execute(trigger_data_from_messages(messages, self.name))
        return AgentResponse(text=result["report"], tool_results=[result])

    def _check(self, trigger_data: Any) -> None:
        problem = self.validate(trigger_data)
        if problem:
            raise ValueError(problem)

    def _days_ago(self, days: int) -> str:
        return (self._today() - timedelta(days=days)).isoformat()

    async def _write_report(self, prompt: str) -> str:
        response = await self._agent.generate([{"role": "user", "content": prompt}], use_tools=False)
        return response.text


class MultiCurrencyComparisonWorkflow(_RatesWorkflow):
    name = WORKFLOW_ID
    title = "Multi-Currency Comparison"
    required_fields = REQUIRED_FIELDS
    example = EXAMPLE

    def validate(self, trigger_data: Any) -> str | None:
        return validate_trigger_data(trigger_data)

    async def execute(self, trigger_data: dict[str, Any]) -> dict[str, Any]:
        self._check(trigger_data)

        base = trigger_data["baseCurrency"].strip().upper()
        targets = normalize_currencies(trigger_data["targetCurrencies"])
        period = trigger_data.get("period", DEFAULT_PERIOD)
        start_date = self._days_ago(PERIOD_DAYS[period])

        logger.info("Step 1: fetching current rates for %d pairs", len(targets))
        live = await asyncio.to_thread(self._client.live, base, targets)

        logger.info("Step 2: fetching reference rates for %s", start_date)
        past = await asyncio.to_thread(self._client.historical, start_date, base, targets)

        comparisons = compare_rates(base, live["rates"], past["rates"])
        if not comparisons:
            raise ValueError(f"No comparable rates for {base} against {', '.join(targets)}")

        logger.info("Step 3: generating comparison report")
        report = await self._write_report(self._prompt(base, period, comparisons))

        return {
            "report": report,
            "baseCurrency": base,
            "period": period,
            "startDate": start_date,
            "comparisons": comparisons,
        }

    @staticmethod
    def _prompt(base: str, period: str, comparisons: list[dict[str, Any]]) -> str:
        rankings = "\n".join(
            f"{i + 1}. {c['pair']}: {c['changeFormatted']} ({c['trend']}), "
            f"{c['startRate']:.4f} -> {c['currentRate']:.4f}"
            for i, c in enumerate(comparisons)
        )
        return (
            f"Write a short multi-currency comparison report for {base} over {period}.\n\n"
            f"Performance rankings (best first):\n{rankings}\n\n"
            "Cover: a summary, the best and worst performer, and one practical takeaway per pair. "
            "Do not call tools; the data above is current."
        )


class CompleteForexAnalysisWorkflow(_RatesWorkflow):
    name = COMPLETE_ANALYSIS_ID
    title = "Complete Forex Analysis"
    required_fields = ANALYSIS_REQUIRED_FIELDS
    example = ANALYSIS_EXAMPLE

    def validate(self, trigger_data: Any) -> str | None:
        return validate_analysis_data(trigger_data)

    def periods(self, depth: str) -> tuple[str, ...]:
        # Basic analysis skips the 2-year view.
        if depth == "basic":
            return ("30days", "1year")
        return ("30days", "1year", "2years")

    async def execute(self, trigger_data: dict[str, Any]) -> dict[str, Any]:
        self._check(trigger_data)

        source = trigger_data["sourceCurrency"].strip().upper()
        target = trigger_data["targetCurrency"].strip().upper()
        depth = trigger_data.get("analysisDepth", DEFAULT_DEPTH)
        pair = f"{source}/{target}"

        logger.info("Step 1: fetching current rate for %s", pair)
        live = await asyncio.to_thread(self._client.live, source, [target])
        current = live["rates"].get(target)
        if not current:
            raise ValueError(f"No current rate for {pair}")

        trends = []
        for period in self.periods(depth):
            start_date = self._days_ago(PERIOD_DAYS[period])
            logger.info("Step 2: fetching %s reference rate for %s (%s)", period, pair, start_date)
            past = await asyncio.to_thread(self._client.historical, start_date, source, [target])
            start = past["rates"].get(target)
            if not start:
                logger.warning("No %s reference rate for %s; skipping", period, pair)
                continue
            change = percent_change(current, start)
            trends.append(
                {
                    "period": period,
                    "startDate": start_date,
                    "startRate": start,
                    "currentRate": current,
                    "change": change,
                    "changeFormatted": format_change(change),
                    "trend": trend_label(change),
                }
            )

        if not trends:
            raise ValueError(f"No historical rates available for {pair}")

        logger.info("Step 3: generating analysis report")
        report = await self._write_report(self._prompt(pair, depth, current, trends))

        return {
            "report": report,
            "pair": pair,
            "sourceCurrency": source,
            "targetCurrency": target,
            "analysisDepth": depth,
            "currentRate": current,
            "timestamp": live.get("timestamp"),
            "trends": trends,
        }

    @staticmethod
    def _prompt(pair: str, depth: str, current: float, trends: list[dict[str, Any]]) -> str:
        lines = "\n".join(
            f"- {t['period']}: {t['changeFormatted']} ({t['trend']}), "
            f"{t['startRate']:.4f} on {t['startDate']} -> {t['currentRate']:.4f}"
            for t in trends
        )
        return (
            f"Write a {depth} forex analysis for {pair}.\n\n"
            f"Current rate: {current:.4f}\n"
            f"Change by period:\n{lines}\n\n"
            "Cover: the current position, short versus long term direction, and what the trend "
            "means for someone converting between these currencies. "
            "Do not call tools; the data above is current."
        )


class DailyForexReportWorkflow(_RatesWorkflow):
    name = DAILY_REPORT_ID
    title = "Daily Forex Report"
    required_fields = DAILY_REQUIRED_FIELDS
    example = DAILY_EXAMPLE

    def validate(self, trigger_data: Any) -> str | None:
        return validate_watchlist(trigger_data)

    async def execute(self, trigger_data: dict[str, Any]) -> dict[str, Any]:
        self._check(trigger_data)

        # One live + one historical call per source currency.
        by_source: dict[str, list[str]] = {}
        for entry in trigger_data["watchlist"]:
            targets = by_source.setdefault(entry["source"].strip().upper(), [])
            target = entry["target"].strip().upper()
            if target not in targets:
                targets.append(target)

        week_ago = self._days_ago(PERIOD_DAYS["7days"])
        watchlist_rates: list[dict[str, Any]] = []
        weekly_trends: list[dict[str, Any]] = []

        for source, targets in by_source.items():
            logger.info("Step 1: fetching current rates for %s against %s", source, ", ".join(targets))
            live = await asyncio.to_thread(self._client.live, source, targets)
            logger.info("Step 2: fetching %s reference rates for %s", week_ago, source)
            past = await asyncio.to_thread(self._client.historical, week_ago, source, targets)

            for target in targets:
                rate = live["rates"].get(target)
                if not rate:
                    logger.warning("No current rate for %s/%s; skipping", source, target)
                    continue
                watchlist_rates.append(
                    {"pair": f"{source}/{target}", "currentRate": rate, "timestamp": live.get("timestamp")}
                )
                start = past["rates"].get(target)
                if not start:
                    logger.warning("No weekly reference rate for %s/%s", source, target)
                    continue
                change = percent_change(rate, start)
                weekly_trends.append(
                    {
                        "pair": f"{source}/{target}",
                        "currentRate": rate,
                        "weekAgoRate": start,
                        "change": change,
                        "changeFormatted": format_change(change),
                        "trend": trend_label(change),
                    }
                )

        if not watchlist_rates:
            raise ValueError("No rates available for any watchlist pair")

        notable = [t for t in weekly_trends if abs(t["change"]) > NOTABLE_CHANGE_PERCENT]

        logger.info("Step 3: generating daily summary (%d notable changes)", len(notable))
        today = self._today().isoformat()
        report = await self._write_report(self._prompt(today, watchlist_rates, weekly_trends, notable))

        return {
            "report": report,
            "date": today,
            "watchlistRates": watchlist_rates,
            "weeklyTrends": weekly_trends,
            "notableChanges": notable,
        }

    @staticmethod
    def _prompt(
        today: str,
        rates: list[dict[str, Any]],
        trends: list[dict[str, Any]],
        notable: list[dict[str, Any]],
    ) -> str:
        rate_lines = "\n".join(f"{r['pair']}: {r['currentRate']:.4f}" for r in rates)
        trend_lines = "\n".join(f"{t['pair']}: {t['changeFormatted']} ({t['trend']})" for t in trends) or "none"
        notable_lines = "\n".join(f"{t['pair']}: {t['changeFormatted']}" for t in notable) or "none"
        return (
            f"Write a brief daily forex market report for {today}.\n\n"
            f"Current rates:\n{rate_lines}\n\n"
            f"7-day change:\n{trend_lines}\n\n"
            f"Notable moves (over {NOTABLE_CHANGE_PERCENT:g}% in a week):\n{notable_lines}\n\n"
            "Cover: a market summary, the notable moves, and what to watch tomorrow. "
            "Do not call tools; the data above is current."
        )
