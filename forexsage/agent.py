# agent.py
#
# ForexSage:
#  - talks to currency_mcp_server.py via MCP (stdio)
#  - runs an AISuite chat-completions tool loop over those tools
#
# generate(messages) takes [{"role": ..., "content": ...}] and returns the
# final text plus every tool call it made along the way.

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import aisuite as ai
from langchain_mcp_adapters.client import MultiServerMCPClient

from forexsage.registry import AgentResponse

logger = logging.getLogger(__name__)

AGENT_NAME = "forexSageAgent"

INSTRUCTIONS = """
You are ForexSage, a currency exchange rate analysis agent.

- Start with a direct answer, then the supporting rates and dates.
- Use get_live_rates for current rates, get_historical_rates for a specific
  date, and convert_currency for converting amounts.
- Always use 3-letter currency codes (USD, EUR, NGN, GBP, ...).
- If a tool fails, say so plainly and suggest an alternative.
- If the question is ambiguous, ask a clarifying question instead of guessing.
- Always answer in English. Keep answers concise.
- End with: "Exchange rates are subject to market fluctuations and this is not financial advice."
"""


def currency_mcp_servers() -> dict[str, dict[str, Any]]:
    return {
        "currency": {
            "command": sys.executable,
            "args": ["-m", "forexsage.currency_mcp_server"],
            "transport": "stdio",
        }
    }


def tool_definition(tool: Any) -> dict[str, Any]:
    """OpenAI-style function definition for a LangChain (MCP adapter) tool."""
    schema = tool.args_schema
    if schema is None:
        schema = {"type": "object", "properties": {}}
    elif not isinstance(schema, dict):
        schema = schema.model_json_schema()
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description or "",
            "parameters": schema,
        },
    }


def _chat_role(role: str) -> str:
    # A2A says "agent"; chat completion APIs say "assistant".
    if role in ("agent", "assistant"):
        return "assistant"
    if role == "system":
        return "system"
    return "user"


def _decode_tool_output(output: Any) -> Any:
    if isinstance(output, list):
        output = "\n".join(
            item.get("text", "") if isinstance(item, dict) else str(item) for item in output
        )
    if isinstance(output, str):
        try:
            return json.loads(output)
        except ValueError:
            return output
    return output


class ForexSageAgent:
    name = AGENT_NAME

    def __init__(
        self,
        model: str = "openai:gpt-4o-mini",
        max_turns: int = 3,
        llm_client: Any = None,
        tools: list[Any] | None = None,
        mcp_client: MultiServerMCPClient | None = None,
    ) -> None:
        self._llm_client = llm_client or ai.Client()
        self._model = model
        self._max_turns = max_turns
        self._tools = tools
        self._mcp_client = mcp_client
        self._tools_lock = asyncio.Lock()

    async def _ensure_tools(self) -> list[Any]:
        async with self._tools_lock:
            if self._tools is None:
                if self._mcp_client is None:
                    self._mcp_client = MultiServerMCPClient(currency_mcp_servers())
                self._tools = await self._mcp_client.get_tools()
                logger.info("MCP tools: %s", [getattr(t, "name", t) for t in self._tools])
        return self._tools

    async def _complete(self, messages: list[dict[str, Any]], tool_defs: list[dict[str, Any]]) -> Any:
        kwargs: dict[str, Any] = {"model": self._model, "messages": messages}
        if tool_defs:
            kwargs["tools"] = tool_defs
        # The AISuite client is synchronous; keep it off the event loop.
        response = await asyncio.to_thread(self._llm_client.chat.completions.create, **kwargs)
        return response.choices[0].message

    async def generate(self, messages: list[dict[str, str]], use_tools: bool = True) -> AgentResponse:
        """
        Run the tool loop over `messages`. With use_tools=False the model gets
        one call and no tools, and the MCP server is never started; workflows
        use this to write reports from data they already fetched.
        """
        conversation: list[dict[str, Any]] = [{"role": "system", "content": INSTRUCTIONS}]
        conversation += [
            {"role": _chat_role(m.get("role", "user")), "content": m.get("content", "")}
            for m in messages
        ]

        if not use_tools:
            msg = await self._complete(conversation, [])
            return AgentResponse(text=msg.content or "")

        tools = await self._ensure_tools()
        tool_defs = [tool_definition(t) for t in tools]
        tool_mapping = {t.name: t for t in tools}

        tool_results: list[dict[str, Any]] = []

        for turn in range(self._max_turns):
            logger.debug("LLM turn %d", turn + 1)
            msg = await self._complete(conversation, tool_defs)
            tool_calls = getattr(msg, "tool_calls", None)

            if not tool_calls:
                return AgentResponse(text=msg.content or "", tool_results=tool_results)

            # Keep tool_calls so the provider knows why tool messages follow
            conversation.append(
                {
                    "role": "assistant",
                    "content": msg.content or "",
                    "tool_calls": [
                        {
                            "id": tc.id,
                            "type": "function",
                            "function": {
                                "name": tc.function.name,
                                "arguments": tc.function.arguments,
                            },
                        }
                        for tc in tool_calls
                    ],
                }
            )

            for tool_call in tool_calls:
                content = await self._call_tool(tool_mapping, tool_call, tool_results)
                conversation.append(
                    {"role": "tool", "tool_call_id": tool_call.id, "content": content}
                )

        # Out of tool turns: ask for an answer with what we have.
        msg = await self._complete(conversation, [])
        return AgentResponse(text=msg.content or "", tool_results=tool_results)

    async def _call_tool(
        self,
        tool_mapping: dict[str, Any],
        tool_call: Any,
        tool_results: list[dict[str, Any]],
    ) -> str:
        tool_name = tool_call.function.name
        try:
            args = json.loads(tool_call.function.arguments or "{}")
        except ValueError:
            return f"Invalid JSON arguments for tool {tool_name}"

        tool = tool_mapping.get(tool_name)
        if tool is None:
            return f"Unknown tool: {tool_name}"

        logger.info("Calling tool %s with args %s", tool_name, args)
        try:
            output = await tool.ainvoke(args)
        except Exception as e:
            # Reported back to the model so it can explain the failure.
            logger.warning("Tool %s failed: %r", tool_name, e)
            return f"Tool {tool_name} failed: {e}"

        tool_results.append(
            {"toolName": tool_name, "args": args, "result": _decode_tool_output(output)}
        )
        return output if isinstance(output, str) else json.dumps(_decode_tool_output(output), default=str)
