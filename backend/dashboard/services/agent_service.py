from __future__ import annotations

from typing import Optional, Dict, List, Any
import json
import logging

from dashboard.core.model_pricing import DEFAULT_MODEL
from dashboard.providers import ProviderFactory
from dashboard.schemas.ai import AgentResult, AgentUsage
from dashboard.services.agent_tools import AgentTools, AGENT_TOOLS_DEFINITION

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 10

DEFAULT_SYSTEM_PROMPT = """You are a helpful AI assistant with access to web search capabilities.
When asked about current events, recent information, or facts you're unsure about, use the web search tool.
Be concise and helpful in your responses.
IMPORTANT: After using tools, you MUST provide a final text response summarizing the results for the user."""

FALLBACK_RESPONSE = "I processed your request but couldn't generate a response. Please try again."


def format_search_results(results: List[Dict[str, Any]]) -> str:
    summaries = [
        f"**{r.get('title', '')}**: {(r.get('content') or '')[:200]}..."
        for r in results[:3]
    ]
    return "Here's what I found:\n\n" + "\n\n".join(summaries)


def extract_from_tool_result(result: Any) -> Optional[str]:
    if not isinstance(result, dict):
        return None
    if result.get("answer"):
        return result["answer"]
    if result.get("results"):
        return format_search_results(result["results"])
    return None


def extract_tool_results_summary(tool_results: List[Any]) -> str:
    """Builds a reply from tool output when the model stopped without text."""
    for result in tool_results:
        extracted = extract_from_tool_result(result)
        if extracted:
            return extracted
    return ""


class AgentService:
    """
    Web-search agent on OpenRouter.
    Runs a chat.completions tool loop until the model answers without
    tool calls or max_steps model calls have been made.
    """

    def __init__(self, provider_name: str = "openrouter"):
        self.provider = ProviderFactory.get_provider(provider_name)

    async def run_agent(
        self,
        prompt: str,
        model: Optional[str] = None,
        system_prompt: Optional[str] = None,
        max_steps: Optional[int] = None,
        history: Optional[List[dict]] = None,
    ) -> AgentResult:
        model = model or DEFAULT_MODEL
        max_steps = max_steps or DEFAULT_MAX_STEPS

        messages: List[dict] = [{"role": "system", "content": system_prompt or DEFAULT_SYSTEM_PROMPT}]
        if history:
            messages.extend({"role": m["role"], "content": m["content"]} for m in history)
        messages.append({"role": "user", "content": prompt})

        usage = AgentUsage()
        has_usage = False
        tool_outputs: List[Any] = []
        text = ""
        finish_reason = "unknown"
        steps = 0

        for _ in range(max_steps):
            resp = await self.provider.generate(
                messages,
                options={
                    "model": model,
                    "tools": AGENT_TOOLS_DEFINITION,
                    "tool_choice": "auto",
                },
            )
            steps += 1
            finish_reason = resp.finish_reason or finish_reason

            step_usage = (resp.meta_data or {}).get("usage")
            if step_usage:
                has_usage = True
                usage.prompt_tokens += step_usage.get("prompt_tokens") or 0
                usage.completion_tokens += step_usage.get("completion_tokens") or 0
                usage.total_tokens += step_usage.get("total_tokens") or 0

            content = resp.content or ""
            tool_calls = [self._normalize_tool_call(tc) for tc in (resp.tool_calls or [])]

            if not tool_calls:
                text = content
                break

            messages.append({
                "role": "assistant",
                "content": content,
                "tool_calls": [
                    {
                        "id": tc["id"],
                        "type": "function",
                        "function": {"name": tc["name"], "arguments": tc["arguments"]},
                    }
                    for tc in tool_calls
                ],
            })

            for tc in tool_calls:
                try:
                    args = json.loads(tc["arguments"]) if isinstance(tc["arguments"], str) else (tc["arguments"] or {})
                except json.JSONDecodeError:
                    args = {}

                logger.info(f"Executing tool {tc['name']} with args {args}")
                output = await self._execute_tool(tc["name"], args)
                tool_outputs.append(output)
                messages.append({
                    "role": "tool",
                    "tool_call_id": tc["id"],
                    "content": output if isinstance(output, str) else json.dumps(output, ensure_ascii=False),
                })

        if not text and tool_outputs:
            text = extract_tool_results_summary(tool_outputs)
        if not text:
            text = FALLBACK_RESPONSE

        return AgentResult(
            text=text,
            usage=usage if has_usage else None,
            finish_reason=finish_reason,
            steps=max(steps, 1),
        )

    async def _execute_tool(self, fname: Optional[str], args: Dict[str, Any]) -> Any:
        if not fname:
            return "Error: tool name is missing."

        try:
            if fname == "web_search":
                return await AgentTools.web_search(args.get("query", ""))
            return f"Error: Unknown tool {fname}"
        except Exception as e:
            logger.exception(f"Error executing tool {fname}: {e}")
            return f"Error executing {fname}: {str(e)}"

    def _normalize_tool_call(self, tool_call: Any) -> Dict[str, Any]:
        if isinstance(tool_call, dict) and isinstance(tool_call.get("function"), dict):
            return {
                "id": tool_call.get("id"),
                "name": tool_call["function"].get("name"),
                "arguments": tool_call["function"].get("arguments") or "{}",
            }
        if isinstance(tool_call, dict):
            return {
                "id": tool_call.get("id") or tool_call.get("call_id"),
                "name": tool_call.get("name"),
                "arguments": tool_call.get("arguments") or "{}",
            }
        fn = getattr(tool_call, "function", None)
        return {
            "id": getattr(tool_call, "id", None),
            "name": getattr(fn, "name", None),
            "arguments": getattr(fn, "arguments", None) or "{}",
        }
