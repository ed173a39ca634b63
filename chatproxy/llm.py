import json
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .errors import UpstreamInferenceError
from .schemas import ChatMessage, ToolInvocationRequest


ToolChoice = Optional[str]


def _normalize_error_text(detail: str) -> str:
    text = detail or ""
    for _ in range(2):
        try:
            parsed = json.loads(text)
        except ValueError:
            break
        if isinstance(parsed, dict):
            found = False
            for key in ("error", "detail", "message"):
                val = parsed.get(key)
                if isinstance(val, dict):
                    val = val.get("message")
                if isinstance(val, str) and val.strip():
                    text = val
                    found = True
                    break
            if not found:
                break
        elif isinstance(parsed, str):
            text = parsed
        else:
            break
    return text


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict):
            return json.dumps(data, ensure_ascii=True)
    except ValueError:
        pass
    return response.text


def extract_message(data: Any) -> Tuple[str, List[ToolInvocationRequest]]:
    """Return the first choice's text content and tool-call requests.

    Raises UpstreamInferenceError when the body does not look like a chat
    completion. A message with no `tool_calls` (or a non-list value there)
    yields an empty list.
    """
    if not isinstance(data, dict):
        raise UpstreamInferenceError("Inference backend returned a non-object body.")
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        raise UpstreamInferenceError("Inference backend returned no choices.")
    message = choices[0].get("message")
    if not isinstance(message, dict):
        message = {}
    content = message.get("content")
    text = "" if content is None else str(content)

    raw_calls = message.get("tool_calls")
    calls: List[ToolInvocationRequest] = []
    if isinstance(raw_calls, list):
        for raw in raw_calls:
            if not isinstance(raw, dict):
                # Keep the slot so the turn still counts as a tool-call turn.
                calls.append(ToolInvocationRequest(type=""))
                continue
            function = raw.get("function") if isinstance(raw.get("function"), dict) else {}
            arguments = function.get("arguments")
            if isinstance(arguments, (dict, list)):
                arguments = json.dumps(arguments)
            calls.append(
                ToolInvocationRequest(
                    id=str(raw.get("id") or ""),
                    type=str(raw.get("type") or ""),
                    name=str(function.get("name") or ""),
                    arguments="{}" if arguments is None else str(arguments),
                )
            )
    return text, calls


class InferenceClient:
    def __init__(self, base_url: str, timeout_s: float = 120.0):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.client = httpx.AsyncClient(timeout=timeout_s)

    def _sanitize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {k: v for k, v in payload.items() if v is not None}

    async def chat_completion(
        self,
        model: str,
        messages: List[ChatMessage],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: ToolChoice = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        payload = self._sanitize_payload(
            {
                "model": model,
                "messages": [m.to_payload() for m in messages],
                "tools": tools or None,
                "tool_choice": tool_choice,
                "stream": False,
            }
        )
        try:
            resp = await self.client.post(url, json=payload, timeout=self.timeout_s)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _normalize_error_text(_extract_error_detail(exc.response))
            status = exc.response.status_code
            raise UpstreamInferenceError(
                detail or f"Upstream chat backend error ({status} {exc.response.reason_phrase})",
                status_code=status,
                detail=detail,
            ) from exc
        except httpx.TimeoutException as exc:
            raise UpstreamInferenceError(f"Inference backend timed out after {self.timeout_s}s") from exc
        except httpx.RequestError as exc:
            raise UpstreamInferenceError(f"Inference backend unreachable: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamInferenceError("Inference backend returned invalid JSON.") from exc
        if not isinstance(data, dict):
            raise UpstreamInferenceError("Inference backend returned a non-object body.")
        return data

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
