import json
from typing import Any, Dict, Iterator, List, Optional, Protocol

from pydantic import ValidationError

from .errors import ArgumentDecodeError, UnknownToolError
from .schemas import SearchResult, ToolDefinition, WebSearchArgs


SEARCH_RESULTS_CEILING = 5
SEARCH_MAX_CHARS = 600
SEARCH_DEFAULT_RESULTS = 3
ELLIPSIS = "..."

WEB_SEARCH_DEFINITION = ToolDefinition(
    name="web_search",
    description="Quickly search the web and return short snippets.",
    parameters={
        "type": "object",
        "properties": {
            "query": {"type": "string"},
            "max_results": {
                "type": "integer",
                "minimum": 1,
                "maximum": SEARCH_RESULTS_CEILING,
                "default": SEARCH_DEFAULT_RESULTS,
            },
        },
        "required": ["query"],
    },
)


class SearchGateway(Protocol):
    async def search(self, query: str, max_results: int) -> List[SearchResult]: ...


class ToolHandler(Protocol):
    definition: ToolDefinition

    def validate(self, raw_arguments: str) -> Any: ...

    async def execute(self, args: Any) -> Dict[str, Any]: ...


def truncate(text: Optional[str], limit: int) -> str:
    if not text:
        return ""
    if len(text) > limit:
        return text[:limit] + ELLIPSIS
    return text


def decode_arguments(raw_arguments: Optional[str]) -> Dict[str, Any]:
    try:
        decoded = json.loads(raw_arguments or "{}")
    except ValueError as exc:
        raise ArgumentDecodeError(f"Tool arguments are not valid JSON: {exc}") from exc
    if not isinstance(decoded, dict):
        raise ArgumentDecodeError("Tool arguments must decode to an object.")
    return decoded


async def run_web_search(
    gateway: SearchGateway,
    query: str,
    max_results: int,
    *,
    ceiling: int = SEARCH_RESULTS_CEILING,
    snippet_chars: int = SEARCH_MAX_CHARS,
) -> Dict[str, Any]:
    limit = min(max(int(max_results), 1), ceiling)
    results = await gateway.search(query, limit)
    enriched = [
        {
            "title": r.title or "",
            "url": r.url or "",
            "snippet": truncate(r.snippet, snippet_chars),
        }
        for r in results[:limit]
    ]
    return {"query": query, "results": enriched}


class WebSearchTool:
    definition = WEB_SEARCH_DEFINITION

    def __init__(
        self,
        gateway: SearchGateway,
        *,
        default_results: int = SEARCH_DEFAULT_RESULTS,
        ceiling: int = SEARCH_RESULTS_CEILING,
        snippet_chars: int = SEARCH_MAX_CHARS,
    ):
        self.gateway = gateway
        self.default_results = default_results
        self.ceiling = ceiling
        self.snippet_chars = snippet_chars

    def validate(self, raw_arguments: str) -> WebSearchArgs:
        decoded = decode_arguments(raw_arguments)
        try:
            return WebSearchArgs.model_validate(decoded)
        except ValidationError as exc:
            raise ArgumentDecodeError(f"Invalid web_search arguments: {exc.error_count()} error(s)") from exc

    async def execute(self, args: WebSearchArgs) -> Dict[str, Any]:
        max_results = args.max_results if args.max_results is not None else self.default_results
        return await run_web_search(
            self.gateway,
            args.query,
            max_results,
            ceiling=self.ceiling,
            snippet_chars=self.snippet_chars,
        )


class ToolRegistry:
    """Tool handlers keyed by the function name the model calls."""

    def __init__(self) -> None:
        self._handlers: Dict[str, ToolHandler] = {}

    def register(self, handler: ToolHandler) -> None:
        self._handlers[handler.definition.name] = handler

    def get(self, name: str) -> ToolHandler:
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownToolError(name)
        return handler

    def definitions(self) -> List[ToolDefinition]:
        return [h.definition for h in self._handlers.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)


def build_default_registry(gateway: SearchGateway, settings: Optional[Any] = None) -> ToolRegistry:
    registry = ToolRegistry()
    if settings is None:
        registry.register(WebSearchTool(gateway))
    else:
        registry.register(
            WebSearchTool(
                gateway,
                default_results=settings.search_default_results,
                ceiling=settings.search_results_ceiling,
                snippet_chars=settings.search_max_chars,
            )
        )
    return registry
