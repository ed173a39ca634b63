import pytest

from chatproxy.errors import ArgumentDecodeError, UnknownToolError
from chatproxy.schemas import SearchResult
from chatproxy.tools import (
    ToolRegistry,
    WebSearchTool,
    build_default_registry,
    run_web_search,
    truncate,
)
from tests.fakes import FakeSerperClient, make_results


def test_truncate_appends_ellipsis_only_past_budget():
    assert truncate("a" * 601, 600) == "a" * 600 + "..."
    assert len(truncate("a" * 5000, 600)) == 603
    assert truncate("a" * 600, 600) == "a" * 600
    assert truncate("short", 600) == "short"
    assert truncate(None, 600) == ""


@pytest.mark.asyncio
async def test_run_web_search_clamps_to_ceiling_before_gateway():
    gateway = FakeSerperClient(results=make_results(8))
    result = await run_web_search(gateway, "news", 9)
    assert gateway.calls == [{"query": "news", "max_results": 5}]
    assert result["query"] == "news"
    assert [r["url"] for r in result["results"]] == [f"https://example.com/{i}" for i in range(1, 6)]


@pytest.mark.asyncio
async def test_run_web_search_clamps_low_values_to_one():
    gateway = FakeSerperClient(results=make_results(3))
    result = await run_web_search(gateway, "news", 0)
    assert gateway.calls[0]["max_results"] == 1
    assert len(result["results"]) == 1


@pytest.mark.asyncio
async def test_run_web_search_normalizes_fields_and_truncates_snippets():
    gateway = FakeSerperClient(
        results=[
            SearchResult(title=None, url=None, snippet=None),
            SearchResult(title="Long", url="https://long.test", snippet="x" * 700),
        ]
    )
    result = await run_web_search(gateway, "q", 3, snippet_chars=600)
    assert result["results"][0] == {"title": "", "url": "", "snippet": ""}
    assert result["results"][1]["snippet"] == "x" * 600 + "..."


@pytest.mark.asyncio
async def test_web_search_tool_defaults_to_three_results():
    gateway = FakeSerperClient()
    tool = WebSearchTool(gateway)
    args = tool.validate('{"query": "weather Lisbon today"}')
    assert args.max_results is None
    await tool.execute(args)
    assert gateway.calls == [{"query": "weather Lisbon today", "max_results": 3}]


@pytest.mark.parametrize(
    "raw",
    ["{", "[]", '"text"', "{}", '{"query": ""}', '{"query": "   "}', '{"max_results": 2}', '{"query": 5}'],
)
def test_web_search_tool_rejects_bad_arguments(raw):
    tool = WebSearchTool(FakeSerperClient())
    with pytest.raises(ArgumentDecodeError):
        tool.validate(raw)


def test_web_search_tool_tolerates_bad_max_results():
    tool = WebSearchTool(FakeSerperClient())
    assert tool.validate('{"query": "q", "max_results": "lots"}').max_results is None
    assert tool.validate('{"query": "q", "max_results": "4"}').max_results == 4
    assert tool.validate('{"query": "q", "max_results": 1e999}').max_results is None
    assert tool.validate('{"query": "q", "max_results": NaN}').max_results is None


def test_registry_lookup_and_definitions():
    registry = build_default_registry(FakeSerperClient())
    assert "web_search" in registry
    assert len(registry) == 1
    definition = registry.definitions()[0].to_openai()
    assert definition["type"] == "function"
    assert definition["function"]["name"] == "web_search"
    assert definition["function"]["parameters"]["required"] == ["query"]
    with pytest.raises(UnknownToolError):
        registry.get("fetch_page")


def test_registry_register_extends_catalog():
    class EchoTool:
        definition = WebSearchTool.definition.model_copy(update={"name": "echo"})

        def validate(self, raw_arguments):
            return raw_arguments

        async def execute(self, args):
            return {"echo": args}

    registry = ToolRegistry()
    registry.register(EchoTool())
    assert list(registry) == ["echo"]
    assert isinstance(registry.get("echo"), EchoTool)
