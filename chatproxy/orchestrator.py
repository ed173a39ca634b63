import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional, Sequence

from . import prompts
from .errors import ArgumentDecodeError, UnknownToolError
from .llm import InferenceClient, extract_message
from .schemas import (
    ChatMessage,
    ChatRequest,
    FinalAnswer,
    ToolInvocationRequest,
    ToolInvocationResult,
)
from .tools import ToolHandler, ToolRegistry


logger = logging.getLogger("uvicorn.error")

DECIDE_MESSAGE = ChatMessage(role="system", content=prompts.DECIDE_SYSTEM)
ANSWER_MESSAGE = ChatMessage(role="system", content=prompts.ANSWER_SYSTEM)


class TurnState(str, Enum):
    DECIDING = "deciding"
    ACTING = "acting"
    ANSWERING = "answering"
    DONE = "done"
    FAILED = "failed"


class AcceptedCall(NamedTuple):
    request: ToolInvocationRequest
    handler: ToolHandler
    args: Any


@dataclass
class TurnContext:
    model: str
    messages: List[ChatMessage]
    state: TurnState = TurnState.DECIDING
    tool_calls: List[ToolInvocationRequest] = field(default_factory=list)
    results: List[ToolInvocationResult] = field(default_factory=list)
    answer: Optional[FinalAnswer] = None
    error: Optional[BaseException] = None
    history: List[TurnState] = field(default_factory=list)

    def move(self, state: TurnState) -> None:
        self.history.append(self.state)
        self.state = state


def build_decide_messages(messages: Sequence[ChatMessage]) -> List[ChatMessage]:
    return [DECIDE_MESSAGE, *messages]


def build_answer_messages(
    messages: Sequence[ChatMessage],
    results: Sequence[ToolInvocationResult],
) -> List[ChatMessage]:
    # The assistant message that asked for the tools is not carried forward.
    return [ANSWER_MESSAGE, *messages, *(r.to_message() for r in results)]


def parse_tool_calls(registry: ToolRegistry, calls: Sequence[ToolInvocationRequest]) -> List[AcceptedCall]:
    accepted: List[AcceptedCall] = []
    for call in calls:
        if call.type != "function":
            logger.debug("Dropping tool call %r with type %r", call.id, call.type)
            continue
        try:
            handler = registry.get(call.name)
            args = handler.validate(call.arguments)
        except (UnknownToolError, ArgumentDecodeError) as exc:
            logger.debug("Dropping tool call %r (%s): %s", call.id, call.name, exc)
            continue
        accepted.append(AcceptedCall(call, handler, args))
    return accepted


class ToolCallingOrchestrator:
    """Runs one chat turn: let the model pick tools, run them, then answer.

    Each turn is independent; the registry and the prompts are shared read-only.
    """

    def __init__(
        self,
        inference: InferenceClient,
        registry: ToolRegistry,
        *,
        default_model: str,
        parallel_tools: bool = False,
    ):
        self.inference = inference
        self.registry = registry
        self.default_model = default_model
        self.parallel_tools = parallel_tools
        self._steps: Dict[TurnState, Callable[[TurnContext], Awaitable[None]]] = {
            TurnState.DECIDING: self._decide,
            TurnState.ACTING: self._act,
            TurnState.ANSWERING: self._answer,
        }

    async def run_turn(self, request: ChatRequest) -> FinalAnswer:
        ctx = TurnContext(model=request.model or self.default_model, messages=list(request.messages))
        await self.drive(ctx)
        return ctx.answer or FinalAnswer()

    async def drive(self, ctx: TurnContext) -> TurnContext:
        try:
            while ctx.state is not TurnState.DONE:
                await self._steps[ctx.state](ctx)
        except Exception as exc:
            ctx.error = exc
            ctx.move(TurnState.FAILED)
            raise
        return ctx

    async def _decide(self, ctx: TurnContext) -> None:
        data = await self.inference.chat_completion(
            model=ctx.model,
            messages=build_decide_messages(ctx.messages),
            tools=[d.to_openai() for d in self.registry.definitions()],
            tool_choice="auto",
        )
        text, calls = extract_message(data)
        if not calls:
            ctx.answer = FinalAnswer(text=text)
            ctx.move(TurnState.DONE)
            return
        ctx.tool_calls = calls
        ctx.move(TurnState.ACTING)

    async def _act(self, ctx: TurnContext) -> None:
        accepted = parse_tool_calls(self.registry, ctx.tool_calls)
        logger.info(
            "Tool calling: %d requested, %d accepted (%s)",
            len(ctx.tool_calls),
            len(accepted),
            ", ".join(a.request.name for a in accepted) or "none",
        )
        if self.parallel_tools and len(accepted) > 1:
            # gather keeps request order regardless of completion order.
            ctx.results = list(await asyncio.gather(*(self._execute(a) for a in accepted)))
        else:
            ctx.results = [await self._execute(a) for a in accepted]
        ctx.move(TurnState.ANSWERING)

    async def _execute(self, call: AcceptedCall) -> ToolInvocationResult:
        payload = await call.handler.execute(call.args)
        return ToolInvocationResult(tool_call_id=call.request.id, name=call.request.name, content=payload)

    async def _answer(self, ctx: TurnContext) -> None:
        data = await self.inference.chat_completion(
            model=ctx.model,
            messages=build_answer_messages(ctx.messages, ctx.results),
            tool_choice="none",
        )
        text, _ = extract_message(data)
        ctx.answer = FinalAnswer(text=text)
        ctx.move(TurnState.DONE)
