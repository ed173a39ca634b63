import json
from typing import Iterator

from fastapi.responses import StreamingResponse

from .schemas import FinalAnswer


DONE_FRAME = "data: [DONE]\n\n"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def sse_format(event: dict) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


def encode_final_answer(answer: FinalAnswer) -> Iterator[str]:
    # The whole answer goes out as a single delta chunk.
    if answer.text:
        yield sse_format({"choices": [{"delta": {"content": answer.text}}]})
    yield DONE_FRAME


def stream_final_answer(answer: FinalAnswer) -> StreamingResponse:
    return StreamingResponse(
        encode_final_answer(answer),
        status_code=200,
        media_type="text/event-stream; charset=utf-8",
        headers=SSE_HEADERS,
    )
