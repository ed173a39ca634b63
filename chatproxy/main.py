import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import AppSettings, CONFIG_PATH, load_settings, save_settings
from .errors import ChatProxyError
from .llm import InferenceClient
from .orchestrator import ToolCallingOrchestrator
from .schemas import ChatRequest
from .serper import SerperClient
from .streaming import stream_final_answer
from .tools import build_default_registry


logger = logging.getLogger("uvicorn.error")

CHAT_FAILURE = {"error": "Failed to call local chat backend"}
MASKED_SECRET = "********"


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_orchestrator(request: Request) -> ToolCallingOrchestrator:
    return request.app.state.orchestrator


def get_config_path(request: Request) -> Path:
    return request.app.state.config_path


def wire_orchestrator(app: FastAPI, settings: AppSettings) -> None:
    app.state.registry = build_default_registry(app.state.search_client, settings)
    app.state.orchestrator = ToolCallingOrchestrator(
        app.state.inference_client,
        app.state.registry,
        default_model=settings.default_model,
        parallel_tools=settings.parallel_tool_calls,
    )


async def _read_chat_request(request: Request) -> ChatRequest:
    try:
        body: Any = await request.json()
    except (ValueError, UnicodeDecodeError):
        body = None
    if not isinstance(body, dict):
        body = {}
    return ChatRequest.model_validate(body)


router = APIRouter()


@router.get("/health")
async def health():
    return {"ok": True}


@router.get("/settings")
async def get_settings_route(settings: AppSettings = Depends(get_settings)):
    return {"settings": settings.to_safe_dict()}


@router.post("/settings")
async def update_settings_route(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    config_path: Path = Depends(get_config_path),
):
    try:
        body: Any = await request.json()
    except (ValueError, UnicodeDecodeError):
        raise HTTPException(status_code=400, detail="Invalid JSON body.")
    if not isinstance(body, dict):
        raise HTTPException(status_code=400, detail="Settings must be a JSON object.")
    # GET /settings hands out the masked key; posting it back keeps the current one.
    if body.get("serper_api_key") == MASKED_SECRET:
        body.pop("serper_api_key")
    try:
        new_settings = AppSettings(**{**settings.model_dump(), **body})
    except ValidationError:
        raise HTTPException(status_code=400, detail="Invalid settings.")
    if not new_settings.serper_api_key or not new_settings.serper_base_url:
        raise HTTPException(status_code=400, detail="Serper API key and base URL are required.")
    save_settings(new_settings, config_path=config_path)
    request.app.state.settings = new_settings
    inference_client = request.app.state.inference_client
    inference_client.base_url = new_settings.inference_base_url.rstrip("/")
    inference_client.timeout_s = new_settings.inference_timeout_s
    search_client = request.app.state.search_client
    search_client.api_key = new_settings.serper_api_key
    search_client.base_url = new_settings.serper_base_url.rstrip("/")
    search_client.timeout_s = new_settings.search_timeout_s
    wire_orchestrator(request.app, new_settings)
    return {"ok": True, "settings": new_settings.to_safe_dict()}


@router.post("/api/chat")
async def chat(
    request: Request,
    orchestrator: ToolCallingOrchestrator = Depends(get_orchestrator),
):
    try:
        chat_request = await _read_chat_request(request)
        answer = await orchestrator.run_turn(chat_request)
    except (ChatProxyError, ValidationError) as exc:
        logger.error("Local chat route error: %s", exc)
        return JSONResponse(CHAT_FAILURE, status_code=500)
    except Exception:
        logger.exception("Local chat route error")
        return JSONResponse(CHAT_FAILURE, status_code=500)
    return stream_final_answer(answer)


def create_app(
    settings: AppSettings,
    *,
    inference_client: Optional[InferenceClient] = None,
    search_client: Optional[SerperClient] = None,
    config_path: Optional[Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            await app.state.inference_client.close()
            await app.state.search_client.close()

    app = FastAPI(title="chatproxy", lifespan=lifespan)
    app.state.settings = settings
    app.state.config_path = config_path or CONFIG_PATH
    if search_client is None:
        search_client = SerperClient(
            settings.serper_api_key, settings.serper_base_url, timeout_s=settings.search_timeout_s
        )
    app.state.search_client = search_client
    app.state.inference_client = inference_client or InferenceClient(
        settings.inference_base_url, timeout_s=settings.inference_timeout_s
    )
    wire_orchestrator(app, settings)
    app.include_router(router)
    return app


def build_app() -> FastAPI:
    return create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = load_settings()
    reload_enabled = os.getenv("CHATPROXY_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "chatproxy.main:build_app",
            factory=True,
            host=settings.host,
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
