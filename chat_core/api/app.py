"""HTTP 入口（FastAPI）。

路由：
  POST /api/chat           - 流式聊天，返回 UI 消息流（text/event-stream）。
  GET  /api/ai/get-models  - 列出 OpenRouter 上的免费模型，需要会话。
  GET  /health             - 存活检查。

错误响应统一为 {"error": ..., "details": ...}；流开始之后的错误只能通过流内的
error 事件通知前端。
"""

from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.concurrency import run_in_threadpool

from chat_core.api import service
from chat_core.chat.ui_stream import UI_MESSAGE_STREAM_HEADERS
from chat_core.config.settings import settings
from chat_core.domain.exceptions import BusinessError, ValidationError
from chat_core.infrastructure.logging.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "chat-core starting",
        extra={"extra": {
            "environment": settings.environment,
            "storage_backend": settings.storage_backend,
            "provider_configured": bool(settings.openrouter_api_key),
        }},
    )
    yield
    logger.info("chat-core stopped")


app = FastAPI(title="chat-core API", description="Streaming chat relay with persisted history", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_response(exc: BusinessError) -> JSONResponse:
    return JSONResponse(status_code=exc.http_status, content={"error": exc.message, "details": exc.details})


@app.exception_handler(BusinessError)
async def business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
    return _error_response(exc)


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "environment": settings.environment,
        "storage_backend": settings.storage_backend,
        "provider_configured": bool(settings.openrouter_api_key),
    }


@app.post("/api/chat")
async def chat(request: Request):
    try:
        try:
            body = await request.json()
        except ValueError as e:
            raise ValidationError(code="INVALID_JSON", message="Request body is not valid JSON", details=str(e))
        stream = await run_in_threadpool(service.handle_chat, body)
    except BusinessError as e:
        level = "warning" if e.http_status < 500 else "error"
        getattr(logger, level)(
            f"Chat request rejected: {e.message}",
            extra={"extra": {"code": e.code, "status": e.http_status}},
        )
        return _error_response(e)
    except Exception as e:
        logger.error(f"API Route Error: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": str(e) or "Internal server error", "details": repr(e)},
        )
    return StreamingResponse(stream, media_type="text/event-stream", headers=UI_MESSAGE_STREAM_HEADERS)


@app.get("/api/ai/get-models")
async def get_models(request: Request):
    session = service.get_session_verifier().get_session(request.headers)
    if session is None:
        return JSONResponse(status_code=401, content={"success": False, "error": "Unauthorized"})
    try:
        models = await run_in_threadpool(service.list_free_models)
    except Exception as e:
        logger.error(f"Error fetching free models: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": str(e) or "Failed to fetch free models"},
        )
    return {"models": models}


def run():
    """启动 uvicorn 服务（console script: chat-core）。"""
    uvicorn.run(
        "chat_core.api.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
