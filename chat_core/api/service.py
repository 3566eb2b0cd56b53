"""对外 API 服务模块。

提供简化的函数接口供 HTTP 层调用，并以单例方式持有存储、Provider 等依赖。
"""

from typing import Any, Dict, Iterator, List, Optional
from uuid import uuid4

from chat_core.api.auth import BearerTokenSessionVerifier, SessionVerifier
from chat_core.chat.reconciler import reconcile
from chat_core.chat.request import parse_chat_request
from chat_core.chat.responder import ChatResponder
from chat_core.config.settings import settings
from chat_core.domain.conversation import TurnStore
from chat_core.infrastructure.logging.logger import logger
from chat_core.infrastructure.storage.json_store import JsonTurnStore
from chat_core.infrastructure.storage.sql_store import SqlTurnStore
from chat_core.prompts import resolve_system_prompt
from chat_core.providers import create_provider
from chat_core.providers.base import ProviderClient
from chat_core.providers.catalog import free_models


_store: Optional[TurnStore] = None
_provider: Optional[ProviderClient] = None
_responder: Optional[ChatResponder] = None
_verifier: Optional[SessionVerifier] = None


def get_store() -> TurnStore:
    """获取默认的会话存储（单例），后端由 storage_backend 决定。"""
    global _store
    if _store is None:
        if settings.storage_backend == "json":
            _store = JsonTurnStore(root=settings.storage_root)
        else:
            _store = SqlTurnStore(url=settings.database_url)
    return _store


def get_provider() -> ProviderClient:
    global _provider
    if _provider is None:
        _provider = create_provider()
    return _provider


def get_responder() -> ChatResponder:
    global _responder
    if _responder is None:
        _responder = ChatResponder(
            provider=get_provider(),
            store=get_store(),
            system_prompt=resolve_system_prompt(settings),
            send_reasoning=settings.send_reasoning,
        )
    return _responder


def get_session_verifier() -> SessionVerifier:
    global _verifier
    if _verifier is None:
        _verifier = BearerTokenSessionVerifier(settings.token_list)
    return _verifier


def handle_chat(body: Any) -> Iterator[str]:
    """处理一次聊天请求，返回 SSE 帧迭代器。

    Args:
        body: 已解析的 JSON 请求体

    Returns:
        逐步产出 SSE 帧的迭代器；第一条 Provider 增量已经取到

    Raises:
        ValidationError: 请求体不合法
        UpstreamError: Provider 调用在开始输出之前失败
        PersistenceError: 读取历史失败
    """
    request = parse_chat_request(body)
    log_ctx: Dict[str, Any] = {
        "trace_id": f"tr-{uuid4().hex}",
        "chat_id": request.chat_id,
        "model": request.model,
    }
    stored = get_store().find_many(request.chat_id) if request.chat_id else []
    history = reconcile(stored, request.incoming, debug=settings.is_development, log_ctx=log_ctx)
    return get_responder().start(request, history, log_ctx=log_ctx)


def list_free_models() -> List[Dict[str, Any]]:
    """返回 Provider 目录中的免费模型。"""
    items = get_provider().list_models()
    models = free_models(items)
    logger.info("Listed free models", extra={"extra": {"total": len(items), "free": len(models)}})
    return models
