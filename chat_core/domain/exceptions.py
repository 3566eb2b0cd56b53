"""统一业务异常模型。

所有跨模块抛出的业务级错误都应该继承自 BusinessError，
便于在 API 层统一捕获并转换为 {"error", "details"} 响应。
"""


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "STORE_READ_ERROR"）。
        message: 用户可读错误信息。
        http_status: 映射到 HTTP 时使用的状态码，默认取子类的 default_status。
        extra: 其他补充字段（例如 details、upstream_status 等）。
    """

    default_status = 400

    def __init__(self, code: str, message: str, http_status: int | None = None, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status or self.default_status
        self.extra = extra
        super().__init__(message)

    @property
    def details(self) -> str:
        return str(self.extra.get("details") or self.code)


class ValidationError(BusinessError):
    """请求参数校验失败（缺少 model、没有消息等）。"""


class AuthenticationError(BusinessError):
    """未登录或会话无效。"""

    default_status = 401


class UpstreamError(BusinessError):
    """调用 LLM Provider 失败，统一映射为 500。"""

    default_status = 500


class NetworkError(UpstreamError):
    """网络层错误，例如连接失败、超时等。"""


class ApiError(UpstreamError):
    """Provider 返回非 2xx 状态或在流中返回 error 事件。"""


class RateLimitError(UpstreamError):
    """Provider 限流（429）。本服务不做重试，直接上抛。"""


class ConversionError(BusinessError):
    """UIMessage 无法按结构化方式转换为 Provider 消息，由降级路径兜底。"""


class PersistenceError(BusinessError):
    """存储层读写失败。"""

    default_status = 500
