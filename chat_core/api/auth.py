"""会话校验。

真正的用户登录体系在本服务之外；这里只提供 get_session(headers) 边界，
默认实现校验 Authorization: Bearer <token>。
未配置任何 token 时返回匿名会话。
"""

import hmac
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Protocol


@dataclass
class Session:
    token: Optional[str] = None
    anonymous: bool = False


class SessionVerifier(Protocol):
    def get_session(self, headers: Mapping[str, str]) -> Optional[Session]:
        ...


class BearerTokenSessionVerifier:
    def __init__(self, tokens: Iterable[str]):
        self._tokens = [t for t in tokens if t]

    def get_session(self, headers: Mapping[str, str]) -> Optional[Session]:
        if not self._tokens:
            return Session(anonymous=True)

        auth_header = headers.get("authorization") or headers.get("Authorization") or ""
        if not auth_header.startswith("Bearer "):
            return None
        token = auth_header.split(" ", 1)[1].strip()
        if not any(hmac.compare_digest(token, expected) for expected in self._tokens):
            return None
        return Session(token=token)
