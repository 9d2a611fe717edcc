"""
Jira REST API 客戶端

支援:
- Jira Server cookie session (JSESSIONID) 認證，session 失效時自動重新登入一次
- 反向代理 Basic Auth (可與 session 同時使用)
"""

import base64
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

import requests

from .config import Config
from .errors import AuthError, SessionExpired, TransportError
from .storage import WorklogContext


logger = logging.getLogger(__name__)

SESSION_PATH = "/rest/auth/1/session"


@dataclass
class Endpoint:
    """解析後的 Jira 位址"""
    scheme: str
    hostname: str
    port: int
    base_path: str = ""

    def url(self, path: str) -> str:
        return f"{self.scheme}://{self.hostname}:{self.port}{self.base_path}{path}"


def resolve_endpoint(host: str) -> Endpoint:
    """
    從設定的 host 解析出 scheme、hostname、port

    https:// 使用 443，其餘使用 80；host 內明確指定的 port 優先。
    """
    host = host.strip()
    secure = host.lower().startswith("https://")
    without_scheme = host.split("://", 1)[1] if "://" in host else host
    netloc, _, base_path = without_scheme.partition("/")
    base_path = f"/{base_path.rstrip('/')}" if base_path.strip("/") else ""

    hostname, port = netloc, 443 if secure else 80
    if ":" in netloc:
        name, _, port_text = netloc.rpartition(":")
        if port_text.isdigit():
            hostname, port = name, int(port_text)

    return Endpoint(
        scheme="https" if secure else "http",
        hostname=hostname,
        port=port,
        base_path=base_path,
    )


class JiraSessionClient:
    """
    Session 認證的 Jira 請求客戶端

    Args:
        get_config: 每次請求時取得目前配置
        context: 保存 session token 的 WorklogContext
        relogin: session 失效時呼叫，參數為 suppress_status_updates；
            失敗時應拋出 AuthError
    """

    def __init__(self, get_config: Callable[[], Config], context: WorklogContext,
                 relogin: Optional[Callable[[bool], Any]] = None):
        self.get_config = get_config
        self.context = context
        self.relogin = relogin
        self._login_lock = threading.Lock()
        self.http = requests.Session()
        self.http.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    def _build_headers(self, config: Config, payload: bytes) -> dict:
        headers = {"Content-Length": str(len(payload))}

        session = self.context.session
        if session:
            headers["Cookie"] = f"JSESSIONID={session}"

        if config.has_basic_auth():
            auth_string = base64.b64encode(
                f"{config.basic_auth_login}:{config.basic_auth_password}".encode()
            ).decode()
            headers["Authorization"] = f"Basic {auth_string}"

        return headers

    def _request(self, path: str, method: str, body: Any) -> requests.Response:
        config = self.get_config()
        endpoint = resolve_endpoint(config.host)
        payload = b"" if body is None else json.dumps(body).encode()

        try:
            resp = self.http.request(
                method,
                endpoint.url(path),
                data=payload or None,
                headers=self._build_headers(config, payload),
                timeout=config.request_timeout or None,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {path} failed: {e}") from e
        finally:
            # session 只透過 Cookie header 傳遞，不保留伺服器回傳的 cookie
            self.http.cookies.clear()

        logger.debug(f"{method} {path} -> {resp.status_code}")
        return resp

    @staticmethod
    def is_session_invalid(resp: requests.Response) -> bool:
        """伺服器回報 session 無效"""
        return resp.status_code == 401

    @staticmethod
    def _parse(resp: requests.Response, path: str) -> Any:
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise TransportError(
                f"Invalid JSON from {path} (HTTP {resp.status_code})",
                status_code=resp.status_code,
            ) from e

    def send(self, path: str, method: str = "GET", body: Any = None,
             allow_relogin: bool = True) -> Any:
        """
        送出請求並回傳解析後的 JSON

        session 失效時重新登入並重送同一請求一次；第二次仍失效則照常解析。
        多個背景請求同時失效時只登入一次，其餘直接用新的 session 重送。

        Raises:
            TransportError: 連線失敗或回應不是 JSON
            SessionExpired: session 失效且沒有可用的重新登入
            AuthError: 重新登入失敗
        """
        sent_session = self.context.session
        resp = self._request(path, method, body)

        if allow_relogin and self.is_session_invalid(resp):
            if not self.relogin:
                raise SessionExpired(f"Session rejected on {method} {path}")
            with self._login_lock:
                if self.context.session == sent_session:
                    logger.info(f"Session rejected on {method} {path}, logging in again")
                    self.relogin(True)
            resp = self._request(path, method, body)

        return self._parse(resp, path)

    def create_session(self, username: str, password: str) -> str:
        """登入並回傳新的 session token"""
        try:
            data = self.send(SESSION_PATH, "POST",
                             {"username": username, "password": password},
                             allow_relogin=False)
        except TransportError as e:
            if e.status_code is not None:
                raise AuthError(f"Login rejected (HTTP {e.status_code})") from e
            raise

        logger.info("Login Response:")
        logger.info(f"-- {json.dumps(_redact(data))}")

        try:
            token = data["session"]["value"]
        except (KeyError, TypeError):
            messages = data.get("errorMessages") if isinstance(data, dict) else None
            raise AuthError(messages[0] if messages else "No session in login response")

        self.context.session = token
        return token

    def delete_session(self):
        """登出，清除本機 session"""
        if self.context.session:
            try:
                self.send(SESSION_PATH, "DELETE", allow_relogin=False)
            except TransportError as e:
                logger.warning(f"Logout request failed: {e}")
        self.context.clear_session()


def _redact(data: Any) -> Any:
    """日誌中隱藏 session token"""
    if isinstance(data, dict) and isinstance(data.get("session"), dict):
        return {**data, "session": {**data["session"], "value": "***"}}
    return data
