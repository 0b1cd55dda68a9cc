"""Entry API 客户端（httpx.AsyncClient）

说明：
- 只做一次请求，不做任何自动重试；重试由用户触发。
- 按状态码把失败归类：400 -> ValidationError，404 -> NotFoundError，
  verify-password 的 401 -> AuthChallengeError，其余 -> ApiError。
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from ..schemas import CommentResponse, EntryResponse
from ..utils.errors import exception_summary, safe_str
from .errors import ApiError, AuthChallengeError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _error_detail(resp: httpx.Response) -> tuple[str | None, list[str]]:
    try:
        data: Any = resp.json()
    except ValueError:
        return None, []
    if not isinstance(data, dict):
        return None, []

    detail = data.get("detail", data)
    if isinstance(detail, str):
        return detail, []
    if isinstance(detail, dict):
        message = detail.get("message")
        errors = detail.get("errors")
        return (
            message if isinstance(message, str) else None,
            [str(e) for e in errors] if isinstance(errors, list) else [],
        )
    if isinstance(detail, list):
        # FastAPI 自带的 422 结构
        return None, [safe_str(item.get("msg") if isinstance(item, dict) else item) for item in detail]
    return None, []


def _raise_for_response(resp: httpx.Response) -> None:
    if resp.is_success:
        return

    message, errors = _error_detail(resp)
    status = resp.status_code
    if status in (400, 422):
        raise ValidationError(message or "Invalid entry data", errors=errors, status_code=status)
    if status == 404:
        raise NotFoundError()
    raise ApiError(message or f"Request failed (HTTP {status})", status_code=status)


def _entry_payload(data: dict[str, Any]) -> dict[str, Any]:
    # 本地预览引用由 Draft 负责剔除；这里只做浅拷贝，避免调用方后续修改影响请求体
    return {k: (list(v) if isinstance(v, list) else v) for k, v in data.items()}


class EntryApiClient:
    def __init__(self, client: httpx.AsyncClient, *, api_prefix: str = "/api"):
        self.client = client
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""

    def _url(self, path: str) -> str:
        return f"{self.api_prefix}{path}"

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            resp = await self.client.request(method, self._url(path), **kwargs)
        except httpx.RequestError as e:
            logger.warning("[API] %s %s failed: %s", method, path, exception_summary(e))
            raise ApiError("Network error. Please try again.") from e
        return resp

    async def list_entries(
        self,
        *,
        email: str | None = None,
        feeling: str | None = None,
        location: str | None = None,
        tag: str | None = None,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[EntryResponse]:
        raw = {
            "email": email,
            "feeling": feeling,
            "location": location,
            "tag": tag,
            "startDate": start_date.isoformat() if isinstance(start_date, date) else start_date,
            "endDate": end_date.isoformat() if isinstance(end_date, date) else end_date,
            "limit": limit,
            "offset": offset,
        }
        # 没有值的筛选条件不发送（缺省 = 不限制）
        params = {k: v for k, v in raw.items() if v is not None and v != ""}
        resp = await self._request("GET", "/entries", params=params)
        _raise_for_response(resp)
        return [EntryResponse.model_validate(item) for item in resp.json()]

    async def get_entry(self, entry_id: int) -> EntryResponse:
        resp = await self._request("GET", f"/entries/{entry_id}")
        _raise_for_response(resp)
        return EntryResponse.model_validate(resp.json())

    async def create_entry(self, data: dict[str, Any]) -> EntryResponse:
        resp = await self._request("POST", "/entries", json=_entry_payload(data))
        _raise_for_response(resp)
        return EntryResponse.model_validate(resp.json())

    async def update_entry(self, entry_id: int, data: dict[str, Any]) -> EntryResponse:
        resp = await self._request("PUT", f"/entries/{entry_id}", json=_entry_payload(data))
        _raise_for_response(resp)
        return EntryResponse.model_validate(resp.json())

    async def set_sensitive(self, entry_id: int, sensitive: bool) -> EntryResponse:
        resp = await self._request("PATCH", f"/entries/{entry_id}/sensitive", json={"sensitive": bool(sensitive)})
        _raise_for_response(resp)
        return EntryResponse.model_validate(resp.json())

    async def delete_entry(self, entry_id: int) -> None:
        resp = await self._request("DELETE", f"/entries/{entry_id}")
        _raise_for_response(resp)

    async def list_comments(self, entry_id: int) -> list[CommentResponse]:
        resp = await self._request("GET", f"/entries/{entry_id}/comments")
        _raise_for_response(resp)
        return [CommentResponse.model_validate(item) for item in resp.json()]

    async def add_comment(self, entry_id: int, content: str) -> CommentResponse:
        resp = await self._request("POST", f"/entries/{entry_id}/comments", json={"content": content})
        _raise_for_response(resp)
        return CommentResponse.model_validate(resp.json())

    async def delete_comment(self, entry_id: int, comment_id: int) -> None:
        resp = await self._request("DELETE", f"/entries/{entry_id}/comments/{comment_id}")
        if resp.status_code == 404:
            raise NotFoundError("This comment no longer exists")
        _raise_for_response(resp)

    async def verify_password(self, password: str, user_email: str | None = None) -> None:
        """成功直接返回；密码错误抛 AuthChallengeError（不带具体原因）。"""
        body: dict[str, Any] = {"password": password}
        if user_email:
            body["userEmail"] = user_email
        resp = await self._request("POST", "/verify-password", json=body)
        if resp.status_code == 401:
            raise AuthChallengeError()
        _raise_for_response(resp)

    async def set_protection_password(
        self,
        user_email: str,
        password: str,
        current_password: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"userEmail": user_email, "password": password}
        if current_password is not None:
            body["currentPassword"] = current_password
        resp = await self._request("PUT", "/protection-password", json=body)
        if resp.status_code == 401:
            raise AuthChallengeError()
        _raise_for_response(resp)
