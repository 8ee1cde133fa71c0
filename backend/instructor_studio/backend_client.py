from __future__ import annotations
import logging
import httpx
from fastapi import Header
from typing import Any, Dict, Optional
from .settings import settings

logger = logging.getLogger(__name__)


class ApiClientError(Exception):
	"""A failed call to the external backend.

	`message` is the backend's JSON ``message`` when it sent one, otherwise the
	HTTP reason phrase. Network failures use status code 503.
	"""

	def __init__(self, message: str, status_code: int, error: Optional[str] = None) -> None:
		super().__init__(message)
		self.message = message
		self.status_code = status_code
		self.error = error


class BackendClient:
	def __init__(
		self,
		token: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
		timeout: Optional[float] = None,
	) -> None:
		self.base_url = (base_url or settings.api_base_url).rstrip("/")
		self.token = token or settings.api_token
		headers = {"Content-Type": "application/json"}
		if self.token:
			headers["Authorization"] = f"Bearer {self.token}"
		self._client = httpx.AsyncClient(
			headers=headers,
			timeout=timeout or settings.api_timeout_seconds,
			transport=transport,
		)

	async def get(self, endpoint: str, *, params: Optional[Dict[str, Any]] = None) -> Any:
		return await self._request("GET", endpoint, params=params)

	async def post(self, endpoint: str, data: Any = None) -> Any:
		return await self._request("POST", endpoint, json=data)

	async def put(self, endpoint: str, data: Any = None) -> Any:
		return await self._request("PUT", endpoint, json=data)

	async def patch(self, endpoint: str, data: Any = None) -> Any:
		return await self._request("PATCH", endpoint, json=data)

	async def delete(self, endpoint: str) -> Any:
		return await self._request("DELETE", endpoint)

	async def _request(
		self,
		method: str,
		endpoint: str,
		*,
		params: Optional[Dict[str, Any]] = None,
		json: Any = None,
	) -> Any:
		url = f"{self.base_url}{endpoint}"
		try:
			r = await self._client.request(method, url, params=params, json=json)
		except httpx.RequestError as net_err:
			logger.warning("%s %s failed: %s", method, url, net_err)
			raise ApiClientError(f"Backend unreachable: {net_err}", 503) from net_err
		if r.is_error:
			raise self._error_from_response(r)
		# 204 No Content
		if r.status_code == 204 or not r.content:
			return None
		try:
			return r.json()
		except ValueError as err:
			raise ApiClientError(f"Unexpected backend response: {r.text[:200]}", 502) from err

	@staticmethod
	def _error_from_response(r: httpx.Response) -> ApiClientError:
		try:
			data = r.json()
		except ValueError:
			data = {}
		if not isinstance(data, dict):
			data = {}
		message = data.get("message") or r.reason_phrase or "API request failed"
		# NestJS validation errors carry a list of messages
		if isinstance(message, list):
			message = "; ".join(str(m) for m in message)
		error = data.get("error")
		logger.warning("%s %s -> %s: %s", r.request.method, r.request.url, r.status_code, message)
		return ApiClientError(str(message), r.status_code, str(error) if error else None)

	async def aclose(self) -> None:
		await self._client.aclose()


async def get_backend_client(authorization: Optional[str] = Header(default=None)):
	# The incoming bearer token is forwarded as-is; no local auth
	token = None
	if authorization and authorization.lower().startswith("bearer "):
		token = authorization[7:].strip() or None
	client = BackendClient(token)
	try:
		yield client
	finally:
		await client.aclose()
