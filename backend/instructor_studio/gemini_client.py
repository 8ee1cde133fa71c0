from __future__ import annotations
import json
import logging
import re
import httpx
from typing import Any, Dict, Optional, Tuple
from .settings import settings

logger = logging.getLogger(__name__)

_FENCED_JSON = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")


class LlmError(RuntimeError):
	"""The model could not be reached or did not answer in the expected shape."""


def _load_object(candidate: str) -> Optional[Dict[str, Any]]:
	try:
		data = json.loads(candidate)
	except ValueError:
		return None
	return data if isinstance(data, dict) else None


def extract_json_object(text: str) -> Dict[str, Any]:
	"""First JSON object found in a model reply: whole text, fenced block, then outermost braces."""
	candidates = [text]
	fenced = _FENCED_JSON.search(text)
	if fenced:
		candidates.append(fenced.group(1))
	first, last = text.find("{"), text.rfind("}")
	if first != -1 and last > first:
		candidates.append(text[first : last + 1])
	for candidate in candidates:
		data = _load_object(candidate)
		if data is not None:
			return data
	raise LlmError("LLM did not return valid JSON.")


def gemini_endpoint(model: str) -> Tuple[str, bool]:
	"""URL for ``generateContent`` and whether the key travels as a query param."""
	if settings.gemini_provider == "vertex":
		region = settings.vertex_region
		project = settings.vertex_project or "placeholder-project"
		return (
			f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}"
			f"/locations/{region}/publishers/google/models/{model}:generateContent",
			False,
		)
	return f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent", True


def _openrouter_headers() -> Dict[str, str]:
	headers = {
		"Authorization": f"Bearer {settings.openrouter_api_key}",
		"Content-Type": "application/json",
		"HTTP-Referer": settings.openrouter_referer,
		"X-Title": settings.openrouter_title,
	}
	return {k: v for k, v in headers.items() if v}


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		transport: Optional[httpx.AsyncBaseTransport] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise LlmError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		endpoint, self._key_in_query = gemini_endpoint(self.model)
		self.base_url = base_url or endpoint
		self._client = httpx.AsyncClient(timeout=30, transport=transport)
		# OpenRouter is only used when its key is configured
		self._fallback_client: Optional[httpx.AsyncClient] = None
		if settings.openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=30, transport=transport)

	def _auth(self) -> Tuple[Dict[str, str], Dict[str, str]]:
		if self._key_in_query:
			return {"key": self.api_key}, {}
		return {}, {"x-goog-api-key": self.api_key}

	async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
		params, headers = self._auth()
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		return r

	async def _call_gemini(self, prompt: str, thinking_budget: Optional[int]) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if thinking_budget is not None:
			payload["generationConfig"] = {"thinkingConfig": {"thinkingBudget": int(thinking_budget)}}
		try:
			r = await self._post(payload)
		except httpx.HTTPStatusError:
			if "generationConfig" not in payload:
				raise
			# Models without thinking support reject thinkingConfig
			payload.pop("generationConfig")
			r = await self._post(payload)
		try:
			return r.json()["candidates"][0]["content"]["parts"][0]["text"]
		except (ValueError, KeyError, IndexError, TypeError) as err:
			raise LlmError(f"Unexpected Gemini response: {r.text[:200]}") from err

	async def generate(self, prompt: str, *, thinking_budget: Optional[int] = None) -> str:
		try:
			return await self._call_gemini(prompt, thinking_budget)
		except (httpx.HTTPError, LlmError) as primary_error:
			logger.warning("Gemini call failed: %s", primary_error)
			if self._fallback_client is None:
				if isinstance(primary_error, LlmError):
					raise
				raise LlmError(str(primary_error)) from primary_error
			return await self._fallback_generate(prompt, primary_error)

	async def generate_json(self, prompt: str, *, thinking_budget: Optional[int] = None) -> Dict[str, Any]:
		return extract_json_object(await self.generate(prompt, thinking_budget=thinking_budget))

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Exception) -> str:
		body = {
			"model": settings.openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(settings.openrouter_base_url, headers=_openrouter_headers(), json=body)
			r.raise_for_status()
			return r.json()["choices"][0]["message"]["content"]
		except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as fallback_err:
			raise LlmError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err
