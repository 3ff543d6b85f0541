from __future__ import annotations
import httpx
from typing import Any, Dict, Optional
from .settings import settings


class GeminiError(RuntimeError):
	"""Raised when a Gemini call fails at the transport level or returns an unusable envelope."""


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = http_client or httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	async def generate_structured(
		self,
		prompt: str,
		*,
		schema: Dict[str, Any],
		system_instruction: Optional[str] = None,
	) -> str:
		"""Request a JSON document shaped by ``schema`` and return the raw response text.

		The backend is asked for ``application/json`` output, but conformance is not
		guaranteed; callers parse and validate the returned text themselves.
		"""
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": [{"text": prompt}]}],
			"generationConfig": {
				"responseMimeType": "application/json",
				"responseSchema": schema,
			},
		}
		if system_instruction:
			payload["systemInstruction"] = {"parts": [{"text": system_instruction}]}
		return await self._post_payload(payload)

	async def _post_payload(self, payload: Dict[str, Any]) -> str:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		try:
			r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
			r.raise_for_status()
		except httpx.HTTPStatusError as http_err:
			raise GeminiError(f"Gemini HTTP {http_err.response.status_code} for model {self.model}") from http_err
		except httpx.RequestError as net_err:
			raise GeminiError(f"Gemini request failed: {net_err}") from net_err
		try:
			data = r.json()
		except ValueError as exc:
			raise GeminiError(f"Unexpected Gemini response: {r.text[:500]}") from exc
		text = self._extract_text(data)
		if not text:
			raise GeminiError(f"Gemini response contained no text: {str(data)[:500]}")
		return text

	@staticmethod
	def _extract_text(data: Any) -> str:
		if not isinstance(data, dict):
			return ""
		candidates = data.get("candidates") or []
		if not candidates:
			return ""
		parts = (candidates[0].get("content") or {}).get("parts") or []
		return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

	async def aclose(self) -> None:
		await self._client.aclose()
