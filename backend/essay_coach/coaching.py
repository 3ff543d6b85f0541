from __future__ import annotations
import json
import logging
import re
from typing import Any, Callable, Dict, Optional

from .gemini_client import GeminiClient
from .models import (
	EvaluationResult,
	Feedback,
	FeedbackStatus,
	Outline,
	RhetoricalRole,
	Skeleton,
	SkeletonField,
	WritingSession,
)
from .settings import settings


logger = logging.getLogger(__name__)


SYSTEM_INSTRUCTION = (
	"你是一位經驗豐富的國中會考寫作教練，熟悉會考作文六級分評分標準。"
	"你的任務是引導學生一步步完成文章：先理解題目，再建立起承轉合的大綱與段落骨架，最後完成全文。"
	"回饋時請使用繁體中文，語氣溫暖、具體且具啟發性，指出問題時也要給出可以立即執行的修改方向。"
	"不要替學生寫出完整文章。"
)

FEEDBACK_FALLBACK_MESSAGE = "目前無法解析分析結果，請根據目前內容繼續嘗試。"
EVALUATION_FAILED_MESSAGE = "評分分析失敗，AI 回傳格式有誤，請稍後再試。"


class CoachingError(Exception):
	"""Base class for failures of the coaching backend."""


class SkeletonGenerationError(CoachingError):
	pass


class EvaluationError(CoachingError):
	def __init__(self, message: str = EVALUATION_FAILED_MESSAGE) -> None:
		super().__init__(message)


_STRING = {"type": "STRING"}

_SKELETON_PART_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"purpose": _STRING,
		"keyIdea": _STRING,
		"exampleType": _STRING,
		"goldenSentenceType": _STRING,
	},
	"required": ["purpose", "keyIdea", "exampleType", "goldenSentenceType"],
}

FEEDBACK_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"status": {"type": "STRING", "description": "success, warning, or info"},
		"message": {"type": "STRING", "description": "主要評語"},
		"suggestions": {
			"type": "ARRAY",
			"items": _STRING,
			"description": "具體的修正建議",
		},
	},
	"required": ["status", "message", "suggestions"],
}

SKELETON_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"introduction": _SKELETON_PART_SCHEMA,
		"development": _SKELETON_PART_SCHEMA,
		"transition": _SKELETON_PART_SCHEMA,
		"conclusion": _SKELETON_PART_SCHEMA,
	},
	"required": ["introduction", "development", "transition", "conclusion"],
}

_DIMENSIONS = ["meaning", "structure", "vocabulary", "grammar"]

EVALUATION_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"dimensionScores": {
			"type": "OBJECT",
			"properties": {d: {"type": "INTEGER"} for d in _DIMENSIONS},
			"required": _DIMENSIONS,
		},
		"dimensionComments": {
			"type": "OBJECT",
			"properties": {d: _STRING for d in _DIMENSIONS},
			"required": _DIMENSIONS,
		},
		"overallLevel": {"type": "INTEGER"},
		"gradeBand": {"type": "STRING", "description": "A, B, or C"},
		"strengths": {"type": "ARRAY", "items": _STRING},
		"weaknesses": {"type": "ARRAY", "items": _STRING},
		"revisionTips": {"type": "ARRAY", "items": _STRING},
	},
	"required": [
		"dimensionScores",
		"dimensionComments",
		"overallLevel",
		"gradeBand",
		"strengths",
		"weaknesses",
		"revisionTips",
	],
}


def extract_json_object(text: str) -> Dict[str, Any]:
	"""Parse a JSON object out of model output, tolerating code fences and stray prose."""
	text = (text or "").strip()
	try:
		data = json.loads(text)
		if isinstance(data, dict):
			return data
	except ValueError:
		pass
	code_block = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
	if code_block:
		try:
			data = json.loads(code_block.group(1))
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
	first = text.find("{")
	last = text.rfind("}")
	if first != -1 and last > first:
		try:
			data = json.loads(text[first : last + 1])
			if isinstance(data, dict):
				return data
		except ValueError:
			pass
	raise ValueError("model output did not contain a JSON object")


def build_feedback_prompt(stage_label: str, content: str, topic: str) -> str:
	return (
		f"題目：{topic}\n"
		f"學生目前的{stage_label}內容：{content}\n\n"
		"請以寫作教練的身分，分析學生的輸入是否符合邏輯，是否偏題。\n"
		"如果是「破題引導」，請檢查是否準確理解題目核心。\n"
		"如果是「大綱」，請檢查起承轉合的連貫性。\n"
		"請給予具體的回饋與三點修正建議。\n"
		"status 請只使用 success、warning 或 info 其中之一。"
	)


def build_skeleton_prompt(topic: str, outline: Outline) -> str:
	return (
		f"題目：{topic}\n"
		"大綱：\n"
		f"起：{outline.introduction}\n"
		f"承：{outline.development}\n"
		f"轉：{outline.transition}\n"
		f"合：{outline.conclusion}\n\n"
		"請針對以上大綱，為每一段產生「段落目的」、「核心想法」、「建議例證類型」、「金句類型建議」。"
	)


def build_evaluation_prompt(session: WritingSession) -> str:
	return (
		f"題目：{session.topic}\n"
		f"學生全文：{session.full_essay}\n"
		f"大綱參考：{session.outline.model_dump_json(by_alias=True)}\n"
		f"骨架參考：{session.skeleton.model_dump_json(by_alias=True)}\n\n"
		"請根據國中會考標準評分。\n"
		"1. 立意取材 (1-6分)\n"
		"2. 結構組織 (1-6分)\n"
		"3. 遣詞造句 (1-6分)\n"
		"4. 錯別字與標點 (1-6分)\n"
		"總結級分 (1-6分)。\n"
		"gradeBand 請依總結級分給出 A、B 或 C。"
	)


def _require_skeleton_parts(data: Dict[str, Any]) -> None:
	# Skeleton defaults would silently fill missing keys, so presence is checked up front
	for role in RhetoricalRole:
		part = data.get(role.value)
		if not isinstance(part, dict):
			raise ValueError(f"skeleton part '{role.value}' missing")
		missing = [f.value for f in SkeletonField if part.get(f.value) is None]
		if missing:
			raise ValueError(f"skeleton part '{role.value}' missing fields: {', '.join(missing)}")


def _default_client_factory(model: str) -> GeminiClient:
	return GeminiClient(model=model)


class CoachingService:
	"""Issues the three coaching requests and validates what comes back.

	Every call is a single request: no retry, no backoff, no fallback provider.
	"""

	def __init__(
		self,
		client_factory: Optional[Callable[[str], Any]] = None,
		*,
		model: Optional[str] = None,
		evaluation_model: Optional[str] = None,
	) -> None:
		self._client_factory = client_factory or _default_client_factory
		self.model = model or settings.gemini_model
		self.evaluation_model = evaluation_model or settings.gemini_model_evaluation

	async def _request(self, model: str, prompt: str, schema: Dict[str, Any]) -> Dict[str, Any]:
		client = self._client_factory(model)
		try:
			text = await client.generate_structured(prompt, schema=schema, system_instruction=SYSTEM_INSTRUCTION)
		finally:
			await client.aclose()
		return extract_json_object(text)

	async def get_step_feedback(self, stage_label: str, content: str, topic: str) -> Feedback:
		"""Interim feedback for one stage. Never raises; falls back to a neutral message."""
		try:
			data = await self._request(self.model, build_feedback_prompt(stage_label, content, topic), FEEDBACK_SCHEMA)
			return Feedback.model_validate(data)
		except Exception as exc:
			logger.warning("Feedback for stage %s unavailable, using fallback: %s", stage_label, exc)
			return Feedback(status=FeedbackStatus.INFO, message=FEEDBACK_FALLBACK_MESSAGE, suggestions=[])

	async def generate_skeleton(self, topic: str, outline: Outline) -> Skeleton:
		try:
			data = await self._request(self.model, build_skeleton_prompt(topic, outline), SKELETON_SCHEMA)
			_require_skeleton_parts(data)
			skeleton = Skeleton.model_validate(data)
		except Exception as exc:
			raise SkeletonGenerationError(f"skeleton generation failed: {exc}") from exc
		return skeleton

	async def evaluate_essay(self, session: WritingSession) -> EvaluationResult:
		try:
			data = await self._request(self.evaluation_model, build_evaluation_prompt(session), EVALUATION_SCHEMA)
			return EvaluationResult.model_validate(data)
		except Exception as exc:
			logger.error("Essay evaluation failed: %s", exc)
			raise EvaluationError() from exc
