import json
from typing import Any, Dict, List, Optional

import pytest

from conftest import ESSAY, TOPIC, make_skeleton
from essay_coach.coaching import (
	EVALUATION_SCHEMA,
	FEEDBACK_FALLBACK_MESSAGE,
	SKELETON_SCHEMA,
	SYSTEM_INSTRUCTION,
	CoachingService,
	EvaluationError,
	SkeletonGenerationError,
	extract_json_object,
)
from essay_coach.gemini_client import GeminiError
from essay_coach.models import FeedbackStatus, GradeBand, Outline, WritingSession


pytestmark = pytest.mark.anyio


class ScriptedClient:
	"""Stands in for GeminiClient; replies with a fixed text or raises."""

	def __init__(self, reply: Optional[str] = None, error: Optional[Exception] = None) -> None:
		self.reply = reply
		self.error = error
		self.requests: List[Dict[str, Any]] = []
		self.closed = False

	async def generate_structured(self, prompt: str, *, schema: Dict[str, Any], system_instruction: Optional[str] = None) -> str:
		self.requests.append({"prompt": prompt, "schema": schema, "system_instruction": system_instruction})
		if self.error is not None:
			raise self.error
		return self.reply or ""

	async def aclose(self) -> None:
		self.closed = True


def _service(client: ScriptedClient, models: Optional[List[str]] = None) -> CoachingService:
	def factory(model: str) -> ScriptedClient:
		if models is not None:
			models.append(model)
		return client

	return CoachingService(factory, model="flash", evaluation_model="pro")


def _outline() -> Outline:
	return Outline(introduction="初見", development="相處", transition="衝突", conclusion="體悟")


EVALUATION_PAYLOAD = {
	"dimensionScores": {"meaning": 5, "structure": 4, "vocabulary": 4, "grammar": 6},
	"dimensionComments": {"meaning": "好", "structure": "清楚", "vocabulary": "尚可", "grammar": "正確"},
	"overallLevel": 5,
	"gradeBand": "A",
	"strengths": ["具體"],
	"weaknesses": ["轉折"],
	"revisionTips": ["多寫感受"],
}


# ---- JSON extraction ----

def test_extract_plain_json():
	assert extract_json_object('{"a": 1}') == {"a": 1}


def test_extract_fenced_json():
	text = "Here you go:\n```json\n{\"status\": \"info\"}\n```\nthanks"
	assert extract_json_object(text) == {"status": "info"}


def test_extract_object_inside_prose():
	assert extract_json_object('好的 {"a": {"b": 2}} 以上') == {"a": {"b": 2}}


@pytest.mark.parametrize("text", ["", "not json at all", "[1, 2, 3]", "{broken"])
def test_extract_rejects_non_objects(text):
	with pytest.raises(ValueError):
		extract_json_object(text)


# ---- interim feedback ----

async def test_feedback_parses_structured_reply():
	client = ScriptedClient(json.dumps({"status": "warning", "message": "有點偏題", "suggestions": ["一", "二", "三"]}))
	feedback = await _service(client).get_step_feedback("破題引導", "我覺得…", TOPIC)
	assert feedback.status is FeedbackStatus.WARNING
	assert feedback.suggestions == ["一", "二", "三"]
	request = client.requests[0]
	assert TOPIC in request["prompt"]
	assert "學生目前的破題引導內容：我覺得…" in request["prompt"]
	assert request["system_instruction"] == SYSTEM_INSTRUCTION
	assert client.closed


@pytest.mark.parametrize(
	"reply",
	[
		"抱歉，我無法回答",
		json.dumps({"status": "great", "message": "x", "suggestions": []}),
		json.dumps({"message": "missing status"}),
		json.dumps({"status": "success", "message": "很好"}),
	],
)
async def test_feedback_falls_back_on_bad_reply(reply):
	feedback = await _service(ScriptedClient(reply)).get_step_feedback("全文內容", ESSAY, TOPIC)
	assert feedback.status is FeedbackStatus.INFO
	assert feedback.message == FEEDBACK_FALLBACK_MESSAGE
	assert feedback.suggestions == []


async def test_feedback_falls_back_on_transport_error():
	client = ScriptedClient(error=GeminiError("connection reset"))
	feedback = await _service(client).get_step_feedback("段落骨架", "{}", TOPIC)
	assert feedback.message == FEEDBACK_FALLBACK_MESSAGE
	assert client.closed


async def test_feedback_falls_back_when_client_cannot_be_built():
	def factory(model: str):
		raise ValueError("GEMINI_API_KEY is not configured")

	feedback = await CoachingService(factory).get_step_feedback("破題引導", "x", TOPIC)
	assert feedback.status is FeedbackStatus.INFO


# ---- skeleton generation ----

async def test_skeleton_generation_parses_four_parts():
	expected = make_skeleton()
	client = ScriptedClient(expected.model_dump_json(by_alias=True))
	skeleton = await _service(client).generate_skeleton(TOPIC, _outline())
	assert skeleton == expected
	request = client.requests[0]
	assert request["schema"] is SKELETON_SCHEMA
	for line in ("起：初見", "承：相處", "轉：衝突", "合：體悟"):
		assert line in request["prompt"]


async def test_skeleton_missing_sub_field_raises():
	payload = json.loads(make_skeleton().model_dump_json(by_alias=True))
	del payload["transition"]["goldenSentenceType"]
	with pytest.raises(SkeletonGenerationError):
		await _service(ScriptedClient(json.dumps(payload))).generate_skeleton(TOPIC, _outline())


async def test_skeleton_null_sub_field_raises():
	payload = json.loads(make_skeleton().model_dump_json(by_alias=True))
	payload["conclusion"]["purpose"] = None
	with pytest.raises(SkeletonGenerationError):
		await _service(ScriptedClient(json.dumps(payload))).generate_skeleton(TOPIC, _outline())


async def test_skeleton_missing_part_raises():
	payload = json.loads(make_skeleton().model_dump_json(by_alias=True))
	del payload["development"]
	with pytest.raises(SkeletonGenerationError):
		await _service(ScriptedClient(json.dumps(payload))).generate_skeleton(TOPIC, _outline())


async def test_skeleton_transport_error_raises():
	with pytest.raises(SkeletonGenerationError):
		await _service(ScriptedClient(error=GeminiError("503"))).generate_skeleton(TOPIC, _outline())


# ---- evaluation ----

async def test_evaluation_uses_evaluation_model_and_parses():
	models: List[str] = []
	client = ScriptedClient(json.dumps(EVALUATION_PAYLOAD))
	session = WritingSession(topic=TOPIC, full_essay=ESSAY, outline=_outline(), skeleton=make_skeleton())
	result = await _service(client, models).evaluate_essay(session)
	assert models == ["pro"]
	assert result.grade_band is GradeBand.A
	assert result.dimension_scores.grammar == 6
	assert result.revision_tips == ["多寫感受"]
	request = client.requests[0]
	assert request["schema"] is EVALUATION_SCHEMA
	assert f"學生全文：{ESSAY}" in request["prompt"]
	assert '"keyIdea"' in request["prompt"]


async def test_evaluation_malformed_json_raises_user_message():
	with pytest.raises(EvaluationError) as excinfo:
		await _service(ScriptedClient('{"dimensionScores": ')).evaluate_essay(WritingSession(topic=TOPIC))
	assert str(excinfo.value) == "評分分析失敗，AI 回傳格式有誤，請稍後再試。"


async def test_evaluation_bad_grade_band_raises():
	payload = dict(EVALUATION_PAYLOAD, gradeBand="D")
	with pytest.raises(EvaluationError):
		await _service(ScriptedClient(json.dumps(payload))).evaluate_essay(WritingSession(topic=TOPIC))


async def test_evaluation_scores_outside_range_are_trusted():
	payload = dict(EVALUATION_PAYLOAD, overallLevel=7)
	result = await _service(ScriptedClient(json.dumps(payload))).evaluate_essay(WritingSession(topic=TOPIC))
	assert result.overall_level == 7


def test_evaluation_schema_requests_integer_scores():
	properties = EVALUATION_SCHEMA["properties"]
	assert properties["overallLevel"] == {"type": "INTEGER"}
	for dimension in ("meaning", "structure", "vocabulary", "grammar"):
		assert properties["dimensionScores"]["properties"][dimension] == {"type": "INTEGER"}


async def test_evaluation_accepts_whole_number_floats():
	payload = dict(EVALUATION_PAYLOAD, overallLevel=4.0)
	result = await _service(ScriptedClient(json.dumps(payload))).evaluate_essay(WritingSession(topic=TOPIC))
	assert result.overall_level == 4


async def test_evaluation_transport_error_raises_same_error():
	with pytest.raises(EvaluationError):
		await _service(ScriptedClient(error=GeminiError("timeout"))).evaluate_essay(WritingSession(topic=TOPIC))
