"""Shared fixtures: a scripted coaching service and helpers to walk a session forward."""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Tuple

import pytest

from essay_coach.controller import Stage, StageController
from essay_coach.models import (
	EvaluationResult,
	Feedback,
	FeedbackStatus,
	Outline,
	RhetoricalRole,
	Skeleton,
	SkeletonPart,
	WritingSession,
)


TOPIC = "我從同學身上學到的事"
INTERPRETATION = "題目要我分享同學身上值得學習的特質，以及這件事如何改變我。"
ESSAY = "那是一個下著雨的早晨，" * 10


def make_skeleton(prefix: str = "") -> Skeleton:
	return Skeleton(
		**{
			role.value: SkeletonPart(
				purpose=f"{prefix}{role.value} 目的",
				key_idea=f"{prefix}{role.value} 想法",
				example_type="生活經驗",
				golden_sentence_type="譬喻",
			)
			for role in RhetoricalRole
		}
	)


def make_evaluation(level: int = 5) -> EvaluationResult:
	return EvaluationResult.model_validate(
		{
			"dimensionScores": {"meaning": level, "structure": level, "vocabulary": 4, "grammar": 5},
			"dimensionComments": {
				"meaning": "取材具體",
				"structure": "段落分明",
				"vocabulary": "用詞可再精準",
				"grammar": "標點正確",
			},
			"overallLevel": level,
			"gradeBand": "A",
			"strengths": ["開頭生動"],
			"weaknesses": ["轉折稍弱"],
			"revisionTips": ["加強第三段的衝突"],
		}
	)


class FakeCoachingService:
	"""Records every call and answers from preset values."""

	def __init__(self) -> None:
		self.feedback = Feedback(status=FeedbackStatus.SUCCESS, message="方向正確", suggestions=["a", "b", "c"])
		self.skeleton = make_skeleton()
		self.evaluation = make_evaluation()
		self.skeleton_error: Optional[Exception] = None
		self.evaluation_error: Optional[Exception] = None
		self.during_call: Optional[Callable[[], None]] = None
		self.calls: List[Tuple[str, Any]] = []

	def _during(self) -> None:
		if self.during_call is not None:
			self.during_call()

	async def get_step_feedback(self, stage_label: str, content: str, topic: str) -> Feedback:
		self.calls.append(("feedback", (stage_label, content, topic)))
		self._during()
		return self.feedback

	async def generate_skeleton(self, topic: str, outline: Outline) -> Skeleton:
		self.calls.append(("skeleton", (topic, outline.model_copy())))
		self._during()
		if self.skeleton_error is not None:
			raise self.skeleton_error
		return self.skeleton

	async def evaluate_essay(self, session: WritingSession) -> EvaluationResult:
		self.calls.append(("evaluation", session.full_essay))
		self._during()
		if self.evaluation_error is not None:
			raise self.evaluation_error
		return self.evaluation

	def count(self, kind: str) -> int:
		return sum(1 for name, _ in self.calls if name == kind)


@pytest.fixture
def anyio_backend():
	return "asyncio"


@pytest.fixture
def service() -> FakeCoachingService:
	return FakeCoachingService()


@pytest.fixture
def controller(service: FakeCoachingService) -> StageController:
	return StageController(service)


def fill_outline(controller: StageController) -> None:
	for role, text in zip(RhetoricalRole, ["初見", "相處", "衝突", "體悟"]):
		controller.set_outline_field(role, text)


async def advance_to(controller: StageController, target: Stage) -> None:
	"""Fill in valid answers and advance until ``target`` is the active stage."""
	while controller.stage < target:
		stage = controller.stage
		if stage is Stage.TOPIC_INPUT:
			controller.set_topic(TOPIC)
		elif stage is Stage.INTERPRETATION:
			controller.set_interpretation(INTERPRETATION)
		elif stage is Stage.OUTLINE:
			fill_outline(controller)
		elif stage is Stage.WRITING:
			controller.set_full_essay(ESSAY)
		await controller.advance()
		assert controller.stage > stage
