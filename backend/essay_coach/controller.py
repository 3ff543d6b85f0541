from __future__ import annotations
import logging
import time
from enum import Enum, IntEnum
from typing import Dict, List, Optional

from .coaching import CoachingService, EvaluationError, SkeletonGenerationError
from .models import EvaluationResult, Feedback, RhetoricalRole, SkeletonField
from .session_store import SessionStore


logger = logging.getLogger(__name__)


class Stage(IntEnum):
	TOPIC_INPUT = 0
	INTERPRETATION = 1
	OUTLINE = 2
	SKELETON = 3
	WRITING = 4
	EVALUATION = 5


STAGE_LABELS: Dict[Stage, str] = {
	Stage.TOPIC_INPUT: "題目設定",
	Stage.INTERPRETATION: "破題引導",
	Stage.OUTLINE: "起承轉合大綱",
	Stage.SKELETON: "段落骨架",
	Stage.WRITING: "全文寫作",
	Stage.EVALUATION: "評分報告",
}

# Stage name sent to the coach with an interim check
CHECK_LABELS: Dict[Stage, str] = {
	Stage.INTERPRETATION: "破題引導",
	Stage.OUTLINE: "起承轉合大綱",
	Stage.SKELETON: "段落骨架",
	Stage.WRITING: "全文內容",
	Stage.EVALUATION: "全文內容",
}

# Writing-progress checklist entries
PROGRESS_LABELS: Dict[Stage, str] = {
	Stage.TOPIC_INPUT: "題目設定",
	Stage.INTERPRETATION: "破題理解",
	Stage.OUTLINE: "結構大綱",
	Stage.SKELETON: "細節骨架",
	Stage.WRITING: "全文寫作",
}


class Activity(str, Enum):
	IDLE = "idle"
	AWAITING_FEEDBACK = "awaiting_feedback"
	AWAITING_SKELETON = "awaiting_skeleton"
	AWAITING_EVALUATION = "awaiting_evaluation"


class SessionBusyError(Exception):
	"""Another coaching request is still outstanding for this session."""


class StageTransitionError(Exception):
	"""The requested action is not allowed in the current stage."""


class _Busy:
	"""Moves the controller into an awaiting state and always back to idle."""

	def __init__(self, controller: "StageController", activity: Activity) -> None:
		self._controller = controller
		self._activity = activity

	def __enter__(self) -> None:
		self._controller.activity = self._activity

	def __exit__(self, *exc_info) -> None:
		self._controller.activity = Activity.IDLE
		self._controller.touch()


class StageController:
	"""Finite-state progression through the writing stages of one sitting.

	Forward moves require the current stage's completion rule. Leaving Outline
	asks the coach for a paragraph skeleton and proceeds even if that fails;
	leaving Writing asks for a full evaluation and stays put if that fails.
	Only one coaching request may be outstanding at a time.
	"""

	def __init__(self, service: CoachingService, store: Optional[SessionStore] = None) -> None:
		self.service = service
		self.store = store or SessionStore()
		self.stage = Stage.TOPIC_INPUT
		self.activity = Activity.IDLE
		self.feedback: Optional[Feedback] = None
		self.error: Optional[str] = None
		self.last_active = time.monotonic()

	@property
	def evaluation(self) -> Optional[EvaluationResult]:
		return self.store.evaluation

	@property
	def busy(self) -> bool:
		return self.activity is not Activity.IDLE

	def touch(self) -> None:
		self.last_active = time.monotonic()

	def _ensure_idle(self) -> None:
		if self.busy:
			raise SessionBusyError(f"session is busy ({self.activity.value})")

	# ---- completion rules ----

	def is_stage_complete(self, stage: Optional[Stage] = None) -> bool:
		stage = self.stage if stage is None else stage
		writing = self.store.writing
		if stage is Stage.TOPIC_INPUT:
			return len(writing.topic) > 2
		if stage is Stage.INTERPRETATION:
			return len(writing.interpretation) > 5
		if stage is Stage.OUTLINE:
			return writing.outline.is_complete()
		if stage is Stage.SKELETON:
			return writing.skeleton.has_all_purposes()
		if stage is Stage.WRITING:
			return len(writing.full_essay) > 50
		return True

	def can_advance(self) -> bool:
		return self.stage is not Stage.EVALUATION and self.is_stage_complete()

	def can_go_back(self) -> bool:
		return Stage.TOPIC_INPUT < self.stage < Stage.EVALUATION

	def can_check(self) -> bool:
		return self.stage is not Stage.TOPIC_INPUT

	def can_revise(self) -> bool:
		return self.stage is Stage.EVALUATION

	def progress(self) -> List[Dict[str, object]]:
		writing = self.store.writing
		done = {
			Stage.TOPIC_INPUT: bool(writing.topic),
			Stage.INTERPRETATION: bool(writing.interpretation),
			Stage.OUTLINE: bool(writing.outline.introduction),
			Stage.SKELETON: bool(writing.skeleton.introduction.purpose),
			Stage.WRITING: bool(writing.full_essay),
		}
		return [
			{"stage": stage.name.lower(), "label": PROGRESS_LABELS[stage], "done": value, "current": stage is self.stage}
			for stage, value in done.items()
		]

	# ---- edits ----

	def set_topic(self, topic: str) -> None:
		self._ensure_idle()
		self.store.set_topic(topic)
		self.touch()

	def set_interpretation(self, interpretation: str) -> None:
		self._ensure_idle()
		self.store.set_interpretation(interpretation)
		self.touch()

	def set_outline_field(self, role: RhetoricalRole, value: str) -> None:
		self._ensure_idle()
		self.store.set_outline_field(role, value)
		self.touch()

	def set_skeleton_field(self, role: RhetoricalRole, field: SkeletonField, value: str) -> None:
		self._ensure_idle()
		self.store.set_skeleton_field(role, field, value)
		self.touch()

	def set_full_essay(self, text: str) -> None:
		self._ensure_idle()
		self.store.set_full_essay(text)
		self.touch()

	# ---- transitions ----

	async def advance(self) -> Stage:
		self._ensure_idle()
		if self.stage is Stage.EVALUATION:
			raise StageTransitionError("evaluation is the last stage; use revise to return to writing")
		if not self.is_stage_complete():
			raise StageTransitionError(f"stage {self.stage.name.lower()} is not complete")
		writing = self.store.writing

		if self.stage is Stage.OUTLINE:
			with _Busy(self, Activity.AWAITING_SKELETON):
				try:
					skeleton = await self.service.generate_skeleton(writing.topic, writing.outline)
				except SkeletonGenerationError as exc:
					logger.warning("Skeleton generation failed, keeping existing skeleton: %s", exc)
				else:
					self.store.replace_skeleton(skeleton)
			self._enter(Stage.SKELETON)
		elif self.stage is Stage.WRITING:
			with _Busy(self, Activity.AWAITING_EVALUATION):
				try:
					result = await self.service.evaluate_essay(writing)
				except EvaluationError as exc:
					self.error = str(exc)
					return self.stage
			self.store.replace_evaluation(result)
			self._enter(Stage.EVALUATION)
		else:
			self._enter(Stage(self.stage + 1))
		return self.stage

	def back(self) -> Stage:
		self._ensure_idle()
		if self.stage is Stage.EVALUATION:
			raise StageTransitionError("use revise to leave the evaluation report")
		if self.stage is Stage.TOPIC_INPUT:
			raise StageTransitionError("already at the first stage")
		self._enter(Stage(self.stage - 1))
		return self.stage

	def revise(self) -> Stage:
		self._ensure_idle()
		if self.stage is not Stage.EVALUATION:
			raise StageTransitionError("revise is only available from the evaluation report")
		self.store.clear_evaluation()
		self._enter(Stage.WRITING)
		return self.stage

	def restart(self) -> Stage:
		self._ensure_idle()
		self.store.reset()
		self._enter(Stage.TOPIC_INPUT)
		return self.stage

	def _enter(self, stage: Stage) -> None:
		self.stage = stage
		self.feedback = None
		self.error = None
		self.touch()

	# ---- coaching without a stage change ----

	def check_payload(self) -> str:
		writing = self.store.writing
		if self.stage is Stage.INTERPRETATION:
			return writing.interpretation
		if self.stage is Stage.OUTLINE:
			return writing.outline.model_dump_json(by_alias=True)
		if self.stage is Stage.SKELETON:
			return writing.skeleton.model_dump_json(by_alias=True)
		return writing.full_essay

	async def check(self) -> Feedback:
		self._ensure_idle()
		if not self.can_check():
			raise StageTransitionError("nothing to check before the topic is set")
		with _Busy(self, Activity.AWAITING_FEEDBACK):
			feedback = await self.service.get_step_feedback(
				CHECK_LABELS[self.stage], self.check_payload(), self.store.writing.topic
			)
		self.feedback = feedback
		self.error = None
		return feedback

	async def regenerate_skeleton(self) -> bool:
		self._ensure_idle()
		if self.stage is not Stage.SKELETON:
			raise StageTransitionError("skeleton suggestions can only be regenerated on the skeleton stage")
		writing = self.store.writing
		with _Busy(self, Activity.AWAITING_SKELETON):
			try:
				skeleton = await self.service.generate_skeleton(writing.topic, writing.outline)
			except SkeletonGenerationError as exc:
				logger.warning("Skeleton regeneration failed, keeping existing skeleton: %s", exc)
				return False
		self.store.replace_skeleton(skeleton)
		self.error = None
		return True
