from __future__ import annotations
from typing import Optional

from .models import (
	EvaluationResult,
	RhetoricalRole,
	Skeleton,
	SkeletonField,
	WritingSession,
)


class SessionStore:
	"""Holds one student's answers for the current sitting.

	Field-level setters only; completion rules live in the stage controller.
	"""

	def __init__(self) -> None:
		self.writing = WritingSession()
		self.evaluation: Optional[EvaluationResult] = None

	def set_topic(self, topic: str) -> None:
		self.writing.topic = topic

	def set_interpretation(self, interpretation: str) -> None:
		self.writing.interpretation = interpretation

	def set_outline_field(self, role: RhetoricalRole, value: str) -> None:
		self.writing.outline.set(role, value)

	def set_skeleton_field(self, role: RhetoricalRole, field: SkeletonField, value: str) -> None:
		self.writing.skeleton.part(role).set(field, value)

	def replace_skeleton(self, skeleton: Skeleton) -> None:
		self.writing.skeleton = skeleton

	def set_full_essay(self, text: str) -> None:
		self.writing.full_essay = text

	def replace_evaluation(self, result: EvaluationResult) -> None:
		self.evaluation = result

	def clear_evaluation(self) -> None:
		self.evaluation = None

	def reset(self) -> None:
		self.writing = WritingSession()
		self.evaluation = None
