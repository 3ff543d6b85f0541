from __future__ import annotations
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
	# Wire shape is camelCase (Gemini schemas and the HTTP API); snake_case is accepted too
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RhetoricalRole(str, Enum):
	INTRODUCTION = "introduction"  # 起
	DEVELOPMENT = "development"  # 承
	TRANSITION = "transition"  # 轉
	CONCLUSION = "conclusion"  # 合


class SkeletonField(str, Enum):
	PURPOSE = "purpose"
	KEY_IDEA = "keyIdea"
	EXAMPLE_TYPE = "exampleType"
	GOLDEN_SENTENCE_TYPE = "goldenSentenceType"


class FeedbackStatus(str, Enum):
	SUCCESS = "success"
	WARNING = "warning"
	INFO = "info"


class GradeBand(str, Enum):
	A = "A"
	B = "B"
	C = "C"


_SKELETON_ATTRS: Dict[SkeletonField, str] = {
	SkeletonField.PURPOSE: "purpose",
	SkeletonField.KEY_IDEA: "key_idea",
	SkeletonField.EXAMPLE_TYPE: "example_type",
	SkeletonField.GOLDEN_SENTENCE_TYPE: "golden_sentence_type",
}


class SkeletonPart(_CamelModel):
	purpose: str = ""
	key_idea: str = ""
	example_type: str = ""
	golden_sentence_type: str = ""

	def get(self, field: SkeletonField) -> str:
		return getattr(self, _SKELETON_ATTRS[field])

	def set(self, field: SkeletonField, value: str) -> None:
		setattr(self, _SKELETON_ATTRS[field], value)


class Outline(_CamelModel):
	introduction: str = ""
	development: str = ""
	transition: str = ""
	conclusion: str = ""

	def get(self, role: RhetoricalRole) -> str:
		return getattr(self, role.value)

	def set(self, role: RhetoricalRole, value: str) -> None:
		setattr(self, role.value, value)

	def is_complete(self) -> bool:
		return all(len(self.get(role)) > 0 for role in RhetoricalRole)


class Skeleton(_CamelModel):
	introduction: SkeletonPart = Field(default_factory=SkeletonPart)
	development: SkeletonPart = Field(default_factory=SkeletonPart)
	transition: SkeletonPart = Field(default_factory=SkeletonPart)
	conclusion: SkeletonPart = Field(default_factory=SkeletonPart)

	def part(self, role: RhetoricalRole) -> SkeletonPart:
		return getattr(self, role.value)

	def has_all_purposes(self) -> bool:
		return all(len(self.part(role).purpose) > 0 for role in RhetoricalRole)


class WritingSession(_CamelModel):
	topic: str = ""
	interpretation: str = ""
	outline: Outline = Field(default_factory=Outline)
	skeleton: Skeleton = Field(default_factory=Skeleton)
	full_essay: str = ""


class Feedback(_CamelModel):
	status: FeedbackStatus
	message: str
	suggestions: List[str]


class DimensionScores(_CamelModel):
	meaning: int  # 立意取材
	structure: int  # 結構組織
	vocabulary: int  # 遣詞造句
	grammar: int  # 錯別字與標點


class DimensionComments(_CamelModel):
	meaning: str
	structure: str
	vocabulary: str
	grammar: str


class EvaluationResult(_CamelModel):
	# Frozen: an evaluation is only ever replaced, never edited
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

	dimension_scores: DimensionScores
	dimension_comments: DimensionComments
	overall_level: int
	grade_band: GradeBand
	strengths: List[str]
	weaknesses: List[str]
	revision_tips: List[str]
