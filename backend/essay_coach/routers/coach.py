from __future__ import annotations
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..coaching import CoachingService
from ..controller import (
	STAGE_LABELS,
	Activity,
	SessionBusyError,
	Stage,
	StageController,
	StageTransitionError,
)
from ..models import EvaluationResult, Feedback, RhetoricalRole, SkeletonField, WritingSession


router = APIRouter(prefix="/coach", tags=["coach"])


_sessions: Dict[str, StageController] = {}


def get_coaching_service() -> CoachingService:
	return CoachingService()


class StartRequest(BaseModel):
	topic: Optional[str] = None


class SessionRequest(BaseModel):
	session_id: str


class TopicRequest(SessionRequest):
	topic: str


class InterpretationRequest(SessionRequest):
	interpretation: str


class OutlineFieldRequest(SessionRequest):
	role: RhetoricalRole
	value: str


class SkeletonFieldRequest(SessionRequest):
	role: RhetoricalRole
	field: SkeletonField
	value: str


class EssayRequest(SessionRequest):
	full_essay: str


class ProgressItem(BaseModel):
	stage: str
	label: str
	done: bool
	current: bool


class SessionView(BaseModel):
	session_id: str
	stage: str
	stage_index: int
	stage_labels: List[str]
	activity: Activity
	can_advance: bool
	can_go_back: bool
	can_check: bool
	can_revise: bool
	writing: WritingSession
	feedback: Optional[Feedback] = None
	evaluation: Optional[EvaluationResult] = None
	error: Optional[str] = None
	progress: List[ProgressItem]


def _view(session_id: str, controller: StageController) -> SessionView:
	return SessionView(
		session_id=session_id,
		stage=controller.stage.name.lower(),
		stage_index=int(controller.stage),
		stage_labels=[STAGE_LABELS[s] for s in Stage],
		activity=controller.activity,
		can_advance=controller.can_advance(),
		can_go_back=controller.can_go_back(),
		can_check=controller.can_check(),
		can_revise=controller.can_revise(),
		writing=controller.store.writing,
		feedback=controller.feedback,
		evaluation=controller.evaluation,
		error=controller.error,
		progress=[ProgressItem(**item) for item in controller.progress()],
	)


def _get_session(session_id: str) -> StageController:
	controller = _sessions.get(session_id)
	if controller is None:
		raise HTTPException(status_code=404, detail="Session not found or expired")
	return controller


@contextmanager
def _translate_errors() -> Iterator[None]:
	try:
		yield
	except SessionBusyError as exc:
		raise HTTPException(status_code=409, detail=str(exc))
	except StageTransitionError as exc:
		raise HTTPException(status_code=400, detail=str(exc))


@router.post("/session/start", response_model=SessionView)
async def start_session(req: StartRequest, service: CoachingService = Depends(get_coaching_service)):
	session_id = uuid.uuid4().hex
	controller = StageController(service)
	if req.topic:
		controller.set_topic(req.topic)
	_sessions[session_id] = controller
	return _view(session_id, controller)


@router.get("/session/state", response_model=SessionView)
async def session_state(session_id: str):
	return _view(session_id, _get_session(session_id))


@router.delete("/session")
async def discard_session(session_id: str):
	controller = _get_session(session_id)
	if controller.busy:
		raise HTTPException(status_code=409, detail="Session is waiting on the coach")
	_sessions.pop(session_id, None)
	return {"ok": True}


@router.put("/session/topic", response_model=SessionView)
async def update_topic(req: TopicRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.set_topic(req.topic)
	return _view(req.session_id, controller)


@router.put("/session/interpretation", response_model=SessionView)
async def update_interpretation(req: InterpretationRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.set_interpretation(req.interpretation)
	return _view(req.session_id, controller)


@router.put("/session/outline", response_model=SessionView)
async def update_outline(req: OutlineFieldRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.set_outline_field(req.role, req.value)
	return _view(req.session_id, controller)


@router.put("/session/skeleton", response_model=SessionView)
async def update_skeleton(req: SkeletonFieldRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.set_skeleton_field(req.role, req.field, req.value)
	return _view(req.session_id, controller)


@router.put("/session/essay", response_model=SessionView)
async def update_essay(req: EssayRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.set_full_essay(req.full_essay)
	return _view(req.session_id, controller)


@router.post("/session/check", response_model=SessionView)
async def check_progress(req: SessionRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		await controller.check()
	return _view(req.session_id, controller)


@router.post("/session/next", response_model=SessionView)
async def next_stage(req: SessionRequest):
	# A failed evaluation is reported through the view's error field, not as an HTTP error
	controller = _get_session(req.session_id)
	with _translate_errors():
		await controller.advance()
	return _view(req.session_id, controller)


@router.post("/session/back", response_model=SessionView)
async def previous_stage(req: SessionRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.back()
	return _view(req.session_id, controller)


@router.post("/session/revise", response_model=SessionView)
async def revise_essay(req: SessionRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.revise()
	return _view(req.session_id, controller)


@router.post("/session/skeleton/regenerate", response_model=SessionView)
async def regenerate_skeleton(req: SessionRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		await controller.regenerate_skeleton()
	return _view(req.session_id, controller)


@router.post("/session/restart", response_model=SessionView)
async def restart_session(req: SessionRequest):
	controller = _get_session(req.session_id)
	with _translate_errors():
		controller.restart()
	return _view(req.session_id, controller)
