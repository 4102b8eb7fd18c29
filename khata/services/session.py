"""
Review session: the whole khata pipeline for one class/subject/term/year.

    upload -> processing -> preview -> (confirm) -> success

Backward moves are limited to preview -> upload (go back), confirm ->
preview (cancel overwrite) and processing -> upload when extraction fails
or finds nothing. Anything else raises InvalidTransitionError.
"""
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4

from loguru import logger

from khata.models.schemas import (
    CommitResult,
    ConflictReport,
    MarkTarget,
    MatchedMark,
    RosterStudent,
    SessionView,
    ValidationReport,
)
from khata.repositories.base import MarkRepository, RosterRepository
from khata.services import review
from khata.services.commit import commit_marks
from khata.services.conflicts import detect_conflicts
from khata.services.extraction import KhataExtractionService
from khata.services.matcher import match_all
from khata.services.validator import validate_batch
from khata.utils import messages
from khata.utils.exceptions import (
    InputRejectedError,
    InvalidTransitionError,
    KhataError,
    ResponseRecoveryError,
    SessionNotFoundError,
)
from khata.utils.file_processor import ImageBlob


class PipelineStep(str, Enum):
    UPLOAD = "upload"
    PROCESSING = "processing"
    PREVIEW = "preview"
    CONFIRM = "confirm"
    SUCCESS = "success"


TRANSITIONS: Dict[PipelineStep, FrozenSet[PipelineStep]] = {
    PipelineStep.UPLOAD: frozenset({PipelineStep.PROCESSING}),
    PipelineStep.PROCESSING: frozenset({PipelineStep.PREVIEW, PipelineStep.UPLOAD}),
    PipelineStep.PREVIEW: frozenset({PipelineStep.UPLOAD, PipelineStep.CONFIRM, PipelineStep.SUCCESS}),
    PipelineStep.CONFIRM: frozenset({PipelineStep.PREVIEW, PipelineStep.SUCCESS}),
    PipelineStep.SUCCESS: frozenset(),
}


def can_transition(current: PipelineStep, target: PipelineStep) -> bool:
    return target in TRANSITIONS[current]


class ReviewSession:

    def __init__(
        self,
        target: MarkTarget,
        roster_repo: RosterRepository,
        mark_repo: MarkRepository,
        teacher_id: Optional[str] = None,
        session_id: Optional[str] = None,
    ):
        self.session_id = session_id or uuid4().hex
        self.target = target
        self.teacher_id = teacher_id
        self.roster_repo = roster_repo
        self.mark_repo = mark_repo

        self.step = PipelineStep.UPLOAD
        self.roster: Tuple[RosterStudent, ...] = tuple(roster_repo.lookup(target.class_id))
        self.rows: Tuple[MatchedMark, ...] = ()
        self.warnings: List[str] = []
        self.error: Optional[str] = None
        self.notice: Optional[str] = None
        self.validation: Optional[ValidationReport] = None
        self.conflicts: Optional[ConflictReport] = None
        self.commit: Optional[CommitResult] = None
        # last model replies, kept for support when recovery fails
        self.raw_responses: List[str] = []

    def _move(self, target: PipelineStep) -> None:
        if not can_transition(self.step, target):
            raise InvalidTransitionError(self.step.value, target.value)
        logger.debug(f"Session {self.session_id}: {self.step.value} -> {target.value}")
        self.step = target

    def _require(self, step: PipelineStep, action: str) -> None:
        if self.step is not step:
            raise InvalidTransitionError(self.step.value, action)

    # intake / extraction

    def reject_input(self, message: str) -> None:
        """Intake problem found before any model call; stay in upload."""
        self._require(PipelineStep.UPLOAD, PipelineStep.PROCESSING.value)
        self.notice = None
        self.error = message

    async def run_extraction(self, images: List[ImageBlob], service: KhataExtractionService) -> None:
        self._require(PipelineStep.UPLOAD, PipelineStep.PROCESSING.value)
        self.error = None
        self.notice = None
        self.warnings = []

        try:
            service.check_image_count(len(images))
        except InputRejectedError as e:
            self.error = e.message
            return

        self._move(PipelineStep.PROCESSING)
        try:
            extraction = await service.extract(images)
        except KhataError as e:
            if isinstance(e, ResponseRecoveryError):
                self.raw_responses = list(e.raw_responses)
            # per-image reasons from this run, e.g. timeouts
            self.warnings = list(e.details.get("warnings", []))
            self._fail(e.message)
            return
        except Exception as e:
            logger.exception(f"Unexpected extraction failure in session {self.session_id}: {e}")
            self._fail(messages.EXTRACTION_FAILED)
            return

        self.raw_responses = list(extraction.raw_responses)
        self.warnings = list(extraction.warnings)

        if extraction.is_empty:
            self.notice = messages.NOTHING_FOUND
            self._move(PipelineStep.UPLOAD)
            return

        self.load_rows(extraction.extracted_marks)

    def load_rows(self, extracted) -> None:
        """Match extracted rows against a fresh roster snapshot and open the preview."""
        self.roster = tuple(self.roster_repo.lookup(self.target.class_id))
        self.rows = tuple(match_all(extracted, self.roster))
        self._move(PipelineStep.PREVIEW)

    def _fail(self, message: str) -> None:
        # no partial data survives a failed run
        self.rows = ()
        self.error = message
        self._move(PipelineStep.UPLOAD)

    # review edits

    def edit_row(self, index: int, roll_number=None, name=None, total_marks=None) -> None:
        self._require(PipelineStep.PREVIEW, "edit")
        self.rows = review.edit_row(self.rows, index, self.roster, roll_number, name, total_marks)
        self.validation = None

    def delete_row(self, index: int) -> None:
        self._require(PipelineStep.PREVIEW, "delete")
        self.rows = review.delete_row(self.rows, index, self.roster)
        self.validation = None

    def add_row(self, roll_number: str = "", name: str = "", total_marks: Optional[float] = 0) -> None:
        self._require(PipelineStep.PREVIEW, "add")
        self.rows = review.add_row(self.rows, self.roster, roll_number, name, total_marks)
        self.validation = None

    def go_back(self) -> None:
        self._require(PipelineStep.PREVIEW, PipelineStep.UPLOAD.value)
        self._move(PipelineStep.UPLOAD)
        self.rows = ()
        self.warnings = []
        self.validation = None
        self.conflicts = None
        self.error = None

    # validation -> conflicts -> commit

    def proceed(self) -> None:
        self._require(PipelineStep.PREVIEW, "proceed")
        self.error = None

        self.validation = validate_batch(self.rows)
        if not self.validation.valid:
            self.error = ", ".join(self.validation.errors)
            return

        self.conflicts = detect_conflicts(self.rows, self.target, self.mark_repo)
        if self.conflicts.has_conflicts:
            self._move(PipelineStep.CONFIRM)
            return

        self._commit()

    def confirm_overwrite(self) -> None:
        self._require(PipelineStep.CONFIRM, PipelineStep.SUCCESS.value)
        self._commit()

    def cancel_overwrite(self) -> None:
        self._require(PipelineStep.CONFIRM, PipelineStep.PREVIEW.value)
        self._move(PipelineStep.PREVIEW)
        self.conflicts = None

    def _commit(self) -> None:
        self.commit = commit_marks(
            self.rows,
            self.target,
            self.roster_repo,
            self.mark_repo,
            teacher_id=self.teacher_id,
        )
        self._move(PipelineStep.SUCCESS)

    def view(self) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            step=self.step.value,
            target=self.target,
            teacher_id=self.teacher_id,
            rows=list(self.rows),
            summary=review.summarize(self.rows),
            warnings=list(self.warnings),
            error=self.error,
            notice=self.notice,
            validation=self.validation,
            conflicts=self.conflicts,
            commit=self.commit,
        )


class ReviewSessionStore:
    """In-process registry of open review sessions."""

    def __init__(self):
        self._sessions: Dict[str, ReviewSession] = {}

    def create(self, target, roster_repo, mark_repo, teacher_id=None) -> ReviewSession:
        session = ReviewSession(target, roster_repo, mark_repo, teacher_id=teacher_id)
        self._sessions[session.session_id] = session
        logger.info(f"Opened review session {session.session_id} for class {target.class_id}")
        return session

    def get(self, session_id: str) -> ReviewSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def close(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)
        logger.info(f"Closed review session {session_id}")


session_store = ReviewSessionStore()


def get_session_store() -> ReviewSessionStore:
    return session_store
