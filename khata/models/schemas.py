from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


Confidence = Literal["high", "medium", "low"]


class CamelModel(BaseModel):
    """Base for everything that crosses the JSON boundary (camelCase on the wire)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MatchStatus(str, Enum):
    FOUND = "found"
    NEW = "new"
    ERROR = "error"


class MarkTarget(CamelModel):
    class_id: str = Field(..., min_length=1, description="Class the marks belong to")
    subject_id: str = Field(..., min_length=1, description="Subject the marks belong to")
    term: int = Field(..., ge=1, le=3, description="Grading term (1, 2 or 3)")
    year: int = Field(..., ge=2000, le=2100, description="Academic year")


# rows

class ExtractedMark(CamelModel):
    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {"rollNumber": "01", "name": "করিম", "totalMarks": 85, "confidence": "high"}
        },
    )

    roll_number: str = Field(default="", description="Roll number, zero padded")
    name: str = Field(default="", description="Student name as written in the khata")
    total_marks: Optional[float] = Field(default=None, description="Total marks, None when unreadable")
    confidence: Optional[Confidence] = Field(default=None, description="Legibility as rated by the model")


class RosterStudent(CamelModel):
    id: str
    name: str
    roll_number: str
    class_id: str
    teacher_id: Optional[str] = None


class MatchedMark(CamelModel):
    roll_number: str = Field(default="")
    name: str = Field(default="")
    total_marks: Optional[float] = Field(default=None)
    confidence: Optional[Confidence] = Field(default=None)

    student_id: Optional[str] = Field(default=None, description="Resolved roster id")
    matched_student: Optional[RosterStudent] = Field(default=None)
    match_status: MatchStatus = Field(default=MatchStatus.NEW)
    validation_errors: List[str] = Field(default_factory=list)

    # name-similarity hint for "new" rows, never changes match_status
    suggested_student: Optional[RosterStudent] = Field(default=None)
    suggestion_score: Optional[float] = Field(default=None)


class MarkRecord(CamelModel):
    student_id: str
    class_id: str
    subject_id: str
    teacher_id: Optional[str] = None
    term: int = Field(..., ge=1, le=3)
    year: int
    quiz_marks: float = 0
    quiz_count: int = 0
    class_engagement: float = 0
    written_marks: Optional[float] = None
    practical_marks: Optional[float] = None
    total_marks: Optional[float] = None
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def key(self) -> tuple:
        return (self.student_id, self.class_id, self.subject_id, self.term, self.year)


# pipeline results

class RecoveryResult(BaseModel):
    success: bool
    data: Any = None
    strategy: Optional[str] = None
    error: Optional[str] = None
    raw_text: str = ""


class KhataExtraction(BaseModel):
    extracted_marks: List[ExtractedMark] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    images_processed: int = 0
    # kept for diagnostics, never sent to the client
    raw_responses: List[str] = Field(default_factory=list, exclude=True)

    @property
    def is_empty(self) -> bool:
        return not self.extracted_marks


class ValidationReport(CamelModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)


class ConflictReport(CamelModel):
    has_conflicts: bool = False
    conflicting_student_ids: List[str] = Field(default_factory=list)


class CommitResult(CamelModel):
    saved_count: int = 0
    total_rows: int = 0
    skipped: List[str] = Field(default_factory=list)


class SummaryStats(CamelModel):
    total: int = 0
    matched: int = 0
    new: int = 0
    errors: int = 0


# api request / response models

class ExtractionRequest(CamelModel):
    images: List[str] = Field(default_factory=list, description="Data URLs or bare base64 images")
    class_id: str = Field(..., min_length=1)
    subject_id: str = Field(..., min_length=1)
    term: int = Field(..., ge=1, le=3)
    year: int = Field(..., ge=2000, le=2100)


class ExtractionResponse(CamelModel):
    success: bool = Field(..., description="Whether any marks were extracted")
    extracted_marks: List[ExtractedMark] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Human readable message when nothing was extracted")
    error_code: Optional[str] = Field(None)
    total_images_processed: int = 0
    total_students_extracted: int = 0
    processing_time_ms: float = 0.0


class SessionCreateRequest(MarkTarget):
    teacher_id: Optional[str] = Field(default=None)


class RowEdit(CamelModel):
    roll_number: Optional[str] = None
    name: Optional[str] = None
    total_marks: Optional[float] = None


class SessionView(CamelModel):
    session_id: str
    step: str
    target: MarkTarget
    teacher_id: Optional[str] = None
    rows: List[MatchedMark] = Field(default_factory=list)
    summary: SummaryStats = Field(default_factory=SummaryStats)
    warnings: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    notice: Optional[str] = None
    validation: Optional[ValidationReport] = None
    conflicts: Optional[ConflictReport] = None
    commit: Optional[CommitResult] = None


class HealthResponse(BaseModel):
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="API version")
    llm_provider: str = Field(..., description="Active LLM provider")
    llm_status: str = Field(..., description="LLM connection status")
    circuit_state: str = Field(..., description="Circuit breaker state for the active provider")


class ErrorResponse(BaseModel):
    success: bool = Field(default=False)
    error: str = Field(..., description="Error message")
    error_code: str = Field(..., description="Error code for debugging")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
