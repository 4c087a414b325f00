"""Pydantic schemas for the content analysis engines and coordinator.

Request models carry the options each engine accepts; response models are
what engines return and what queued jobs store as their result.

Error Logging Requirements:
- Log validation failures with field names and rejected values
- Return structured error responses: {"error": str, "code": str, "request_id": str}
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.models.content_similarity import SimilarityType
from app.models.content_tag import TagCategory, TagType
from app.models.course import ContentType
from app.models.generated_quiz import DifficultyLevel, QuestionType


class SensitivityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class _ORMResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


# =============================================================================
# TAGGING
# =============================================================================


class TagGenerationRequest(BaseModel):
    """Options for generating tags for one item."""

    content_type: ContentType
    content_id: str
    max_tags: int = Field(10, ge=1, le=50)
    min_confidence: float = Field(0.5, ge=0, le=1)
    categories: list[TagCategory] | None = Field(
        None, description="Restrict generation to these categories (default: all)"
    )
    force_regenerate: bool = False


class TagResponse(_ORMResponse):
    id: str
    content_type: str
    content_id: str
    name: str
    category: str
    type: str
    confidence: float
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="tag_metadata")
    is_verified: bool = False
    created_at: datetime | None = None


class TagGenerationResult(BaseModel):
    content_type: str
    content_id: str
    tags: list[TagResponse]
    cached: bool = False
    fallback_used: bool = False
    retired_count: int = 0
    model_version: str | None = None


class CreateTagRequest(BaseModel):
    content_type: ContentType
    content_id: str
    name: str = Field(..., min_length=1, max_length=100)
    category: TagCategory = TagCategory.TOPIC
    type: TagType = TagType.MANUAL
    confidence: float = Field(1.0, ge=0, le=1)
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("Tag name cannot be blank")
        return stripped


class UpdateTagRequest(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    category: TagCategory | None = None
    confidence: float | None = Field(None, ge=0, le=1)
    description: str | None = None
    metadata: dict[str, Any] | None = None


class TagQuery(BaseModel):
    content_type: ContentType | None = None
    content_id: str | None = None
    category: TagCategory | None = None
    type: TagType | None = None
    is_verified: bool | None = None
    min_confidence: float | None = Field(None, ge=0, le=1)
    search: str | None = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class TagListResponse(BaseModel):
    items: list[TagResponse]
    total: int


# =============================================================================
# SIMILARITY
# =============================================================================


class SimilarityRequest(BaseModel):
    """Score one ordered pair of items."""

    source_content_type: ContentType
    source_content_id: str
    target_content_type: ContentType
    target_content_id: str
    similarity_type: SimilarityType = SimilarityType.COMPREHENSIVE
    force_recalculate: bool = False


class SimilarityResponse(_ORMResponse):
    id: str
    source_content_type: str
    source_content_id: str
    target_content_type: str
    target_content_id: str
    similarity_type: str
    similarity_score: float | None = None
    status: str
    analysis: dict[str, Any] = Field(default_factory=dict)
    calculated_at: datetime | None = None
    cached: bool = False


class SimilarContentItem(BaseModel):
    """An item similar to the one being analyzed."""

    content_type: str
    content_id: str
    similarity_score: float
    similarity_type: str
    similarity_reasons: list[str] = Field(default_factory=list)
    calculated_at: datetime | None = None


class SimilarityDetectionResult(BaseModel):
    content_type: str
    content_id: str
    similar: list[SimilarContentItem]
    compared_count: int = 0
    reused_count: int = 0


class SimilarityQuery(BaseModel):
    source_content_type: ContentType | None = None
    source_content_id: str | None = None
    similarity_type: SimilarityType | None = None
    status: str | None = None
    min_similarity: float | None = Field(None, ge=0, le=1)
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


# =============================================================================
# QUALITY
# =============================================================================


class QualityAssessmentRequest(BaseModel):
    content_type: ContentType
    content_id: str
    include_detailed_analysis: bool = True
    generate_suggestions: bool = True
    include_readability: bool = True
    include_accessibility: bool = True
    include_engagement: bool = True
    force_reassessment: bool = False


class QualityAssessmentResponse(_ORMResponse):
    id: str
    content_type: str
    content_id: str
    status: str
    overall_score: float | None = None
    quality_level: str | None = None
    dimension_scores: dict[str, float | None] = Field(default_factory=dict)
    analysis: dict[str, Any] = Field(default_factory=dict)
    improvements: list[Any] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias="assessment_metadata"
    )
    is_latest: bool = False
    assessed_at: datetime | None = None
    cached: bool = False
    fallback_used: bool = False


class QualityQuery(BaseModel):
    content_type: ContentType | None = None
    content_id: str | None = None
    quality_level: str | None = None
    min_score: float | None = Field(None, ge=0, le=100)
    max_score: float | None = Field(None, ge=0, le=100)
    latest_only: bool = True
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class QualityTrendPoint(BaseModel):
    assessed_at: datetime
    overall_score: float
    quality_level: str
    dimension_scores: dict[str, float | None]


class QualityTrendsResponse(BaseModel):
    content_type: str
    content_id: str
    days: int
    points: list[QualityTrendPoint]
    score_change: float | None = None


class QualityStatisticsResponse(BaseModel):
    total_assessed: int
    average_score: float | None = None
    level_distribution: dict[str, int]
    top_content: list[dict[str, Any]]


# =============================================================================
# QUIZ
# =============================================================================


class QuizGenerationRequest(BaseModel):
    lesson_id: str
    title: str = Field("Auto-generated Quiz", min_length=1, max_length=255)
    description: str | None = None
    question_count: int = Field(5, ge=1, le=50)
    difficulty_level: DifficultyLevel = DifficultyLevel.MEDIUM
    question_types: list[QuestionType] = Field(
        default_factory=lambda: [QuestionType.MULTIPLE_CHOICE, QuestionType.TRUE_FALSE]
    )
    target_objectives: list[str] = Field(default_factory=list)
    include_explanations: bool = True
    custom_prompt: str | None = None
    time_limit: int | None = Field(None, ge=1)
    force_regenerate: bool = False


class QuizQuestion(BaseModel):
    id: str
    type: QuestionType
    question: str
    options: list[str] | None = None
    correct_answer: Any
    explanation: str | None = None
    difficulty: str = DifficultyLevel.MEDIUM.value
    points: float = 1
    estimated_time: int = 60
    keywords: list[str] = Field(default_factory=list)


class QuizResponse(_ORMResponse):
    id: str
    lesson_id: str
    title: str
    description: str | None = None
    status: str
    questions: list[dict[str, Any]] = Field(default_factory=list)
    question_count: int
    difficulty_level: str
    quality_score: float | None = None
    generation_analysis: dict[str, Any] = Field(default_factory=dict)
    generation_metadata: dict[str, Any] = Field(default_factory=dict)
    review_metadata: dict[str, Any] = Field(default_factory=dict)
    time_limit: int | None = None
    completed_at: datetime | None = None
    reviewed_at: datetime | None = None
    cached: bool = False


class QuizReviewRequest(BaseModel):
    approved: bool
    feedback: str | None = None
    quality_rating: int | None = Field(None, ge=1, le=5)
    question_feedback: dict[str, str] = Field(default_factory=dict)


class QuizUpdateRequest(BaseModel):
    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    questions: list[QuizQuestion] | None = None
    time_limit: int | None = Field(None, ge=1)


class QuizQuery(BaseModel):
    lesson_id: str | None = None
    status: str | None = None
    difficulty_level: DifficultyLevel | None = None
    created_by: str | None = None
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


# =============================================================================
# PLAGIARISM
# =============================================================================


class PlagiarismCheckRequest(BaseModel):
    content_type: ContentType
    content_id: str
    check_web_sources: bool = True
    check_academic_sources: bool = True
    check_internal_sources: bool = True
    check_student_work: bool = False
    sensitivity_level: SensitivityLevel = SensitivityLevel.MEDIUM
    excluded_sources: list[str] = Field(default_factory=list)
    force_rescan: bool = False


class PlagiarismCheckResponse(_ORMResponse):
    id: str
    content_type: str
    content_id: str
    content_hash: str
    status: str
    overall_similarity: float | None = None
    plagiarism_level: str | None = None
    sources_checked: int = 0
    matches: list[dict[str, Any]] = Field(default_factory=list)
    analysis: dict[str, Any] = Field(default_factory=dict)
    scan_configuration: dict[str, Any] = Field(default_factory=dict)
    scan_metadata: dict[str, Any] = Field(default_factory=dict)
    scan_completed_at: datetime | None = None
    cached: bool = False


class PlagiarismQuery(BaseModel):
    content_type: ContentType | None = None
    content_id: str | None = None
    status: str | None = None
    plagiarism_level: str | None = None
    min_similarity: float | None = Field(None, ge=0, le=100)
    limit: int = Field(50, ge=1, le=200)
    offset: int = Field(0, ge=0)


class PlagiarismStatisticsResponse(BaseModel):
    total_checks: int
    average_similarity: float | None = None
    level_distribution: dict[str, int]
    flagged_count: int
    flagged_content: list[dict[str, Any]]


# =============================================================================
# COORDINATOR
# =============================================================================


class AnalysisStage(str, Enum):
    """Engine names as they appear in coordinator error entries."""

    TAG_GENERATION = "tag_generation"
    QUALITY_ASSESSMENT = "quality_assessment"
    PLAGIARISM_CHECK = "plagiarism_check"
    QUIZ_GENERATION = "quiz_generation"
    SIMILARITY_DETECTION = "similarity_detection"


class BulkAnalysisType(str, Enum):
    TAGS = "tags"
    QUALITY = "quality"
    PLAGIARISM = "plagiarism"
    QUIZ = "quiz"
    SIMILARITY = "similarity"


class ComprehensiveAnalysisRequest(BaseModel):
    content_type: ContentType
    content_id: str
    include_tags: bool = True
    include_quality: bool = True
    include_plagiarism: bool = True
    include_quiz_generation: bool = True
    include_similarity: bool = True
    force: bool = False


class StageError(BaseModel):
    type: str
    error: str
    error_type: str | None = None


class ComprehensiveResults(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tags: TagGenerationResult | None = None
    quality: QualityAssessmentResponse | None = None
    plagiarism: PlagiarismCheckResponse | None = None
    quiz: QuizResponse | None = None
    similar_content: list[SimilarContentItem] | None = Field(
        None, alias="similarContent"
    )


class ComprehensiveAnalysisResult(BaseModel):
    content_type: str
    content_id: str
    results: ComprehensiveResults
    errors: list[StageError] = Field(default_factory=list)


class BulkAnalysisRequest(BaseModel):
    content_type: ContentType
    content_ids: list[str]
    analysis_types: list[BulkAnalysisType] = Field(
        default_factory=lambda: [BulkAnalysisType.TAGS]
    )
    force: bool = False

    @field_validator("analysis_types")
    @classmethod
    def require_analysis_type(
        cls, value: list[BulkAnalysisType]
    ) -> list[BulkAnalysisType]:
        if not value:
            raise ValueError("At least one analysis type is required")
        return list(dict.fromkeys(value))


class BulkItemResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    content_id: str = Field(..., alias="contentId")
    content_type: str = Field(..., alias="contentType")
    results: dict[str, Any] = Field(default_factory=dict)
    errors: list[StageError] = Field(default_factory=list)
    artifacts: int = 0

    @property
    def success(self) -> bool:
        return not self.errors


class BulkSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    successful: int
    failed: int
    total_artifacts: int = Field(0, alias="totalArtifacts")


class BulkAnalysisResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_processed: int = Field(..., alias="totalProcessed")
    results: list[BulkItemResult]
    summary: BulkSummary
