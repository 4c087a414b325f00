"""Wire schemas for the external AI content-analysis service.

Requests are serialized with camelCase aliases (model_dump(by_alias=True)).
Responses are validated on arrival: missing or mistyped required fields are
rejected, unknown keys are kept in model_extra so the client can log them.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _WireRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class _WireResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# =============================================================================
# SHARED REQUEST PIECES
# =============================================================================


class AIContentPayload(_WireRequest):
    """Content sent for analysis."""

    id: str
    type: str
    title: str
    description: str = ""
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


class AISimilarityContent(_WireRequest):
    id: str
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    difficulty: str = "medium"


# =============================================================================
# TAGGING
# =============================================================================


class AITaggingPreferences(_WireRequest):
    max_tags: int = Field(10, alias="maxTags")
    categories: list[str] = Field(default_factory=list)
    min_confidence: float = Field(0.5, alias="minConfidence")


class AITaggingRequest(_WireRequest):
    content: AIContentPayload
    preferences: AITaggingPreferences


class AITag(_WireResponse):
    name: str
    category: str
    confidence: float
    description: str | None = None
    keywords: list[str] = Field(default_factory=list)
    context: str | None = None
    relevance_score: float | None = Field(None, alias="relevanceScore")


class AITaggingResponse(_WireResponse):
    tags: list[AITag]
    model_version: str | None = None
    extraction_method: str | None = None
    algorithm_used: str | None = None
    processing_time: float | None = None


# =============================================================================
# SIMILARITY
# =============================================================================


class AISimilarityRequest(_WireRequest):
    target_content: AISimilarityContent = Field(..., alias="targetContent")
    candidate_contents: list[AISimilarityContent] = Field(
        ..., alias="candidateContents"
    )
    similarity_type: str = Field("comprehensive", alias="similarityType")


class AISimilarity(_WireResponse):
    content_id: str | None = Field(None, alias="contentId")
    similarity_score: float = Field(..., alias="similarityScore", ge=0, le=1)
    similarity_reasons: list[str] = Field(
        default_factory=list, alias="similarityReasons"
    )
    recommendation_strength: str | None = Field(None, alias="recommendationStrength")


class AISimilarityProcessingInfo(_WireResponse):
    processing_time_ms: float | None = None


class AISimilarityResponse(_WireResponse):
    similarities: list[AISimilarity]
    algorithm_used: str | None = None
    processing_info: AISimilarityProcessingInfo = Field(
        default_factory=AISimilarityProcessingInfo
    )


# =============================================================================
# QUALITY
# =============================================================================


class AIAssessmentCriteria(_WireRequest):
    dimensions: list[str]
    include_readability: bool = Field(True, alias="includeReadability")
    include_accessibility: bool = Field(True, alias="includeAccessibility")
    include_engagement: bool = Field(True, alias="includeEngagement")
    detailed_analysis: bool = Field(True, alias="detailedAnalysis")
    generate_improvements: bool = Field(True, alias="generateImprovements")


class AIQualityRequest(_WireRequest):
    content: AIContentPayload
    assessment_criteria: AIAssessmentCriteria = Field(..., alias="assessmentCriteria")


class AIDimensionScores(_WireResponse):
    clarity: float
    coherence: float
    completeness: float
    accuracy: float
    engagement: float
    accessibility: float
    structure: float
    relevance: float


class AIQualityResponse(_WireResponse):
    overall_score: float = Field(..., ge=0, le=100)
    dimension_scores: AIDimensionScores
    analysis: dict[str, Any] = Field(default_factory=dict)
    improvements: list[Any] = Field(default_factory=list)
    model_version: str | None = None
    processing_time: float | None = None
    confidence: float | None = None


# =============================================================================
# QUIZ
# =============================================================================


class AIQuizRequirements(_WireRequest):
    question_count: int = Field(..., alias="questionCount")
    difficulty_level: str = Field(..., alias="difficultyLevel")
    question_types: list[str] = Field(..., alias="questionTypes")
    target_objectives: list[str] = Field(default_factory=list, alias="targetObjectives")
    include_explanations: bool = Field(True, alias="includeExplanations")
    custom_prompt: str | None = Field(None, alias="customPrompt")
    time_limit: int | None = Field(None, alias="timeLimit")


class AIQuizRequest(_WireRequest):
    content: AIContentPayload
    requirements: AIQuizRequirements


class AIQuizQuestion(_WireResponse):
    type: str
    question: str
    options: list[str] | None = None
    correct_answer: Any
    explanation: str | None = None
    difficulty: str | None = None
    points: float | None = None
    estimated_time: int | None = None
    keywords: list[str] = Field(default_factory=list)


class AIQuizResponse(_WireResponse):
    questions: list[AIQuizQuestion]
    quality_assessment: dict[str, Any] = Field(default_factory=dict)
    model_version: str | None = None
    generation_prompt: str | None = None
    analysis: dict[str, Any] = Field(default_factory=dict)
    processing_time: float | None = None
    confidence: float | None = None


# =============================================================================
# PLAGIARISM
# =============================================================================


class AIScanOptions(_WireRequest):
    check_web_sources: bool = Field(True, alias="checkWebSources")
    check_academic_sources: bool = Field(True, alias="checkAcademicSources")
    check_internal_sources: bool = Field(True, alias="checkInternalSources")
    check_student_work: bool = Field(False, alias="checkStudentWork")
    sensitivity_level: str = Field("medium", alias="sensitivityLevel")
    excluded_sources: list[str] = Field(default_factory=list, alias="excludedSources")


class AIPlagiarismRequest(_WireRequest):
    content: AIContentPayload
    scan_options: AIScanOptions = Field(..., alias="scanOptions")


class AIPlagiarismMatch(_WireResponse):
    source_url: str | None = None
    source_title: str | None = None
    similarity: float
    matched_text: str
    start_position: int
    end_position: int
    source_type: str
    confidence: float


class AIPlagiarismResponse(_WireResponse):
    overall_similarity: float = Field(..., ge=0, le=100)
    sources_checked: int = 0
    matches: list[AIPlagiarismMatch] = Field(default_factory=list)
    analysis: dict[str, Any] = Field(default_factory=dict)
    processing_time: float | None = None
    scan_provider: str | None = None
    scan_version: str | None = None
    confidence: float | None = None
