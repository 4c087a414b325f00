"""Schemas layer - Pydantic models for validation and serialization.

content_analysis holds the request and response shapes of the analysis
engines; ai_service holds the wire contract of the external AI service.
"""

from app.schemas.ai_service import (
    AIContentPayload,
    AIPlagiarismRequest,
    AIPlagiarismResponse,
    AIQualityRequest,
    AIQualityResponse,
    AIQuizRequest,
    AIQuizResponse,
    AISimilarityRequest,
    AISimilarityResponse,
    AITaggingRequest,
    AITaggingResponse,
)
from app.schemas.content_analysis import (
    AnalysisStage,
    BulkAnalysisRequest,
    BulkAnalysisResult,
    BulkAnalysisType,
    BulkItemResult,
    BulkSummary,
    ComprehensiveAnalysisRequest,
    ComprehensiveAnalysisResult,
    ComprehensiveResults,
    CreateTagRequest,
    PlagiarismCheckRequest,
    PlagiarismCheckResponse,
    PlagiarismQuery,
    PlagiarismStatisticsResponse,
    QualityAssessmentRequest,
    QualityAssessmentResponse,
    QualityQuery,
    QualityStatisticsResponse,
    QualityTrendPoint,
    QualityTrendsResponse,
    QuizGenerationRequest,
    QuizQuery,
    QuizQuestion,
    QuizResponse,
    QuizReviewRequest,
    QuizUpdateRequest,
    SensitivityLevel,
    SimilarContentItem,
    SimilarityDetectionResult,
    SimilarityQuery,
    SimilarityRequest,
    SimilarityResponse,
    StageError,
    TagGenerationRequest,
    TagGenerationResult,
    TagListResponse,
    TagQuery,
    TagResponse,
    UpdateTagRequest,
)

__all__ = [
    # AI service wire contract
    "AIContentPayload",
    "AIPlagiarismRequest",
    "AIPlagiarismResponse",
    "AIQualityRequest",
    "AIQualityResponse",
    "AIQuizRequest",
    "AIQuizResponse",
    "AISimilarityRequest",
    "AISimilarityResponse",
    "AITaggingRequest",
    "AITaggingResponse",
    # Content analysis
    "AnalysisStage",
    "BulkAnalysisRequest",
    "BulkAnalysisResult",
    "BulkAnalysisType",
    "BulkItemResult",
    "BulkSummary",
    "ComprehensiveAnalysisRequest",
    "ComprehensiveAnalysisResult",
    "ComprehensiveResults",
    "CreateTagRequest",
    "PlagiarismCheckRequest",
    "PlagiarismCheckResponse",
    "PlagiarismQuery",
    "PlagiarismStatisticsResponse",
    "QualityAssessmentRequest",
    "QualityAssessmentResponse",
    "QualityQuery",
    "QualityStatisticsResponse",
    "QualityTrendPoint",
    "QualityTrendsResponse",
    "QuizGenerationRequest",
    "QuizQuery",
    "QuizQuestion",
    "QuizResponse",
    "QuizReviewRequest",
    "QuizUpdateRequest",
    "SensitivityLevel",
    "SimilarContentItem",
    "SimilarityDetectionResult",
    "SimilarityQuery",
    "SimilarityRequest",
    "SimilarityResponse",
    "StageError",
    "TagGenerationRequest",
    "TagGenerationResult",
    "TagListResponse",
    "TagQuery",
    "TagResponse",
    "UpdateTagRequest",
]
