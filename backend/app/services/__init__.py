"""Services layer - Business logic and orchestration.

Services coordinate between repositories, integrations, and other services
to implement the analysis engines. They contain no direct database or
external API access - that's delegated to repositories and integrations.
"""

from app.services.content_source import (
    AnalysisInProgressError,
    AnalysisNotFoundError,
    ContentAnalysisError,
    ContentAnalysisValidationError,
    ContentNotFoundError,
    ContentSubject,
    load_subject,
    load_subjects,
)
from app.services.analysis_freshness import content_hash, is_fresh, should_reuse
from app.services.analysis_lease import analysis_lease, lease_key
from app.services.content_tagging import ContentTaggingService
from app.services.similarity_detection import SimilarityDetectionService
from app.services.quality_assessment import QualityAssessmentService
from app.services.quiz_generation import QuizGenerationService
from app.services.plagiarism_detection import PlagiarismDetectionService
from app.services.analysis_coordinator import AnalysisCoordinator
from app.services.analysis_jobs import (
    AnalysisJobHandlers,
    build_registry,
    close_queues,
    enqueue_bulk_analysis,
    enqueue_comprehensive_analysis,
    enqueue_plagiarism_check,
    enqueue_quality_assessment,
    enqueue_quiz_generation,
    enqueue_similarity_analysis,
    enqueue_tag_generation,
    get_job_status,
    get_queue_registry,
    init_queues,
)

__all__ = [
    # Content loading and errors
    "AnalysisInProgressError",
    "AnalysisNotFoundError",
    "ContentAnalysisError",
    "ContentAnalysisValidationError",
    "ContentNotFoundError",
    "ContentSubject",
    "load_subject",
    "load_subjects",
    # Freshness and leases
    "analysis_lease",
    "content_hash",
    "is_fresh",
    "lease_key",
    "should_reuse",
    # Engines
    "ContentTaggingService",
    "PlagiarismDetectionService",
    "QualityAssessmentService",
    "QuizGenerationService",
    "SimilarityDetectionService",
    # Coordination
    "AnalysisCoordinator",
    # Job queues
    "AnalysisJobHandlers",
    "build_registry",
    "close_queues",
    "enqueue_bulk_analysis",
    "enqueue_comprehensive_analysis",
    "enqueue_plagiarism_check",
    "enqueue_quality_assessment",
    "enqueue_quiz_generation",
    "enqueue_similarity_analysis",
    "enqueue_tag_generation",
    "get_job_status",
    "get_queue_registry",
    "init_queues",
]
