"""Models layer - SQLAlchemy ORM models.

Models define the database schema.
All models inherit from the Base class defined in core.database.
"""

from app.core.database import Base
from app.models.content_quality_assessment import (
    QUALITY_DIMENSIONS,
    AssessmentStatus,
    ContentQualityAssessment,
    QualityLevel,
)
from app.models.content_similarity import (
    ContentSimilarity,
    SimilarityStatus,
    SimilarityType,
)
from app.models.content_tag import ContentTag, TagCategory, TagType
from app.models.course import ContentType, Course, Lesson
from app.models.generated_quiz import (
    USABLE_QUIZ_STATUSES,
    DifficultyLevel,
    GeneratedQuiz,
    QuestionType,
    QuizStatus,
)
from app.models.plagiarism_check import (
    FLAGGED_PLAGIARISM_LEVELS,
    PlagiarismCheck,
    PlagiarismLevel,
    PlagiarismStatus,
)

__all__ = [
    "Base",
    "AssessmentStatus",
    "ContentQualityAssessment",
    "ContentSimilarity",
    "ContentTag",
    "ContentType",
    "Course",
    "DifficultyLevel",
    "FLAGGED_PLAGIARISM_LEVELS",
    "GeneratedQuiz",
    "Lesson",
    "PlagiarismCheck",
    "PlagiarismLevel",
    "PlagiarismStatus",
    "QUALITY_DIMENSIONS",
    "QualityLevel",
    "QuestionType",
    "QuizStatus",
    "SimilarityStatus",
    "SimilarityType",
    "TagCategory",
    "TagType",
    "USABLE_QUIZ_STATUSES",
]
