"""Repositories layer - Data access and persistence.

Repositories handle all database operations using SQLAlchemy.
They abstract the database implementation from the service layer.
"""

from app.repositories.content import ContentRepository
from app.repositories.content_similarity import ContentSimilarityRepository
from app.repositories.content_tag import ContentTagRepository
from app.repositories.generated_quiz import GeneratedQuizRepository
from app.repositories.plagiarism_check import PlagiarismCheckRepository
from app.repositories.quality_assessment import QualityAssessmentRepository

__all__ = [
    "ContentRepository",
    "ContentSimilarityRepository",
    "ContentTagRepository",
    "GeneratedQuizRepository",
    "PlagiarismCheckRepository",
    "QualityAssessmentRepository",
]
