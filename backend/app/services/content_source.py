"""Content source for the analysis engines.

Loads a course or lesson and extracts the text each engine analyzes:
- full text (title, description, lesson body, course outcomes and
  requirements) for tagging and quality assessment
- body text (title, description, lesson body) for plagiarism scans
- quiz text (lesson text plus learning objectives) for quiz generation

Also defines the exception hierarchy shared by all analysis services.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.models.course import ContentType, Course, Lesson
from app.repositories.content import ContentRepository
from app.schemas.ai_service import AIContentPayload, AISimilarityContent

logger = get_logger(__name__)

CONTENT_TYPES = frozenset(t.value for t in ContentType)


class ContentAnalysisError(Exception):
    """Base exception for content analysis errors."""

    pass


class ContentAnalysisValidationError(ContentAnalysisError):
    """Raised when an analysis request is malformed."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        self.message = message
        super().__init__(f"Validation failed for '{field}': {message}")


class ContentNotFoundError(ContentAnalysisError):
    """Raised when the content to analyze does not exist."""

    def __init__(self, content_type: str, content_id: str):
        self.content_type = content_type
        self.content_id = content_id
        super().__init__(f"{content_type} not found: {content_id}")


class AnalysisNotFoundError(ContentAnalysisError):
    """Raised when a stored analysis record does not exist."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class AnalysisInProgressError(ContentAnalysisError):
    """Raised when another caller holds the analysis lease for too long."""

    def __init__(self, lease_key: str, waited_seconds: float):
        self.lease_key = lease_key
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Analysis already in progress for {lease_key} "
            f"(waited {waited_seconds:.1f}s)"
        )


def validate_content_type(content_type: str) -> str:
    if content_type not in CONTENT_TYPES:
        raise ContentAnalysisValidationError(
            "content_type",
            content_type,
            f"Must be one of: {', '.join(sorted(CONTENT_TYPES))}",
        )
    return content_type


@dataclass
class ContentSubject:
    """A loaded course or lesson ready for analysis."""

    content_type: str
    content_id: str
    title: str
    description: str
    body: str = ""
    outcomes: list[Any] = field(default_factory=list)
    requirements: list[Any] = field(default_factory=list)
    objectives: list[Any] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    difficulty: str = "medium"
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def is_lesson(self) -> bool:
        return self.content_type == ContentType.LESSON.value

    @property
    def body_text(self) -> str:
        text = self.title + "\n"
        if self.description:
            text += self.description + "\n"
        if self.body:
            text += self.body + "\n"
        return text

    @property
    def full_text(self) -> str:
        text = self.body_text
        if self.outcomes:
            text += json.dumps(self.outcomes) + "\n"
        if self.requirements:
            text += json.dumps(self.requirements) + "\n"
        return text

    @property
    def quiz_text(self) -> str:
        text = self.body_text
        if self.objectives:
            text += "Learning Objectives:\n" + json.dumps(self.objectives) + "\n"
        return text

    def to_payload(self, text: str) -> AIContentPayload:
        return AIContentPayload(
            id=self.content_id,
            type=self.content_type,
            title=self.title,
            description=self.description,
            text=text,
            metadata=self.metadata,
        )

    def to_similarity_content(self) -> AISimilarityContent:
        return AISimilarityContent(
            id=self.content_id,
            title=self.title,
            description=self.description,
            tags=self.tags,
            difficulty=self.difficulty,
        )

    @classmethod
    def from_entity(cls, entity: Course | Lesson) -> "ContentSubject":
        if isinstance(entity, Course):
            return cls(
                content_type=ContentType.COURSE.value,
                content_id=entity.id,
                title=entity.title,
                description=entity.description or "",
                outcomes=list(entity.what_you_will_learn or []),
                requirements=list(entity.requirements or []),
                tags=[str(tag) for tag in entity.tags or []],
                difficulty=entity.level or "medium",
                metadata={
                    "difficultyLevel": entity.level,
                    "language": entity.language,
                    "duration": entity.duration_hours,
                },
            )
        return cls(
            content_type=ContentType.LESSON.value,
            content_id=entity.id,
            title=entity.title,
            description=entity.description or "",
            body=entity.content or "",
            objectives=list(entity.objectives or []),
            metadata={"estimatedDuration": entity.estimated_duration},
        )


async def load_subject(
    session: AsyncSession, content_type: str, content_id: str
) -> ContentSubject:
    """Load a course or lesson.

    Raises:
        ContentAnalysisValidationError: If content_type is not supported
        ContentNotFoundError: If the content does not exist
    """
    validate_content_type(content_type)
    entity = await ContentRepository(session).get(content_type, content_id)
    if entity is None:
        logger.warning(
            "Content not found for analysis",
            extra={"content_type": content_type, "content_id": content_id},
        )
        raise ContentNotFoundError(content_type, content_id)
    return ContentSubject.from_entity(entity)


async def load_subjects(
    session: AsyncSession, content_type: str, content_ids: list[str]
) -> list[ContentSubject]:
    """Load several items of one type; missing ids are skipped."""
    validate_content_type(content_type)
    entities = await ContentRepository(session).get_many(content_type, content_ids)
    return [ContentSubject.from_entity(entity) for entity in entities]
