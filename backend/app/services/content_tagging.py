"""ContentTaggingService: AI tag generation and tag management.

Generates categorized tags for courses and lessons through the AI service.
Live tags created inside the freshness window are reused; regeneration
retires the earlier auto-generated tags before storing the new set. When the
AI call fails, the most frequent words of the title and description are
stored as low-confidence fallback tags.

ERROR LOGGING REQUIREMENTS:
- Log method entry/exit at DEBUG level with parameters (sanitized)
- Log all exceptions with full stack trace and context
- Include entity IDs (content_type, content_id, tag_id) in all service logs
- Log validation failures with field names and rejected values
- Log fallback usage at WARNING level
- Add timing logs for operations >1 second
"""

import re
import time
from collections import Counter
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import ai_service_logger, get_logger
from app.integrations.ai_service import AIServiceClient, AIServiceError
from app.models.content_tag import ContentTag, TagCategory, TagType
from app.repositories.content_tag import ContentTagRepository
from app.schemas.ai_service import AITaggingPreferences, AITaggingRequest
from app.schemas.content_analysis import (
    CreateTagRequest,
    TagGenerationRequest,
    TagGenerationResult,
    TagListResponse,
    TagQuery,
    TagResponse,
    UpdateTagRequest,
)
from app.services.analysis_freshness import should_reuse
from app.services.analysis_lease import analysis_lease
from app.services.content_source import (
    AnalysisNotFoundError,
    ContentAnalysisValidationError,
    ContentSubject,
    load_subject,
    validate_content_type,
)

logger = get_logger(__name__)

SLOW_OPERATION_THRESHOLD_MS = 1000

ENGINE_NAME = "tagging"

FALLBACK_TAG_COUNT = 5
FALLBACK_CONFIDENCE = 0.5
FALLBACK_MIN_WORD_LENGTH = 4
FALLBACK_EXTRACTION_METHOD = "fallback_keyword_extraction"

AI_CATEGORY_MAP: dict[str, TagCategory] = {
    "topic": TagCategory.TOPIC,
    "difficulty": TagCategory.DIFFICULTY,
    "skill": TagCategory.SKILL,
    "subject": TagCategory.SUBJECT,
    "objective": TagCategory.LEARNING_OBJECTIVE,
    "learning_objective": TagCategory.LEARNING_OBJECTIVE,
    "type": TagCategory.CONTENT_TYPE,
    "content_type": TagCategory.CONTENT_TYPE,
    "language": TagCategory.LANGUAGE,
}


def map_ai_category(ai_category: str) -> TagCategory:
    """Map an AI category label to a TagCategory; unknown labels are topics."""
    return AI_CATEGORY_MAP.get(ai_category.lower(), TagCategory.TOPIC)


def extract_fallback_keywords(
    text: str, limit: int = FALLBACK_TAG_COUNT
) -> list[str]:
    """Most frequent words longer than three characters.

    Ties keep the order of first appearance.
    """
    words = [
        word
        for word in re.split(r"\s+", text.lower())
        if len(word) >= FALLBACK_MIN_WORD_LENGTH
    ]
    # Counter preserves insertion order, and most_common is a stable sort
    return [word for word, _ in Counter(words).most_common(limit)]


class ContentTaggingService:
    """Service for generating and managing content tags."""

    def __init__(self, session: AsyncSession, ai_client: AIServiceClient) -> None:
        self._session = session
        self._ai_client = ai_client
        self._repository = ContentTagRepository(session)
        logger.debug("ContentTaggingService initialized")

    async def generate_tags(
        self,
        request: TagGenerationRequest,
        user_id: str | None = None,
        allow_fallback: bool = True,
    ) -> TagGenerationResult:
        """Generate tags for one course or lesson.

        Args:
            request: Tag generation options
            user_id: User requesting generation
            allow_fallback: Store keyword fallback tags when the AI call fails.
                When False the AIServiceError propagates (queue retries).

        Returns:
            TagGenerationResult with the live tags for the item

        Raises:
            ContentNotFoundError: If the content does not exist
            AIServiceError: If the AI call fails and allow_fallback is False
        """
        start_time = time.monotonic()
        content_type = request.content_type.value
        content_id = request.content_id
        logger.debug(
            "Generating tags",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "max_tags": request.max_tags,
                "force_regenerate": request.force_regenerate,
            },
        )

        subject = await load_subject(self._session, content_type, content_id)
        categories = (
            [c.value for c in request.categories] if request.categories else None
        )

        async with analysis_lease(ENGINE_NAME, content_type, content_id):
            existing = await self._repository.list_live(content_type, content_id)
            if categories:
                existing = [tag for tag in existing if tag.category in categories]
            newest = max((tag.created_at for tag in existing), default=None)
            if should_reuse(
                completed=bool(existing),
                completed_at=newest,
                force=request.force_regenerate,
            ):
                logger.info(
                    "Reusing existing tags",
                    extra={
                        "content_type": content_type,
                        "content_id": content_id,
                        "tag_count": len(existing),
                    },
                )
                return TagGenerationResult(
                    content_type=content_type,
                    content_id=content_id,
                    tags=[TagResponse.model_validate(tag) for tag in existing],
                    cached=True,
                )

            try:
                tags, model_version = await self._generate_with_ai(
                    subject, request, categories, user_id
                )
                fallback_used = False
            except AIServiceError as e:
                if not allow_fallback:
                    raise
                logger.warning(
                    "Tag generation failed, using keyword fallback",
                    extra={
                        "content_type": content_type,
                        "content_id": content_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                ai_service_logger.graceful_fallback("generate_tags", str(e))
                tags = self._fallback_tags(subject, user_id)
                model_version = None
                fallback_used = True

            if tags:
                retired = await self._repository.retire_generated(
                    content_type, content_id, categories
                )
                await self._repository.add_many(tags)
                await self._session.commit()
            else:
                # nothing cleared the confidence bar; keep the current set live
                retired = 0
                logger.warning(
                    "Tag generation produced no tags, keeping existing tags",
                    extra={
                        "content_type": content_type,
                        "content_id": content_id,
                        "live_tag_count": len(existing),
                    },
                )

        duration_ms = (time.monotonic() - start_time) * 1000
        logger.info(
            "Generated tags",
            extra={
                "content_type": content_type,
                "content_id": content_id,
                "tag_count": len(tags),
                "retired_count": retired,
                "fallback_used": fallback_used,
                "duration_ms": round(duration_ms, 2),
            },
        )
        if duration_ms > SLOW_OPERATION_THRESHOLD_MS:
            logger.warning(
                "Slow tag generation",
                extra={
                    "content_id": content_id,
                    "duration_ms": round(duration_ms, 2),
                },
            )

        return TagGenerationResult(
            content_type=content_type,
            content_id=content_id,
            tags=[TagResponse.model_validate(tag) for tag in tags],
            fallback_used=fallback_used,
            retired_count=retired,
            model_version=model_version,
        )

    async def _generate_with_ai(
        self,
        subject: ContentSubject,
        request: TagGenerationRequest,
        categories: list[str] | None,
        user_id: str | None,
    ) -> tuple[list[ContentTag], str | None]:
        response = await self._ai_client.analyze_content_for_tagging(
            AITaggingRequest(
                content=subject.to_payload(subject.full_text),
                preferences=AITaggingPreferences(
                    max_tags=request.max_tags,
                    categories=categories or [c.value for c in TagCategory],
                    min_confidence=request.min_confidence,
                ),
            )
        )

        tags: list[ContentTag] = []
        seen: set[str] = set()
        for ai_tag in response.tags:
            name = ai_tag.name.strip()
            if ai_tag.confidence < request.min_confidence or not name:
                continue
            if name.lower() in seen:
                continue
            seen.add(name.lower())
            tags.append(
                ContentTag(
                    content_type=subject.content_type,
                    content_id=subject.content_id,
                    name=name,
                    category=map_ai_category(ai_tag.category).value,
                    type=TagType.AUTO_GENERATED.value,
                    confidence=ai_tag.confidence,
                    description=ai_tag.description,
                    is_active=True,
                    is_verified=False,
                    created_by=user_id,
                    tag_metadata={
                        "keywords": ai_tag.keywords,
                        "context": ai_tag.context,
                        "relevance_score": ai_tag.relevance_score,
                        "model_version": response.model_version,
                        "extraction_method": response.extraction_method,
                        "algorithm_used": response.algorithm_used,
                        "processing_time": response.processing_time,
                    },
                )
            )
            if len(tags) >= request.max_tags:
                break
        return tags, response.model_version

    def _fallback_tags(
        self, subject: ContentSubject, user_id: str | None
    ) -> list[ContentTag]:
        keywords = extract_fallback_keywords(f"{subject.title} {subject.description}")
        return [
            ContentTag(
                content_type=subject.content_type,
                content_id=subject.content_id,
                name=word,
                category=TagCategory.TOPIC.value,
                type=TagType.AUTO_GENERATED.value,
                confidence=FALLBACK_CONFIDENCE,
                is_active=True,
                is_verified=False,
                created_by=user_id,
                tag_metadata={"extraction_method": FALLBACK_EXTRACTION_METHOD},
            )
            for word in keywords
        ]

    async def create_tag(
        self, request: CreateTagRequest, user_id: str | None = None
    ) -> TagResponse:
        """Create a manual tag.

        Raises:
            ContentNotFoundError: If the content does not exist
            ContentAnalysisValidationError: If a live tag with that name exists
        """
        content_type = request.content_type.value
        await load_subject(self._session, content_type, request.content_id)

        duplicate = await self._repository.find_live_by_name(
            content_type, request.content_id, request.name
        )
        if duplicate is not None:
            logger.warning(
                "Duplicate tag rejected",
                extra={
                    "content_type": content_type,
                    "content_id": request.content_id,
                    "field": "name",
                    "value": request.name,
                },
            )
            raise ContentAnalysisValidationError(
                "name", request.name, "Tag already exists for this content"
            )

        tag = ContentTag(
            content_type=content_type,
            content_id=request.content_id,
            name=request.name,
            category=request.category.value,
            type=request.type.value,
            confidence=request.confidence,
            description=request.description,
            tag_metadata=request.metadata,
            is_active=True,
            is_verified=False,
            created_by=user_id,
        )
        await self._repository.add_many([tag])
        await self._session.commit()
        logger.info(
            "Created tag",
            extra={"tag_id": tag.id, "content_id": request.content_id},
        )
        return TagResponse.model_validate(tag)

    async def _require_tag(self, tag_id: str) -> ContentTag:
        tag = await self._repository.get_by_id(tag_id)
        if tag is None:
            raise AnalysisNotFoundError("ContentTag", tag_id)
        return tag

    async def update_tag(self, tag_id: str, request: UpdateTagRequest) -> TagResponse:
        tag = await self._require_tag(tag_id)
        changes = request.model_dump(exclude_unset=True)
        if "name" in changes and changes["name"] is not None:
            tag.name = changes["name"].strip()
        if "category" in changes and changes["category"] is not None:
            tag.category = TagCategory(changes["category"]).value
        if "confidence" in changes and changes["confidence"] is not None:
            tag.confidence = changes["confidence"]
        if "description" in changes:
            tag.description = changes["description"]
        if "metadata" in changes and changes["metadata"] is not None:
            tag.tag_metadata = {**tag.tag_metadata, **changes["metadata"]}
        await self._session.commit()
        logger.info(
            "Updated tag",
            extra={"tag_id": tag_id, "fields": sorted(changes)},
        )
        return TagResponse.model_validate(tag)

    async def verify_tag(self, tag_id: str, user_id: str | None = None) -> TagResponse:
        tag = await self._require_tag(tag_id)
        tag.is_verified = True
        tag.verified_by = user_id
        tag.verified_at = datetime.now(UTC)
        await self._session.commit()
        logger.info("Verified tag", extra={"tag_id": tag_id, "user_id": user_id})
        return TagResponse.model_validate(tag)

    async def bulk_verify_tags(
        self, tag_ids: list[str], user_id: str | None = None
    ) -> list[TagResponse]:
        """Verify several tags; unknown ids are skipped."""
        verified: list[TagResponse] = []
        for tag_id in tag_ids:
            try:
                verified.append(await self.verify_tag(tag_id, user_id))
            except AnalysisNotFoundError:
                logger.warning("Skipping unknown tag", extra={"tag_id": tag_id})
        return verified

    async def delete_tag(self, tag_id: str) -> None:
        """Soft-delete a tag."""
        tag = await self._require_tag(tag_id)
        tag.deleted_at = datetime.now(UTC)
        tag.is_active = False
        await self._session.commit()
        logger.info("Deleted tag", extra={"tag_id": tag_id})

    async def get_tags(self, query: TagQuery) -> TagListResponse:
        items, total = await self._repository.query(
            content_type=query.content_type.value if query.content_type else None,
            content_id=query.content_id,
            category=query.category.value if query.category else None,
            tag_type=query.type.value if query.type else None,
            is_verified=query.is_verified,
            min_confidence=query.min_confidence,
            search=query.search,
            limit=query.limit,
            offset=query.offset,
        )
        return TagListResponse(
            items=[TagResponse.model_validate(tag) for tag in items], total=total
        )

    async def get_tags_by_content(
        self, content_type: str, content_id: str
    ) -> list[TagResponse]:
        validate_content_type(content_type)
        tags = await self._repository.list_live(content_type, content_id)
        return [TagResponse.model_validate(tag) for tag in tags]
