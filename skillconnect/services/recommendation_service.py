"""
Recommendation Service for matching providers and open jobs.

Every candidate gets two partial scores in the 0..1 range:
- content: skill overlap with the type of work, average rating, review
  volume and number of completed jobs
- history: how much of the provider's completed work was the same kind of job

The final score is a weighted blend of the two. Candidates below
MIN_SCORE are left out.
"""
import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from skillconnect.api.middleware.error_handler import ForbiddenException
from skillconnect.lib.logging import get_logger
from skillconnect.models.bookings import Booking, BookingStatus
from skillconnect.models.service_requests import ServiceRequest
from skillconnect.models.users import User, UserRole
from skillconnect.services.service_request_service import ServiceRequestService, skill_matches

logger = get_logger(__name__)


MIN_SCORE = 0.3
DEFAULT_LIMIT = 10
CANDIDATE_POOL = 50  # newest open requests considered for job recommendations

# Normalisation points: at or above these the factor scores full marks
FULL_REVIEW_COUNT = 10
FULL_JOB_COUNT = 20

EXCELLENT_RATING = 4.5
EXPERIENCED_JOB_COUNT = 20
STRONG_SCORE = 0.7
NO_HISTORY_SCORE = 0.3

PROVIDER_CONTENT_WEIGHT = 0.6
JOB_CONTENT_WEIGHT = 0.7


@dataclass
class ProviderRecommendation:
    provider: User
    score: float
    content_score: float
    history_score: float
    completed_jobs: int
    reason: str


@dataclass
class JobRecommendation:
    request: ServiceRequest
    requester: User
    score: float
    reason: str


def content_score(
    skills: Iterable[str],
    type_of_work: str,
    average_rating: float,
    total_reviews: int,
    completed_jobs: int,
) -> float:
    """
    Weighted match between a provider profile and a type of work.

    Only the factors the provider has data for count toward the weight.
    """
    skills = list(skills or [])
    score = 0.0
    weight = 0.0

    if skills:
        matching = sum(1 for skill in skills if skill_matches(skill, type_of_work))
        score += matching / len(skills) * 0.4
        weight += 0.4
    if average_rating:
        score += average_rating / 5.0 * 0.25
        weight += 0.25
    if total_reviews:
        score += min(math.log10(total_reviews + 1) / math.log10(FULL_REVIEW_COUNT + 1), 1.0) * 0.15
        weight += 0.15
    if completed_jobs:
        score += min(completed_jobs / FULL_JOB_COUNT, 1.0) * 0.1
        weight += 0.1

    return score / weight if weight else 0.0


def history_score(
    completed_work: List[str],
    type_of_work: str,
    average_rating: float,
    total_reviews: int,
) -> float:
    """Share of similar completed jobs, experience and rating; NO_HISTORY_SCORE without data."""
    score = 0.0
    has_data = False

    if completed_work:
        similar = sum(1 for work in completed_work if skill_matches(work, type_of_work))
        score += similar / len(completed_work) * 0.5
        score += min(len(completed_work) / FULL_JOB_COUNT, 1.0) * 0.3
        has_data = True
    if average_rating and total_reviews:
        score += min(average_rating / 5.0, 1.0) * 0.2
        has_data = True

    return score if has_data else NO_HISTORY_SCORE


def provider_reason(recommendation: ProviderRecommendation) -> str:
    reasons = []
    if recommendation.content_score > STRONG_SCORE:
        reasons.append("Strong skill match")
    if recommendation.history_score > STRONG_SCORE:
        reasons.append("Has completed similar work")
    if recommendation.provider.average_rating >= EXCELLENT_RATING:
        reasons.append("Excellent ratings")
    if recommendation.completed_jobs > EXPERIENCED_JOB_COUNT:
        reasons.append("Experienced provider")
    return ", ".join(reasons) if reasons else "Good overall match"


class RecommendationService:
    """Ranks providers for a type of work and open jobs for a provider."""

    def __init__(self, session: Session):
        self.session = session

    def _completed_work(self, provider_ids: List[UUID]) -> Dict[UUID, List[str]]:
        """Type of work of every Complete booking, per provider."""
        completed: Dict[UUID, List[str]] = defaultdict(list)
        if not provider_ids:
            return completed
        rows = self.session.execute(
            select(Booking.provider_id, ServiceRequest.type_of_work)
            .join(ServiceRequest, ServiceRequest.id == Booking.service_request_id)
            .where(
                Booking.status == BookingStatus.COMPLETE,
                Booking.provider_id.in_(provider_ids),
            )
        ).all()
        for provider_id, type_of_work in rows:
            completed[provider_id].append(type_of_work)
        return completed

    def recommend_providers(
        self,
        actor: User,
        type_of_work: str,
        limit: int = DEFAULT_LIMIT,
        min_score: float = MIN_SCORE,
    ) -> List[ProviderRecommendation]:
        """
        Verified, active providers ranked for ``type_of_work``, best first.

        Args:
            actor: The user asking; never recommended to themselves
            type_of_work: Free-text job type, matched against skills
            limit: Maximum number of providers returned
            min_score: Providers scoring below this are dropped

        Returns:
            ProviderRecommendation list sorted by score descending
        """
        providers = self.session.execute(
            select(User).where(
                User.role == UserRole.SERVICE_PROVIDER,
                User.verified.is_(True),
                User.banned.is_(False),
                User.id != actor.id,
            )
        ).scalars().all()
        completed = self._completed_work([p.id for p in providers])

        ranked = []
        for provider in providers:
            work = completed.get(provider.id, [])
            content = content_score(
                provider.skills, type_of_work, provider.average_rating, provider.total_reviews, len(work)
            )
            history = history_score(work, type_of_work, provider.average_rating, provider.total_reviews)
            recommendation = ProviderRecommendation(
                provider=provider,
                score=round(content * PROVIDER_CONTENT_WEIGHT + history * (1 - PROVIDER_CONTENT_WEIGHT), 4),
                content_score=round(content, 4),
                history_score=round(history, 4),
                completed_jobs=len(work),
                reason="",
            )
            recommendation.reason = provider_reason(recommendation)
            if recommendation.score >= min_score:
                ranked.append(recommendation)

        ranked.sort(key=lambda r: (r.score, r.provider.total_reviews), reverse=True)
        logger.info(
            "Providers recommended",
            extra={
                "user_id": str(actor.id),
                "type_of_work": type_of_work,
                "candidates": len(providers),
                "recommended": min(len(ranked), limit),
            },
        )
        return ranked[:limit]

    def recommend_jobs(
        self,
        provider: User,
        limit: int = DEFAULT_LIMIT,
        min_score: float = MIN_SCORE,
    ) -> List[JobRecommendation]:
        """Open requests the provider can take that fit their skills, best first."""
        if provider.role != UserRole.SERVICE_PROVIDER:
            raise ForbiddenException("Only service providers can get job recommendations")

        rows, _ = ServiceRequestService(self.session).available_for_provider(provider, limit=CANDIDATE_POOL)
        work = self._completed_work([provider.id]).get(provider.id, [])
        skills = provider.skills or []

        ranked = []
        for request, requester in rows:
            notes = (request.notes or "").lower()
            fits = any(
                skill_matches(skill, request.type_of_work) or (skill.strip() and skill.strip().lower() in notes)
                for skill in skills
            )
            if not fits:
                continue

            content = content_score(
                skills, request.type_of_work, provider.average_rating, provider.total_reviews, len(work)
            )
            similar_done = any(skill_matches(done, request.type_of_work) for done in work)
            history = 0.8 if similar_done else 0.4
            score = round(content * JOB_CONTENT_WEIGHT + history * (1 - JOB_CONTENT_WEIGHT), 4)
            if score < min_score:
                continue

            reasons = []
            if content > STRONG_SCORE:
                reasons.append("Matches your skills")
            if similar_done:
                reasons.append("Similar to your completed work")
            ranked.append(JobRecommendation(
                request=request,
                requester=requester,
                score=score,
                reason=", ".join(reasons) if reasons else "Good match for your profile",
            ))

        # Equal scores keep the newest-first order
        ranked.sort(key=lambda r: r.score, reverse=True)
        logger.info(
            "Jobs recommended",
            extra={"provider_id": str(provider.id), "candidates": len(rows), "recommended": min(len(ranked), limit)},
        )
        return ranked[:limit]
