from __future__ import annotations

import enum
import logging

from workforce.agents.base import BaseAgent
from workforce.agents.constants import NEUTRAL_RATING_MIN, POSITIVE_RATING_MIN
from workforce.agents.types import AgentEvent, AgentResponse
from workforce.models import Review, Sentiment
from workforce.services import reviews as review_svc

logger = logging.getLogger(__name__)

RESPONSE_FALLBACK = (
    "Thank you for your feedback. We appreciate you taking the time "
    "to share your experience with us."
)


class ReviewsEvent(str, enum.Enum):
    DETECTED = "review.detected"
    GENERATE_RESPONSE = "review.generate_response"


def sentiment_for_rating(rating: int) -> Sentiment:
    if rating >= POSITIVE_RATING_MIN:
        return Sentiment.POSITIVE
    if rating >= NEUTRAL_RATING_MIN:
        return Sentiment.NEUTRAL
    return Sentiment.NEGATIVE


class ReviewsAgent(BaseAgent):
    """Classifies incoming reviews and drafts public replies."""

    key = "reviews"
    event_kinds = ReviewsEvent
    handlers = {
        ReviewsEvent.DETECTED: "handle_new_review",
        ReviewsEvent.GENERATE_RESPONSE: "generate_review_response",
    }

    async def _load_review(self, event: AgentEvent) -> Review | None:
        review_id = event.payload.get("reviewId")
        if review_id is None:
            return None
        review = await review_svc.get_review(self.session, int(review_id))
        if review is None or review.restaurant_id != self.context.restaurant_id:
            return None
        return review

    async def handle_new_review(self, event: AgentEvent) -> AgentResponse:
        review = await self._load_review(event)
        if review is None:
            return AgentResponse.fail("Review not found")

        sentiment = sentiment_for_rating(review.rating)
        review.sentiment = sentiment

        if sentiment == Sentiment.NEGATIVE:
            await self.log_activity(
                "Negative review detected",
                review_id=review.id,
                rating=review.rating,
                platform=review.platform,
            )

        if self.get_config("auto_respond", False):
            await self.enqueue_event(
                ReviewsEvent.GENERATE_RESPONSE.value, self.key, {"reviewId": review.id}
            )

        return AgentResponse.ok("Review processed successfully", {"sentiment": sentiment.value})

    async def generate_review_response(self, event: AgentEvent) -> AgentResponse:
        review = await self._load_review(event)
        if review is None:
            return AgentResponse.fail("Review not found")
        if review.response_text:
            return AgentResponse.fail("Review already has a response")

        text = await self._draft_response(review)
        review.response_text = text
        review.response_generated_by = "ai"

        await self.log_activity(
            "Review response generated", review_id=review.id, platform=review.platform
        )
        return AgentResponse.ok("Review response generated", {"responseText": text})

    async def _draft_response(self, review: Review) -> str:
        restaurant = await self.get_restaurant()
        name = restaurant.name if restaurant else "the restaurant"
        system = (
            f"You are writing a professional response to a customer review for {name}.\n\n"
            "Guidelines:\n"
            "- Be genuine, warm, and professional\n"
            "- Thank the reviewer for their feedback\n"
            "- Address specific points they mentioned\n"
            "- For positive reviews: express gratitude and invite them back\n"
            "- For negative reviews: apologize sincerely, acknowledge the issue, "
            "and offer to make it right\n"
            "- Keep it under 150 words\n"
            "- Don't make promises you can't keep\n"
            "- Sign off with the restaurant name"
        )
        user = (
            f"Review Platform: {review.platform}\n"
            f"Rating: {review.rating}/5 stars\n"
            f'Review: "{review.review_text or ""}"\n'
            f"Reviewer: {review.author_name or 'Anonymous'}\n\n"
            "Generate a professional response:"
        )
        try:
            reply = await self.call_llm(
                [{"role": "system", "content": system}, {"role": "user", "content": user}]
            )
        except Exception:
            logger.exception("reviews: failed to generate a response for review %d", review.id)
            return RESPONSE_FALLBACK
        return reply or RESPONSE_FALLBACK
