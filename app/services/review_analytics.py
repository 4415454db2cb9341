"""
Review Analytics Service
========================

Rating statistics, keyword sentiment, trends, improvement suggestions,
response metrics, quality scores, booking impact and platform comparison
for the verified reviews a user has received.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Any, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.review import Review
from app.models.trip import BookingStatus, GroupBooking, GroupTrip, TripStatus
from app.utils.stats import (
    linear_regression,
    mean,
    median,
    mode,
    pearson_correlation,
    round2,
    std_dev,
)

logger = logging.getLogger(__name__)

SENTIMENT_KEYWORDS = {
    "positive": [
        "excellent", "amazing", "fantastic", "wonderful", "great", "awesome",
        "perfect", "outstanding", "brilliant", "superb", "incredible", "love",
        "best", "good", "nice", "helpful", "friendly", "professional",
        "recommended", "satisfied", "happy", "pleased", "enjoyed", "fun",
        "отлично", "потрясающе", "замечательно", "классно", "супер", "хорошо",
        "рекомендую", "доволен", "понравилось", "весело", "профессионально",
    ],
    "negative": [
        "terrible", "awful", "horrible", "bad", "worst", "disappointing",
        "poor", "unsatisfied", "frustrated", "angry", "hate", "problem",
        "issue", "wrong", "failed", "cancelled", "late", "rude", "unprofessional",
        "expensive", "overpriced", "waste", "refund", "complaint",
        "ужасно", "плохо", "проблема", "не понравилось", "разочарован",
        "опоздали", "дорого", "грубо", "непрофессионально", "жалоба",
    ],
    "neutral": [
        "okay", "average", "normal", "standard", "fine", "acceptable",
        "нормально", "средне", "обычно", "приемлемо", "стандартно",
    ],
}

TOP_KEYWORD_LIMITS = {"positive": 10, "negative": 10, "neutral": 5}
PRIORITY_ORDER = {"high": 3, "medium": 2, "low": 1}


# =============================================================================
# Sentiment
# =============================================================================

def classify_sentiment(comment: str, rating: int) -> dict[str, Any]:
    """
    Classify a comment by keyword majority, nudged by the star rating.

    A strict majority of positive or negative hits wins; anything else is
    neutral. Neutral becomes positive at 4+ stars and negative at 2 or less.
    """
    text = comment.lower()
    hits = {
        kind: sum(1 for keyword in keywords if keyword in text)
        for kind, keywords in SENTIMENT_KEYWORDS.items()
    }
    positive, negative, neutral = hits["positive"], hits["negative"], hits["neutral"]

    if positive > negative and positive > neutral:
        sentiment = "positive"
    elif negative > positive and negative > neutral:
        sentiment = "negative"
    else:
        sentiment = "neutral"

    if sentiment == "neutral":
        if rating >= 4:
            sentiment = "positive"
        elif rating <= 2:
            sentiment = "negative"

    total_hits = positive + negative + neutral
    return {
        "sentiment": sentiment,
        "confidence": round2(max(hits.values()) / total_hits) if total_hits else 0.0,
        "keywords": hits,
    }


def extract_top_keywords(comments: list[str]) -> dict[str, list[str]]:
    text = " ".join(c.lower() for c in comments)
    return {
        kind: [k for k in keywords if k in text][:TOP_KEYWORD_LIMITS[kind]]
        for kind, keywords in SENTIMENT_KEYWORDS.items()
    }


def analyze_sentiment(reviews: list[Review]) -> dict[str, Any]:
    commented = [r for r in reviews if r.comment and r.comment.strip()]
    results = [
        {"reviewId": str(r.review_id), "rating": r.rating, **classify_sentiment(r.comment, r.rating)}
        for r in commented
    ]

    counts = {"positive": 0, "negative": 0, "neutral": 0}
    by_rating = {
        str(stars): {"total": 0, "positive": 0, "negative": 0, "neutral": 0}
        for stars in range(1, 6)
    }
    for result in results:
        counts[result["sentiment"]] += 1
        bucket = by_rating.get(str(result["rating"]))
        if bucket is not None:
            bucket["total"] += 1
            bucket[result["sentiment"]] += 1

    total = len(results)
    percentages = {
        kind: round2(count / total * 100) if total else 0.0
        for kind, count in counts.items()
    }

    insights = []
    if total:
        positive_rate = percentages["positive"]
        if positive_rate > 70:
            insights.append({
                "type": "positive",
                "message": f"Strong positive sentiment ({positive_rate:.1f}%) indicates high customer satisfaction",
            })
        elif positive_rate < 30:
            insights.append({
                "type": "negative",
                "message": f"Low positive sentiment ({positive_rate:.1f}%) suggests a need for service improvement",
            })

    return {
        "overview": {
            "total": len(reviews),
            "withComments": total,
            "averageConfidence": round2(mean([r["confidence"] for r in results])),
        },
        "distribution": counts,
        "percentages": percentages,
        "sentimentByRating": by_rating,
        "topKeywords": extract_top_keywords([r.comment for r in commented]),
        "insights": insights,
        "details": results,
    }


# =============================================================================
# Trends
# =============================================================================

def period_key(dt: datetime, group_by: str) -> str:
    if group_by == "day":
        return dt.date().isoformat()
    if group_by == "week":
        year, week, _ = dt.isocalendar()
        return f"{year}-W{week:02d}"
    return f"{dt.year}-{dt.month:02d}"


def build_rating_trends(reviews: list[Review], group_by: str = "month") -> dict[str, Any]:
    grouped: dict[str, list[int]] = defaultdict(list)
    for review in reviews:
        grouped[period_key(review.created_at, group_by)].append(review.rating)

    series = [
        {
            "period": key,
            "totalReviews": len(ratings),
            "averageRating": round2(mean(ratings)),
        }
        for key, ratings in sorted(grouped.items())
    ]

    averages = [point["averageRating"] for point in series]
    if len(averages) < 2:
        slope = correlation = volatility = 0.0
    else:
        slope, _ = linear_regression(averages)
        correlation = pearson_correlation(list(range(len(averages))), averages)
        volatility = std_dev(averages)

    if slope > 0.1:
        direction = "improving"
    elif slope < -0.1:
        direction = "declining"
    else:
        direction = "stable"

    insights = []
    if direction == "improving":
        insights.append({
            "type": "positive",
            "message": f"Rating trend is improving with an upward slope of {slope:.3f}",
        })
    elif direction == "declining":
        insights.append({
            "type": "negative",
            "message": f"Rating trend is declining with a downward slope of {slope:.3f}",
        })
    if volatility > 1:
        insights.append({
            "type": "warning",
            "message": f"High rating volatility ({volatility:.2f}) indicates inconsistent service quality",
        })

    return {
        "timeSeries": series,
        "direction": direction,
        "slope": round(slope, 4),
        "correlation": round(correlation, 4),
        "volatility": round(volatility, 4),
        "insights": insights,
    }


# =============================================================================
# Suggestions and quality
# =============================================================================

def build_suggestions(
    reviews: list[Review],
    sentiment: Optional[dict[str, Any]],
) -> list[dict[str, Any]]:
    suggestions = []
    total = len(reviews)

    low = sum(1 for r in reviews if r.rating <= 2)
    if total and low > total * 0.1:
        suggestions.append({
            "type": "rating_improvement",
            "priority": "high",
            "title": "Address low rating patterns",
            "description": f"{low} reviews ({low / total * 100:.1f}%) are rated 2 stars or below",
            "actionItems": [
                "Review common issues mentioned in low-rated feedback",
                "Follow up with dissatisfied participants",
            ],
        })

    if sentiment:
        dist = sentiment["distribution"]
        if dist["negative"] > dist["positive"] * 0.3:
            suggestions.append({
                "type": "sentiment_improvement",
                "priority": "medium",
                "title": "Improve participant sentiment",
                "description": "Negative sentiment detected in review comments",
                "actionItems": [
                    "Analyze negative feedback themes",
                    "Improve communication before and after trips",
                ],
            })

    suggestions.append({
        "type": "engagement_improvement",
        "priority": "low",
        "title": "Increase review response rate",
        "description": "Encourage more participants to leave reviews",
        "actionItems": [
            "Send follow-up messages after trips",
            "Respond to existing reviews to show engagement",
        ],
    })

    short = sum(1 for r in reviews if not r.comment or len(r.comment.strip()) < 20)
    if total and short > total * 0.5:
        suggestions.append({
            "type": "quality_improvement",
            "priority": "low",
            "title": "Encourage detailed reviews",
            "description": "Many reviews lack detailed comments",
            "actionItems": [
                "Ask specific questions in review prompts",
                "Offer guided review templates",
            ],
        })

    suggestions.sort(key=lambda s: PRIORITY_ORDER[s["priority"]], reverse=True)
    return suggestions


def score_review(review: Review) -> dict[str, Any]:
    """Quality score out of 100 for a single review."""
    score = 0
    factors = []

    length = len(review.comment.strip()) if review.comment else 0
    if length > 100:
        score += 30
        factors.append("detailed_comment")
    elif length > 20:
        score += 15
        factors.append("basic_comment")

    if review.helpful > 0:
        score += min(review.helpful * 10, 40)
        factors.append("helpful_votes")

    days_after_trip = None
    if review.trip is not None:
        days_after_trip = (review.created_at - review.trip.date).days
        if days_after_trip <= 7:
            score += 15
            factors.append("timely_review")

    if review.verified:
        score += 15
        factors.append("verified")

    return {
        "reviewId": str(review.review_id),
        "qualityScore": min(score, 100),
        "factors": factors,
        "commentLength": length,
        "helpfulVotes": review.helpful,
        "daysAfterTrip": days_after_trip,
    }


def quality_band(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    return "poor"


def build_quality_scores(reviews: list[Review]) -> dict[str, Any]:
    scores = [score_review(r) for r in reviews]
    distribution = {"excellent": 0, "good": 0, "fair": 0, "poor": 0}
    for s in scores:
        distribution[quality_band(s["qualityScore"])] += 1

    return {
        "averageQuality": round2(mean([s["qualityScore"] for s in scores])),
        "distribution": distribution,
        "scores": scores,
    }


def build_overview(reviews: list[Review]) -> dict[str, Any]:
    ratings = [r.rating for r in reviews]
    total = len(ratings)
    distribution = {
        str(stars): {
            "count": ratings.count(stars),
            "percentage": round2(ratings.count(stars) / total * 100) if total else 0.0,
        }
        for stars in range(1, 6)
    }
    satisfied = sum(1 for r in ratings if r >= 4)

    return {
        "totalReviews": total,
        "averageRating": round2(mean(ratings)),
        "ratingDistribution": distribution,
        "statistics": {
            "mean": round2(mean(ratings)),
            "median": round2(median(ratings)),
            "mode": mode(ratings),
        },
        "satisfactionRate": round2(satisfied / total * 100) if total else 0.0,
    }


# =============================================================================
# Service
# =============================================================================

class ReviewAnalyticsService:
    """Review dashboard for one user."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _received_reviews(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> list[Review]:
        result = await self.db.execute(
            select(Review)
            .where(
                Review.to_user_id == user_id,
                Review.verified.is_(True),
                Review.created_at >= start,
                Review.created_at <= end,
            )
            .order_by(Review.created_at)
        )
        return list(result.scalars().all())

    async def _reviews_by_trip(
        self,
        user_id: uuid.UUID,
        trip_ids: list[uuid.UUID],
    ) -> dict[uuid.UUID, list[Review]]:
        grouped: dict[uuid.UUID, list[Review]] = defaultdict(list)
        if not trip_ids:
            return grouped
        result = await self.db.execute(
            select(Review).where(
                Review.trip_id.in_(trip_ids),
                Review.to_user_id == user_id,
                Review.verified.is_(True),
            )
        )
        for review in result.scalars().all():
            grouped[review.trip_id].append(review)
        return grouped

    async def build_response_metrics(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> dict[str, Any]:
        """Completed trips the user took part in against the reviews they drew."""
        result = await self.db.execute(
            select(GroupTrip)
            .join(GroupBooking, GroupBooking.trip_id == GroupTrip.trip_id)
            .where(
                GroupTrip.status == TripStatus.COMPLETED,
                GroupTrip.date >= start,
                GroupTrip.date <= end,
                GroupBooking.user_id == user_id,
                GroupBooking.status == BookingStatus.CONFIRMED,
            )
            .distinct()
        )
        trips = list(result.scalars().all())
        reviews_by_trip = await self._reviews_by_trip(user_id, [t.trip_id for t in trips])

        total_bookings = 0
        total_reviews = 0
        days_to_review: list[int] = []
        monthly: dict[str, dict[str, int]] = defaultdict(lambda: {"bookings": 0, "reviews": 0})

        for trip in trips:
            bookings = sum(
                1 for b in trip.bookings
                if b.user_id == user_id and b.status == BookingStatus.CONFIRMED
            )
            reviews = reviews_by_trip.get(trip.trip_id, [])
            total_bookings += bookings
            total_reviews += len(reviews)
            days_to_review.extend((r.created_at - trip.date).days for r in reviews)

            month = f"{trip.date.year}-{trip.date.month:02d}"
            monthly[month]["bookings"] += bookings
            monthly[month]["reviews"] += len(reviews)

        return {
            "completedTrips": len(trips),
            "confirmedBookings": total_bookings,
            "totalReviews": total_reviews,
            "responseRate": round2(total_reviews / total_bookings * 100) if total_bookings else 0.0,
            "averageDaysToReview": round2(mean(days_to_review)),
            "daysToReview": {
                "within7Days": sum(1 for d in days_to_review if d <= 7),
                "within30Days": sum(1 for d in days_to_review if d <= 30),
                "over30Days": sum(1 for d in days_to_review if d > 30),
            },
            "monthlyResponseRates": [
                {
                    "month": month,
                    **counts,
                    "responseRate": (
                        round2(counts["reviews"] / counts["bookings"] * 100)
                        if counts["bookings"] else 0.0
                    ),
                }
                for month, counts in sorted(monthly.items())
            ],
        }

    async def build_impact_analysis(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> dict[str, Any]:
        """How a trip's average rating relates to how full it got."""
        result = await self.db.execute(
            select(GroupTrip).where(GroupTrip.date >= start, GroupTrip.date <= end)
        )
        trips = list(result.scalars().all())
        reviews_by_trip = await self._reviews_by_trip(user_id, [t.trip_id for t in trips])

        analysis = []
        for trip in trips:
            ratings = [r.rating for r in reviews_by_trip.get(trip.trip_id, [])]
            bookings = sum(1 for b in trip.bookings if b.status == BookingStatus.CONFIRMED)
            analysis.append({
                "tripId": str(trip.trip_id),
                "averageRating": round2(mean(ratings)),
                "totalReviews": len(ratings),
                "bookingRate": (
                    round2(bookings / trip.max_participants * 100)
                    if trip.max_participants else 0.0
                ),
            })

        reviewed = [t for t in analysis if t["totalReviews"] > 0]
        correlation = pearson_correlation(
            [t["averageRating"] for t in reviewed],
            [t["bookingRate"] for t in reviewed],
        )

        def avg_rate(rows: list[dict[str, Any]]) -> float:
            return round2(mean([row["bookingRate"] for row in rows]))

        recommendations = []
        if correlation > 0.5:
            recommendations.append({
                "type": "positive_correlation",
                "priority": "high",
                "message": "Ratings and bookings move together. Focus on keeping reviews strong.",
            })
        elif correlation < -0.3:
            recommendations.append({
                "type": "negative_correlation",
                "priority": "critical",
                "message": "Negative correlation detected. Investigate what drives bookings on poorly rated trips.",
            })

        return {
            "tripsAnalyzed": len(analysis),
            "tripsWithReviews": len(reviewed),
            "ratingBookingCorrelation": round(correlation, 4),
            "highRatedBookingRate": avg_rate([t for t in reviewed if t["averageRating"] >= 4]),
            "lowRatedBookingRate": avg_rate([t for t in reviewed if t["averageRating"] <= 2.5]),
            "unreviewedBookingRate": avg_rate([t for t in analysis if t["totalReviews"] == 0]),
            "recommendations": recommendations,
        }

    async def build_comparative(self, reviews: list[Review]) -> dict[str, Any]:
        result = await self.db.execute(
            select(Review.rating).where(Review.verified.is_(True))
        )
        platform = [row[0] for row in result.all()]
        user_avg = mean([r.rating for r in reviews])
        platform_avg = mean(platform)

        return {
            "user": {"averageRating": round2(user_avg), "totalReviews": len(reviews)},
            "platform": {"averageRating": round2(platform_avg), "totalReviews": len(platform)},
            "ratingDifference": round2(user_avg - platform_avg),
        }

    async def get_analytics(
        self,
        user_id: uuid.UUID,
        start: datetime,
        end: datetime,
        group_by: str = "month",
        include_sentiment: bool = True,
        include_impact: bool = True,
        include_comparative: bool = False,
    ) -> dict[str, Any]:
        reviews = await self._received_reviews(user_id, start, end)

        overview = build_overview(reviews)
        overview["responseMetrics"] = await self.build_response_metrics(user_id, start, end)

        sentiment = analyze_sentiment(reviews) if include_sentiment else None

        data: dict[str, Any] = {
            "period": {"start": start.isoformat(), "end": end.isoformat(), "groupBy": group_by},
            "overview": overview,
            "trends": build_rating_trends(reviews, group_by),
            "improvementSuggestions": build_suggestions(reviews, sentiment),
            "qualityScores": build_quality_scores(reviews),
        }
        if sentiment is not None:
            data["sentiment"] = sentiment
        if include_impact:
            data["impactAnalysis"] = await self.build_impact_analysis(user_id, start, end)
        if include_comparative:
            data["comparative"] = await self.build_comparative(reviews)

        logger.info("Review analytics for %s: %d reviews", user_id, len(reviews))
        return data
