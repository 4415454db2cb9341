"""
Analytics Tests
===============

Aggregation behind the payment, earnings and review dashboards.
"""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.models.payment import Payment, PaymentStatus, PaymentType
from app.models.review import Review
from app.models.trip import BookingStatus, GroupBooking, GroupTrip, TimeSlot, TripStatus
from app.services.earnings_analytics import (
    build_intervals,
    build_summary,
    build_trends,
    summarize_interval,
)
from app.services.payment_analytics import (
    PaymentAnalyticsService,
    build_commission_analysis,
    build_projections,
)
from app.services.review_analytics import (
    ReviewAnalyticsService,
    build_rating_trends,
    classify_sentiment,
    quality_band,
    score_review,
)

UTC = timezone.utc


def payment(amount, status=PaymentStatus.SUCCEEDED, created_at=None, **extra):
    return SimpleNamespace(
        amount=amount,
        status=status,
        created_at=created_at or datetime(2025, 5, 10, 12, tzinfo=UTC),
        **extra,
    )


class TestSentiment:
    def test_positive_keywords(self):
        result = classify_sentiment("Excellent captain, great trip", 5)
        assert result["sentiment"] == "positive"
        assert result["confidence"] == 1.0

    def test_negative_keywords(self):
        result = classify_sentiment("Terrible and rude crew, waste of money", 1)
        assert result["sentiment"] == "negative"
        assert result["keywords"]["negative"] == 3

    def test_neutral_is_nudged_by_rating(self):
        assert classify_sentiment("It was okay", 3)["sentiment"] == "neutral"
        assert classify_sentiment("It was okay", 5)["sentiment"] == "positive"
        assert classify_sentiment("It was okay", 1)["sentiment"] == "negative"

    def test_no_keywords(self):
        result = classify_sentiment("Caught two mackerel", 3)
        assert result["sentiment"] == "neutral"
        assert result["confidence"] == 0.0


class TestRatingTrends:
    def test_improving_months(self):
        reviews = [
            SimpleNamespace(created_at=datetime(2025, 1, 5, tzinfo=UTC), rating=2),
            SimpleNamespace(created_at=datetime(2025, 1, 20, tzinfo=UTC), rating=2),
            SimpleNamespace(created_at=datetime(2025, 2, 3, tzinfo=UTC), rating=3),
            SimpleNamespace(created_at=datetime(2025, 3, 9, tzinfo=UTC), rating=5),
        ]
        trends = build_rating_trends(reviews)

        assert [p["period"] for p in trends["timeSeries"]] == ["2025-01", "2025-02", "2025-03"]
        assert trends["timeSeries"][0]["totalReviews"] == 2
        assert trends["direction"] == "improving"
        assert trends["slope"] == 1.5

    def test_single_period_is_stable(self):
        reviews = [SimpleNamespace(created_at=datetime(2025, 1, 5, tzinfo=UTC), rating=4)]
        trends = build_rating_trends(reviews, group_by="week")
        assert trends["timeSeries"][0]["period"] == "2025-W01"
        assert trends["direction"] == "stable"
        assert trends["insights"] == []


class TestReviewQuality:
    def test_full_marks(self):
        trip_date = datetime(2025, 6, 1, tzinfo=UTC)
        review = SimpleNamespace(
            review_id=uuid.uuid4(),
            comment="x" * 150,
            helpful=5,
            trip=SimpleNamespace(date=trip_date),
            created_at=trip_date + timedelta(days=2),
            verified=True,
        )
        scored = score_review(review)

        assert scored["qualityScore"] == 100
        assert scored["factors"] == ["detailed_comment", "helpful_votes", "timely_review", "verified"]
        assert scored["daysAfterTrip"] == 2
        assert quality_band(scored["qualityScore"]) == "excellent"

    def test_bare_review(self):
        review = SimpleNamespace(
            review_id=uuid.uuid4(), comment=None, helpful=0, trip=None,
            created_at=datetime.now(UTC), verified=False,
        )
        scored = score_review(review)
        assert scored["qualityScore"] == 0
        assert scored["daysAfterTrip"] is None
        assert quality_band(0) == "poor"

    def test_bands(self):
        assert quality_band(60) == "good"
        assert quality_band(59) == "fair"
        assert quality_band(39) == "poor"


class TestEarnings:
    def test_monthly_intervals_follow_calendar(self):
        start = datetime(2025, 1, 15, tzinfo=UTC)
        end = datetime(2025, 3, 10, tzinfo=UTC)
        intervals = build_intervals(start, end, "monthly")

        assert intervals == [
            (start, datetime(2025, 2, 1, tzinfo=UTC)),
            (datetime(2025, 2, 1, tzinfo=UTC), datetime(2025, 3, 1, tzinfo=UTC)),
            (datetime(2025, 3, 1, tzinfo=UTC), end),
        ]

    def test_weekly_intervals(self):
        start = datetime(2025, 1, 1, tzinfo=UTC)
        intervals = build_intervals(start, start + timedelta(days=20), "weekly")
        assert len(intervals) == 3
        assert intervals[-1][1] == start + timedelta(days=20)

    def test_summarize_interval(self):
        start = datetime(2025, 5, 1, tzinfo=UTC)
        end = datetime(2025, 6, 1, tzinfo=UTC)
        payments = [
            payment(10000),
            payment(5000),
            payment(2000, status=PaymentStatus.REFUNDED),
            payment(9999, created_at=datetime(2025, 6, 2, tzinfo=UTC)),
        ]
        subscriptions = [SimpleNamespace(created_at=datetime(2025, 5, 3, tzinfo=UTC))]

        summary = summarize_interval(payments, subscriptions, start, end)

        assert summary["date"] == "2025-05-01"
        assert summary["totalEarnings"] == 150.0
        assert summary["commission"] == 15.0
        assert summary["directBookings"] == 135.0
        assert summary["refunds"] == 20.0
        assert summary["netEarnings"] == 130.0
        assert summary["bookingsCount"] == 2
        assert summary["averageBookingValue"] == 75.0
        assert summary["recurringRevenue"] == 29.99

    def test_refunds_can_be_excluded(self):
        start = datetime(2025, 5, 1, tzinfo=UTC)
        summary = summarize_interval(
            [payment(2000, status=PaymentStatus.REFUNDED)], [], start, start + timedelta(days=31),
            include_refunds=False,
        )
        assert summary["refunds"] == 0.0

    def test_summary(self):
        intervals = [
            {"date": f"2025-05-0{i + 1}", "totalEarnings": amount, "recurringRevenue": 0.0,
             "commission": amount * 0.1, "bookingsCount": 1}
            for i, amount in enumerate([10.0, 0.0, 30.0, 20.0])
        ]
        summary = build_summary(intervals, days=4)

        assert summary["totalEarnings"] == 60.0
        assert summary["highestEarningDay"] == {"date": "2025-05-03", "amount": 30.0}
        assert summary["lowestEarningDay"] == {"date": "2025-05-02", "amount": 0.0}
        assert summary["growthRate"] == 400.0
        assert summary["avgBookingValue"] == 15.0

    def test_empty_summary(self):
        summary = build_summary([], days=0)
        assert summary["highestEarningDay"] is None
        assert summary["avgDailyEarnings"] == 0.0

    def test_trends(self):
        intervals = [{"totalEarnings": 10.0}] * 7 + [{"totalEarnings": 20.0}] * 7
        trends = build_trends(intervals)
        assert trends["change"] == 100.0
        assert trends["direction"] == "up"

        flat = build_trends([{"totalEarnings": 10.0}] * 14)
        assert flat["direction"] == "stable"


class TestPaymentAnalytics:
    def test_projection_needs_three_buckets(self):
        assert build_projections([{"revenue": 100}, {"revenue": 200}], 0.0) is None

    def test_growing_revenue(self):
        series = [{"revenue": 1000}, {"revenue": 2000}, {"revenue": 3000}]
        projection = build_projections(series, failure_rate=0.2)

        assert projection["nextPeriodRevenue"] == 4000.0
        assert projection["trend"] == "increasing"
        assert projection["confidence"] == 0.0
        assert len(projection["recommendations"]) == 2

    def test_declining_revenue_never_projects_negative(self):
        series = [{"revenue": 3000}, {"revenue": 1000}, {"revenue": 0}]
        projection = build_projections(series, failure_rate=0.0)
        assert projection["trend"] == "decreasing"
        assert projection["nextPeriodRevenue"] == 0.0

    def test_commission_analysis(self):
        pro = SimpleNamespace(tier=SimpleNamespace(value="PRO"))
        payments = [
            payment(10000, commission_amount=1000, commission_rate=0.1, subscription=None),
            payment(20000, commission_amount=1000, commission_rate=0.06, subscription=pro),
            payment(5000, status=PaymentStatus.FAILED, commission_amount=500,
                    commission_rate=None, subscription=None),
        ]
        analysis = build_commission_analysis(payments)

        assert analysis["totalCommissions"] == 2000
        assert analysis["averageCommissionRate"] == 0.08
        assert analysis["commissionsByTier"] == {"FREE": 1000, "PRO": 1000}
        assert analysis["commissionTrend"] == [{"date": "2025-05-10", "commissions": 2000}]


def scalars(items):
    result = MagicMock()
    result.scalars.return_value.all.return_value = items
    return result


def stored_payment(amount, status=PaymentStatus.SUCCEEDED, day=5, commission=None):
    return Payment(
        payment_id=uuid.uuid4(),
        type=PaymentType.TOUR_BOOKING,
        amount=amount,
        currency="EUR",
        status=status,
        commission_amount=commission,
        created_at=datetime(2025, 5, day, 10, tzinfo=UTC),
    )


class TestPaymentOverview:
    @pytest.mark.asyncio
    async def test_growth_and_conversion(self, mock_db):
        current = [
            stored_payment(10000, commission=1000, day=2),
            stored_payment(5000, commission=500, day=4),
            stored_payment(2000, status=PaymentStatus.FAILED, day=6),
        ]
        previous = [stored_payment(10000, day=1)]
        mock_db.execute.side_effect = [scalars(current), scalars(previous)]

        data = await PaymentAnalyticsService(mock_db).get_analytics(
            uuid.uuid4(),
            datetime(2025, 5, 1, tzinfo=UTC),
            datetime(2025, 5, 11, tzinfo=UTC),
            include_projections=False,
            include_commissions=False,
            include_breakdowns=False,
        )

        overview = data["overview"]
        assert overview["totalRevenue"] == 15000
        assert overview["netRevenue"] == 13500
        assert overview["successfulPayments"] == 2
        assert overview["averagePaymentAmount"] == 7500.0
        assert overview["revenueGrowth"] == 50.0
        assert overview["conversionRate"] == 66.67
        assert len(data["timeSeries"]) == 10
        assert data["trends"]["peakDay"] == {"date": "2025-05-02", "revenue": 10000}
        assert data["recentPayments"][0]["status"] == "FAILED"
        assert "projections" not in data

    @pytest.mark.asyncio
    async def test_no_previous_revenue(self, mock_db):
        mock_db.execute.side_effect = [scalars([stored_payment(4000)]), scalars([])]

        data = await PaymentAnalyticsService(mock_db).get_analytics(
            uuid.uuid4(),
            datetime(2025, 5, 1, tzinfo=UTC),
            datetime(2025, 5, 8, tzinfo=UTC),
        )

        assert data["overview"]["revenueGrowth"] == 100.0
        assert data["overview"]["conversionRate"] == 100.0

    @pytest.mark.asyncio
    async def test_empty_period(self, mock_db):
        mock_db.execute.side_effect = [scalars([]), scalars([])]

        data = await PaymentAnalyticsService(mock_db).get_analytics(
            uuid.uuid4(),
            datetime(2025, 5, 1, tzinfo=UTC),
            datetime(2025, 5, 8, tzinfo=UTC),
        )

        assert data["overview"]["conversionRate"] == 0.0
        assert data["overview"]["revenueGrowth"] == 0.0
        assert data["trends"]["peakDay"] is None


def trip_with(user_id, confirmed, max_participants=8, date=None, others=0):
    bookings = [
        GroupBooking(user_id=user_id, participants=1, total_price=50.0, contact_name="x",
                     status=BookingStatus.CONFIRMED)
        for _ in range(confirmed)
    ] + [
        GroupBooking(user_id=uuid.uuid4(), participants=1, total_price=50.0, contact_name="y",
                     status=BookingStatus.CONFIRMED)
        for _ in range(others)
    ]
    return GroupTrip(
        trip_id=uuid.uuid4(),
        captain_id=uuid.uuid4(),
        date=date or datetime(2025, 4, 2, 9, tzinfo=UTC),
        time_slot=TimeSlot.MORNING_9AM,
        max_participants=max_participants,
        min_required=2,
        price_per_person=50.0,
        status=TripStatus.COMPLETED,
        bookings=bookings,
    )


def received(trip, rating, days_after=1):
    return Review(
        review_id=uuid.uuid4(),
        trip_id=trip.trip_id,
        to_user_id=uuid.uuid4(),
        rating=rating,
        verified=True,
        created_at=trip.date + timedelta(days=days_after),
    )


class TestReviewResponseMetrics:
    @pytest.mark.asyncio
    async def test_reviews_against_bookings(self, mock_db):
        user_id = uuid.uuid4()
        april = trip_with(user_id, confirmed=1)
        may = trip_with(user_id, confirmed=1, date=datetime(2025, 5, 20, 9, tzinfo=UTC))
        mock_db.execute.side_effect = [scalars([april, may]), scalars([received(april, 5, days_after=3)])]

        metrics = await ReviewAnalyticsService(mock_db).build_response_metrics(
            user_id, datetime(2025, 4, 1, tzinfo=UTC), datetime(2025, 6, 1, tzinfo=UTC),
        )

        assert metrics["completedTrips"] == 2
        assert metrics["confirmedBookings"] == 2
        assert metrics["totalReviews"] == 1
        assert metrics["responseRate"] == 50.0
        assert metrics["averageDaysToReview"] == 3.0
        assert metrics["daysToReview"] == {"within7Days": 1, "within30Days": 1, "over30Days": 0}
        assert metrics["monthlyResponseRates"] == [
            {"month": "2025-04", "bookings": 1, "reviews": 1, "responseRate": 100.0},
            {"month": "2025-05", "bookings": 1, "reviews": 0, "responseRate": 0.0},
        ]

    @pytest.mark.asyncio
    async def test_no_trips_skips_review_lookup(self, mock_db):
        mock_db.execute.side_effect = [scalars([])]

        metrics = await ReviewAnalyticsService(mock_db).build_response_metrics(
            uuid.uuid4(), datetime(2025, 4, 1, tzinfo=UTC), datetime(2025, 6, 1, tzinfo=UTC),
        )

        assert metrics["responseRate"] == 0.0
        assert mock_db.execute.await_count == 1


class TestReviewImpact:
    @pytest.mark.asyncio
    async def test_ratings_that_track_bookings(self, mock_db):
        user_id = uuid.uuid4()
        popular = trip_with(user_id, confirmed=0, others=6)
        quiet = trip_with(user_id, confirmed=0, others=2)
        unreviewed = trip_with(user_id, confirmed=0, others=1, max_participants=4)
        reviews = [received(popular, 5), received(popular, 4), received(quiet, 2)]
        mock_db.execute.side_effect = [scalars([popular, quiet, unreviewed]), scalars(reviews)]

        impact = await ReviewAnalyticsService(mock_db).build_impact_analysis(
            user_id, datetime(2025, 4, 1, tzinfo=UTC), datetime(2025, 5, 1, tzinfo=UTC),
        )

        assert impact["tripsAnalyzed"] == 3
        assert impact["tripsWithReviews"] == 2
        assert impact["ratingBookingCorrelation"] == 1.0
        assert impact["highRatedBookingRate"] == 75.0
        assert impact["lowRatedBookingRate"] == 25.0
        assert impact["unreviewedBookingRate"] == 25.0
        assert [r["type"] for r in impact["recommendations"]] == ["positive_correlation"]

    @pytest.mark.asyncio
    async def test_no_reviews_has_no_recommendation(self, mock_db):
        mock_db.execute.side_effect = [scalars([trip_with(uuid.uuid4(), confirmed=0, others=3)]), scalars([])]

        impact = await ReviewAnalyticsService(mock_db).build_impact_analysis(
            uuid.uuid4(), datetime(2025, 4, 1, tzinfo=UTC), datetime(2025, 5, 1, tzinfo=UTC),
        )

        assert impact["ratingBookingCorrelation"] == 0.0
        assert impact["recommendations"] == []
