"""
Scoring Function Tests

Verifies the per-bid match score: bounds, determinism, normalization of
rates and prices, graceful handling of missing or malformed inputs, and
insight ordering.
"""

from datetime import datetime, timedelta, timezone

from pydantic import ValidationError as PydanticValidationError
import pytest

from vectornode.exceptions import ValidationError
from vectornode.models import CarrierProfile, Rate, SubscriptionTier, TimeWindow, VehicleType
from vectornode.scoring import BidScorer, PriceBand, ScoringWeights, score_bid

from conftest import NOW, make_bid, make_profile, make_shipment


class TestRate:
    """Success / on-time rates are normalized once, at ingestion."""

    def test_fraction_is_kept(self):
        assert Rate.from_raw(0.95).fraction == 0.95

    def test_percentage_is_divided(self):
        assert Rate.from_raw(95).fraction == 0.95

    def test_out_of_range_is_clamped(self):
        assert Rate.from_raw(250).fraction == 1.0
        assert Rate.from_raw(-0.2).fraction == 0.0

    def test_missing_stays_missing(self):
        assert Rate.from_raw(None) is None

    def test_profile_normalizes_on_construction(self):
        profile = CarrierProfile(company_name="X", success_rate=88, on_time_rate=0.5)
        assert profile.success_rate.fraction == 0.88
        assert profile.reliability.fraction == 0.88

    def test_reliability_falls_back_to_on_time(self):
        profile = CarrierProfile(company_name="X", on_time_rate=91)
        assert profile.reliability.fraction == 0.91

    def test_survives_json_round_trip(self):
        profile = CarrierProfile(company_name="X", success_rate=0.93)
        restored = CarrierProfile.model_validate_json(profile.model_dump_json())
        assert restored.success_rate == profile.success_rate


class TestScoringWeights:

    def test_defaults_sum_to_one(self):
        assert abs(sum(ScoringWeights().as_dict().values()) - 1.0) < 1e-9

    def test_rejects_weights_not_summing_to_one(self):
        with pytest.raises(ValueError):
            ScoringWeights(price=0.5)


class TestBidScore:

    def setup_method(self):
        self.scorer = BidScorer(weights=ScoringWeights())
        self.shipment = make_shipment()

    def test_score_is_bounded(self):
        profile = make_profile()
        for price in (0.0, 500.0, 1000.0):
            bid = make_bid(self.shipment, profile, price)
            result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=500, max=1000))
            assert 0.0 <= result.score <= 100.0, f"Score {result.score} out of [0, 100] for price {price}"

    def test_deterministic(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, 950)
        band = PriceBand(min=900, max=1000)

        first = self.scorer.score(self.shipment, bid, profile, band)
        second = self.scorer.score(self.shipment, bid, profile, band)

        assert first.score == second.score
        assert first.insights == second.insights

    def test_single_bid_price_is_full(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, 1234)
        result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=1234, max=1234))
        assert result.breakdown.price == 1.0

    def test_no_band_price_is_full(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, 1234)
        assert self.scorer.score(self.shipment, bid, profile).breakdown.price == 1.0

    def test_price_normalization(self):
        profile = make_profile()
        band = PriceBand(min=800, max=1200)

        cheapest = self.scorer.score(self.shipment, make_bid(self.shipment, profile, 800), profile, band)
        middle = self.scorer.score(self.shipment, make_bid(self.shipment, profile, 1000), profile, band)
        priciest = self.scorer.score(self.shipment, make_bid(self.shipment, profile, 1200), profile, band)

        assert cheapest.breakdown.price == 1.0
        assert middle.breakdown.price == pytest.approx(0.5)
        assert priciest.breakdown.price == 0.0
        assert cheapest.score > middle.score > priciest.score

    def test_perfect_bid_scores_100(self):
        profile = make_profile(rating=5.0, success_rate=1.0)
        bid = make_bid(self.shipment, profile, 1000)
        assert self.scorer.score(self.shipment, bid, profile).score == 100.0

    def test_percentage_and_fraction_score_the_same(self):
        as_fraction = make_profile(success_rate=0.9)
        as_percent = make_profile(success_rate=90)
        bid = make_bid(self.shipment, as_fraction, 1000)

        assert (
            self.scorer.score(self.shipment, bid, as_fraction).score
            == self.scorer.score(self.shipment, bid, as_percent).score
        )

    def test_verification_is_capped(self):
        assert self.scorer.score_verification(5) == 1.0
        assert self.scorer.score_verification(12) == 1.0
        assert self.scorer.score_verification(2) == pytest.approx(0.4)

    def test_response_buckets(self):
        assert self.scorer.score_responsiveness(5) == 1.0
        assert self.scorer.score_responsiveness(45) == 0.75
        assert self.scorer.score_responsiveness(200) == 0.5
        assert self.scorer.score_responsiveness(1000) == 0.25
        assert self.scorer.score_responsiveness(5000) == 0.0


class TestMissingAndMalformedInputs:

    def setup_method(self):
        self.scorer = BidScorer(weights=ScoringWeights())
        self.shipment = make_shipment()

    def test_missing_fields_count_as_zero(self):
        bare = CarrierProfile(company_name="New Carrier")
        bid = make_bid(self.shipment, bare, 1000)

        result = self.scorer.score(self.shipment, bid, bare)

        assert result.breakdown.rating == 0.0
        assert result.breakdown.reliability == 0.0
        assert result.breakdown.verification == 0.0
        assert result.breakdown.responsiveness == 0.0
        assert result.breakdown.fleet_tier == 0.0
        assert result.insights == [], "Missing signals must not produce insights"

    def test_missing_profile_scores_as_empty(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, 1000)
        result = self.scorer.score(self.shipment, bid, None)
        assert result.breakdown.rating == 0.0
        assert 0.0 <= result.score <= 100.0

    def test_negative_price_is_clamped(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, -50)

        result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=0, max=1000))

        assert result.breakdown.price == 1.0
        assert "total_price" in result.breakdown.clamped_fields

    def test_rating_above_scale_is_clamped(self):
        profile = make_profile(rating=7.5)
        bid = make_bid(self.shipment, profile, 1000)
        result = self.scorer.score(self.shipment, bid, profile)
        assert result.breakdown.rating == 1.0
        assert "rating" in result.breakdown.clamped_fields

    def test_bid_for_other_shipment_is_rejected(self):
        other = make_shipment()
        profile = make_profile()
        bid = make_bid(other, profile, 1000)
        with pytest.raises(ValidationError):
            self.scorer.score(self.shipment, bid, profile)


class TestServiceFit:

    def setup_method(self):
        self.scorer = BidScorer(weights=ScoringWeights())
        self.profile = make_profile()

    def test_no_constraints_is_full_fit(self):
        shipment = make_shipment()
        bid = make_bid(shipment, self.profile, 1000)
        assert self.scorer.score_service_fit(shipment, bid) == 1.0

    def test_partial_fit(self):
        shipment = make_shipment(
            vehicle_type=VehicleType.TRUCK_LARGE,
            pickup_window=TimeWindow(earliest=NOW + timedelta(days=1), latest=NOW + timedelta(days=2)),
        )
        bid = make_bid(
            shipment,
            self.profile,
            1000,
            vehicle_type=VehicleType.VAN,
            estimated_pickup_date=NOW + timedelta(days=1, hours=3),
        )
        assert self.scorer.score_service_fit(shipment, bid) == 0.5

    def test_missing_estimate_fails_stated_window(self):
        shipment = make_shipment(
            delivery_window=TimeWindow(earliest=NOW, latest=NOW + timedelta(days=3)),
        )
        bid = make_bid(shipment, self.profile, 1000)
        assert self.scorer.score_service_fit(shipment, bid) == 0.0


    def test_aware_estimate_against_naive_window(self):
        shipment = make_shipment(
            pickup_window=TimeWindow(earliest=NOW, latest=NOW + timedelta(days=1)),
        )
        bid = make_bid(
            shipment,
            self.profile,
            1000,
            estimated_pickup_date=(NOW + timedelta(hours=3)).replace(tzinfo=timezone.utc),
        )
        assert self.scorer.score_service_fit(shipment, bid) == 1.0

    def test_aware_window_against_naive_estimate(self):
        cet = timezone(timedelta(hours=1))
        shipment = make_shipment(
            pickup_window=TimeWindow(
                earliest=datetime(2026, 3, 2, 10, 0, tzinfo=cet),
                latest=datetime(2026, 3, 2, 12, 0, tzinfo=cet),
            ),
        )
        bid = make_bid(shipment, self.profile, 1000, estimated_pickup_date=datetime(2026, 3, 2, 11, 30))
        assert self.scorer.score_service_fit(shipment, bid) == 0.0, "11:30 UTC is after 12:00 CET"


class TestTimestamps:

    def test_aware_values_become_naive_utc(self):
        cet = timezone(timedelta(hours=1))
        shipment = make_shipment(created_at=datetime(2026, 3, 2, 9, 0, tzinfo=cet))

        assert shipment.created_at == datetime(2026, 3, 2, 8, 0)
        assert shipment.created_at.tzinfo is None

    def test_window_bounds_are_normalized(self):
        window = TimeWindow(
            earliest=datetime(2026, 11, 1, tzinfo=timezone.utc),
            latest="2026-11-03T00:00:00+02:00",
        )
        assert window.latest == datetime(2026, 11, 2, 22, 0)
        assert window.fits_datetime(datetime(2026, 11, 2, 8, 0, tzinfo=timezone.utc))

    def test_bid_timestamps_are_naive(self):
        shipment = make_shipment()
        bid = make_bid(
            shipment,
            make_profile(),
            1000,
            expires_at=datetime(2026, 3, 5, 9, 0, tzinfo=timezone.utc),
        )
        assert bid.expires_at == datetime(2026, 3, 5, 9, 0)
        assert bid.expires_at.tzinfo is None

    @pytest.mark.parametrize("price", [float("inf"), float("-inf"), float("nan")])
    def test_bid_rejects_non_finite_price(self, price):
        with pytest.raises(PydanticValidationError):
            make_bid(make_shipment(), make_profile(), price)


class TestInsights:

    def setup_method(self):
        self.scorer = BidScorer(weights=ScoringWeights())
        self.shipment = make_shipment()

    def test_ordered_by_contribution(self):
        profile = make_profile()
        bid = make_bid(self.shipment, profile, 900)

        result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=900, max=1000))

        assert result.insights[0].startswith("Top-rated carrier"), result.insights
        assert result.insights[1] == "95% on-time success rate"
        assert "Lowest price among bids" in result.insights[:3]

    def test_competitive_price_within_margin(self):
        profile = CarrierProfile(company_name="Plain")
        bid = make_bid(self.shipment, profile, 940)
        result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=900, max=1200))
        assert result.insights == ["Competitive price (within 5% of lowest bid)"]

    def test_expensive_bid_has_no_price_insight(self):
        profile = CarrierProfile(company_name="Plain")
        bid = make_bid(self.shipment, profile, 1100)
        result = self.scorer.score(self.shipment, bid, profile, PriceBand(min=900, max=1200))
        assert result.insights == []

    def test_established_fleet(self):
        profile = CarrierProfile(
            company_name="Fleet",
            fleet_size=30,
            subscription_tier=SubscriptionTier.MEDIUM_FLEET,
        )
        bid = make_bid(self.shipment, profile, 1000)
        assert "Established fleet (30 vehicles)" in self.scorer.score(self.shipment, bid, profile).insights


def test_score_bid_convenience():
    shipment = make_shipment()
    profile = make_profile()
    score, insights = score_bid(shipment, make_bid(shipment, profile, 1000), profile)
    assert 0.0 <= score <= 100.0
    assert isinstance(insights, list)
