"""Tests du calcul de points (fonction pure, aucune base)."""

import pytest
from bson import ObjectId

from app.core.errors import CapExceeded, UnknownScoringConfigType
from app.models.activity_type import ActivityType
from app.services.scoring.score_evaluator import (
    apply_point_sign,
    compute_score,
    daily_chargeable_units,
    load_activity_type,
    parse_scoring_config,
)


def _type(scoring_config, **extra) -> ActivityType:
    return ActivityType(challenge_id=ObjectId(), name=extra.pop("name", "Test"), scoring_config=scoring_config, **extra)


PACE_TIERS = {
    "type": "tiered",
    "metric": "pace",
    "tiers": [{"max_value": 10, "points": 50}, {"max_value": 12, "points": 30}, {"points": 10}],
}


class TestTiered:
    @pytest.mark.parametrize(
        "pace, expected",
        [(8, 50), (10, 50), (10.01, 30), (12, 30), (12.01, 10), (30, 10)],
    )
    def test_bounds_are_inclusive(self, pace, expected):
        result = compute_score(_type(PACE_TIERS), {"pace": pace})
        assert result.points_earned == expected

    def test_missing_metric_falls_in_first_tier(self):
        # Valeur absente => 0, donc premier palier
        assert compute_score(_type(PACE_TIERS), {}).points_earned == 50

    def test_unsorted_tiers_are_rejected(self):
        with pytest.raises(ValueError):
            parse_scoring_config(
                {"type": "tiered", "metric": "pace", "tiers": [{"max_value": 12, "points": 30}, {"max_value": 10, "points": 50}]}
            )


class TestUnitBased:
    def test_marathon_with_both_thresholds(self):
        """26.2 miles à 7.5 pts + semi (+25) + marathon (+100)."""
        running = _type(
            {"type": "unit_based", "metric": "miles", "points_per_unit": 7.5},
            name="Running",
            bonus_thresholds=[
                {"metric": "distance_miles", "threshold": 13.1, "bonus_points": 25, "description": "Half marathon"},
                {"metric": "distance_miles", "threshold": 26.2, "bonus_points": 100, "description": "Marathon"},
            ],
        )
        result = compute_score(running, {"miles": 26.2})

        assert result.base_points == pytest.approx(196.5)
        assert result.bonus_points == 125
        assert result.points_earned == pytest.approx(321.5)
        assert [b.bonus_points for b in result.triggered_bonuses] == [25, 100]

    def test_threshold_just_below_is_not_triggered(self):
        running = _type(
            {"type": "unit_based", "metric": "miles", "points_per_unit": 7.5},
            bonus_thresholds=[{"metric": "distance_miles", "threshold": 13.1, "bonus_points": 25}],
        )
        assert compute_score(running, {"miles": 13.0}).triggered_bonuses == []

    def test_metric_alias_is_resolved(self):
        running = _type({"type": "unit_based", "metric": "miles", "points_per_unit": 10})
        assert compute_score(running, {"distance_miles": 2}).points_earned == 20
        assert compute_score(running, {"Miles": 3}).points_earned == 30

    def test_max_units_caps_and_stays_monotonic(self):
        walking = _type({"type": "unit_based", "metric": "steps", "points_per_unit": 0.001, "max_units": 10000})
        points = [compute_score(walking, {"steps": s}).points_earned for s in (5000, 10000, 15000, 50000)]

        assert points == sorted(points)
        assert points[-1] == pytest.approx(10)

    def test_base_points_added(self):
        swim = _type({"type": "unit_based", "metric": "laps", "points_per_unit": 2, "base_points": 5})
        assert compute_score(swim, {"laps": 4}).points_earned == 13

    def test_daily_free_units_consumed_across_logs(self):
        drinks = _type(
            {"type": "unit_based", "metric": "drinks", "points_per_unit": 5, "daily_free_units": 2},
            is_negative=True,
        )
        first = compute_score(drinks, {"drinks": 3})
        second = compute_score(drinks, {"drinks": 2}, same_day_prior_units=3)
        within_allowance = compute_score(drinks, {"drinks": 1})

        assert first.points_earned == -5
        assert second.points_earned == -10
        assert within_allowance.points_earned == 0

    def test_daily_chargeable_units(self):
        assert daily_chargeable_units(1, 0, 2) == 0
        assert daily_chargeable_units(3, 1, 2) == 2
        assert daily_chargeable_units(2, 5, 2) == 2


class TestOtherVariants:
    def test_completion_with_optional_bonus(self):
        yoga = _type(
            {
                "type": "completion",
                "fixed_points": 20,
                "optional_bonuses": [{"name": "outdoor", "bonus_points": 5}, {"name": "class", "bonus_points": 3}],
            }
        )
        result = compute_score(yoga, {}, selected_bonuses=["outdoor"])
        assert result.points_earned == 25

    def test_variable_uses_caller_points(self):
        other = _type({"type": "variable", "default_points": 4})
        assert compute_score(other, {}).points_earned == 4
        assert compute_score(other, {}, variable_points=12.5).points_earned == 12.5

    def test_media_bonus(self):
        other = _type({"type": "completion", "fixed_points": 10})
        result = compute_score(other, {}, has_media=True)
        assert result.points_earned == 11
        assert result.triggered_bonuses[0].metric == "media"


class TestSignAndErrors:
    @pytest.mark.parametrize("raw", [5, -5])
    def test_penalty_is_always_negative(self, raw):
        assert apply_point_sign(raw, True) == -5
        penalty = _type({"type": "variable"}, is_negative=True)
        assert compute_score(penalty, {}, variable_points=raw).points_earned == -5

    def test_unknown_tag_is_rejected(self):
        with pytest.raises(UnknownScoringConfigType):
            parse_scoring_config({"type": "per_lap", "metric": "laps"})
        with pytest.raises(UnknownScoringConfigType):
            load_activity_type({"challenge_id": ObjectId(), "name": "Odd", "scoring_config": {"metric": "laps"}})

    def test_cap_rejects_without_partial_score(self):
        once = _type({"type": "completion", "fixed_points": 50}, max_per_challenge=1)
        assert compute_score(once, {}, prior_award_count=0).points_earned == 50
        with pytest.raises(CapExceeded) as exc:
            compute_score(once, {}, prior_award_count=1)
        assert exc.value.details["max_per_challenge"] == 1
