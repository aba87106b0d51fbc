"""Tests for crew-to-event dispatch scoring."""
from __future__ import annotations

import pytest

from app.models.crew import DutyStatus, Specialization
from app.services.scoring_service import (
    proximity_score,
    rank,
    specialization_score,
    team_size_bonus,
)
from conftest import EVENT_LAT, EVENT_LNG, MONDAY_9AM, at, make_crew, make_event


class TestSubScores:

    def test_proximity_linear_decay(self):
        assert proximity_score(0) == 40
        assert proximity_score(25) == pytest.approx(20)
        assert proximity_score(50) == 0
        assert proximity_score(60) == 0

    def test_exact_specialization(self):
        score, reason = specialization_score(Specialization.STORM_RESPONSE, "Storm")
        assert score == 35
        assert reason == "Storm Response specialist"

    def test_ranked_specialization(self):
        assert specialization_score(Specialization.EMERGENCY_RESPONSE, "Storm") == (20, "Emergency Response capable")
        assert specialization_score(Specialization.LINE_CREW, "Storm") == (15, "Line Crew capable")
        assert specialization_score(Specialization.GENERAL, "Storm") == (10, "General capable")

    def test_null_specialization_counts_as_general(self):
        assert specialization_score(None, "Heatwave") == (15, "General capable")
        assert specialization_score(None, "Unknown") == (35, "General specialist")

    def test_mismatch_scores_zero(self):
        assert specialization_score(Specialization.TREE_TRIMMING, "Heatwave") == (0, None)

    def test_missing_outage_type_uses_unknown(self):
        assert specialization_score(Specialization.EMERGENCY_RESPONSE, None) == (20, "Emergency Response capable")

    def test_unmapped_outage_type_falls_back_to_general(self):
        assert specialization_score(Specialization.GENERAL, "Meteor") == (35, "General specialist")
        assert specialization_score(Specialization.LINE_CREW, "Meteor") == (0, None)

    def test_team_bonus_only_for_large_incidents(self):
        assert team_size_bonus(3, 1000) == 0
        assert team_size_bonus(3, 1001) == 6
        assert team_size_bonus(8, 5000) == 10
        assert team_size_bonus(8, None) == 0


class TestRank:

    def test_close_specialist_on_shift_scores_about_100(self):
        [best] = rank([make_crew("c-1")], make_event(), MONDAY_9AM)
        assert best.proximity_score > 38
        assert best.specialization_score == 35
        assert best.availability_score == 25
        assert best.team_size_bonus == 0
        assert 97 <= best.total_score <= 100
        assert best.match_reasons == ["Very close", "Storm Response specialist", "On shift"]
        assert best.duty_status == DutyStatus.ON_SHIFT
        assert not best.requires_emergency_authorization

    def test_far_crew_gets_no_proximity(self):
        far = make_crew("c-far", current_lat=EVENT_LAT + 0.6)   # ~67 km
        [score] = rank([far], make_event(), MONDAY_9AM)
        assert score.proximity_score == 0
        assert score.total_score == 60

    def test_team_bonus_applied_for_big_event(self):
        [score] = rank([make_crew("c-1")], make_event(customers_impacted=5000), MONDAY_9AM)
        assert score.team_size_bonus == 6

    def test_only_available_crews_are_ranked(self):
        crews = [
            make_crew("c-1"),
            make_crew("c-2", status="dispatched", assigned_event_id="evt-storm", eta_minutes=5),
        ]
        ranked = rank(crews, make_event(), MONDAY_9AM)
        assert [s.crew_id for s in ranked] == ["c-1"]

    def test_off_duty_crew_is_still_ranked(self):
        night = make_crew("c-n", shift_start="22:00", shift_end="06:00")
        [score] = rank([night], make_event(), MONDAY_9AM)
        assert score.availability_score == 5
        assert "Off duty" in score.match_reasons
        assert score.requires_emergency_authorization

    def test_on_break_scores_15(self):
        [score] = rank([make_crew("c-1")], make_event(), at("Mon", 12, 10))
        assert score.availability_score == 15
        assert "On break" in score.match_reasons

    def test_sorted_descending(self):
        crews = [
            make_crew("c-far", current_lat=EVENT_LAT + 0.3),
            make_crew("c-near"),
            make_crew("c-mid", current_lat=EVENT_LAT + 0.1),
        ]
        ranked = rank(crews, make_event(), MONDAY_9AM)
        assert [s.crew_id for s in ranked] == ["c-near", "c-mid", "c-far"]
        assert ranked[1].match_reasons[0] == "Nearby"

    def test_ties_keep_input_order(self):
        crews = [make_crew(f"c-{i}") for i in range(5)]
        ranked = rank(crews, make_event(), MONDAY_9AM)
        assert [s.crew_id for s in ranked] == [f"c-{i}" for i in range(5)]

    def test_event_without_geo_center_ranks_nobody(self):
        assert rank([make_crew("c-1")], make_event(geo_center=None), MONDAY_9AM) == []

    def test_eta_uses_48_kmh(self):
        crew = make_crew("c-1", current_lat=EVENT_LAT, current_lng=EVENT_LNG)
        [score] = rank([crew], make_event(), MONDAY_9AM)
        assert score.distance_km == 0
        assert score.eta_minutes == 0
