"""
Tests for services/report_engine.py.

Seed data (all in 2024):
    ICU   monthly  Jan: hand 45/50 (90, met), wait 1200/30 (40, met)
          monthly  Feb: hand 10/50 (20, missed)
          daily    Jan 15: fall 5/500 (1.0, met)   Jan 16: fall 15/500 (3.0, missed)
    IGD   monthly  Jan: hand 40/50 (80, met at the boundary)
    LAB   monthly  Jan: hand 20/50 (40, missed)
"""

import pytest

from quality_indicators.core.exceptions import NotFoundError, ValidationError
from quality_indicators.services import entry_service
from quality_indicators.services.report_engine import (
    period_bounds,
    period_summary,
    unit_period_report,
    unit_range_report,
    yearly_matrix,
)


def _add(actor, unit_id, entry_date, frequency, *pairs):
    items = [
        {"indicator_id": ind, "numerator_value": n, "denominator_value": d}
        for ind, n, d in pairs
    ]
    return entry_service.create_entry(actor, unit_id, entry_date, frequency, items)


@pytest.fixture()
def seeded(org, indicators, actors):
    a = actors.admin
    _add(a, org.icu_id, "2024-01-15", "monthly",
         (indicators.hand_id, 45, 50), (indicators.wait_id, 1200, 30))
    _add(a, org.icu_id, "2024-02-15", "monthly", (indicators.hand_id, 10, 50))
    _add(a, org.icu_id, "2024-01-15", "daily", (indicators.fall_id, 5, 500))
    _add(a, org.icu_id, "2024-01-16", "daily", (indicators.fall_id, 15, 500))
    _add(a, org.igd_id, "2024-01-20", "monthly", (indicators.hand_id, 40, 50))
    _add(a, org.lab_id, "2024-01-20", "monthly", (indicators.hand_id, 20, 50))
    return indicators


class TestPeriodBounds:
    def test_month(self):
        start, end = period_bounds("monthly", "2024-02")
        assert (start.isoformat(), end.isoformat()) == ("2024-02-01", "2024-02-29")

    def test_day(self):
        start, end = period_bounds("daily", "2024-01-16")
        assert start == end

    @pytest.mark.parametrize("frequency, period", [("monthly", "bulan"), ("daily", "kemarin")])
    def test_invalid(self, frequency, period):
        with pytest.raises(ValidationError):
            period_bounds(frequency, period)


class TestUnitPeriodReport:
    def test_monthly_rows(self, org, seeded, actors):
        report = unit_period_report(actors.admin, org.icu_id, "monthly", "2024-01")

        assert report["site"]["name"] == "RS Utama"
        assert report["unit"]["name"] == "ICU"
        assert report["period"]["label"] == "Januari 2024"
        rows = {r["code"]: r for r in report["items"]}
        assert set(rows) == {"IMN-01", "IMN-03"}

        hand = rows["IMN-01"]
        assert hand["achievement"] == pytest.approx(90.0)
        assert hand["achieved"] is True
        assert hand["score"] == 100.0
        assert hand["point"] == 10.0
        assert hand["weighted_score"] == pytest.approx(1000.0)

        wait = rows["IMN-03"]
        assert wait["achievement"] == pytest.approx(40.0)
        assert wait["achieved"] is True
        assert wait["point"] == 0.0

    def test_daily_row(self, org, seeded, actors):
        report = unit_period_report(actors.admin, org.icu_id, "daily", "2024-01-16")

        assert report["period"]["label"] == "16 Januari 2024"
        [row] = report["items"]
        assert row["achievement"] == pytest.approx(3.0)
        assert row["achieved"] is False
        assert row["needs_corrective_action"] is True
        assert row["score"] == pytest.approx(150.0)
        assert row["point"] == 0.0

    def test_empty_period(self, org, seeded, actors):
        assert unit_period_report(actors.admin, org.icu_id, "monthly", "2024-05")["items"] == []

    def test_head_of_unit_report_includes_head_name(self, org, seeded, actors):
        report = unit_period_report(actors.head, org.lab_id, "monthly", "2024-01")
        assert report["unit"]["head_of_unit"] == "Budi Santoso"
        assert report["items"][0]["achieved"] is False

    def test_out_of_scope_unit_is_not_found(self, org, seeded, actors):
        with pytest.raises(NotFoundError):
            unit_period_report(actors.user, org.lab_id, "monthly", "2024-01")

    def test_unknown_unit_is_not_found(self, org, actors):
        with pytest.raises(NotFoundError):
            unit_period_report(actors.admin, 9999, "monthly", "2024-01")

    def test_bad_frequency(self, org, actors):
        with pytest.raises(ValidationError):
            unit_period_report(actors.admin, org.icu_id, "weekly", "2024-01")


class TestUnitRangeReport:
    def test_ratio_of_sums(self, org, seeded, actors):
        report = unit_range_report(actors.admin, org.icu_id, "2024-01-01", "2024-02-29",
                                   frequency="monthly")
        rows = {r["code"]: r for r in report["items"]}

        hand = rows["IMN-01"]
        assert hand["entry_count"] == 2
        assert hand["numerator_total"] == 55
        assert hand["denominator_total"] == 100
        # (45 + 10) / (50 + 50), not the mean of 90 and 20
        assert hand["achievement"] == pytest.approx(55.0)
        assert hand["achieved"] is False
        assert hand["point"] == 0.0

    def test_point_score_and_period_average_are_separate(self, org, seeded, actors):
        report = unit_range_report(actors.admin, org.icu_id, "2024-01-01", "2024-02-29",
                                   frequency="monthly")
        hand = next(r for r in report["items"] if r["code"] == "IMN-01")
        assert hand["point_score"] == pytest.approx(68.75)
        assert hand["period_average_score"] == pytest.approx(62.5)

    def test_all_frequencies_when_unfiltered(self, org, seeded, actors):
        report = unit_range_report(actors.admin, org.icu_id, "2024-01-01", "2024-01-31")
        rows = {r["code"]: r for r in report["items"]}
        assert list(rows) == ["IMN-01", "IMN-02", "IMN-03"]
        fall = rows["IMN-02"]
        assert fall["achievement"] == pytest.approx(2.0)
        assert fall["achieved"] is False
        assert fall["period_average_score"] == pytest.approx(125.0)

    def test_inverted_range(self, org, actors):
        with pytest.raises(ValidationError):
            unit_range_report(actors.admin, org.icu_id, "2024-02-01", "2024-01-01")

    def test_missing_dates(self, org, actors):
        with pytest.raises(ValidationError):
            unit_range_report(actors.admin, org.icu_id, None, "2024-01-01")


class TestYearlyMatrix:
    def test_groups_sorted_by_unit_and_numbered(self, org, seeded, actors):
        matrix = yearly_matrix(actors.admin, 2024)

        assert [g["unit_name"] for g in matrix["unit_groups"]] == [
            "Farmasi", "ICU", "IGD", "Laboratorium",
        ]
        numbers = [
            (ind["no"], g["unit_name"], ind["code"])
            for g in matrix["unit_groups"] for ind in g["indicators"]
        ]
        assert numbers == [
            (1, "Farmasi", "IMN-03"),
            (2, "ICU", "IMN-01"),
            (3, "ICU", "IMN-03"),
            (4, "IGD", "IMN-01"),
            (5, "Laboratorium", "IMN-01"),
        ]
        assert [c["name"] for c in matrix["categories"]] == ["Keselamatan Pasien", "Pelayanan"]

    def test_monthly_cells_and_not_achieved_counts(self, org, seeded, actors):
        matrix = yearly_matrix(actors.admin, 2024)
        icu = next(g for g in matrix["unit_groups"] if g["unit_name"] == "ICU")
        hand = icu["indicators"][0]["monthly_results"]

        assert hand[0] == {"month": 1, "achievement": pytest.approx(90.0), "achieved": True}
        assert hand[1]["achievement"] == pytest.approx(20.0)
        assert hand[1]["achieved"] is False
        assert hand[2] == {"month": 3, "achievement": None, "achieved": False}
        assert icu["not_achieved_count"] == [0, 1] + [0] * 10

    def test_several_items_in_a_month_use_ratio_of_sums(self, org, seeded, actors):
        matrix = yearly_matrix(actors.admin, 2024, frequency="daily")
        [icu] = matrix["unit_groups"]
        jan = icu["indicators"][0]["monthly_results"][0]
        # (5 + 15) / (500 + 500) * 100
        assert jan["achievement"] == pytest.approx(2.0)
        assert jan["achieved"] is False
        assert icu["not_achieved_count"][0] == 1

    def test_single_item_uses_stored_achievement(self, org, indicators, actors):
        entry_service.create_entry(actors.admin, org.igd_id, "2024-03-01", "monthly", [
            {"indicator_id": indicators.hand_id, "numerator_value": 10,
             "denominator_value": 50, "achievement": 95},
        ])
        matrix = yearly_matrix(actors.admin, 2024, unit_ids=[org.igd_id])
        march = matrix["unit_groups"][0]["indicators"][0]["monthly_results"][2]
        assert march["achievement"] == 95
        assert march["achieved"] is True

    def test_category_filter(self, org, seeded, actors):
        matrix = yearly_matrix(actors.admin, 2024, category_id=seeded.safety_id)
        codes = {ind["code"] for g in matrix["unit_groups"] for ind in g["indicators"]}
        assert codes == {"IMN-01"}

    def test_user_sees_only_own_unit(self, org, seeded, actors):
        matrix = yearly_matrix(actors.user, 2024)
        assert [g["unit_id"] for g in matrix["unit_groups"]] == [org.icu_id]

    def test_requested_units_outside_scope_are_dropped(self, org, seeded, actors):
        matrix = yearly_matrix(actors.user, 2024, unit_ids=[org.lab_id])
        assert matrix["unit_groups"] == []

    def test_division_filter_for_auditor(self, org, seeded, actors):
        matrix = yearly_matrix(actors.auditor, 2024, division_id=org.div_sup_id)
        assert [g["unit_name"] for g in matrix["unit_groups"]] == ["Laboratorium"]

    def test_auditor_cannot_reach_other_site(self, org, seeded, actors):
        assert yearly_matrix(actors.auditor, 2024, site_id=org.branch_id)["unit_groups"] == []

    def test_bad_year(self, org, actors):
        with pytest.raises(ValidationError):
            yearly_matrix(actors.admin, "tahun ini")


class TestPeriodSummary:
    def test_per_unit_percentages(self, org, seeded, actors):
        rows = {r["unit"]: r for r in period_summary(actors.admin, "monthly", "2024-01")}

        assert rows["ICU"]["indicators"] == 2
        assert rows["ICU"]["achieved"] == 2
        assert rows["ICU"]["percentage"] == 100
        assert rows["Laboratorium"]["percentage"] == 0
        assert rows["Farmasi"] == {
            "unit_id": org.far_id, "unit": "Farmasi",
            "indicators": 1, "achieved": 0, "percentage": 0,
        }
        assert rows["Radiologi"]["indicators"] == 0

    def test_division_filter(self, org, seeded, actors):
        rows = period_summary(actors.admin, "monthly", "2024-01", division_id=org.div_med_id)
        assert [r["unit"] for r in rows] == ["ICU", "IGD"]

    def test_scope_applies(self, org, seeded, actors):
        rows = period_summary(actors.manager, "monthly", "2024-02")
        assert {r["unit"] for r in rows} == {"ICU", "IGD"}
        icu = next(r for r in rows if r["unit"] == "ICU")
        assert icu["achieved"] == 0
