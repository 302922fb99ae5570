"""Sexagenary model, pillar arithmetic and derived analysis."""

from datetime import date, timedelta

import pytest

from manse.bazi import (
    EARTHLY_BRANCHES, HEAVENLY_STEMS, RELATION_TABLE, STEM_BY_PINYIN, LuckDirection, Pillar,
    annual_pillar, compute_luck_cycle, day_pillar, element_balance, hour_branch_index,
    hour_pillar, hour_slot_range, map_ten_relations, month_pillar, pillar_from_indices,
    sexagenary_step, ten_relation, ten_relation_distribution, year_pillar,
)

CUTOFF_2330 = 23 * 60 + 30

DAY_CASES = [
    (date(1900, 1, 1), "Jia", "Xu"),
    (date(1949, 10, 1), "Jia", "Zi"),
    (date(2000, 1, 1), "Wu", "Wu"),
    (date(1990, 3, 15), "Ji", "Mao"),
]


def sample_pillars():
    """1990-03-15 10:30 KST."""
    return [
        pillar_from_indices(6, 6, "year"),   # Geng Wu
        pillar_from_indices(5, 3, "month"),  # Ji Mao
        pillar_from_indices(5, 3, "day"),    # Ji Mao
        pillar_from_indices(5, 5, "hour"),   # Ji Si
    ]


class TestPillar:
    def test_mismatched_polarity_rejected(self):
        with pytest.raises(ValueError):
            Pillar(HEAVENLY_STEMS[0], EARTHLY_BRANCHES[1], "day")

    def test_cycle_index(self):
        assert pillar_from_indices(0, 0, "day").cycle_index == 0
        assert pillar_from_indices(9, 11, "day").cycle_index == 59
        assert pillar_from_indices(0, 10, "day").cycle_index == 10

    def test_all_sixty_pairs_distinct(self):
        p = pillar_from_indices(0, 0, "day")
        seen = {sexagenary_step(p, i, "day").cycle_index for i in range(60)}
        assert seen == set(range(60))

    def test_step_backward_wraps(self):
        p = sexagenary_step(pillar_from_indices(0, 0, "day"), -1, "luck")
        assert (p.stem.pinyin, p.branch.pinyin) == ("Gui", "Hai")

    def test_to_dict(self):
        d = pillar_from_indices(6, 6, "year").to_dict()
        assert d["combined"] == "Geng Wu"
        assert d["combined_chinese"] == "庚午"
        assert d["combined_korean"] == "경오"


class TestDayPillar:
    @pytest.mark.parametrize("day,stem,branch", DAY_CASES, ids=[str(c[0]) for c in DAY_CASES])
    def test_known_days(self, day, stem, branch):
        p = day_pillar(day)
        assert (p.stem.pinyin, p.branch.pinyin) == (stem, branch)

    @pytest.mark.parametrize("day", [date(1900, 1, 1), date(1987, 2, 28), date(2024, 2, 29)])
    def test_sixty_day_period(self, day):
        assert day_pillar(day) == day_pillar(day + timedelta(days=60))
        assert day_pillar(day) != day_pillar(day + timedelta(days=1))

    def test_consecutive_days_step_once(self):
        first = day_pillar(date(2024, 12, 31))
        second = day_pillar(date(2025, 1, 1))
        assert second.cycle_index == (first.cycle_index + 1) % 60


class TestYearMonthHour:
    @pytest.mark.parametrize("year,stem,branch", [
        (1900, "Geng", "Zi"), (1984, "Jia", "Zi"), (1990, "Geng", "Wu"),
        (2023, "Gui", "Mao"), (2024, "Jia", "Chen"), (1899, "Ji", "Hai"),
    ])
    def test_year_pillar(self, year, stem, branch):
        p = year_pillar(year)
        assert (p.stem.pinyin, p.branch.pinyin) == (stem, branch)

    @pytest.mark.parametrize("year_stem,tiger_stem", [
        ("Jia", "Bing"), ("Ji", "Bing"), ("Yi", "Wu"), ("Geng", "Wu"), ("Bing", "Geng"),
        ("Xin", "Geng"), ("Ding", "Ren"), ("Ren", "Ren"), ("Wu", "Jia"), ("Gui", "Jia"),
    ])
    def test_five_tigers(self, year_stem, tiger_stem):
        p = month_pillar(STEM_BY_PINYIN[year_stem].index, 2)
        assert p.stem.pinyin == tiger_stem

    def test_month_advances_past_tiger(self):
        # Geng year: Tiger = Wu Yin, Rabbit = Ji Mao, Ox (last month) = Ji Chou
        assert month_pillar(6, 3).combined == "Ji Mao"
        assert month_pillar(6, 1).combined == "Ji Chou"

    @pytest.mark.parametrize("day_stem,rat_stem", [
        ("Jia", "Jia"), ("Ji", "Jia"), ("Yi", "Bing"), ("Geng", "Bing"), ("Bing", "Wu"),
        ("Xin", "Wu"), ("Ding", "Geng"), ("Ren", "Geng"), ("Wu", "Ren"), ("Gui", "Ren"),
    ])
    def test_five_rats(self, day_stem, rat_stem):
        assert hour_pillar(STEM_BY_PINYIN[day_stem].index, 0).stem.pinyin == rat_stem

    @pytest.mark.parametrize("hour,minute,branch", [
        (23, 30, 0), (0, 0, 0), (1, 29, 0), (1, 30, 1), (10, 30, 5), (23, 29, 11), (23, 0, 11),
    ])
    def test_hour_slots_with_2330_cutoff(self, hour, minute, branch):
        assert hour_branch_index(hour, minute, CUTOFF_2330) == branch

    def test_hour_slots_with_2300_cutoff(self):
        assert hour_branch_index(23, 0, 23 * 60) == 0
        assert hour_branch_index(22, 59, 23 * 60) == 11

    def test_slot_range(self):
        assert hour_slot_range(0, CUTOFF_2330) == ("23:30", "01:29")
        assert hour_slot_range(5, CUTOFF_2330) == ("09:30", "11:29")

    def test_every_pillar_has_matching_polarity(self):
        for s in range(10):
            for b in range(12):
                assert month_pillar(s, b).stem.polarity is EARTHLY_BRANCHES[b].polarity
                assert hour_pillar(s, b).stem.polarity is EARTHLY_BRANCHES[b].polarity

    def test_annual_pillar(self):
        p = annual_pillar(2026)
        assert p.combined == "Bing Wu"
        assert p.position == "annual"


class TestTenRelations:
    @pytest.mark.parametrize("other,key", [
        ("Jia", "companion"), ("Yi", "rob_wealth"), ("Bing", "eating_god"),
        ("Ding", "hurting_officer"), ("Wu", "indirect_wealth"), ("Ji", "direct_wealth"),
        ("Geng", "seven_killings"), ("Xin", "direct_officer"), ("Ren", "indirect_resource"),
        ("Gui", "direct_resource"),
    ])
    def test_jia_day_master(self, other, key):
        assert ten_relation(STEM_BY_PINYIN["Jia"], STEM_BY_PINYIN[other]).key == key

    def test_each_row_covers_all_ten(self):
        for row in RELATION_TABLE:
            assert len({r.key for r in row}) == 10

    def test_sample_chart_mapping(self):
        entries = map_ten_relations(STEM_BY_PINYIN["Ji"], sample_pillars())
        assert len(entries) == 8
        day_stem = [e for e in entries if e["position"] == "day" and e["source"] == "stem"][0]
        assert day_stem["is_day_master"] is True
        assert day_stem["relation"] is None

        year_stem = [e for e in entries if e["position"] == "year" and e["source"] == "stem"][0]
        assert year_stem["relation"]["key"] == "hurting_officer"

        hour_branch = [e for e in entries if e["position"] == "hour" and e["source"] == "branch"][0]
        assert hour_branch["stem"] == "Bing"
        assert hour_branch["relation"]["key"] == "direct_resource"

    def test_distribution(self):
        entries = map_ten_relations(STEM_BY_PINYIN["Ji"], sample_pillars())
        dist = ten_relation_distribution(entries)
        assert dist["counts"]["companion"] == 2
        assert dist["counts"]["seven_killings"] == 2
        assert dist["counts"]["direct_wealth"] == 0
        assert sum(dist["counts"].values()) == 7
        assert dist["dominant"] == ["companion", "seven_killings"]
        assert dist["groups"] == {"companion": 2, "output": 1, "wealth": 0,
                                  "officer": 2, "resource": 2}

    def test_no_hour_pillar_no_hour_entries(self):
        entries = map_ten_relations(STEM_BY_PINYIN["Ji"], sample_pillars()[:3])
        assert all(e["position"] != "hour" for e in entries)


class TestElementBalance:
    def test_sample_chart(self):
        balance = element_balance(sample_pillars())
        assert balance["total"] == 8
        assert balance["elements"]["earth"] == {"count": 3, "percentage": 37.5, "korean": "토"}
        assert balance["elements"]["metal"]["percentage"] == 12.5
        assert balance["dominant"] == ["earth"]
        assert balance["weak"] == ["water"]
        assert list(balance["elements"]) == ["wood", "fire", "earth", "metal", "water"]

    def test_three_pillars_total_six(self):
        assert element_balance(sample_pillars()[:3])["total"] == 6

    def test_ties_follow_element_order(self):
        # Jia Zi + Bing Wu: wood 1, water 1, fire 2
        balance = element_balance([pillar_from_indices(0, 0, "year"),
                                   pillar_from_indices(2, 6, "month")],
                                  dominant_ratio=0.25, weak_ratio=0.0)
        assert balance["dominant"] == ["fire", "wood", "water"]
        assert balance["weak"] == ["earth", "metal"]


class TestLuckCycle:
    def test_forward(self):
        month = pillar_from_indices(5, 3, "month")  # Ji Mao
        cycle = compute_luck_cycle(month, 1990, 7, LuckDirection.FORWARD, reference_year=2026)
        assert len(cycle.decades) == 10
        assert cycle.decades[0].pillar.combined == "Geng Chen"
        assert [d.start_age for d in cycle.decades] == list(range(7, 107, 10))
        assert cycle.decades[0].start_year == 1997
        assert cycle.decades[0].end_year == 2006
        assert cycle.current.number == 3
        assert cycle.to_dict()["current"]["years_remaining"] == 0

    def test_backward_visits_decreasing_indices(self):
        month = pillar_from_indices(5, 3, "month")
        cycle = compute_luck_cycle(month, 1990, 3, LuckDirection.BACKWARD, count=8,
                                   reference_year=1990)
        indices = [d.pillar.cycle_index for d in cycle.decades]
        assert indices == [(month.cycle_index - i) % 60 for i in range(1, 9)]
        assert cycle.decades[0].pillar.combined == "Wu Yin"
        assert cycle.current is None

    def test_invalid_arguments(self):
        month = pillar_from_indices(5, 3, "month")
        with pytest.raises(ValueError):
            compute_luck_cycle(month, 1990, -1, LuckDirection.FORWARD)
        with pytest.raises(ValueError):
            compute_luck_cycle(month, 1990, 3, LuckDirection.FORWARD, count=0)
