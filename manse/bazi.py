"""
Sexagenary (Four Pillars) model and pillar arithmetic.

Handles:
- Stem / branch tables and the 60-term pairing rule
- Year, month, day and hour pillar computation from *effective* inputs
  (the boundary resolver decides which year, month branch and date apply)
- Ten relations of every stem against the Day Master
- Elemental balance tally
- Luck cycle (decade pillar) sequencing
- Annual pillar for reading context

Everything here is a pure function over static tables. Boundary calls
(Li Chun, month terms, day cutoff) live in boundaries.py.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from manse.astro_calendar import julian_day_number


# ============================================================
# FUNDAMENTAL DATA STRUCTURES
# ============================================================

class Polarity(Enum):
    YANG = "yang"
    YIN = "yin"


class Element(Enum):
    WOOD = "wood"
    FIRE = "fire"
    EARTH = "earth"
    METAL = "metal"
    WATER = "water"


# Fixed ordering used for reporting and for breaking ties.
ELEMENT_ORDER = (Element.WOOD, Element.FIRE, Element.EARTH, Element.METAL, Element.WATER)

ELEMENT_KOREAN = {
    Element.WOOD: "목",
    Element.FIRE: "화",
    Element.EARTH: "토",
    Element.METAL: "금",
    Element.WATER: "수",
}


@dataclass(frozen=True)
class HeavenlyStem:
    chinese: str
    pinyin: str
    korean: str
    element: Element
    polarity: Polarity
    index: int  # 0-9 in the cycle

    def __str__(self):
        return f"{self.pinyin} ({self.polarity.value} {self.element.value})"

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "chinese": self.chinese,
            "pinyin": self.pinyin,
            "korean": self.korean,
            "element": self.element.value,
            "polarity": self.polarity.value,
        }


@dataclass(frozen=True)
class EarthlyBranch:
    chinese: str
    pinyin: str
    korean: str
    animal: str
    element: Element  # primary/season element
    polarity: Polarity
    index: int  # 0-11; month and hour slot ordinal
    hidden_stems: tuple  # pinyin names [main_qi, middle_qi, residual_qi]

    @property
    def main_qi(self) -> str:
        return self.hidden_stems[0]

    def __str__(self):
        return f"{self.pinyin} ({self.animal})"

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "chinese": self.chinese,
            "pinyin": self.pinyin,
            "korean": self.korean,
            "animal": self.animal,
            "element": self.element.value,
            "polarity": self.polarity.value,
            "hidden_stems": list(self.hidden_stems),
        }


@dataclass(frozen=True)
class Pillar:
    stem: HeavenlyStem
    branch: EarthlyBranch
    position: str  # "year", "month", "day", "hour", "luck", "annual"

    def __post_init__(self):
        # Only same-polarity pairs exist, which is why the cycle is 60 long.
        if self.stem.polarity is not self.branch.polarity:
            raise ValueError(
                f"Stem {self.stem.pinyin} and branch {self.branch.pinyin} "
                f"have different polarity"
            )

    @property
    def cycle_index(self) -> int:
        """Position 0-59 in the sexagenary cycle (Jia Zi = 0)."""
        return (6 * self.stem.index - 5 * self.branch.index) % 60

    @property
    def combined(self) -> str:
        return f"{self.stem.pinyin} {self.branch.pinyin}"

    def __str__(self):
        return f"{self.stem.pinyin} {self.branch.pinyin} ({self.stem.polarity.value} {self.stem.element.value} {self.branch.animal})"

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "stem": self.stem.to_dict(),
            "branch": self.branch.to_dict(),
            "cycle_index": self.cycle_index,
            "combined": self.combined,
            "combined_chinese": self.stem.chinese + self.branch.chinese,
            "combined_korean": self.stem.korean + self.branch.korean,
            "description": str(self),
        }


# ============================================================
# STEM AND BRANCH DEFINITIONS
# ============================================================

HEAVENLY_STEMS = (
    HeavenlyStem("甲", "Jia", "갑", Element.WOOD, Polarity.YANG, 0),
    HeavenlyStem("乙", "Yi", "을", Element.WOOD, Polarity.YIN, 1),
    HeavenlyStem("丙", "Bing", "병", Element.FIRE, Polarity.YANG, 2),
    HeavenlyStem("丁", "Ding", "정", Element.FIRE, Polarity.YIN, 3),
    HeavenlyStem("戊", "Wu", "무", Element.EARTH, Polarity.YANG, 4),
    HeavenlyStem("己", "Ji", "기", Element.EARTH, Polarity.YIN, 5),
    HeavenlyStem("庚", "Geng", "경", Element.METAL, Polarity.YANG, 6),
    HeavenlyStem("辛", "Xin", "신", Element.METAL, Polarity.YIN, 7),
    HeavenlyStem("壬", "Ren", "임", Element.WATER, Polarity.YANG, 8),
    HeavenlyStem("癸", "Gui", "계", Element.WATER, Polarity.YIN, 9),
)

EARTHLY_BRANCHES = (
    EarthlyBranch("子", "Zi", "자", "Rat", Element.WATER, Polarity.YANG, 0, ("Gui",)),
    EarthlyBranch("丑", "Chou", "축", "Ox", Element.EARTH, Polarity.YIN, 1, ("Ji", "Gui", "Xin")),
    EarthlyBranch("寅", "Yin", "인", "Tiger", Element.WOOD, Polarity.YANG, 2, ("Jia", "Bing", "Wu")),
    EarthlyBranch("卯", "Mao", "묘", "Rabbit", Element.WOOD, Polarity.YIN, 3, ("Yi",)),
    EarthlyBranch("辰", "Chen", "진", "Dragon", Element.EARTH, Polarity.YANG, 4, ("Wu", "Yi", "Gui")),
    EarthlyBranch("巳", "Si", "사", "Snake", Element.FIRE, Polarity.YIN, 5, ("Bing", "Wu", "Geng")),
    EarthlyBranch("午", "Wu", "오", "Horse", Element.FIRE, Polarity.YANG, 6, ("Ding", "Ji")),
    EarthlyBranch("未", "Wei", "미", "Goat", Element.EARTH, Polarity.YIN, 7, ("Ji", "Ding", "Yi")),
    EarthlyBranch("申", "Shen", "신", "Monkey", Element.METAL, Polarity.YANG, 8, ("Geng", "Ren", "Wu")),
    EarthlyBranch("酉", "You", "유", "Rooster", Element.METAL, Polarity.YIN, 9, ("Xin",)),
    EarthlyBranch("戌", "Xu", "술", "Dog", Element.EARTH, Polarity.YANG, 10, ("Wu", "Xin", "Ding")),
    EarthlyBranch("亥", "Hai", "해", "Pig", Element.WATER, Polarity.YIN, 11, ("Ren", "Jia")),
)

# Lookup helpers
STEM_BY_PINYIN = {s.pinyin: s for s in HEAVENLY_STEMS}
BRANCH_BY_PINYIN = {b.pinyin: b for b in EARTHLY_BRANCHES}
BRANCH_BY_ANIMAL = {b.animal: b for b in EARTHLY_BRANCHES}


def pillar_from_indices(stem_index: int, branch_index: int, position: str) -> Pillar:
    return Pillar(
        stem=HEAVENLY_STEMS[stem_index],
        branch=EARTHLY_BRANCHES[branch_index],
        position=position,
    )


def sexagenary_step(pillar: Pillar, steps: int, position: str) -> Pillar:
    """Move `steps` positions along the 60-cycle (negative = backward)."""
    return pillar_from_indices(
        (pillar.stem.index + steps) % 10,
        (pillar.branch.index + steps) % 12,
        position,
    )


# ============================================================
# EPOCH ANCHORS
# ============================================================

# 1900-01-01 was a Jia Xu (甲戌) day.
DAY_EPOCH = date(1900, 1, 1)
DAY_EPOCH_JDN = 2415021
DAY_EPOCH_STEM = 0
DAY_EPOCH_BRANCH = 10

# 1900 was a Geng Zi (庚子) year.
YEAR_EPOCH = 1900
YEAR_EPOCH_STEM = 6
YEAR_EPOCH_BRANCH = 0

BASE_EPOCH_LABEL = (
    f"{DAY_EPOCH.isoformat()} = JDN {DAY_EPOCH_JDN} = Jia Xu (甲戌); "
    f"{YEAR_EPOCH} = Geng Zi (庚子)"
)

# Five Tigers Escape (五虎遁): starting stem of the Tiger month by year stem.
#   Jia/Ji → Bing, Yi/Geng → Wu, Bing/Xin → Geng, Ding/Ren → Ren, Wu/Gui → Jia
TIGER_START_STEMS = (2, 4, 6, 8, 0, 2, 4, 6, 8, 0)

# Five Rats Escape (五鼠遁): starting stem of the Rat hour by day stem.
#   Jia/Ji → Jia, Yi/Geng → Bing, Bing/Xin → Wu, Ding/Ren → Geng, Wu/Gui → Ren
RAT_START_STEMS = (0, 2, 4, 6, 8, 0, 2, 4, 6, 8)

# [governing stem][branch] -> stem. Starting stems are yang and advance one
# stem per branch, so every cell keeps the polarity of its branch.
MONTH_STEM_TABLE = tuple(
    tuple((TIGER_START_STEMS[s] + (b - 2) % 12) % 10 for b in range(12))
    for s in range(10)
)
HOUR_STEM_TABLE = tuple(
    tuple((RAT_START_STEMS[s] + b) % 10 for b in range(12))
    for s in range(10)
)


# ============================================================
# PILLAR COMPUTATION
# ============================================================

def year_pillar(effective_year: int) -> Pillar:
    """
    Year Pillar for an effective (Li Chun adjusted) year.

    The caller decides the effective year; see boundaries.resolve_year.
    """
    offset = effective_year - YEAR_EPOCH
    return pillar_from_indices(
        (YEAR_EPOCH_STEM + offset) % 10,
        (YEAR_EPOCH_BRANCH + offset) % 12,
        "year",
    )


def month_pillar(year_stem_index: int, month_branch_index: int) -> Pillar:
    """
    Month Pillar from the year stem and the solar-term month branch.

    Args:
        year_stem_index: index of the year's heavenly stem (0-9)
        month_branch_index: index of the month's earthly branch (0-11)
            Note: month 1 (Tiger/Yin) has branch_index 2
    """
    return pillar_from_indices(
        MONTH_STEM_TABLE[year_stem_index][month_branch_index],
        month_branch_index,
        "month",
    )


def day_pillar(day: date) -> Pillar:
    """Day Pillar by Julian Day Number offset from the 1900-01-01 anchor."""
    offset = julian_day_number(day.year, day.month, day.day) - DAY_EPOCH_JDN
    return pillar_from_indices(
        (DAY_EPOCH_STEM + offset) % 10,
        (DAY_EPOCH_BRANCH + offset) % 12,
        "day",
    )


def hour_branch_index(hour: int, minute: int, cutoff_minutes: int) -> int:
    """
    Two-hour slot of a clock time. Slot 0 (Rat) starts at the day cutoff,
    so with a 23:30 cutoff Rat = 23:30-01:29, Ox = 01:30-03:29, ...
    """
    return ((hour * 60 + minute - cutoff_minutes) % 1440) // 120


def hour_slot_range(branch_index: int, cutoff_minutes: int) -> tuple[str, str]:
    start = (cutoff_minutes + branch_index * 120) % 1440
    end = (start + 119) % 1440
    return f"{start // 60:02d}:{start % 60:02d}", f"{end // 60:02d}:{end % 60:02d}"


def hour_pillar(day_stem_index: int, hour_branch: int) -> Pillar:
    """
    Hour Pillar from the day stem (of the effective, possibly rolled-over
    date) and the hour slot.
    """
    return pillar_from_indices(
        HOUR_STEM_TABLE[day_stem_index][hour_branch],
        hour_branch,
        "hour",
    )


def annual_pillar(year: int) -> Pillar:
    """Pillar of a (Li Chun) year, for annual reading context."""
    p = year_pillar(year)
    return Pillar(stem=p.stem, branch=p.branch, position="annual")


# ============================================================
# TEN RELATIONS (十神)
# ============================================================

# The Ten Relations describe how any stem relates to the Day Master.
# They are determined by element relationship + polarity match.

@dataclass(frozen=True)
class TenRelation:
    key: str
    english: str
    chinese: str
    korean: str
    group: str

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "english": self.english,
            "chinese": self.chinese,
            "korean": self.korean,
            "group": self.group,
        }


TEN_RELATIONS = {
    # (relationship, same_polarity): relation
    ("same", True): TenRelation("companion", "Companion", "比肩", "비견", "companion"),
    ("same", False): TenRelation("rob_wealth", "Rob Wealth", "劫財", "겁재", "companion"),
    ("i_produce", True): TenRelation("eating_god", "Eating God", "食神", "식신", "output"),
    ("i_produce", False): TenRelation("hurting_officer", "Hurting Officer", "傷官", "상관", "output"),
    ("i_control", True): TenRelation("indirect_wealth", "Indirect Wealth", "偏財", "편재", "wealth"),
    ("i_control", False): TenRelation("direct_wealth", "Direct Wealth", "正財", "정재", "wealth"),
    ("controls_me", True): TenRelation("seven_killings", "Seven Killings", "七殺", "편관", "officer"),
    ("controls_me", False): TenRelation("direct_officer", "Direct Officer", "正官", "정관", "officer"),
    ("produces_me", True): TenRelation("indirect_resource", "Indirect Resource", "偏印", "편인", "resource"),
    ("produces_me", False): TenRelation("direct_resource", "Direct Resource", "正印", "정인", "resource"),
}

RELATION_ORDER = tuple(TEN_RELATIONS.values())
RELATION_GROUPS = ("companion", "output", "wealth", "officer", "resource")

# Production cycle: Wood → Fire → Earth → Metal → Water → Wood
PRODUCTION_CYCLE = {
    Element.WOOD: Element.FIRE,
    Element.FIRE: Element.EARTH,
    Element.EARTH: Element.METAL,
    Element.METAL: Element.WATER,
    Element.WATER: Element.WOOD,
}

# Control cycle: Wood → Earth → Water → Fire → Metal → Wood
CONTROL_CYCLE = {
    Element.WOOD: Element.EARTH,
    Element.EARTH: Element.WATER,
    Element.WATER: Element.FIRE,
    Element.FIRE: Element.METAL,
    Element.METAL: Element.WOOD,
}


def element_relationship(day_master_element: Element, other_element: Element) -> str:
    """Determine the elemental relationship from DM's perspective."""
    if day_master_element == other_element:
        return "same"
    elif PRODUCTION_CYCLE[other_element] == day_master_element:
        return "produces_me"
    elif PRODUCTION_CYCLE[day_master_element] == other_element:
        return "i_produce"
    elif CONTROL_CYCLE[day_master_element] == other_element:
        return "i_control"
    elif CONTROL_CYCLE[other_element] == day_master_element:
        return "controls_me"
    else:
        raise ValueError(f"No valid relationship between {day_master_element} and {other_element}")


# [day stem index][target stem index] -> TenRelation
RELATION_TABLE = tuple(
    tuple(
        TEN_RELATIONS[(element_relationship(dm.element, other.element),
                       dm.polarity == other.polarity)]
        for other in HEAVENLY_STEMS
    )
    for dm in HEAVENLY_STEMS
)


def ten_relation(day_master: HeavenlyStem, other: HeavenlyStem) -> TenRelation:
    return RELATION_TABLE[day_master.index][other.index]


def map_ten_relations(day_master: HeavenlyStem, pillars: list[Pillar]) -> list[dict]:
    """
    Classify every stem in the chart against the Day Master.

    Branches are classified through their main-qi hidden stem. Only the
    pillars passed in are mapped, so an absent hour pillar yields no
    hour entries.
    """
    results = []
    for pillar in pillars:
        if pillar.position == "day":
            stem_relation = None
        else:
            stem_relation = ten_relation(day_master, pillar.stem).to_dict()
        results.append({
            "position": pillar.position,
            "source": "stem",
            "stem": pillar.stem.pinyin,
            "chinese": pillar.stem.chinese,
            "element": pillar.stem.element.value,
            "polarity": pillar.stem.polarity.value,
            "relation": stem_relation,
            "is_day_master": pillar.position == "day",
        })

        main_qi = STEM_BY_PINYIN[pillar.branch.main_qi]
        results.append({
            "position": pillar.position,
            "source": "branch",
            "branch": pillar.branch.pinyin,
            "stem": main_qi.pinyin,
            "chinese": main_qi.chinese,
            "element": main_qi.element.value,
            "polarity": main_qi.polarity.value,
            "relation": ten_relation(day_master, main_qi).to_dict(),
            "is_day_master": False,
        })
    return results


def ten_relation_distribution(entries: list[dict]) -> dict:
    """Counts per relation and per group, plus the most frequent relations."""
    counts = {r.key: 0 for r in RELATION_ORDER}
    groups = {g: 0 for g in RELATION_GROUPS}
    for entry in entries:
        relation = entry["relation"]
        if relation is None:
            continue
        counts[relation["key"]] += 1
        groups[relation["group"]] += 1

    top = max(counts.values())
    dominant = [key for key, count in counts.items() if top and count == top]
    return {"counts": counts, "groups": groups, "dominant": dominant}


# ============================================================
# ELEMENTAL BALANCE
# ============================================================

def element_balance(pillars: list[Pillar], dominant_ratio: float = 0.3,
                    weak_ratio: float = 0.1) -> dict:
    """
    Tally stem and branch (primary) elements across the given pillars.

    dominant: elements holding at least `dominant_ratio` of the tally,
              strongest first
    weak:     elements holding at most `weak_ratio` of the tally,
              weakest first
    Ties are broken by ELEMENT_ORDER.
    """
    counts = {e: 0 for e in ELEMENT_ORDER}
    for pillar in pillars:
        counts[pillar.stem.element] += 1
        counts[pillar.branch.element] += 1

    total = sum(counts.values())
    ranked = sorted(ELEMENT_ORDER, key=lambda e: (-counts[e], ELEMENT_ORDER.index(e)))
    lowest = sorted(ELEMENT_ORDER, key=lambda e: (counts[e], ELEMENT_ORDER.index(e)))
    share = {e: (counts[e] / total if total else 0.0) for e in ELEMENT_ORDER}

    return {
        "total": total,
        "elements": {
            e.value: {
                "count": counts[e],
                "percentage": round(share[e] * 100, 1),
                "korean": ELEMENT_KOREAN[e],
            }
            for e in ELEMENT_ORDER
        },
        "dominant": [e.value for e in ranked if total and share[e] >= dominant_ratio],
        "weak": [e.value for e in lowest if share[e] <= weak_ratio],
    }


# ============================================================
# LUCK CYCLE (大運)
# ============================================================

class LuckDirection(Enum):
    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class LuckDecade:
    number: int
    pillar: Pillar
    start_age: int
    end_age: int
    start_year: int
    end_year: int

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "pillar": self.pillar.to_dict(),
            "start_age": self.start_age,
            "end_age": self.end_age,
            "start_year": self.start_year,
            "end_year": self.end_year,
            "description": (
                f"LP{self.number}: {self.pillar.combined} ({self.pillar.branch.animal}) "
                f"ages {self.start_age}-{self.end_age}"
            ),
        }


@dataclass(frozen=True)
class LuckCycle:
    direction: LuckDirection
    start_age: int
    decades: tuple
    current_index: Optional[int]
    reference_year: int

    @property
    def current(self) -> Optional[LuckDecade]:
        if self.current_index is None:
            return None
        return self.decades[self.current_index]

    def to_dict(self) -> dict:
        current = self.current
        return {
            "direction": self.direction.value,
            "start_age": self.start_age,
            "decades": [d.to_dict() for d in self.decades],
            "current_index": self.current_index,
            "current": None if current is None else {
                "number": current.number,
                "pillar": current.pillar.combined,
                "pillar_chinese": current.pillar.stem.chinese + current.pillar.branch.chinese,
                "period": f"{current.start_year}-{current.end_year}",
                "years_remaining": current.end_year - self.reference_year,
            },
        }


def compute_luck_cycle(month: Pillar, birth_year: int, start_age: int,
                       direction: LuckDirection, count: int = 10,
                       reference_year: Optional[int] = None) -> LuckCycle:
    """
    Decade pillars stepping one position per decade from the month pillar.

    Start age and direction are policy inputs; see chart.traditional_luck_policy
    for the customary gender x year-polarity rule.
    """
    if start_age < 0:
        raise ValueError(f"start_age must be non-negative, got {start_age}")
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")
    step = 1 if direction is LuckDirection.FORWARD else -1
    if reference_year is None:
        reference_year = date.today().year

    decades = []
    for i in range(count):
        age_start = start_age + i * 10
        decades.append(LuckDecade(
            number=i + 1,
            pillar=sexagenary_step(month, step * (i + 1), "luck"),
            start_age=age_start,
            end_age=age_start + 9,
            start_year=birth_year + age_start,
            end_year=birth_year + age_start + 9,
        ))

    current_index = None
    for i, decade in enumerate(decades):
        if decade.start_year <= reference_year <= decade.end_year:
            current_index = i
            break

    return LuckCycle(
        direction=direction,
        start_age=start_age,
        decades=tuple(decades),
        current_index=current_index,
        reference_year=reference_year,
    )
