"""
Category Mapper

Pure lookup tables that collapse fine-grained category labels into coarser
display groups:

    nationality:  country label -> regional bucket (medium) -> continent (coarse)
    visa:         status label  -> functional bucket (medium) -> purpose (coarse)
    age:          raw label -> 5-year band (fine) -> generation band (medium)

Matching is ordered substring containment against fixed keyword lists; the
first matching group wins. Every mapper is total: any input string maps to
exactly one output label.
"""

import re
from typing import Dict, List, Optional, Tuple

FINE = 'fine'
MEDIUM = 'medium'
COARSE = 'coarse'
LEVELS = (FINE, MEDIUM, COARSE)

# ---- NATIONALITY ----

NAT_SINOSPHERE = 'Northeast Asia (Sinosphere)'
NAT_SE_ASIA = 'Southeast Asia'
NAT_CENTRAL_ASIA = 'Central Asia'
NAT_SOUTH_ASIA = 'South Asia'
NAT_DEVELOPED = 'North America/Europe/Japan'
NAT_OTHER = 'Other nationalities'

NAT_ASIA = 'Asia'
NAT_WESTERN = 'Western/Developed'
NAT_OTHER_REGION = 'Other regions'

# Checked in this order; first hit wins.
NATIONALITY_GROUPS: List[Tuple[str, List[str]]] = [
    (NAT_SINOSPHERE, ['중국', '한국계 중국인', '대만', '홍콩']),
    (NAT_SE_ASIA, ['베트남', '태국', '필리핀', '인도네시아', '미얀마', '캄보디아',
                   '동티모르', '말레이시아', '라오스']),
    (NAT_CENTRAL_ASIA, ['우즈베키스탄', '카자흐스탄', '키르기스스탄', '몽골', '타지키스탄']),
    (NAT_SOUTH_ASIA, ['네팔', '방글라데시', '스리랑카', '파키스탄', '인도']),
    (NAT_DEVELOPED, ['미국', '캐나다', '영국', '호주', '뉴질랜드', '일본', '프랑스',
                     '독일', '러시아']),
]

NATIONALITY_COARSE: Dict[str, str] = {
    NAT_SINOSPHERE: NAT_ASIA,
    NAT_SE_ASIA: NAT_ASIA,
    NAT_CENTRAL_ASIA: NAT_ASIA,
    NAT_SOUTH_ASIA: NAT_ASIA,
    NAT_DEVELOPED: NAT_WESTERN,
}

# ---- VISA ----

VISA_UNSKILLED = 'Unskilled labor (E-9/H-2)'
VISA_PROFESSIONAL = 'Professional (E-7 etc.)'
VISA_STUDENT = 'Student/Trainee (D-2/D-4)'
VISA_RESIDENCY = 'Long-term resident/Compatriot (F)'
VISA_OTHER = 'Other/Temporary'

VISA_ECONOMIC = 'Economic activity'
VISA_SETTLEMENT = 'Settlement/Immigration'
VISA_NON_ECONOMIC = 'Non-economic/Other'

VISA_GROUPS: List[Tuple[str, List[str]]] = [
    (VISA_UNSKILLED, ['E-9', 'E-10', 'H-2', '비전문취업', '선원취업', '방문취업']),
    (VISA_PROFESSIONAL, ['E-1', 'E-2', 'E-3', 'E-4', 'E-5', 'E-6', 'E-7', '교수', '회화',
                         '연구', '기술', '전문']),
    (VISA_STUDENT, ['D-2', 'D-4', '유학', '연수']),
    (VISA_RESIDENCY, ['F-2', 'F-4', 'F-5', 'F-6', '거주', '재외동포', '영주', '결혼이민']),
    (VISA_OTHER, ['G-1', 'D-1', 'D-3', '기타', '방문동거', 'F-1', 'F-3']),
]

VISA_COARSE: Dict[str, str] = {
    VISA_UNSKILLED: VISA_ECONOMIC,
    VISA_PROFESSIONAL: VISA_ECONOMIC,
    VISA_RESIDENCY: VISA_SETTLEMENT,
}

# Marriage migration has no bucket of its own; matched on the raw label.
MARRIAGE_KEYWORDS = ['결혼', 'F-6']

# ---- AGE ----

AGE_BANDS: List[str] = [
    '00-04', '05-09', '10-14', '15-19',
    '20-24', '25-29', '30-34', '35-39',
    '40-44', '45-49', '50-54', '55-59',
    '60-64', '65+',
]

AGE_0_19 = '0-19'
AGE_20S = '20-29'
AGE_30S = '30-39'
AGE_40S = '40-49'
AGE_50S = '50-59'
AGE_60_PLUS = '60+'
AGE_GENERATIONS = [AGE_0_19, AGE_20S, AGE_30S, AGE_40S, AGE_50S, AGE_60_PLUS]

_LEADING_INT = re.compile(r'^(\d+)')


def _check_level(level: str) -> None:
    if level not in LEVELS:
        raise ValueError(f"Invalid level: {level}. Expected one of {LEVELS}")


def _first_match(label: str, groups: List[Tuple[str, List[str]]], default: str) -> str:
    for bucket, keywords in groups:
        if any(k in label for k in keywords):
            return bucket
    return default


def map_nationality(label: str, level: str = FINE) -> str:
    """
    Map a nationality label to its display bucket.

    Args:
        label: Raw nationality label as reported
        level: 'fine' (unchanged), 'medium' (regional) or 'coarse' (continental)

    Returns:
        Display bucket label
    """
    _check_level(level)
    if level == FINE:
        return label
    region = _first_match(label, NATIONALITY_GROUPS, NAT_OTHER)
    if level == MEDIUM:
        return region
    return NATIONALITY_COARSE.get(region, NAT_OTHER_REGION)


def map_visa(label: str, level: str = FINE) -> str:
    """
    Map a visa/status label to its display bucket.

    Args:
        label: Raw visa/status label as reported
        level: 'fine' (unchanged), 'medium' (function) or 'coarse' (purpose)

    Returns:
        Display bucket label
    """
    _check_level(level)
    if level == FINE:
        return label
    func = _first_match(label, VISA_GROUPS, VISA_OTHER)
    if level == MEDIUM:
        return func
    return VISA_COARSE.get(func, VISA_NON_ECONOMIC)


def is_marriage_visa(label: str) -> bool:
    return any(k in label for k in MARRIAGE_KEYWORDS)


def map_age(band: str, level: str = FINE) -> str:
    """
    Map a 5-year age band to its display bucket.

    'medium' parses the band's leading two digits into one of six
    generation buckets. Unparseable bands fall into the oldest bucket.
    'coarse' has no separate grouping for age and behaves like 'medium'.
    """
    _check_level(level)
    if level == FINE:
        return band
    try:
        num = int(band[:2])
    except ValueError:
        return AGE_60_PLUS
    if num < 20:
        return AGE_0_19
    if num < 30:
        return AGE_20S
    if num < 40:
        return AGE_30S
    if num < 50:
        return AGE_40S
    if num < 60:
        return AGE_50S
    return AGE_60_PLUS


def classify_age_label(raw: str) -> Optional[str]:
    """
    Convert a raw age label ("23세", "20-24세", "65세 이상") to a 5-year band.

    Returns:
        One of AGE_BANDS, or None if the label has no leading integer
    """
    text = re.sub(r'\s+', '', str(raw).replace('세', ''))
    match = _LEADING_INT.match(text)
    if not match:
        return None
    num = int(match.group(1))
    if num >= 65:
        return AGE_BANDS[-1]
    return AGE_BANDS[num // 5]


def get_mapper(dimension: str):
    """Return the mapper function for 'nationality', 'visa' or 'age'."""
    mappers = {
        'nationality': map_nationality,
        'visa': map_visa,
        'age': map_age,
    }
    if dimension not in mappers:
        raise ValueError(f"Unknown dimension: {dimension}")
    return mappers[dimension]
