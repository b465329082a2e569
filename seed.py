"""Frozen spending figures for years that predate the live ledger.

Reports consult this table before computing anything from entries, so a year
listed here always shows the recorded numbers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

SEED_MONTHLY_TOTALS: dict[int, dict[int, int]] = {
    2021: {
        1: 1_912_821,
        2: 2_447_967,
        3: 2_733_303,
        4: 3_604_292,
        5: 3_296_133,
        6: 6_543_392,
        7: 3_168_767,
        8: 5_845_780,
        9: 5_808_256,
        10: 4_195_728,
        11: 8_088_480,
        12: 6_544_047,
    },
    2022: {
        1: 3_457_690,
        2: 4_962_705,
        3: 4_415_267,
        4: 3_791_832,
        5: 7_916_874,
        6: 2_959_824,
        7: 3_668_153,
        8: 6_857_016,
        9: 4_248_446,
        10: 3_316_013,
        11: 6_618_397,
        12: 3_022_015,
    },
    2023: {
        1: 4_438_777,
        2: 6_165_595,
        3: 6_392_512,
        4: 4_518_908,
        5: 21_500_414,
        6: 5_289_962,
        7: 6_598_211,
        8: 5_121_157,
        9: 9_716_862,
        10: 4_646_830,
        11: 4_026_430,
        12: 2_244_011,
    },
    2024: {
        1: 3_810_447,
        2: 2_050_713,
        3: 3_454_973,
        4: 6_090_800,
        5: 5_051_584,
        6: 5_454_480,
        7: 4_736_392,
        8: 2_706_957,
        9: 4_406_504,
        10: 5_513_457,
        11: 3_374_528,
        12: 3_661_947,
    },
    2025: {
        1: 5_000_342,
        2: 5_408_985,
        3: 2_870_234,
        4: 2_192_752,
        5: 3_627_509,
        6: 9_590_829,
        7: 7_382_242,
        8: 2_396_785,
        9: 9_181_493,
        10: 6_383_739,
        11: 4_018_628,
        12: 4_827_153,
    },
}

# Years recorded only as an annual figure, without itemized entries.
SEED_ANNUAL_TOTALS: dict[int, int] = {
    2024: 50_312_782,
    2025: 62_880_691,
}


@dataclass(frozen=True)
class SeedTable:
    monthly: dict[int, dict[int, int]] = field(default_factory=dict)
    annual: dict[int, int] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "SeedTable":
        return cls()

    def months_for(self, year: int) -> Optional[dict[int, int]]:
        table = self.monthly.get(year)
        if table is None:
            return None
        return {month: int(table.get(month, 0)) for month in range(1, 13)}

    def annual_for(self, year: int) -> Optional[int]:
        return self.annual.get(year)


SEED_TABLE = SeedTable(monthly=SEED_MONTHLY_TOTALS, annual=SEED_ANNUAL_TOTALS)
