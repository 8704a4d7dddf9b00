"""
Regional configuration for the solar savings calculator.

Tariffs (INR/kWh), specific yield (kWh per kW per year), installed cost and
subsidy brackets per kW, and long-run rates. Regions are stored as overrides
on the ``Default`` entry, which is also the fallback for unknown locations.

A JSON file can replace the built-in table: point SOLAR_CONFIG_PATH at it
(or pass a path to ``load_solar_config``). Region entries in that file only
need the keys that differ from its ``Default`` region.
"""
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)

DEFAULT_REGION = "Default"


class SizeBracket(BaseModel):
    """Cost and subsidy for systems up to ``max_kw`` (open-ended when None)."""
    model_config = ConfigDict(frozen=True)

    label: str
    max_kw: Optional[float] = Field(None, gt=0)
    cost_per_kw: float = Field(..., gt=0, description="Installed cost per kW")
    subsidy_per_kw: float = Field(0, ge=0, description="Subsidy per kW")

    @model_validator(mode="after")
    def _subsidy_within_cost(self):
        if self.subsidy_per_kw > self.cost_per_kw:
            raise ValueError(f"subsidy exceeds cost in bracket {self.label!r}")
        return self


class RegionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    tariff_per_unit: float = Field(..., ge=0, description="Grid tariff per kWh")
    yield_per_kw_per_year: float = Field(..., ge=0, description="kWh generated per kW per year")
    area_per_kw: float = Field(..., gt=0, description="Roof area (sq ft) needed per kW")
    brackets: List[SizeBracket]
    panel_degradation_rate: float = Field(0.005, ge=0, lt=1)
    tariff_escalation_rate: float = Field(0.05, ge=0)
    co2_factor_per_unit: float = Field(0.82, ge=0, description="kg CO2 avoided per kWh")
    loan_interest_rate: float = Field(0.09, ge=0, description="Annual loan interest rate")

    @field_validator("brackets")
    @classmethod
    def _brackets_ordered(cls, brackets: List[SizeBracket]) -> List[SizeBracket]:
        if not brackets:
            raise ValueError("at least one size bracket is required")
        if any(b.max_kw is None for b in brackets[:-1]):
            raise ValueError("only the last bracket may be open-ended")
        bounded = [b.max_kw for b in brackets if b.max_kw is not None]
        if bounded != sorted(bounded):
            raise ValueError("brackets must be ordered by max_kw")
        return brackets

    def bracket_for(self, system_kw: float) -> SizeBracket:
        for bracket in self.brackets:
            if bracket.max_kw is None or system_kw <= bracket.max_kw:
                return bracket
        # sizes beyond a bounded last bracket are priced by it
        return self.brackets[-1]


class SolarConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_monthly_bill: float = Field(300, ge=0)
    min_roof_area: float = Field(50, ge=0)
    default_down_payment: float = Field(0.2, ge=0, le=1)
    default_tenure_years: int = Field(5, ge=1)
    kg_co2_per_tree_year: float = Field(22, gt=0)
    # first digit of a PIN code -> region key
    pincode_regions: Dict[str, str] = Field(default_factory=dict)
    regions: Dict[str, RegionConfig]

    @field_validator("regions")
    @classmethod
    def _has_default(cls, regions: Dict[str, RegionConfig]) -> Dict[str, RegionConfig]:
        if DEFAULT_REGION not in regions:
            raise ValueError(f"regions must include a {DEFAULT_REGION!r} entry")
        return regions

    def region(self, key: str) -> RegionConfig:
        return self.regions.get(key, self.regions[DEFAULT_REGION])


_DEFAULT_BRACKETS = [
    {"label": "<=3", "max_kw": 3, "cost_per_kw": 60000, "subsidy_per_kw": 14588},
    {"label": "4-10", "max_kw": 10, "cost_per_kw": 55000, "subsidy_per_kw": 7294},
    {"label": ">10", "max_kw": None, "cost_per_kw": 50000, "subsidy_per_kw": 0},
]

BUILTIN_CONFIG: Dict[str, Any] = {
    "min_monthly_bill": 300,
    "min_roof_area": 50,
    "pincode_regions": {
        "0": "Delhi",
        "1": "Delhi",
        "2": "Rajasthan",
        "3": "Gujarat",
        "4": "Maharashtra",
        "5": "Maharashtra",
        "6": "Gujarat",
        "7": "Maharashtra",
        "8": "Gujarat",
        "9": "Rajasthan",
    },
    "regions": {
        DEFAULT_REGION: {
            "tariff_per_unit": 8.0,
            "yield_per_kw_per_year": 1500,
            "area_per_kw": 100,
            "brackets": _DEFAULT_BRACKETS,
            "panel_degradation_rate": 0.005,
            "tariff_escalation_rate": 0.05,
            "co2_factor_per_unit": 0.82,
            "loan_interest_rate": 0.09,
        },
        "Delhi": {"tariff_per_unit": 7.5, "yield_per_kw_per_year": 1450},
        "Rajasthan": {"tariff_per_unit": 7.0, "yield_per_kw_per_year": 1700},
        "Gujarat": {"tariff_per_unit": 6.5, "yield_per_kw_per_year": 1600, "loan_interest_rate": 0.085},
        "Maharashtra": {"tariff_per_unit": 9.5, "yield_per_kw_per_year": 1450},
    },
}


def build_config(data: Dict[str, Any]) -> SolarConfig:
    """Validate raw config data, filling each region from the Default entry."""
    raw_regions = data.get("regions") or {}
    if DEFAULT_REGION not in raw_regions:
        raise ValueError(f"regions must include a {DEFAULT_REGION!r} entry")
    base = dict(raw_regions[DEFAULT_REGION])
    regions = {
        key: base if key == DEFAULT_REGION else {**base, **overrides}
        for key, overrides in raw_regions.items()
    }
    return SolarConfig.model_validate({**data, "regions": regions})


@lru_cache(maxsize=None)
def _load(path: Optional[str]) -> SolarConfig:
    if path is None:
        return build_config(BUILTIN_CONFIG)
    logger.info("Loading solar configuration from %s", path)
    with open(path, encoding="utf-8") as handle:
        return build_config(json.load(handle))


def load_solar_config(path: Union[str, Path, None] = None) -> SolarConfig:
    """Return the configuration table (cached per source)."""
    source = path or os.getenv("SOLAR_CONFIG_PATH") or None
    return _load(str(source) if source else None)
