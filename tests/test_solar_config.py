"""
Tests for the regional solar configuration table.
"""
import json

import pytest
from pydantic import ValidationError

import solar_config
from solar_config import (
    BUILTIN_CONFIG,
    DEFAULT_REGION,
    RegionConfig,
    SizeBracket,
    build_config,
    load_solar_config,
)


@pytest.fixture(autouse=True)
def clear_config_cache():
    solar_config._load.cache_clear()
    yield
    solar_config._load.cache_clear()


def test_builtin_default_region():
    config = load_solar_config()
    default = config.region(DEFAULT_REGION)

    assert default.tariff_per_unit == 8
    assert default.yield_per_kw_per_year == 1500
    assert default.area_per_kw == 100
    assert [b.label for b in default.brackets] == ["<=3", "4-10", ">10"]


def test_regions_inherit_from_default():
    config = load_solar_config()
    delhi = config.region("Delhi")

    assert delhi.tariff_per_unit == 7.5
    assert delhi.brackets == config.region(DEFAULT_REGION).brackets
    assert delhi.loan_interest_rate == config.region(DEFAULT_REGION).loan_interest_rate


def test_unknown_region_returns_default():
    config = load_solar_config()

    assert config.region("Atlantis") is config.region(DEFAULT_REGION)


def test_missing_default_region_is_rejected():
    data = dict(BUILTIN_CONFIG, regions={"Delhi": BUILTIN_CONFIG["regions"]["Delhi"]})

    with pytest.raises(ValueError):
        build_config(data)


@pytest.mark.parametrize("size,label", [(1, "<=3"), (3, "<=3"), (3.01, "4-10"), (10, "4-10"), (10.5, ">10")])
def test_bracket_boundaries(size, label):
    region = load_solar_config().region(DEFAULT_REGION)

    assert region.bracket_for(size).label == label


def test_bounded_last_bracket_prices_larger_systems():
    region = RegionConfig(
        tariff_per_unit=8,
        yield_per_kw_per_year=1500,
        area_per_kw=100,
        brackets=[SizeBracket(label="small", max_kw=5, cost_per_kw=60000)],
    )

    assert region.bracket_for(50).label == "small"


def test_brackets_must_be_ordered():
    with pytest.raises(ValidationError):
        RegionConfig(
            tariff_per_unit=8,
            yield_per_kw_per_year=1500,
            area_per_kw=100,
            brackets=[
                SizeBracket(label="b", max_kw=10, cost_per_kw=55000),
                SizeBracket(label="a", max_kw=3, cost_per_kw=60000),
            ],
        )


def test_bounded_last_bracket_is_checked_for_order():
    data = json.loads(json.dumps(BUILTIN_CONFIG))
    data["regions"][DEFAULT_REGION]["brackets"] = [
        {"label": "<=3", "max_kw": 3, "cost_per_kw": 60000},
        {"label": "4-10", "max_kw": 10, "cost_per_kw": 55000},
        {"label": "<=5", "max_kw": 5, "cost_per_kw": 58000},
    ]

    with pytest.raises(ValidationError):
        build_config(data)


def test_open_bracket_must_be_last():
    with pytest.raises(ValidationError):
        RegionConfig(
            tariff_per_unit=8,
            yield_per_kw_per_year=1500,
            area_per_kw=100,
            brackets=[
                SizeBracket(label="open", cost_per_kw=50000),
                SizeBracket(label="small", max_kw=3, cost_per_kw=60000),
            ],
        )


def test_subsidy_cannot_exceed_cost():
    with pytest.raises(ValidationError):
        SizeBracket(label="bad", max_kw=3, cost_per_kw=1000, subsidy_per_kw=2000)


def test_load_from_json_file(tmp_path):
    path = tmp_path / "solar.json"
    data = json.loads(json.dumps(BUILTIN_CONFIG))
    data["min_monthly_bill"] = 500
    data["regions"]["Kerala"] = {"tariff_per_unit": 6.0}
    path.write_text(json.dumps(data), encoding="utf-8")

    config = load_solar_config(path)

    assert config.min_monthly_bill == 500
    assert config.region("Kerala").tariff_per_unit == 6.0
    assert config.region("Kerala").yield_per_kw_per_year == 1500


def test_load_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "solar.json"
    data = json.loads(json.dumps(BUILTIN_CONFIG))
    data["min_roof_area"] = 80
    path.write_text(json.dumps(data), encoding="utf-8")
    monkeypatch.setenv("SOLAR_CONFIG_PATH", str(path))

    assert load_solar_config().min_roof_area == 80


def test_config_is_cached():
    assert load_solar_config() is load_solar_config()
