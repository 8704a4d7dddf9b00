"""
Solar savings calculator.

Sizes a rooftop system from the monthly bill and available roof area, then
projects cost, subsidy, payback, 25-year savings and CO2 avoided using the
regional table in ``solar_config``. Pure and deterministic: no I/O, no
shared state beyond the read-only configuration.
"""
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from solar_config import DEFAULT_REGION, SizeBracket, SolarConfig, load_solar_config

logger = logging.getLogger(__name__)

PROJECTION_YEARS = 25
MONTHS_PER_YEAR = 12


class FinanceOption(str, Enum):
    CASH = "cash"
    LOAN = "loan"


class SolarCalcError(ValueError):
    """Base class for calculator input errors; ``field`` names the offending input."""
    code = "ERR_SOLAR_CALC"
    field: Optional[str] = None


class BillTooLow(SolarCalcError):
    code = "ERR_BILL_RANGE"
    field = "monthlyBill"

    def __init__(self, amount: float, minimum: float):
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"Monthly bill must be at least {minimum:g}")


class RoofTooSmall(SolarCalcError):
    code = "ERR_ROOF_RANGE"
    field = "roofArea"

    def __init__(self, area: float, minimum: float):
        self.area = area
        self.minimum = minimum
        super().__init__(f"Roof area must be at least {minimum:g} sq ft")


class InvalidFinancing(SolarCalcError):
    code = "ERR_FINANCE"

    def __init__(self, message: str, field: str = "financeOption"):
        self.field = field
        super().__init__(message)


class ZeroSavings(SolarCalcError):
    code = "ERR_ZERO_SAVINGS"

    def __init__(self, region: str):
        self.region = region
        super().__init__(f"Region {region!r} yields no savings; payback is undefined")


@dataclass(frozen=True)
class SolarInputs:
    monthly_bill: float
    roof_area: float
    pincode: Optional[str] = None
    state: Optional[str] = None
    finance_option: Union[FinanceOption, str] = FinanceOption.CASH
    down_payment_fraction: Optional[float] = None
    loan_tenure_years: Optional[int] = None


@dataclass
class YearlyProjection:
    """One row of the 25-year projection."""
    year: int
    generation_kwh: float
    savings: float
    cumulative_savings: float
    net_savings: float  # cumulative savings minus net cost
    co2_saved_kg: float


@dataclass
class SolarEstimate:
    region: str
    finance_option: FinanceOption
    units_per_month: float
    units_per_year: float
    demand_kw: float
    roof_kw: float
    system_size_kw: float
    required_roof_area: float
    insufficient_roof: bool
    roof_constrained: bool
    bracket: SizeBracket
    gross_cost: float
    subsidy_amount: float
    net_cost: float
    annual_generation_year1: float
    annual_savings_year1: float
    payback_years: float
    lifetime_savings_25_year: float
    co2_saved_kg: float
    trees_equivalent: float
    tariff_per_unit: float
    yield_per_kw_per_year: float
    monthly_loan_payment: Optional[float] = None
    loan_principal: float = 0.0
    total_loan_interest: float = 0.0
    down_payment_fraction: Optional[float] = None
    loan_tenure_years: Optional[int] = None
    yearly_breakdown: List[YearlyProjection] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        """Rounded, camelCase form returned by the API."""
        return {
            "systemSizeKw": round(self.system_size_kw, 1),
            "requiredRoofArea": round(self.required_roof_area),
            "grossCost": round(self.gross_cost),
            "subsidyAmount": round(self.subsidy_amount),
            "netCost": round(self.net_cost),
            "paybackYears": round(self.payback_years, 1),
            "annualSavingsYear1": round(self.annual_savings_year1),
            "lifetimeSavings25Year": round(self.lifetime_savings_25_year),
            "co2SavedKg": round(self.co2_saved_kg),
            "treesEquivalent": round(self.trees_equivalent),
            "monthlyLoanPayment": (
                round(self.monthly_loan_payment) if self.monthly_loan_payment is not None else None
            ),
            "flags": {
                "insufficientRoof": self.insufficient_roof,
                "roofConstrained": self.roof_constrained,
            },
            "details": {
                "region": self.region,
                "financeOption": self.finance_option.value,
                "tariff": self.tariff_per_unit,
                "yield": self.yield_per_kw_per_year,
                "unitsMonth": round(self.units_per_month, 1),
                "unitsYear": round(self.units_per_year, 1),
                "demandKw": round(self.demand_kw, 2),
                "roofKw": round(self.roof_kw, 2),
                "bracket": self.bracket.label,
                "costPerKw": self.bracket.cost_per_kw,
                "subsidyPerKw": self.bracket.subsidy_per_kw,
                "annualGenerationYear1": round(self.annual_generation_year1),
                "loanPrincipal": round(self.loan_principal),
                "totalLoanInterest": round(self.total_loan_interest),
                "downPaymentPercent": self.down_payment_fraction,
                "tenureYears": self.loan_tenure_years,
            },
            "yearlyBreakdown": [
                {
                    "year": row.year,
                    "generation": round(row.generation_kwh),
                    "savings": round(row.savings),
                    "cumulativeSavings": round(row.cumulative_savings),
                    "netSavings": round(row.net_savings),
                    "co2Saved": round(row.co2_saved_kg),
                }
                for row in self.yearly_breakdown
            ],
        }


def resolve_region(pincode: Optional[str] = None, state: Optional[str] = None,
                   config: Optional[SolarConfig] = None) -> str:
    """Map a state name or PIN code to a region key; never fails."""
    config = config or load_solar_config()
    if state and state.strip():
        wanted = state.strip().lower()
        for key in config.regions:
            if key.lower() == wanted:
                return key
    if pincode is not None:
        digits = str(pincode).strip()
        if digits[:1].isdigit():
            key = config.pincode_regions.get(digits[0])
            if key in config.regions:
                return key
    return DEFAULT_REGION


def monthly_payment(principal: float, annual_rate: float, months: int) -> float:
    """Amortized monthly payment; linear when the rate is zero."""
    if months <= 0:
        raise ValueError("months must be positive")
    if principal <= 0:
        return 0.0
    rate = annual_rate / MONTHS_PER_YEAR
    if rate == 0:
        return principal / months
    growth = (1 + rate) ** months
    return principal * rate * growth / (growth - 1)


def _check_amounts(inputs: SolarInputs, config: SolarConfig) -> None:
    bill = inputs.monthly_bill
    if bill is None or not math.isfinite(bill) or bill < config.min_monthly_bill:
        raise BillTooLow(bill, config.min_monthly_bill)
    roof = inputs.roof_area
    if roof is None or not math.isfinite(roof) or roof < config.min_roof_area:
        raise RoofTooSmall(roof, config.min_roof_area)


def _finance_terms(inputs: SolarInputs, config: SolarConfig):
    try:
        option = FinanceOption(inputs.finance_option)
    except ValueError:
        raise InvalidFinancing(f"Unknown finance option {inputs.finance_option!r}") from None
    if option is FinanceOption.CASH:
        return option, None, None

    down_payment = inputs.down_payment_fraction
    if down_payment is None:
        down_payment = config.default_down_payment
    if not math.isfinite(down_payment) or not 0 <= down_payment <= 1:
        raise InvalidFinancing("Down payment must be between 0 and 1", field="downPaymentPercent")

    tenure = inputs.loan_tenure_years
    if tenure is None:
        tenure = config.default_tenure_years
    if isinstance(tenure, bool) or not float(tenure).is_integer() or tenure < 1:
        raise InvalidFinancing("Loan tenure must be a whole number of years (at least 1)",
                               field="tenureYears")
    return option, down_payment, int(tenure)


def calculate(inputs: SolarInputs, config: Optional[SolarConfig] = None) -> SolarEstimate:
    """Size a system and project its economics. Raises ``SolarCalcError`` subclasses."""
    config = config or load_solar_config()
    _check_amounts(inputs, config)
    option, down_payment, tenure = _finance_terms(inputs, config)

    region_key = resolve_region(inputs.pincode, inputs.state, config)
    region = config.region(region_key)
    tariff = region.tariff_per_unit
    specific_yield = region.yield_per_kw_per_year
    if tariff <= 0 or specific_yield <= 0:
        raise ZeroSavings(region_key)

    units_per_month = inputs.monthly_bill / tariff
    units_per_year = units_per_month * MONTHS_PER_YEAR
    demand_kw = units_per_year / specific_yield
    roof_kw = inputs.roof_area / region.area_per_kw
    system_kw = max(1.0, min(demand_kw, roof_kw))

    bracket = region.bracket_for(system_kw)
    gross_cost = system_kw * bracket.cost_per_kw
    subsidy = system_kw * bracket.subsidy_per_kw
    net_cost = gross_cost - subsidy

    generation_year1 = system_kw * specific_yield
    savings_year1 = generation_year1 * tariff
    if savings_year1 <= 0:
        raise ZeroSavings(region_key)
    payback_years = net_cost / savings_year1

    lifetime_savings = 0.0
    co2_saved = 0.0
    breakdown: List[YearlyProjection] = []
    for n in range(PROJECTION_YEARS):
        generation = generation_year1 * (1 - region.panel_degradation_rate) ** n
        savings = generation * tariff * (1 + region.tariff_escalation_rate) ** n
        lifetime_savings += savings
        co2_saved += generation * region.co2_factor_per_unit
        breakdown.append(YearlyProjection(
            year=n + 1,
            generation_kwh=generation,
            savings=savings,
            cumulative_savings=lifetime_savings,
            net_savings=lifetime_savings - net_cost,
            co2_saved_kg=co2_saved,
        ))

    estimate = SolarEstimate(
        region=region_key,
        finance_option=option,
        units_per_month=units_per_month,
        units_per_year=units_per_year,
        demand_kw=demand_kw,
        roof_kw=roof_kw,
        system_size_kw=system_kw,
        required_roof_area=system_kw * region.area_per_kw,
        insufficient_roof=roof_kw < 1,
        roof_constrained=roof_kw < demand_kw,
        bracket=bracket,
        gross_cost=gross_cost,
        subsidy_amount=subsidy,
        net_cost=net_cost,
        annual_generation_year1=generation_year1,
        annual_savings_year1=savings_year1,
        payback_years=payback_years,
        lifetime_savings_25_year=lifetime_savings,
        co2_saved_kg=co2_saved,
        trees_equivalent=co2_saved / config.kg_co2_per_tree_year,
        tariff_per_unit=tariff,
        yield_per_kw_per_year=specific_yield,
        yearly_breakdown=breakdown,
    )

    if option is FinanceOption.LOAN:
        months = tenure * MONTHS_PER_YEAR
        principal = net_cost * (1 - down_payment)
        payment = monthly_payment(principal, region.loan_interest_rate, months)
        estimate.loan_principal = principal
        estimate.monthly_loan_payment = payment
        estimate.total_loan_interest = payment * months - principal
        estimate.down_payment_fraction = down_payment
        estimate.loan_tenure_years = tenure

    logger.debug("Solar estimate for %s: %.2f kW, net cost %.0f", region_key, system_kw, net_cost)
    return estimate
