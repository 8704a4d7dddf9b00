"""
Database Schemas

Each Pydantic model corresponds to a MongoDB collection with the
collection name equal to the lowercase class name. Request/response
models for the API live at the bottom.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal

from solar_calc import SolarInputs

class Stat(BaseModel):
    calculations: int = Field(0, description="Total number of solar calculations performed")
    co2_saved_tons: float = Field(0, description="Projected 25-year CO2 savings across all calculations")

class Calculation(BaseModel):
    region: str
    pincode: Optional[str] = None
    monthly_bill: float
    roof_area: float
    finance_option: str
    system_kw: float
    net_cost: float
    annual_savings: float
    payback_years: float
    co2_saved_kg: float
    payload: Optional[Dict[str, Any]] = None

# API models

class SolarCalcRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pincode: Optional[str] = Field(None, description="6-digit PIN code")
    state: Optional[str] = Field(None, description="State name; takes precedence over the PIN code")
    monthly_bill: float = Field(..., alias="monthlyBill", description="Average monthly bill in INR")
    roof_area: float = Field(..., alias="roofArea", description="Usable roof area in sq ft")
    finance_option: Literal["cash", "loan"] = Field("cash", alias="financeOption")
    down_payment_percent: Optional[float] = Field(
        None, alias="downPaymentPercent", description="Down payment as a fraction (0.2 = 20%)"
    )
    tenure_years: Optional[int] = Field(None, alias="tenureYears")

    def to_inputs(self) -> SolarInputs:
        return SolarInputs(
            monthly_bill=self.monthly_bill,
            roof_area=self.roof_area,
            pincode=self.pincode,
            state=self.state,
            finance_option=self.finance_option,
            down_payment_fraction=self.down_payment_percent,
            loan_tenure_years=self.tenure_years,
        )

class Pagination(BaseModel):
    page: int
    limit: int
    totalPages: int

class PaginatedResponse(BaseModel):
    success: bool = True
    count: int
    total: int
    pagination: Pagination
    data: List[Dict[str, Any]]
