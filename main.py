import os
import hashlib
import json
import logging
from typing import Dict, Any

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
from api_features import paginated_response
from content_types import get_content_type
from schemas import Calculation, SolarCalcRequest, PaginatedResponse, Stat
from solar_calc import SolarCalcError, SolarEstimate, calculate

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger("solar_api")

app = FastAPI(title="Cosmic Solar Content API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGIN", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _json_with_cache(payload: Dict[str, Any], ttl: int = 900, status_code: int = 200) -> JSONResponse:
    data_bytes = json.dumps(payload, sort_keys=True, default=str).encode()
    etag = hashlib.md5(data_bytes).hexdigest()
    headers = {
        "Cache-Control": f"public, max-age={ttl}",
        "ETag": etag,
    }
    return JSONResponse(content=payload, headers=headers, status_code=status_code)


@app.exception_handler(SolarCalcError)
def solar_calc_error_handler(request: Request, exc: SolarCalcError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": exc.code, "field": exc.field, "message": str(exc)},
    )


@app.get("/")
def root():
    return {"service": "Cosmic Solar Content API", "status": "ok"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Connected"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except Exception as e:
        logger.warning("Database diagnostics failed: %s", e)
        response["database"] = f"⚠️ Error: {str(e)[:100]}"
    return response


@app.get("/api/stats")
def get_stats():
    # Use a single document in "stat" collection
    if database.db is None:
        raise HTTPException(503, "Database not configured")
    stat = Stat.model_validate(database.db["stat"].find_one({}) or {})
    return _json_with_cache({
        "calculations": stat.calculations,
        "co2_saved_tons": round(stat.co2_saved_tons, 2),
    }, ttl=120)


@app.get("/api/content/{content_type}", response_model=PaginatedResponse)
def list_content(content_type: str, request: Request):
    try:
        content = get_content_type(content_type)
    except KeyError:
        raise HTTPException(404, f"Unknown content type: {content_type}")
    if database.db is None:
        raise HTTPException(503, "Database not configured")

    spec = content.query(request.query_params)
    payload = paginated_response(database.db[content.collection], spec)
    return _json_with_cache(payload, ttl=60)


def _record_calculation(body: SolarCalcRequest, estimate: SolarEstimate) -> None:
    if database.db is None:
        return
    calc = Calculation(
        region=estimate.region,
        pincode=body.pincode,
        monthly_bill=body.monthly_bill,
        roof_area=body.roof_area,
        finance_option=estimate.finance_option.value,
        system_kw=round(estimate.system_size_kw, 2),
        net_cost=round(estimate.net_cost),
        annual_savings=round(estimate.annual_savings_year1),
        payback_years=round(estimate.payback_years, 1),
        co2_saved_kg=round(estimate.co2_saved_kg),
        payload=body.model_dump(by_alias=True),
    )
    try:
        database.create_document("calculation", calc)
        database.db["stat"].update_one(
            {},
            {"$inc": {"calculations": 1, "co2_saved_tons": estimate.co2_saved_kg / 1000}},
            upsert=True,
        )
    except Exception:
        # the estimate is still returned when storage is down
        logger.exception("Failed to record solar calculation")


@app.post("/api/calc/solar")
def solar_calc(body: SolarCalcRequest):
    estimate = calculate(body.to_inputs())
    _record_calculation(body, estimate)
    return _json_with_cache({"success": True, "data": estimate.summary()}, ttl=0)
