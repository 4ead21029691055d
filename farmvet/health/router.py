from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from farmvet.health.service import health_supabase_info
from farmvet.payments.service import gateways_status
from farmvet.utils.rate_limit import rate_limit_health_info

router = APIRouter(prefix="/health", tags=["Health"])

@router.get("")
def health_root():
    return {"ok": True}

@router.get("/gateways")
def health_gateways(request: Request):
    return JSONResponse({"gateways": gateways_status(), "rateLimit": rate_limit_health_info(request)})

@router.get("/supabase")
def health_supabase():
    return JSONResponse(health_supabase_info())
