"""
MEDREG API Server

FastAPI surface over the patient report registry:
- Ed25519 auth (from auth.py) supplies the caller identity
- Registry deploy (first caller becomes the permanent owner)
- Owner-only, write-once report inserts
- Public report and owner reads
- Witness chain of insert notifications (tamper-evident audit)

Run: uvicorn medreg.api_server:app --reload
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from medreg.auth import AccountAuth
from medreg.config import MEDREG_VERSION, get_cors_origins, get_db_path, https_enforced
from medreg.errors import AccessDenied, AlreadyDeployed, AlreadyExists, InvalidPatientId, NotDeployed
from medreg.logger import get_logger
from medreg.models import RegistryAction
from medreg.observability import configure_observability, instrument_app
from medreg.registry import Registry
from medreg.witness import WitnessChain

logger = get_logger(__name__)

# =============================================================================
# SETUP
# =============================================================================

DB_PATH = get_db_path()
DB_PATH.parent.mkdir(parents=True, exist_ok=True)

_auth = AccountAuth(db_path=DB_PATH)
_witness = WitnessChain(db_path=DB_PATH)
_registry: Optional[Registry] = None


def _attached_registry() -> Optional[Registry]:
    """Cached deployment handle, attached lazily once someone has deployed."""
    global _registry
    if _registry is None:
        try:
            _registry = Registry.open(DB_PATH)
        except NotDeployed:
            return None
    return _registry


def get_registry() -> Registry:
    registry = _attached_registry()
    if registry is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Registry not deployed. Use POST /registry/deploy first.",
        )
    return registry

# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    public_key_hex: str

class ChallengeRequest(BaseModel):
    address: str

class VerifyRequest(BaseModel):
    address: str
    signature_hex: str

class AddReportRequest(BaseModel):
    report_data: str

class OwnerResponse(BaseModel):
    owner: str

class ReportResponse(BaseModel):
    patient_id: int
    report_data: str
    exists: bool

class NotificationResponse(BaseModel):
    patient_id: int
    added_by: str
    hash: Optional[str] = None
    timestamp: Optional[str] = None

# =============================================================================
# AUTH DEPENDENCY
# =============================================================================

async def get_current_caller(authorization: Optional[str] = Header(None)) -> str:
    """Caller identity (account address) from a bearer JWT."""
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    token = authorization[7:] if authorization.startswith("Bearer ") else authorization
    payload = _auth.verify_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    account = _auth.get_account(payload["sub"])
    if not account:
        raise HTTPException(status_code=401, detail="Account not found")
    return account.address

# =============================================================================
# APP
# =============================================================================

configure_observability()

app = FastAPI(
    title="MEDREG -- Patient Report Registry",
    description="Owner-gated, write-once registry of patient reports with a public audit trail",
    version=MEDREG_VERSION,
    docs_url="/docs",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With"],
)

instrument_app(app)


@app.middleware("http")
async def enforce_https(request: Request, call_next):
    if https_enforced() and request.headers.get("x-forwarded-proto") != "https":
        return JSONResponse(status_code=400, content={"detail": "HTTPS required"})
    return await call_next(request)

# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post("/auth/register")
async def register_account(req: RegisterRequest):
    try:
        address = _auth.register(req.name, req.public_key_hex)
    except ValueError as e:
        detail = str(e)
        code = 409 if "already registered" in detail else 400
        raise HTTPException(status_code=code, detail=detail)
    return {"address": address, "name": req.name}


@app.post("/auth/challenge")
async def create_challenge(req: ChallengeRequest):
    try:
        challenge = _auth.create_challenge(req.address)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"address": req.address, "challenge_hex": challenge.hex()}


@app.post("/auth/verify")
async def verify_challenge(req: VerifyRequest):
    result = _auth.verify_challenge(req.address, req.signature_hex)
    if not result.success:
        raise HTTPException(status_code=401, detail=result.error)
    return {"address": req.address, "token": result.token, "expires_at": result.expires_at}

# =============================================================================
# REGISTRY
# =============================================================================

@app.post("/registry/deploy", response_model=OwnerResponse, status_code=201)
async def deploy_registry(caller: str = Depends(get_current_caller)):
    global _registry
    try:
        _registry = Registry.deploy(caller, DB_PATH)
    except AlreadyDeployed as e:
        raise HTTPException(status_code=409, detail=str(e))
    return OwnerResponse(owner=_registry.owner)


@app.get("/registry/owner", response_model=OwnerResponse)
async def registry_owner():
    return OwnerResponse(owner=get_registry().get_owner())

# =============================================================================
# REPORTS
# =============================================================================

@app.post("/reports/{patient_id}", response_model=NotificationResponse, status_code=201)
async def add_report(patient_id: int, req: AddReportRequest,
                     caller: str = Depends(get_current_caller)):
    registry = get_registry()
    try:
        notification = registry.add_report(caller, patient_id, req.report_data)
    except AccessDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except AlreadyExists as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidPatientId as e:
        raise HTTPException(status_code=400, detail=str(e))
    return NotificationResponse(**notification.to_dict())


@app.get("/reports/{patient_id}", response_model=ReportResponse)
async def get_report(patient_id: int):
    record = get_registry().get_record(patient_id)
    return ReportResponse(
        patient_id=patient_id,
        report_data=record.report_data if record else "",
        exists=record is not None,
    )

# =============================================================================
# WITNESS / AUDIT
# =============================================================================

@app.get("/notifications")
async def notification_entries(limit: int = Query(50, ge=1, le=500), offset: int = Query(0, ge=0),
                               patient_id: Optional[int] = None) -> List[Dict[str, Any]]:
    return _witness.list_entries(
        content_id=str(patient_id) if patient_id is not None else None,
        action=RegistryAction.REPORT_ADDED.value,
        limit=limit,
        offset=offset,
    )


@app.get("/notifications/verify")
async def verify_notifications():
    entries = _witness.all_entries()
    return {"valid": _witness.verify_chain(entries), "entries": len(entries)}

# =============================================================================
# HEALTH
# =============================================================================

@app.get("/health")
async def health():
    registry = _attached_registry()
    return {"status": "healthy", "platform": "MEDREG", "version": MEDREG_VERSION,
            "deployed": registry is not None,
            "reports": registry.report_count() if registry else 0,
            "notifications": _witness.count(action=RegistryAction.REPORT_ADDED.value),
            "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/")
async def root():
    return {
        "name": "MEDREG -- Patient Report Registry",
        "version": MEDREG_VERSION,
        "docs": "/docs",
        "owner": "/registry/owner",
        "notifications": "/notifications",
    }


def main() -> None:
    import uvicorn
    from medreg.config import SERVER_HOST, SERVER_PORT

    uvicorn.run(app, host=SERVER_HOST, port=SERVER_PORT)


if __name__ == "__main__":
    main()
