# app/main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from core.config import settings
from core.guard import RouteGuardMiddleware
from api.v1.auth import router as auth_router
from api.v1.companies import router as companies_router
from api.v1.company_members import router as company_members_router
from api.mobile.v1.auth import router as mobile_auth_router
from api.mobile.v1.employee_portal import router as mobile_portal_router
from api.pages import router as pages_router

app = FastAPI(title="Payroll HR API", version="1.0")


origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()]

app.add_middleware(RouteGuardMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins or ["*"],
    allow_credentials="*" not in origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health(): return {"ok": True}

app.include_router(auth_router)
app.include_router(companies_router)
app.include_router(company_members_router)
app.include_router(mobile_auth_router)
app.include_router(mobile_portal_router)
# page routes last: "/{company_id}/..." must not shadow anything above
app.include_router(pages_router)
