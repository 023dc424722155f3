from pydantic import BaseModel
from typing import Optional
from core.roles import CompanyRole

class ActiveCompanyContext(BaseModel):
    """Company and role a single request operates under. Never cached."""
    user_id: str
    company_id: str
    company_code: str
    company_name: str
    company_role: Optional[CompanyRole] = None
    is_default_company: bool

class UserCompanyOption(BaseModel):
    company_id: str
    company_code: str
    company_name: str
    role: Optional[CompanyRole] = None
    is_default: bool

class CompanyMember(BaseModel):
    user_id: str
    email: str
    full_name: str
    role: Optional[CompanyRole] = None
    is_default: bool
