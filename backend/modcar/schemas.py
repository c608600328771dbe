from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from modcar.config import settings
from modcar.services.plan_catalog import is_valid_plan, normalize_plan

CPF_RE = re.compile(r"^\d{3}\.\d{3}\.\d{3}-\d{2}$")
CNPJ_RE = re.compile(r"^\d{2}\.\d{3}\.\d{3}/\d{4}-\d{2}$")


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _validate_plan_id(value: str) -> str:
    plan = normalize_plan(value)
    if not is_valid_plan(plan):
        raise ValueError("Plano inválido. Use: turbo, v6 ou v12")
    return plan


def _validate_password(value: str) -> str:
    if len(value or "") < settings.MIN_PASSWORD_LENGTH:
        raise ValueError(f"Senha deve ter no mínimo {settings.MIN_PASSWORD_LENGTH} caracteres")
    return value


# ============================================================
# AUTH
# ============================================================
class LoginRequest(BaseModel):
    email: str
    password: str


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: Optional[str] = None


class MeOut(BaseModel):
    id: str
    email: str
    role: Optional[str] = None
    name: Optional[str] = None


# ============================================================
# PARCEIROS (provisionamento)
# ============================================================
class PartnerCreate(BaseModel):
    name: str = Field(min_length=3)
    email: EmailStr
    company: str = Field(min_length=2)
    password: str
    plan: str

    strip_text = field_validator("name", "company", mode="before")(_strip)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _validate_password(v)

    @field_validator("plan")
    @classmethod
    def check_plan(cls, v: str) -> str:
        return _validate_plan_id(v)


class PartnerOut(BaseModel):
    id: str
    email: str
    name: str
    company: str
    plan: str


class PartnerListItem(BaseModel):
    partner_id: str
    partner_name: Optional[str] = None
    company: Optional[str] = None
    email: Optional[str] = None
    plan: str
    status: str
    start_date: datetime
    renewal_date: Optional[datetime] = None
    monthly_revenue: float
    products_count: int
    users_count: int


# ============================================================
# PRODUTOS
# ============================================================
class VehicleCompatibility(BaseModel):
    brand: str
    model: str
    year: str


class ProductBase(BaseModel):
    code: str = Field(min_length=1, max_length=60)
    name: str = Field(min_length=3, max_length=200)
    category: str = Field(min_length=1)
    brand: str = Field(min_length=1)
    description: Optional[str] = None
    price: float = Field(ge=0)
    stock: int = Field(ge=0)
    compatibility: List[VehicleCompatibility] = []
    technical_specs: Dict[str, Any] = {}

    strip_text = field_validator("code", "name", "category", "brand", mode="before")(_strip)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=3, max_length=200)
    category: Optional[str] = None
    brand: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = Field(default=None, ge=0)
    compatibility: Optional[List[VehicleCompatibility]] = None
    technical_specs: Optional[Dict[str, Any]] = None


class ProductOut(BaseModel):
    id: str
    partner_id: str
    code: str
    name: str
    category: str
    brand: str
    description: Optional[str] = None
    price: float
    stock: int
    images: List[str] = []
    compatibility: List[Dict[str, Any]] = []
    technical_specs: Dict[str, Any] = {}
    status: str
    rejection_reason: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    partner_name: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class StockAdjust(BaseModel):
    quantity_change: int
    notes: Optional[str] = None

    @field_validator("quantity_change")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("quantity_change não pode ser zero")
        return v


class ImportRowError(BaseModel):
    row: int
    errors: List[str]


class ImportResult(BaseModel):
    total_rows: int
    imported: int
    errors: List[ImportRowError] = []


# ============================================================
# MODERAÇÃO
# ============================================================
class RejectRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Informe o motivo da rejeição")
        return v


class BlockRequest(BaseModel):
    reason: str

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Informe o motivo do bloqueio")
        return v


# ============================================================
# CAMPANHAS
# ============================================================
class CampaignOut(BaseModel):
    id: str
    partner_id: str
    partner_name: Optional[str] = None
    title: str
    description: Optional[str] = None
    image_url: str
    link_url: Optional[str] = None
    start_date: date
    end_date: date
    status: str
    impressions: int
    clicks: int
    rejection_reason: Optional[str] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    created_at: datetime


class CampaignFields(BaseModel):
    """
    Campos do formulário de anúncio (multipart). A imagem vem à parte.
    """
    title: str = Field(min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    link_url: Optional[str] = Field(default=None, max_length=500)
    start_date: date
    end_date: date

    strip_text = field_validator("title", "description", "link_url", mode="before")(_strip)

    @field_validator("link_url")
    @classmethod
    def check_url(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL inválida")
        return v

    @model_validator(mode="after")
    def check_range(self) -> "CampaignFields":
        if self.end_date < self.start_date:
            raise ValueError("Data de fim deve ser igual ou posterior à data de início")
        return self


class AdminCampaignFields(CampaignFields):
    partner_id: str = Field(min_length=1)
    status: Literal["pending", "approved", "active"] = "approved"


# ============================================================
# CLIENTES
# ============================================================
class OrderOut(BaseModel):
    id: str
    product_name: str
    quantity: int
    total_price: float
    status: str
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CustomerOut(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    status: str
    blocked_at: Optional[datetime] = None
    blocked_reason: Optional[str] = None
    last_access_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class CustomerDetail(CustomerOut):
    orders: List[OrderOut] = []


# ============================================================
# ERP
# ============================================================
class StockSyncRequest(BaseModel):
    product_code: str = Field(min_length=1)
    quantity_change: int
    erp_reference: str = Field(min_length=1)
    notes: Optional[str] = None


# ============================================================
# EMAIL
# ============================================================
class WelcomeEmailRequest(BaseModel):
    email: EmailStr
    name: str
    companyName: str
    plan: str


# ============================================================
# FUNIL PÚBLICO
# ============================================================
class CheckoutRequest(BaseModel):
    """
    Pagamento SIMULADO: só valida o formato dos dados do cartão.
    """
    card_name: str = Field(min_length=3)
    card_number: str
    expiry: str
    cvv: str

    @field_validator("card_number")
    @classmethod
    def check_number(cls, v: str) -> str:
        digits = re.sub(r"\D", "", v or "")
        if not 13 <= len(digits) <= 19:
            raise ValueError("Número do cartão inválido")
        return digits

    @field_validator("expiry")
    @classmethod
    def check_expiry(cls, v: str) -> str:
        if not re.match(r"^(0[1-9]|1[0-2])/\d{2}$", (v or "").strip()):
            raise ValueError("Validade inválida (MM/AA)")
        return v.strip()

    @field_validator("cvv")
    @classmethod
    def check_cvv(cls, v: str) -> str:
        if not re.match(r"^\d{3,4}$", (v or "").strip()):
            raise ValueError("CVV inválido")
        return v.strip()


class SignupPersonal(BaseModel):
    name: str = Field(min_length=3)
    email: EmailStr
    cpf: str
    phone: str = Field(min_length=10)
    password: str

    strip_text = field_validator("name", "cpf", "phone", mode="before")(_strip)

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, v: str) -> str:
        if not CPF_RE.match(v or ""):
            raise ValueError("CPF inválido")
        return v

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return _validate_password(v)


class SignupCompany(BaseModel):
    companyName: str = Field(min_length=3)
    cnpj: str
    companyEmail: EmailStr
    companyPhone: str = Field(min_length=10)
    address: str = Field(min_length=5)

    strip_text = field_validator("companyName", "cnpj", "companyPhone", "address", mode="before")(_strip)

    @field_validator("cnpj")
    @classmethod
    def check_cnpj(cls, v: str) -> str:
        if not CNPJ_RE.match(v or ""):
            raise ValueError("CNPJ inválido")
        return v


class SignupRequest(BaseModel):
    plan: str
    personal: SignupPersonal
    company: SignupCompany

    @field_validator("plan")
    @classmethod
    def check_plan(cls, v: str) -> str:
        return _validate_plan_id(v)


# ============================================================
# SERIALIZAÇÃO (ORM → saída com nome do parceiro)
# ============================================================
def product_out(product: Any, partner_name: Optional[str] = None) -> ProductOut:
    data = ProductOut.model_validate(product)
    data.partner_name = partner_name
    return data


def campaign_out(campaign: Any, partner_name: Optional[str] = None) -> CampaignOut:
    return CampaignOut(
        id=campaign.id,
        partner_id=campaign.partner_id,
        partner_name=partner_name,
        title=campaign.title,
        description=campaign.description,
        image_url=campaign.image_url,
        link_url=campaign.link_url,
        start_date=campaign.start_date,
        end_date=campaign.end_date,
        status=campaign.effective_status,
        impressions=campaign.impressions or 0,
        clicks=campaign.clicks or 0,
        rejection_reason=campaign.rejection_reason,
        approved_by=campaign.approved_by,
        approved_at=campaign.approved_at,
        created_at=campaign.created_at,
    )
