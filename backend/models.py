from pydantic import BaseModel, EmailStr, Field, ConfigDict, AliasChoices, field_validator
from typing import Optional, Dict, Any, List, Literal
from datetime import datetime, timezone
from enum import Enum
import re
import uuid

# ============================================================================
# CONSTANTS
# ============================================================================

PROVIDER_NAME = "3PL Vision"
PROVIDER_LEGAL_NAME = "3PLVisions LLC"
PROVIDER_EMAIL = "info@3plvision.com"
PROVIDER_PHONE = "+1 (555) 123-4567"

WALMART_RETURNS_STREET = "295 Whitehead Road"
WALMART_RETURNS_CITY = "Hamilton NJ 08619"

STE_CODE_BASE = 9000


def build_walmart_address(seller_name: Optional[str], ste_code: Optional[str]) -> str:
    """Walmart return address assigned to a seller (one line per address line)."""
    name = seller_name or "Seller Name"
    return f"{name} - WMT Returns - STE-{ste_code}\n{WALMART_RETURNS_STREET}\n{WALMART_RETURNS_CITY}"


def agreement_filename(seller_name: Optional[str], ste_code: Optional[str]) -> str:
    return f"3PL-Agreement-{seller_name or 'Seller'}-STE-{ste_code or 'XXXX'}.pdf"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class AuditAction(str, Enum):
    # Intake
    SELLER_SUBMITTED = "SELLER_SUBMITTED"

    # Agreement
    AGREEMENT_GENERATED = "AGREEMENT_GENERATED"
    AGREEMENT_GENERATION_FAILED = "AGREEMENT_GENERATION_FAILED"

    # Dropbox / KYC
    DROPBOX_AUTH_STARTED = "DROPBOX_AUTH_STARTED"
    DROPBOX_AUTHORIZED = "DROPBOX_AUTHORIZED"
    DROPBOX_AUTH_FAILED = "DROPBOX_AUTH_FAILED"
    DROPBOX_REVOKED = "DROPBOX_REVOKED"
    KYC_FILE_REQUEST_CREATED = "KYC_FILE_REQUEST_CREATED"
    KYC_SHARED_LINK_CREATED = "KYC_SHARED_LINK_CREATED"
    KYC_FILE_REQUEST_FAILED = "KYC_FILE_REQUEST_FAILED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"

class EmailTemplateAlias(str, Enum):
    AGREEMENT_SELLER = "agreement-seller"
    AGREEMENT_COPY = "agreement-copy"

# ============================================================================
# SELLER INTAKE
# ============================================================================

_UNSAFE_PROTOCOLS = re.compile(r"javascript:|data:", re.IGNORECASE)


def sanitize_input(value: str) -> str:
    """Strip markup characters and script/data protocols; cap length at 1000."""
    cleaned = value.replace("<", "").replace(">", "")
    cleaned = _UNSAFE_PROTOCOLS.sub("", cleaned)
    return cleaned[:1000].strip()

class SellerContext(BaseModel):
    """Seller form fields carried through the Dropbox OAuth round trip."""
    model_config = ConfigDict(extra="ignore")

    seller_name: Optional[str] = None
    email: Optional[str] = None
    ste_code: Optional[str] = None
    business_name: Optional[str] = None
    contact_name: Optional[str] = None
    primary_phone: Optional[str] = None
    seller_logo: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: Optional[str] = None
    country: Optional[str] = None
    store_type: Optional[str] = None
    comments: Optional[str] = None
    walmart_address: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _normalize(cls, value):
        return _blank_to_none(value)

class SellerSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore")

    seller_name: str = Field(..., min_length=1)
    contact_name: str = Field(..., min_length=1)
    email: EmailStr
    primary_phone: str = Field(..., min_length=1)
    business_name: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zipcode: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    store_type: str = Field(..., min_length=1)
    seller_logo: Optional[str] = None
    comments: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _sanitize(cls, value):
        if isinstance(value, str):
            value = sanitize_input(value)
            return value or None
        return value

    @field_validator("seller_logo")
    @classmethod
    def _logo_is_url(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.startswith("http"):
            raise ValueError("Logo URL must start with http:// or https://")
        return value

class SellerRecord(SellerSubmission):
    seller_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    ste_code: str
    walmart_address: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================================
# AGREEMENT
# ============================================================================

class AgreementRequest(BaseModel):
    """Input to agreement generation. Every field is optional; the PDF shows N/A for gaps."""
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True, extra="ignore")

    seller_name: Optional[str] = Field(None, max_length=200)
    business_name: Optional[str] = Field(None, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=50)
    gst_number: Optional[str] = Field(None, max_length=50)
    ste_code: Optional[str] = Field(None, pattern=r"^[A-Za-z0-9-]{1,20}$")
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    zipcode: Optional[str] = Field(None, max_length=20)
    country: Optional[str] = Field(None, max_length=100)
    walmart_address: Optional[str] = Field(None, max_length=500)
    signature_data: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _normalize(cls, value):
        return _blank_to_none(value)

    @property
    def is_signed(self) -> bool:
        return bool(self.signature_data)

    @property
    def postal_address(self) -> Optional[str]:
        region = " ".join(part for part in (self.state, self.zipcode) if part)
        parts = [part for part in (self.address, self.city, region, self.country) if part]
        return ", ".join(parts) or None

    @property
    def return_address(self) -> str:
        return self.walmart_address or build_walmart_address(self.seller_name, self.ste_code or "XXXX")

    @property
    def filename(self) -> str:
        return agreement_filename(self.seller_name, self.ste_code)

class AgreementEnvelope(BaseModel):
    pdf_base64: str
    filename: str

# ============================================================================
# DROPBOX / KYC
# ============================================================================

class UserToken(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    account_id: Optional[str] = None
    token_type: str = "bearer"
    scope: Optional[str] = None

class DropboxAuthRequest(SellerContext):
    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("user_id", "userId"))

class KycFileRequestBody(BaseModel):
    model_config = ConfigDict(extra="ignore")

    user_id: Optional[str] = Field(None, validation_alias=AliasChoices("user_id", "userId"))
    seller_name: Optional[str] = None
    email: Optional[str] = None
    ste_code: Optional[str] = None

    @field_validator("ste_code", mode="before")
    @classmethod
    def _code_to_str(cls, value):
        return _blank_to_none(value)

class FileRequestResult(BaseModel):
    type: Literal["file_request", "shared_link"]
    id: str
    url: str
    title: str
    destination: str

# ============================================================================
# EMAIL
# ============================================================================

class KycDocument(BaseModel):
    name: str
    type: str = "application/octet-stream"
    data: str  # base64

class KycDocuments(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    business_license: Optional[KycDocument] = Field(None, alias="businessLicense")
    gst_registration: Optional[KycDocument] = Field(None, alias="gstRegistration")
    aadhar_card: Optional[KycDocument] = Field(None, alias="aadharCard")

class SendAgreementRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    seller_email: EmailStr
    seller_name: str = Field(..., min_length=1)
    ste_code: str = Field(..., min_length=1)
    pdf_base64: str = Field(..., min_length=1)
    walmart_address: Optional[str] = None
    kyc_documents: Optional[KycDocuments] = None

    @field_validator("ste_code", mode="before")
    @classmethod
    def _code_to_str(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

# ============================================================================
# LOGS
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    recipient: EmailStr
    template_alias: EmailTemplateAlias
    subject: str
    attachments: List[str] = Field(default_factory=list)
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_error_type: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
