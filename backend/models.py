from pydantic import BaseModel, EmailStr, Field, ConfigDict
from typing import Optional, Dict, Any, List
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
import uuid

# ============================================================================
# ENUMS (System Constants)
# ============================================================================

class UserRole(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"

class FieldType(str, Enum):
    TEXT = "TEXT"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    TEXTAREA = "TEXTAREA"
    SELECT = "SELECT"
    DATE = "DATE"
    FILE = "FILE"

class AuditAction(str, Enum):
    # Auth / users
    USER_SIGNED_UP = "USER_SIGNED_UP"
    USER_LOGIN_SUCCESS = "USER_LOGIN_SUCCESS"
    USER_LOGIN_FAILED = "USER_LOGIN_FAILED"
    PROFILE_UPDATED = "PROFILE_UPDATED"
    USER_DELETED = "USER_DELETED"

    # Packages
    PACKAGE_CREATED = "PACKAGE_CREATED"
    PACKAGE_UPDATED = "PACKAGE_UPDATED"
    PACKAGE_DELETED = "PACKAGE_DELETED"

    # Orders
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_STATUS_CHANGED = "ORDER_STATUS_CHANGED"
    PAYMENT_STATUS_CHANGED = "PAYMENT_STATUS_CHANGED"
    PAYMENT_WEBHOOK_REJECTED = "PAYMENT_WEBHOOK_REJECTED"

    # Email
    EMAIL_SENT = "EMAIL_SENT"
    EMAIL_FAILED = "EMAIL_FAILED"

class EmailTemplateAlias(str, Enum):
    ORDER_STATUS_UPDATE = "order-status-update"

# ============================================================================
# PACKAGE MODELS
# ============================================================================

FIELD_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"

class PackageFieldInput(BaseModel):
    """One configurable order-form input, as submitted by an administrator."""
    model_config = ConfigDict(extra="ignore")

    field_name: str = Field(..., min_length=1, max_length=20, pattern=FIELD_NAME_PATTERN)
    field_label: str = Field(..., min_length=1, max_length=20)
    field_type: FieldType
    is_required: bool = False
    options: List[str] = Field(default_factory=list)
    order: int = Field(0, ge=0)

class PackageInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    image: str = Field(..., min_length=1, max_length=255)
    description: str = Field(..., min_length=1, max_length=255)
    price: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    required_fields: List[PackageFieldInput] = Field(..., min_length=1)

# ============================================================================
# ORDER MODELS
# ============================================================================

class OrderFileInput(BaseModel):
    """Metadata returned by the storage collaborator for one uploaded document."""
    model_config = ConfigDict(extra="ignore")

    field_name: str
    file_name: str
    file_url: str
    file_size: int = Field(0, ge=0)

class CreateOrderRequest(BaseModel):
    package_id: str
    form_data: Dict[str, Any] = Field(default_factory=dict)
    uploaded_files: List[OrderFileInput] = Field(default_factory=list)

# ============================================================================
# LOG MODELS
# ============================================================================

class AuditLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    audit_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    action: AuditAction
    actor_role: Optional[UserRole] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    before_state: Optional[Dict[str, Any]] = None
    after_state: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class MessageLog(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    postmark_message_id: Optional[str] = None
    user_id: Optional[str] = None
    order_id: Optional[str] = None
    recipient: EmailStr
    template_alias: EmailTemplateAlias
    subject: str
    status: str = "queued"
    sent_at: Optional[datetime] = None
    error_message: Optional[str] = None
    provider_error_type: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

# ============================================================================
# REQUEST/RESPONSE MODELS
# ============================================================================

class SignUpRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    image: Optional[str] = None

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: Dict[str, Any]
