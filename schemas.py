"""
Database Schemas for the Tamil Literature Society API

Define MongoDB collection schemas using Pydantic models.
Each Pydantic model corresponds to a collection (lowercased class name,
e.g. ProjectImage -> "projectimage").
"""

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Any, Dict, Optional, List, Literal
from datetime import datetime, timezone

Bureau = Literal[
    "media-public-relations",
    "sports-leadership",
    "education-intellectual",
    "arts-culture",
    "social-welfare-voluntary",
    "language-literature",
]

OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
PaymentStatus = Literal["pending", "verified", "rejected"]
ShippingStatus = Literal["pending", "processing", "shipped", "delivered"]
PaymentMethod = Literal["epay", "fbx"]


class BilingualText(BaseModel):
    en: str = Field(..., min_length=1, description="English text")
    ta: Optional[str] = Field(None, description="Tamil text")


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address")
    password_hash: str = Field(..., description="Hashed password")
    role: Literal["super_admin", "admin", "moderator", "user"] = Field("user")
    is_active: bool = Field(True, description="Whether user is active")


# Catalog

class Project(BaseModel):
    title: BilingualText
    slug: str = Field(..., min_length=1, max_length=100)
    type: Literal["project", "activity", "initiative"] = "project"
    bureau: Bureau
    description: BilingualText
    short_description: Optional[BilingualText] = None
    goals: Optional[BilingualText] = None
    requirements: Optional[BilingualText] = None
    benefits: Optional[BilingualText] = None
    director: Optional[BilingualText] = None
    director_email: Optional[EmailStr] = None
    status: Literal["draft", "active", "archived"] = "draft"
    progress: int = Field(0, ge=0, le=100)
    budget: Optional[float] = Field(None, ge=0)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tags: List[str] = Field(default_factory=list)
    primary_image_id: Optional[str] = None
    primary_image_url: Optional[str] = None
    images_count: int = 0


class Activity(BaseModel):
    title: BilingualText
    bureau: Bureau
    description: BilingualText
    short_description: Optional[BilingualText] = None
    goals: Optional[BilingualText] = None
    achievements: Optional[BilingualText] = None
    status: Literal["draft", "active", "archived"] = "draft"
    primary_image_id: Optional[str] = None
    primary_image_url: Optional[str] = None
    images_count: int = 0


class Initiative(BaseModel):
    title: BilingualText
    bureau: Bureau
    description: BilingualText
    short_description: Optional[BilingualText] = None
    goals: Optional[BilingualText] = None
    impact: Optional[BilingualText] = None
    status: Literal["draft", "active", "archived"] = "draft"
    primary_image_id: Optional[str] = None
    primary_image_url: Optional[str] = None
    images_count: int = 0


class Ratings(BaseModel):
    average: float = Field(0, ge=0, le=5)
    count: int = Field(0, ge=0)


class Book(BaseModel):
    title: BilingualText
    author: BilingualText
    description: Optional[BilingualText] = None
    publisher: Optional[BilingualText] = None
    category: str = Field(..., description="Book category")
    price: float = Field(..., ge=0)
    original_price: Optional[float] = Field(None, ge=0)
    discounted_price: Optional[float] = Field(None, ge=0)
    discount: float = Field(0, ge=0, le=100)
    stock: int = Field(0, ge=0)
    isbn: Optional[str] = None
    pages: Optional[int] = Field(None, ge=1)
    language: Literal["tamil", "english", "bilingual"] = "tamil"
    cover_image: Optional[str] = None
    featured: bool = False
    bestseller: bool = False
    new_arrival: bool = False
    ratings: Ratings = Field(default_factory=Ratings)
    tags: List[str] = Field(default_factory=list)
    status: Literal["active", "inactive", "out_of_stock"] = "active"


class Ebook(BaseModel):
    title: BilingualText
    author: BilingualText
    description: Optional[BilingualText] = None
    category: str
    price: float = Field(0, ge=0)
    is_free: bool = False
    file_url: Optional[str] = None
    cover_image: Optional[str] = None
    featured: bool = False
    status: Literal["active", "inactive"] = "active"


class Poster(BaseModel):
    title: BilingualText
    description: Optional[BilingualText] = None
    category: str
    image_url: str
    price: float = Field(0, ge=0)
    status: Literal["active", "inactive"] = "active"


class CatalogImage(BaseModel):
    parent_id: str = Field(..., description="Id of the owning project/activity/initiative")
    file_path: str = Field(..., min_length=1)
    is_primary: bool = False
    sort_order: int = 0


class ProjectImage(CatalogImage):
    pass


class ActivityImage(CatalogImage):
    pass


class InitiativeImage(CatalogImage):
    pass


# Website content

class WebsiteContent(BaseModel):
    page: str = Field(..., min_length=1, description="Page identifier, e.g. home")
    section: str = Field(..., min_length=1, max_length=100)
    section_key: str = Field(..., min_length=1, max_length=100)
    section_type: str = Field("text")
    title: BilingualText
    content: BilingualText
    subtitle: Optional[BilingualText] = None
    button_text: Optional[BilingualText] = None
    button_url: Optional[str] = None
    image: Optional[str] = None
    is_required: bool = False
    is_active: bool = True
    is_visible: bool = True
    order: int = 0
    version: int = 1


# Payment settings

class PaymentMethodBlock(BaseModel):
    enabled: bool = True
    account_number: str = "157223402785"
    account_name: str = "Tamil Literature Society"
    bank_name: str = ""
    qr_code: str = ""
    instructions: str = ""


class GeneralPaymentSettings(BaseModel):
    currency: Literal["MYR", "USD", "SGD"] = "MYR"
    tax_rate: float = Field(6, ge=0, le=100, description="Percent")
    shipping_cost: float = Field(10, ge=0)
    verification_timeout: int = Field(24, ge=1, le=168, description="Hours")
    max_file_size: int = Field(5, ge=1, le=10, description="Megabytes")
    allowed_file_types: List[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/png", "image/jpg", "application/pdf"]
    )
    auto_approval: bool = False
    notification_email: str = "admin@tamilliteraturesociety.com"


class PaymentSettings(BaseModel):
    epay: PaymentMethodBlock = Field(default_factory=lambda: PaymentMethodBlock(
        bank_name="University Malaya ePay",
        instructions="Transfer the amount to the ePay account and upload the transaction proof.",
    ))
    fbx: PaymentMethodBlock = Field(default_factory=lambda: PaymentMethodBlock(
        bank_name="Maybank",
        instructions="Transfer the amount to the FBX account and upload the transaction proof.",
    ))
    general: GeneralPaymentSettings = Field(default_factory=GeneralPaymentSettings)
    is_active: bool = True


# Orders

class OrderUser(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., min_length=1)
    user_id: Optional[str] = None


class OrderBook(BaseModel):
    book_id: str
    title: str
    quantity: int = Field(..., ge=1)
    price: float = Field(..., ge=0)
    subtotal: float = Field(0, ge=0)


class OrderPayment(BaseModel):
    method: PaymentMethod
    instructions: str = ""
    file: str = Field(..., description="Uploaded transaction proof path")
    amount: float = Field(0, ge=0)
    status: PaymentStatus = "pending"
    verified_at: Optional[datetime] = None
    verified_by: Optional[str] = None
    notes: str = ""


class OrderShipping(BaseModel):
    enabled: bool = False
    address: Optional[str] = None
    cost: float = Field(0, ge=0)
    status: ShippingStatus = "pending"
    tracking_number: Optional[str] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None


class OrderTotals(BaseModel):
    subtotal: float = Field(0, ge=0)
    shipping_cost: float = Field(0, ge=0)
    tax: float = Field(0, ge=0)
    total: float = Field(0, ge=0)


class TimelineEntry(BaseModel):
    status: str
    note: str = ""
    at: datetime
    by: Optional[str] = None


class Order(BaseModel):
    order_number: str
    user: OrderUser
    books: List[OrderBook]
    payment: OrderPayment
    shipping: OrderShipping = Field(default_factory=OrderShipping)
    totals: OrderTotals = Field(default_factory=OrderTotals)
    status: OrderStatus = "pending"
    order_type: Literal["individual", "bulk"] = "individual"
    notes: str = ""
    admin_notes: str = ""
    verification_deadline: datetime
    timeline: List[TimelineEntry] = Field(default_factory=list)


class CartItem(BaseModel):
    book_id: str
    title: str
    price: float = Field(..., ge=0)
    quantity: int = Field(1, ge=1)


class Cart(BaseModel):
    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    subtotal: float = 0.0


# Recruitment forms

FieldType = Literal[
    "short-text", "paragraph", "email", "phone", "number", "date",
    "select", "radio", "checkboxes", "file-upload", "section-break",
]


class FormField(BaseModel):
    id: str = Field(..., min_length=1)
    label: str = Field(..., min_length=1)
    type: FieldType
    required: bool = False
    options: List[str] = Field(default_factory=list)
    placeholder: Optional[str] = None
    help_text: Optional[str] = None


class FormSettings(BaseModel):
    allow_multiple_submissions: bool = False
    max_applications: Optional[int] = Field(None, ge=1)
    require_authentication: bool = True


class Form(BaseModel):
    title: BilingualText
    slug: Optional[str] = None
    type: Literal["project", "activity", "initiative"] = Field(..., description="Kind of the linked entity")
    linked_id: str = Field(..., description="Id of the linked project/activity/initiative")
    role: Literal["crew", "volunteer", "participant"]
    description: Optional[BilingualText] = None
    fields: List[FormField] = Field(..., min_length=1)
    start_date: datetime
    end_date: datetime
    status: Literal["draft", "active", "inactive", "archived"] = "draft"
    settings: FormSettings = Field(default_factory=FormSettings)
    response_count: int = Field(0, ge=0)
    created_by: Optional[str] = None

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date >= self.end_date:
            raise ValueError("Start date must be before end date")
        return self


class Applicant(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    user_id: Optional[str] = None


class FormAttachment(BaseModel):
    field_id: str
    original_name: Optional[str] = None
    path: str
    size: int = 0
    type: Optional[str] = None


class FormResponse(BaseModel):
    form_id: str
    reference_number: str
    user: Applicant
    response_data: Dict[str, Any] = Field(default_factory=dict)
    attachments: List[FormAttachment] = Field(default_factory=list)
    status: Literal["pending", "reviewed", "approved", "rejected", "archived"] = "pending"
    admin_notes: str = ""
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    submitted_at: datetime
