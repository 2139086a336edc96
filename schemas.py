from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, EmailStr, Field, conint

from models import OrderStatus, PaymentMethod, UserRole

T = TypeVar("T")

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d(:[0-5]\d)?$"


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Envelope ---
class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: str = "Operation successful"
    data: Optional[T] = None


class FieldError(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    message: str
    errors: Optional[List[FieldError]] = None


# --- Users & Auth ---
class UserBrief(ORMModel):
    id: str
    name: str
    phone: Optional[str] = None


class User(ORMModel):
    id: str
    name: str
    email: str
    phone: Optional[str] = None
    role: UserRole
    created_at: Optional[datetime] = None


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: Optional[str] = Field(None, pattern=r"^\+?\d{7,15}$")
    role: UserRole


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    phone: Optional[str] = Field(None, pattern=r"^\+?\d{7,15}$")


class AuthResult(BaseModel):
    id: str
    name: str
    email: str
    role: UserRole
    access_token: str
    token_type: str = "bearer"


# --- Shops ---
class ShopSummary(ORMModel):
    id: str
    shop_name: str
    rating: float = 0
    shop_address: Optional[str] = None
    delivery_radius: Optional[int] = None


class ShopProfile(ORMModel):
    id: str
    user_id: str
    shop_name: str
    shop_description: Optional[str] = None
    shop_address: str
    shop_city: str
    shop_state: str
    shop_zip_code: str
    shop_image: Optional[str] = None
    delivery_radius: int
    minimum_order: float
    opening_time: str
    closing_time: str
    rating: float
    review_count: int
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class ShopOwnerContact(ORMModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class ShopProfileWithOwner(ShopProfile):
    user: Optional[ShopOwnerContact] = None


class NearbyShop(ShopProfileWithOwner):
    distance: float


class ShopProfileUpdate(BaseModel):
    shop_name: Optional[str] = Field(None, min_length=2, max_length=100)
    shop_description: Optional[str] = None
    shop_address: Optional[str] = Field(None, min_length=5, max_length=255)
    shop_city: Optional[str] = Field(None, min_length=2, max_length=100)
    shop_state: Optional[str] = Field(None, min_length=2, max_length=100)
    shop_zip_code: Optional[str] = Field(None, min_length=5, max_length=20)
    delivery_radius: Optional[conint(ge=1, le=100)] = None
    minimum_order: Optional[float] = Field(None, ge=0)
    opening_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    closing_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class ShopPage(BaseModel):
    shops: List[ShopProfileWithOwner]
    total_shops: int
    current_page: int
    total_pages: int


class MeResult(User):
    shop_profile: Optional[ShopProfile] = None


# --- Categories ---
class CategoryBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)


class CategoryCreate(CategoryBase):
    pass


class CategoryUpdate(CategoryBase):
    pass


class Category(ORMModel):
    id: str
    name: str


# --- Products ---
class ProductBase(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    description: Optional[str] = None
    price: float = Field(..., ge=0.01)
    original_price: Optional[float] = Field(None, ge=0.01)
    category_id: str
    stock: int = Field(0, ge=0)
    in_stock: bool = True
    weight: Optional[str] = Field(None, max_length=50)
    origin: Optional[str] = Field(None, max_length=100)
    shelf_life: Optional[str] = Field(None, max_length=100)
    storage: Optional[str] = Field(None, max_length=100)


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=2, max_length=100)
    description: Optional[str] = None
    price: Optional[float] = Field(None, ge=0.01)
    original_price: Optional[float] = Field(None, ge=0.01)
    category_id: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    in_stock: Optional[bool] = None
    weight: Optional[str] = Field(None, max_length=50)
    origin: Optional[str] = Field(None, max_length=100)
    shelf_life: Optional[str] = Field(None, max_length=100)
    storage: Optional[str] = Field(None, max_length=100)


class Product(ORMModel):
    id: str
    name: str
    description: Optional[str] = None
    price: float
    original_price: Optional[float] = None
    category_id: str
    shop_id: str
    image: Optional[str] = None
    stock: int
    in_stock: bool
    weight: Optional[str] = None
    origin: Optional[str] = None
    shelf_life: Optional[str] = None
    storage: Optional[str] = None
    rating: float
    review_count: int
    created_at: Optional[datetime] = None


class ProductWithRelations(Product):
    category: Optional[Category] = None
    shop: Optional[ShopSummary] = None


class ProductPage(BaseModel):
    products: List[ProductWithRelations]
    total_products: int
    current_page: int
    total_pages: int


class CategoryWithProducts(BaseModel):
    category: Category
    products: List[Product]
    total_products: int
    current_page: int
    total_pages: int


class ProductBrief(ORMModel):
    id: str
    name: str
    image: Optional[str] = None


# --- Reviews ---
class ReviewCreate(BaseModel):
    product_id: str
    rating: conint(ge=1, le=5)  # Rating between 1 and 5
    comment: Optional[str] = Field(None, max_length=1000)


class ReviewUpdate(BaseModel):
    rating: Optional[conint(ge=1, le=5)] = None
    comment: Optional[str] = Field(None, max_length=1000)


class Review(ORMModel):
    id: str
    product_id: str
    user_id: str
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class ReviewWithUser(Review):
    user: Optional[UserBrief] = None


class ReviewWithProduct(Review):
    product: Optional[ProductBrief] = None


class ReviewPage(BaseModel):
    reviews: List[ReviewWithUser]
    total_reviews: int
    current_page: int
    total_pages: int


class ProductDetail(ProductWithRelations):
    recent_reviews: List[ReviewWithUser] = []


# --- Addresses ---
class AddressCreate(BaseModel):
    label: str = Field(..., min_length=2, max_length=50)
    address_line1: str = Field(..., min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: str = Field(..., min_length=2, max_length=100)
    state: str = Field(..., min_length=2, max_length=100)
    zip_code: str = Field(..., min_length=5, max_length=20)
    is_default: bool = False
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class AddressUpdate(BaseModel):
    label: Optional[str] = Field(None, min_length=2, max_length=50)
    address_line1: Optional[str] = Field(None, min_length=5, max_length=255)
    address_line2: Optional[str] = Field(None, max_length=255)
    city: Optional[str] = Field(None, min_length=2, max_length=100)
    state: Optional[str] = Field(None, min_length=2, max_length=100)
    zip_code: Optional[str] = Field(None, min_length=5, max_length=20)
    is_default: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class Address(ORMModel):
    id: str
    user_id: str
    label: str
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    zip_code: str
    is_default: bool
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    created_at: Optional[datetime] = None


# --- Orders ---
class OrderItemIn(BaseModel):
    product_id: str
    quantity: conint(gt=0)  # quantity must be greater than 0


class OrderCreate(BaseModel):
    address_id: str
    payment_method: PaymentMethod
    items: List[OrderItemIn] = Field(..., min_length=1)
    delivery_instructions: Optional[str] = Field(None, max_length=1000)


class OrderStatusUpdate(BaseModel):
    status: OrderStatus


class OrderItem(ORMModel):
    id: str
    product_id: str
    product_name: str
    product_price: float
    quantity: int
    item_total: float


class Order(ORMModel):
    id: str
    buyer_id: str
    shop_id: Optional[str] = None
    total_amount: float
    status: OrderStatus
    payment_method: PaymentMethod
    address_id: str
    delivery_instructions: Optional[str] = None
    created_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    prepared_at: Optional[datetime] = None
    out_for_delivery_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    items: List[OrderItem] = []
    address: Optional[Address] = None
    buyer: Optional[UserBrief] = None
    shop: Optional[ShopSummary] = None


class NearbyOrder(Order):
    distance: str  # km, two decimals


class OrderPage(BaseModel):
    orders: List[Order]
    total_orders: int
    current_page: int
    total_pages: int


class StatusCount(BaseModel):
    status: OrderStatus
    count: int


class DailySales(BaseModel):
    date: str
    order_count: int
    total_amount: float


class TopProduct(BaseModel):
    product_id: str
    product_name: str
    total_quantity: int
    total_sales: float


class OwnerStats(BaseModel):
    total_orders: int
    orders_by_status: List[StatusCount]
    total_revenue: float
    sales_by_date: List[DailySales]
    top_products: List[TopProduct]
