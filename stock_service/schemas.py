from typing import Annotated, List, Optional
from datetime import datetime
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StrictInt, field_validator

from stock_service.models import MovementType, StockStatus
from stock_service.utils import as_utc

# SQLite hands back naive values; responses always carry the UTC offset
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


def _strip_required(value):
    if value is None:
        return value
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


class ProductBase(BaseModel):
    """Base schema for Product"""
    name: str = Field(..., min_length=1, max_length=200, examples=["Caneta Azul"])
    sku: str = Field(..., min_length=1, max_length=64, examples=["CANETA_AZUL_001"])
    description: Optional[str] = Field(None, max_length=1000, examples=["Caneta Azul de papelaria."])
    min_stock: StrictInt = Field(0, ge=0, examples=[5])

    @field_validator("name", "sku")
    @classmethod
    def not_blank(cls, v):
        return _strip_required(v)


class ProductCreate(ProductBase):
    """Schema for creating a product, optionally with opening stock"""
    initial_stock: StrictInt = Field(0, ge=0, examples=[10])


class ProductUpdate(BaseModel):
    """Schema for updating a product; only the fields sent are changed"""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    sku: Optional[str] = Field(None, min_length=1, max_length=64)
    description: Optional[str] = Field(None, max_length=1000)
    min_stock: Optional[StrictInt] = Field(None, ge=0)

    @field_validator("name", "sku")
    @classmethod
    def not_blank(cls, v):
        return _strip_required(v)


class Product(ProductBase):
    """Schema for reading a product"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    created_at: Optional[UtcDatetime]
    updated_at: Optional[UtcDatetime]


class ProductWithBalance(Product):
    balance: int
    status: StockStatus


class ProductPage(BaseModel):
    items: List[ProductWithBalance]
    total: int
    page: int
    page_size: int


class ProductSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    sku: str


class MovementCreate(BaseModel):
    """Schema for recording a stock movement"""
    type: MovementType = Field(..., examples=["IN"])
    quantity: StrictInt = Field(..., gt=0, examples=[10])
    date: Optional[datetime] = Field(None, description="Effective date, defaults to now")
    note: Optional[str] = Field(None, max_length=500)


class Movement(BaseModel):
    """Schema for reading a stock movement"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    product_id: int
    type: MovementType
    quantity: int
    date: UtcDatetime
    note: Optional[str]
    created_at: Optional[UtcDatetime]


class MovementPage(BaseModel):
    items: List[Movement]
    total: int
    page: int
    page_size: int


class ZeroOutResult(BaseModel):
    product_id: int
    movement: Optional[Movement]
    balance: int


class QuickOutCreate(BaseModel):
    """Schema for a quick OUT movement"""
    product_id: int = Field(..., gt=0, examples=[1])
    quantity: StrictInt = Field(..., gt=0, examples=[2])
    note: Optional[str] = Field(None, max_length=500)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "product_id": 1,
                "quantity": 2,
                "note": "Counter sale",
            }
        }
    )


class QuickOutResult(BaseModel):
    success: bool
    movement: Movement
    new_balance: int
    product: ProductSummary


class QuickOutHistoryItem(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_sku: str
    quantity: int
    date: UtcDatetime
    note: Optional[str]


class QuickOutHistoryPage(BaseModel):
    items: List[QuickOutHistoryItem]
    total: int
    page: int
    page_size: int
