from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, WithJsonSchema, field_validator

from app.stockroom.db.models import INTEGER_MAX, Product


MoneyValue = Annotated[
    Decimal,
    Field(ge=0, max_digits=12, decimal_places=2),
    PlainSerializer(lambda value: format(value.quantize(Decimal("0.01")), "f"), return_type=str, when_used="json"),
    WithJsonSchema({"type": "string", "pattern": r"^\d{1,10}(?:\.\d{2})?$"}, mode="serialization"),
]


class ProductCreateRequest(BaseModel):
    sku: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=255)
    brand: str | None = Field(default=None, max_length=128)
    model: str | None = Field(default=None, max_length=128)
    barcode: str | None = Field(default=None, max_length=128)
    price: MoneyValue = Decimal("0.00")
    stock: int = Field(default=0, ge=0, le=INTEGER_MAX, description="Opening stock, recorded as an adjust movement.")
    is_active: bool = True
    metadata: dict | None = None


class ProductUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sku: str | None = Field(default=None, min_length=1, max_length=64)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    brand: str | None = Field(default=None, max_length=128)
    model: str | None = Field(default=None, max_length=128)
    barcode: str | None = Field(default=None, max_length=128)
    price: MoneyValue | None = None
    is_active: bool | None = None
    metadata: dict | None = None

    @field_validator("sku", "name", "price", "is_active")
    @classmethod
    def reject_null(cls, value):
        # omit a field to leave it unchanged; these columns are NOT NULL
        if value is None:
            raise ValueError("must not be null")
        return value


class ProductResponse(BaseModel):
    id: int
    sku: str
    name: str
    brand: str | None
    model: str | None
    barcode: str | None
    price: MoneyValue = Field(examples=["199.90"])
    stock: int
    is_active: bool
    metadata: dict | None
    created_at: datetime
    updated_at: datetime | None


class ProductPageMeta(BaseModel):
    page: int
    per_page: int
    total: int
    last_page: int
    sort_field: str
    sort_direction: Literal["asc", "desc"]
    mode: str


class ProductPageResponse(BaseModel):
    meta: ProductPageMeta
    rows: list[ProductResponse]


class ProductSuggestion(BaseModel):
    id: int
    name: str
    sku: str
    brand: str | None = None
    model: str | None = None
    price: MoneyValue | None = None
    stock: int | None = None
    image_url: str | None = None
    highlight: dict[str, str | None] | None = None


class ProductSuggestResponse(BaseModel):
    mode: str
    q: str
    count: int
    items: list[ProductSuggestion]


class ProductDeleteResponse(BaseModel):
    deleted: bool


def product_to_response(row: Product) -> ProductResponse:
    return ProductResponse(
        id=row.id,
        sku=row.sku,
        name=row.name,
        brand=row.brand,
        model=row.model,
        barcode=row.barcode,
        price=row.price if row.price is not None else Decimal("0.00"),
        stock=row.stock,
        is_active=row.is_active,
        metadata=row.product_metadata,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def product_to_suggestion(row: Product) -> ProductSuggestion:
    metadata = row.product_metadata or {}
    image_url = metadata.get("image_url")
    return ProductSuggestion(
        id=row.id,
        name=row.name,
        sku=row.sku,
        brand=row.brand,
        model=row.model,
        price=row.price,
        stock=row.stock,
        image_url=image_url if isinstance(image_url, str) else None,
    )
