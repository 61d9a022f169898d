"""Exchange schemas - products, card keys and redemption results."""

from datetime import datetime

from pydantic import BaseModel, Field

from scratch_lottery.models.exchange import ProductStatus


class CreateProductRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=128)
    description: str = ""
    image: str = ""
    price: int = Field(..., gt=0, description="Points per redemption")


class ImportCardKeysRequest(BaseModel):
    keys: list[str] = Field(..., min_length=1)


class UpdateProductStatusRequest(BaseModel):
    status: ProductStatus = Field(..., description="available or offline")


class ProductResponse(BaseModel):
    id: int
    name: str
    description: str
    image: str
    price: int
    stock: int
    status: ProductStatus

    class Config:
        from_attributes = True


class RedeemResult(BaseModel):
    record_id: int
    product_id: int
    product_name: str
    card_key: str
    cost: int
    new_balance: int


class ExchangeRecordResponse(BaseModel):
    id: int
    product_id: int
    card_key_id: int
    cost: int
    created_at: datetime

    class Config:
        from_attributes = True
