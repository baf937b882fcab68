from pydantic import BaseModel, ConfigDict, Field


class PackageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str | None = None
    tokens: int
    price: int
    currency: str


class CreateOrderIn(BaseModel):
    # price/tokens sent by older clients are ignored; the catalog decides
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    package_id: str = Field(..., alias="packageId", min_length=1)


class VerifyPaymentIn(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    order_id: str = Field(..., alias="orderId", min_length=1)
