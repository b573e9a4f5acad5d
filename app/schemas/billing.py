from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CheckoutRequest(BaseModel):
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    plan_name: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutResponse(BaseModel):
    success: bool
    checkout_url: Optional[str]
    checkout_id: Optional[str]


class PlanWrite(BaseModel):
    plan_name: str = ""
    price_monthly: float = 0
    max_applications: Optional[int] = 1
    features: list[str] = Field(default_factory=list)
    enable: bool = True
    creem_product_id: Optional[str] = None
    creem_dev_product_id: Optional[str] = None
    is_one_time: bool = False


class PlanResponse(BaseModel):
    id: str
    plan_name: str
    price_monthly: float
    max_applications: Optional[int]
    features: list[str]
    enable: bool
    creem_product_id: Optional[str]
    creem_dev_product_id: Optional[str]
    is_one_time: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class SubscriptionResponse(BaseModel):
    user_id: str
    plan_name: str
    creem_id: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
