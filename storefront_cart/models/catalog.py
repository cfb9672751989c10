"""Catalog snapshot models (offerings with their linked records)"""

from decimal import Decimal
from typing import Any, Optional

from pydantic import ConfigDict, Field

from .base import CamelModel

SHIPPABLE_MEDIA_TYPES = ("DVD", "USB")


class OfferingType:
    """Offering types the cart rules care about"""
    PERPETUAL = "PERPETUAL"
    BIC_SUBSCRIPTION = "BIC_SUBSCRIPTION"
    META_SUBSCRIPTION = "META_SUBSCRIPTION"
    MAINTENANCE_SUBSCRIPTION = "MAINTENANCE_SUBSCRIPTION"


class Linkage(CamelModel):
    """Reference to another record in the snapshot"""
    type: Optional[str] = None
    id: str


class LinkageList(CamelModel):
    linkage: list[Linkage] = Field(default_factory=list)


class LinkageOne(CamelModel):
    linkage: Optional[Linkage] = None


class Links(CamelModel):
    """Links from an offering (or billing plan) to included records"""
    prices: Optional[LinkageList] = None
    billing_plans: Optional[LinkageList] = None
    offering_detail: Optional[LinkageOne] = None


class Descriptors(CamelModel):
    """Free-form presentation descriptors"""

    model_config = ConfigDict(extra="allow")

    image_url: Optional[str] = None
    estore: dict[str, Any] = Field(default_factory=dict)


class Offering(CamelModel):
    """Catalog offering (a purchasable product/price combination)"""

    model_config = ConfigDict(extra="allow")

    id: str
    external_key: Optional[str] = None
    offering_type: Optional[str] = None
    product_line: Optional[str] = None
    media_type: Optional[str] = None
    descriptors: Descriptors = Field(default_factory=Descriptors)
    links: Links = Field(default_factory=Links)


class IncludedRecord(CamelModel):
    """
    Record linked from an offering.

    `type` is one of "price", "offeringDetail" or "billingPlan"; only the
    attributes of that type are populated.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    id: str
    # price
    amount: Optional[Decimal] = None
    # offeringDetail
    name: Optional[str] = None
    external_key: Optional[str] = None
    tax_code: Optional[str] = None
    # billingPlan
    billing_period: Optional[str] = None
    billing_period_count: Optional[int] = None
    descriptors: Optional[Descriptors] = None
    links: Optional[Links] = None


class CatalogSnapshot(CamelModel):
    """Offerings for a set of price ids, as returned by the catalog"""
    data: list[Offering] = Field(default_factory=list)
    included: list[IncludedRecord] = Field(default_factory=list)
