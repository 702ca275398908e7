# vinyl_offers/models/offer.py

"""Validated vendor offers and the per-vendor facts attached to them."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class VendorProfile:
    """Static facts about a vendor, copied onto every offer it yields."""

    vendor_name: str
    channel_id: str
    shipping_fee: int = 0
    shipping_policy: str = ""
    affiliate_code: str | None = None
    affiliate_param_key: str | None = None


@dataclass(frozen=True)
class VendorOffer:
    """A validated, price-bearing listing attached to a product."""

    vendor_name: str
    channel_id: str
    base_price: int
    url: str
    shipping_fee: int = 0
    shipping_policy: str = ""
    in_stock: bool = True
    affiliate_code: str | None = None
    affiliate_param_key: str | None = None

    @classmethod
    def from_listing(
        cls,
        profile: VendorProfile,
        price: int,
        url: str,
        in_stock: bool,
    ) -> "VendorOffer":
        """Build an offer from a vendor profile and listing fields."""
        return cls(
            vendor_name=profile.vendor_name,
            channel_id=profile.channel_id,
            base_price=price,
            url=url,
            shipping_fee=profile.shipping_fee,
            shipping_policy=profile.shipping_policy,
            in_stock=in_stock,
            affiliate_code=profile.affiliate_code,
            affiliate_param_key=profile.affiliate_param_key,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the camelCase response shape."""
        return {
            "vendorName": self.vendor_name,
            "channelId": self.channel_id,
            "basePrice": self.base_price,
            "shippingFee": self.shipping_fee,
            "shippingPolicy": self.shipping_policy,
            "url": self.url,
            "inStock": self.in_stock,
            "affiliateCode": self.affiliate_code,
            "affiliateParamKey": self.affiliate_param_key,
        }
