"""Marketplace price derivation."""

from dataclasses import dataclass
from typing import Iterable

from .constants import DEFAULT_DYNAMIC_MARKUP_PERCENT, DEFAULT_MARKUP_PERCENT


@dataclass(frozen=True)
class PricingPolicy:
    """Markup percentages applied on top of merchant prices."""

    markup_percent: float = DEFAULT_MARKUP_PERCENT
    dynamic_markup_percent: float = DEFAULT_DYNAMIC_MARKUP_PERCENT

    @classmethod
    def from_settings(cls) -> "PricingPolicy":
        from bazaar.config import settings

        return cls(
            markup_percent=settings.markup_percent,
            dynamic_markup_percent=settings.dynamic_markup_percent,
        )

    def final_price(self, merchant_price: float, discount_price: float = 0) -> float:
        return calculate_final_price(
            merchant_price,
            self.markup_percent,
            self.dynamic_markup_percent,
            discount_price,
        )


def calculate_final_price(
    merchant_price: float,
    markup_percent: float = DEFAULT_MARKUP_PERCENT,
    dynamic_markup_percent: float = DEFAULT_DYNAMIC_MARKUP_PERCENT,
    discount_price: float = 0,
) -> float:
    """Customer-facing price for a merchant price.

    A positive discount price replaces the computed price outright. Otherwise
    the result is ``merchant + merchant*markup% + merchant*dynamic%``, never
    below zero.
    """
    if discount_price and discount_price > 0:
        return discount_price

    if merchant_price <= 0:
        return 0.0

    markup = merchant_price * markup_percent / 100
    dynamic = merchant_price * dynamic_markup_percent / 100
    return max(0.0, merchant_price + markup + dynamic)


def product_final_price(base_final_price: float, variant_final_prices: Iterable[float]) -> float:
    """Listing price of a product: its cheapest variant, when that is positive."""
    prices = list(variant_final_prices)
    if not prices:
        return base_final_price
    cheapest = min(prices)
    return cheapest if cheapest > 0 else base_final_price
