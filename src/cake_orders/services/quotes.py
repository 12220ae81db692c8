"""Suggested pricing for custom cake requests."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from cake_orders.domain.pricing import PriceBreakdown, PricingPolicy
from cake_orders.domain.requests import DesignAttributes

_ZERO = Decimal("0")
_ONE = Decimal("1")


@dataclass(frozen=True)
class QuoteCalculator:
    """Pure price suggestion; the admin quote may differ and is the price of record."""

    policy: PricingPolicy = field(default_factory=PricingPolicy)

    def suggest(self, design: DesignAttributes) -> PriceBreakdown:
        """Return the suggested price breakdown for a design."""
        policy = self.policy
        layers = max(design.num_layers, 1)
        layers_cost = policy.per_layer_rate * (layers - 1)
        decorations_cost = policy.decorations_cost if design.decorations else _ZERO
        theme_cost = policy.theme_cost if _present(design.theme) else _ZERO
        text_cost = policy.text_cost if _present(design.cake_text) else _ZERO
        frosting_cost = policy.frosting_costs.get(design.frosting_type, _ZERO)
        special_requests_cost = (
            policy.special_requests_cost
            if _present(design.special_instructions)
            or _present(design.dietary_restrictions)
            else _ZERO
        )
        subtotal = (
            policy.base_price
            + layers_cost
            + decorations_cost
            + theme_cost
            + text_cost
            + frosting_cost
            + special_requests_cost
        )
        multiplier, factors = self._complexity(design)
        total = (subtotal * multiplier).quantize(_ONE, rounding=ROUND_HALF_UP)
        return PriceBreakdown(
            base_price=policy.base_price,
            layers_cost=layers_cost,
            decorations_cost=decorations_cost,
            theme_cost=theme_cost,
            text_cost=text_cost,
            frosting_cost=frosting_cost,
            special_requests_cost=special_requests_cost,
            complexity_multiplier=multiplier,
            subtotal=subtotal,
            total=total,
            factors=factors,
        )

    def suggest_preparation_days(self, design: DesignAttributes) -> int:
        """Suggest a preparation window from the design's complexity."""
        multiplier, _ = self._complexity(design)
        if multiplier <= Decimal("1.0"):
            return 2
        if multiplier <= Decimal("1.3"):
            return 3
        if multiplier <= Decimal("1.6"):
            return 5
        return 7

    def _complexity(self, design: DesignAttributes) -> tuple[Decimal, list[str]]:
        policy = self.policy
        multiplier = Decimal("1.0")
        factors: list[str] = []
        if design.num_layers >= policy.complex_layer_threshold:
            multiplier += policy.layers_increment
            factors.append(f"{design.num_layers} layers")
        if len(design.decorations) > policy.decoration_count_threshold:
            multiplier += policy.decorations_increment
            factors.append(f"{len(design.decorations)} decorations")
        if design.frosting_type == "fondant":
            multiplier += policy.fondant_increment
            factors.append("fondant frosting")
        if _present(design.cake_text):
            multiplier += policy.text_increment
            factors.append("custom text")
        return multiplier, factors


def _present(value: str | None) -> bool:
    return bool(value and value.strip())
