"""Pricing models for quote suggestions."""

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class PricingPolicy:
    """Rates used by the quote calculator."""

    base_price: Decimal = Decimal("500")
    per_layer_rate: Decimal = Decimal("150")
    decorations_cost: Decimal = Decimal("150")
    theme_cost: Decimal = Decimal("200")
    text_cost: Decimal = Decimal("100")
    special_requests_cost: Decimal = Decimal("150")
    frosting_costs: dict[str, Decimal] = field(
        default_factory=lambda: {
            "buttercream": Decimal("0"),
            "whipped_cream": Decimal("100"),
            "cream_cheese": Decimal("150"),
            "ganache": Decimal("200"),
            "fondant": Decimal("300"),
        }
    )
    complex_layer_threshold: int = 4
    decoration_count_threshold: int = 5
    layers_increment: Decimal = Decimal("0.3")
    decorations_increment: Decimal = Decimal("0.3")
    fondant_increment: Decimal = Decimal("0.2")
    text_increment: Decimal = Decimal("0.1")


@dataclass(frozen=True)
class PriceBreakdown:
    """Suggested price with every component that contributed to it."""

    base_price: Decimal
    layers_cost: Decimal
    decorations_cost: Decimal
    theme_cost: Decimal
    text_cost: Decimal
    frosting_cost: Decimal
    special_requests_cost: Decimal
    complexity_multiplier: Decimal
    subtotal: Decimal
    total: Decimal
    factors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, object]:
        """Serialize for JSON payloads and storage."""
        return {
            "base_price": float(self.base_price),
            "layers_cost": float(self.layers_cost),
            "decorations_cost": float(self.decorations_cost),
            "theme_cost": float(self.theme_cost),
            "text_cost": float(self.text_cost),
            "frosting_cost": float(self.frosting_cost),
            "special_requests_cost": float(self.special_requests_cost),
            "complexity_multiplier": float(self.complexity_multiplier),
            "subtotal": float(self.subtotal),
            "total": float(self.total),
            "factors": list(self.factors),
        }

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "PriceBreakdown":
        """Inverse of ``as_dict``."""
        return cls(
            base_price=Decimal(str(data["base_price"])),
            layers_cost=Decimal(str(data["layers_cost"])),
            decorations_cost=Decimal(str(data["decorations_cost"])),
            theme_cost=Decimal(str(data["theme_cost"])),
            text_cost=Decimal(str(data["text_cost"])),
            frosting_cost=Decimal(str(data["frosting_cost"])),
            special_requests_cost=Decimal(str(data["special_requests_cost"])),
            complexity_multiplier=Decimal(str(data["complexity_multiplier"])),
            subtotal=Decimal(str(data["subtotal"])),
            total=Decimal(str(data["total"])),
            factors=[str(item) for item in data.get("factors", [])],
        )
