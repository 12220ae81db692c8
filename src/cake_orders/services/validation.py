"""Input validation for designs, contacts and money amounts."""

import re
from datetime import date
from decimal import Decimal, InvalidOperation

from cake_orders.domain.errors import FieldError, ValidationError
from cake_orders.domain.requests import CakeLayer, ContactInfo, DesignAttributes

MAX_LAYERS = 5
MAX_CANDLES = 100
MAX_DECORATIONS = 50
FROSTING_TYPES = frozenset(
    {"buttercream", "fondant", "whipped_cream", "ganache", "cream_cheese"}
)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERNS = (
    re.compile(r"^09\d{9}$"),
    re.compile(r"^\+639\d{9}$"),
    re.compile(r"^639\d{9}$"),
)


def parse_design(payload: dict[str, object]) -> DesignAttributes:
    """Build design attributes from an editor payload.

    The editor sends either a ``layers`` list of ``{"flavor", "size"}`` objects
    or flat ``layer_<n>_flavor`` / ``layer_<n>_size`` keys.
    """
    errors: list[FieldError] = []
    num_layers = _as_int(payload.get("num_layers", 1), "num_layers", errors)
    if num_layers is not None and not 1 <= num_layers <= MAX_LAYERS:
        errors.append(
            FieldError(
                "num_layers", f"Number of layers must be between 1 and {MAX_LAYERS}"
            )
        )
        num_layers = None
    raw_layers = payload.get("layers")
    if isinstance(raw_layers, list) and len(raw_layers) > MAX_LAYERS:
        errors.append(FieldError("layers", f"At most {MAX_LAYERS} layers are allowed"))
    decorations = payload.get("decorations") or payload.get("decorations_3d") or []
    if not isinstance(decorations, list):
        errors.append(FieldError("decorations", "Decorations must be a list"))
        decorations = []
    elif len(decorations) > MAX_DECORATIONS:
        errors.append(
            FieldError(
                "decorations", f"At most {MAX_DECORATIONS} decorations are allowed"
            )
        )
        decorations = []
    candles = _as_int(payload.get("candles_count", 0), "candles_count", errors)
    event_date = _as_date(payload.get("event_date"), "event_date", errors)
    if errors:
        raise ValidationError(errors)
    return DesignAttributes(
        num_layers=num_layers or 1,
        layers=_parse_layers(payload, num_layers or 1),
        frosting_type=str(payload.get("frosting_type") or "buttercream"),
        frosting_color=_as_text(payload.get("frosting_color")),
        theme=_as_text(payload.get("theme")),
        decorations=[
            item if isinstance(item, dict) else {"name": item} for item in decorations
        ],
        cake_text=_as_text(payload.get("cake_text")),
        special_instructions=_as_text(payload.get("special_instructions")),
        dietary_restrictions=_as_text(payload.get("dietary_restrictions")),
        candles_count=candles or 0,
        event_type=_as_text(payload.get("event_type")),
        event_date=event_date,
    )


def parse_contact(payload: dict[str, object]) -> ContactInfo:
    """Pull contact fields from an editor payload, if it carries any."""
    contact = payload.get("contact")
    source = contact if isinstance(contact, dict) else payload
    return ContactInfo(
        name=_as_text(source.get("customer_name") or source.get("name")),
        email=_as_text(source.get("customer_email") or source.get("email")),
        phone=_as_text(source.get("customer_phone") or source.get("phone")),
    )


def design_errors(
    design: DesignAttributes, today: date | None = None
) -> list[FieldError]:
    """Return every reason the design cannot be submitted for review."""
    errors: list[FieldError] = []
    if not 1 <= design.num_layers <= MAX_LAYERS:
        errors.append(
            FieldError(
                "num_layers", f"Number of layers must be between 1 and {MAX_LAYERS}"
            )
        )
    for index in range(design.num_layers):
        layer = design.layers[index] if index < len(design.layers) else None
        number = index + 1
        if layer is None or not layer.flavor:
            errors.append(
                FieldError(
                    f"layer_{number}_flavor",
                    f"Layer {number} must have a flavor selected",
                )
            )
        if layer is None or not layer.size:
            errors.append(
                FieldError(
                    f"layer_{number}_size", f"Layer {number} must have a size selected"
                )
            )
    if design.frosting_type not in FROSTING_TYPES:
        errors.append(FieldError("frosting_type", "Invalid frosting type"))
    if not 0 <= design.candles_count <= MAX_CANDLES:
        errors.append(
            FieldError(
                "candles_count", f"Candle count must be between 0 and {MAX_CANDLES}"
            )
        )
    if design.event_date and today and design.event_date < today:
        errors.append(FieldError("event_date", "Event date must be in the future"))
    return errors


def contact_errors(contact: ContactInfo) -> list[FieldError]:
    """Return every reason the contact details are unusable."""
    errors: list[FieldError] = []
    name = (contact.name or "").strip()
    if len(name) < 2:
        errors.append(
            FieldError("customer_name", "Name must be at least 2 characters long")
        )
    elif len(name) > 100:
        errors.append(
            FieldError("customer_name", "Name must be less than 100 characters")
        )
    if not contact.email:
        errors.append(FieldError("customer_email", "Email address is required"))
    elif not _EMAIL_RE.match(contact.email):
        errors.append(
            FieldError("customer_email", "Please enter a valid email address")
        )
    if not contact.phone:
        errors.append(FieldError("customer_phone", "Phone number is required"))
    elif normalize_phone(contact.phone) is None:
        errors.append(
            FieldError(
                "customer_phone",
                "Please enter a valid mobile number (e.g., 09171234567)",
            )
        )
    return errors


def normalize_phone(phone: str) -> str | None:
    """Return the phone in +639XXXXXXXXX form, or None for non-mobile numbers."""
    cleaned = re.sub(r"[-\s]", "", phone)
    if not any(pattern.match(cleaned) for pattern in _PHONE_PATTERNS):
        return None
    digits = cleaned.lstrip("+")
    if digits.startswith("0"):
        digits = "63" + digits[1:]
    return f"+{digits}"


def parse_amount(value: object, field_name: str) -> Decimal:
    """Parse a positive money amount with at most two decimal places."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError.single(field_name, "Invalid amount") from None
    if not amount.is_finite() or amount <= 0:
        raise ValidationError.single(field_name, "Amount must be greater than 0")
    if amount.as_tuple().exponent < -2:
        raise ValidationError.single(field_name, "Use up to 2 decimal places")
    return amount


def _parse_layers(payload: dict[str, object], num_layers: int) -> list[CakeLayer]:
    raw_layers = payload.get("layers")
    if isinstance(raw_layers, list):
        return [
            CakeLayer(
                flavor=_as_text(layer.get("flavor")),
                size=_as_text(layer.get("size")),
            )
            for layer in raw_layers
            if isinstance(layer, dict)
        ]
    return [
        CakeLayer(
            flavor=_as_text(payload.get(f"layer_{number}_flavor")),
            size=_as_text(payload.get(f"layer_{number}_size")),
        )
        for number in range(1, num_layers + 1)
    ]


def _as_text(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _as_int(value: object, field_name: str, errors: list[FieldError]) -> int | None:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        errors.append(FieldError(field_name, "Must be a whole number"))
        return None


def _as_date(value: object, field_name: str, errors: list[FieldError]) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        errors.append(FieldError(field_name, "Invalid date format. Use YYYY-MM-DD"))
        return None
