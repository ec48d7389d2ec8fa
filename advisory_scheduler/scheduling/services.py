"""Service catalog with categories, default durations, and prices."""

import logging
from typing import Optional

from advisory_scheduler.errors import ValidationError

logger = logging.getLogger(__name__)

ADVISORY = "advisory"
TRAINING = "training"

SERVICE_CATALOG: dict[str, dict] = {
    "ConsultorioFinanciero": {
        "name": "Consultorio Financiero",
        "category": ADVISORY,
        "duration_minutes": 60,
        "price": 199.0,
    },
    "CuentaAsesorada": {
        "name": "Cuenta Asesorada",
        "category": ADVISORY,
        "duration_minutes": 60,
        "price": 299.0,
    },
    "SwingTrading": {
        "name": "Swing Trading",
        "category": TRAINING,
        "duration_minutes": 120,
        "price": 499.0,
    },
    "AdvancedStrategies": {
        "name": "Advanced Strategies",
        "category": TRAINING,
        "duration_minutes": 120,
        "price": 699.0,
    },
}

DEFAULT_SERVICE_TYPE = "ConsultorioFinanciero"

# Legacy category labels used by the schedule admin screens
CATEGORY_ALIASES: dict[str, str] = {
    "asesoria": ADVISORY,
    "advisory": ADVISORY,
    "entrenamiento": TRAINING,
    "training": TRAINING,
}


def require_service(service_type: str) -> dict:
    """Return the catalog entry for a service type or raise ValidationError."""
    info = SERVICE_CATALOG.get(service_type)
    if info is None:
        valid = ", ".join(SERVICE_CATALOG)
        raise ValidationError(
            f"Unknown service type {service_type!r}. Valid: {valid}.", field="serviceType"
        )
    return info


def get_service_details(service_type: str) -> Optional[dict]:
    """Get full details for a specific service."""
    info = SERVICE_CATALOG.get(service_type)
    if info is None:
        return None
    return {"id": service_type, **info}


def get_all_services() -> list[dict]:
    """Return all services with basic info."""
    return [
        {"id": sid, "name": info["name"], "category": info["category"]}
        for sid, info in SERVICE_CATALOG.items()
    ]


def category_of(service_type: str) -> str:
    return require_service(service_type)["category"]


def normalize_category(label: str) -> Optional[str]:
    """Map ``asesoria``/``entrenamiento`` style labels to a catalog category."""
    return CATEGORY_ALIASES.get(label.lower().strip())


def check_subtype(service_type: str, subtype: Optional[str]) -> None:
    """Reject an advisory/training label that contradicts the service's category."""
    category = category_of(service_type)
    if subtype is None:
        return
    if normalize_category(subtype) != category:
        raise ValidationError(
            f"Subtype {subtype!r} does not match {service_type}, which is {category}.",
            field="advisoryOrTrainingSubtype",
        )
