# /app/services/validators.py
from __future__ import annotations

import math
import re
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel

from core.calculations import parse_number

# --- Severidades (rojo / amarillo / verde en pantalla) ---

class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    SUCCESS = "success"


class FieldMessage(BaseModel):
    field: str
    severity: Severity
    message: str = ""


# --- Predicados ---

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\+]?[1-9][\d]{0,15}$")
_PHONE_NOISE_RE = re.compile(r"[\s\-\(\)]")


def required(value: Any) -> bool:
    return value is not None and value != ""


def numeric(value: Any) -> bool:
    n = parse_number(value)
    return n is not None and math.isfinite(n)


def positive(value: Any) -> bool:
    n = parse_number(value)
    return n is not None and n > 0


def in_range(value: Any, min_value: float, max_value: float) -> bool:
    n = parse_number(value)
    return n is not None and min_value <= n <= max_value


def email(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_EMAIL_RE.match(value))


def phone(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_PHONE_RE.match(_PHONE_NOISE_RE.sub("", value)))


# --- Reglas por campo (lo que muestra el input) ---

class FieldRule(BaseModel):
    type: str  # required | numeric | positive | range | email | phone
    min: Optional[float] = None
    max: Optional[float] = None
    message: Optional[str] = None


def _rule_result(rule: FieldRule, value: Any) -> tuple[bool, str]:
    if rule.type == "required":
        return required(value), "This field is required"
    if rule.type == "numeric":
        return numeric(value), "Must be a valid number"
    if rule.type == "positive":
        return positive(value), "Must be a positive number"
    if rule.type == "range":
        # sin límites definidos no hay nada que chequear
        if rule.min is None or rule.max is None:
            return True, ""
        return in_range(value, rule.min, rule.max), f"Must be between {_fmt(rule.min)} and {_fmt(rule.max)}"
    if rule.type == "email":
        return email(value), "Must be a valid email address"
    if rule.type == "phone":
        return phone(value), "Must be a valid phone number"
    raise ValueError(f"Unknown validation rule: {rule.type}")


def _fmt(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else str(n)


def check_field(field: str, value: Any, rule: FieldRule) -> FieldMessage:
    """
    Corre una regla sobre un valor. Nunca bloquea: el valor se guarda igual,
    solo se marca.
    """
    ok, message = _rule_result(rule, value)
    if ok:
        return FieldMessage(field=field, severity=Severity.SUCCESS)
    return FieldMessage(field=field, severity=Severity.ERROR, message=rule.message or message)
