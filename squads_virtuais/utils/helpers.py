"""Shared request/validation helpers used by blueprints and services.

get_json_body:    parsed JSON object or ValidationError (malformed body → 400)
require_fields:   field presence check with per-field details
require_text:     type check for free-text fields (strings or null)
require_bool:     type check for flag fields (booleans or null)
optional_int:     int coercion for ids coming from JSON bodies / query strings
pick:             partial-update helper (only keys present in the body)
"""

import logging

from flask import request

from squads_virtuais.core.exceptions import ValidationError

logger = logging.getLogger(__name__)


def get_json_body(allow_empty: bool = True) -> dict:
    """Return the request JSON object.

    Raises ValidationError when the body is not valid JSON or is not an
    object. An absent body yields ``{}`` unless ``allow_empty`` is False.
    """
    if not request.get_data(cache=True):
        if allow_empty:
            return {}
        raise ValidationError("Corpo da requisição é obrigatório")
    data = request.get_json(silent=True)
    if data is None:
        raise ValidationError("Body JSON inválido")
    if not isinstance(data, dict):
        raise ValidationError("Body JSON deve ser um objeto")
    return data


def require_fields(data: dict, *fields: str) -> None:
    """Raise ValidationError listing every missing/blank field."""
    missing = {}
    for field in fields:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing[field] = "obrigatório"
    if missing:
        raise ValidationError(
            f"Campos obrigatórios ausentes: {', '.join(missing)}",
            details=missing,
        )


def optional_int(value, field: str) -> int | None:
    """Coerce ``value`` to int, None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} deve ser um inteiro", details={field: "integer"})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} deve ser um inteiro", details={field: "integer"})


def pick(data: dict, allowed: tuple[str, ...]) -> dict:
    """Subset of ``data`` restricted to ``allowed`` keys actually present."""
    return {k: data[k] for k in allowed if k in data}


def require_text(data: dict, *fields: str) -> None:
    """Raise ValidationError when a present, non-null field is not a string."""
    wrong = {f: "string" for f in fields if data.get(f) is not None and not isinstance(data[f], str)}
    if wrong:
        raise ValidationError(
            f"Campos devem ser texto: {', '.join(wrong)}",
            details=wrong,
        )


def require_bool(data: dict, *fields: str) -> None:
    """Raise ValidationError when a present, non-null field is not a boolean."""
    wrong = {f: "boolean" for f in fields if data.get(f) is not None and not isinstance(data[f], bool)}
    if wrong:
        raise ValidationError(
            f"Campos devem ser booleanos: {', '.join(wrong)}",
            details=wrong,
        )
