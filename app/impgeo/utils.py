from __future__ import annotations

import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import jsonify, request

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def ok(data: Any = None, status: int = 200, **extra: Any):
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return jsonify(body), status


def fail(error: str, status: int = 400, **extra: Any):
    body: dict[str, Any] = {"success": False, "error": error}
    body.update(extra)
    return jsonify(body), status


def json_payload() -> dict:
    """Request JSON body as a dict (empty dict for missing/invalid bodies)."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def pick(payload: dict, *keys: str, default: Any = None) -> Any:
    """First key present in payload (accepts snake_case and camelCase aliases)."""
    for k in keys:
        if k in payload:
            return payload[k]
    return default


def clean_str(value: Any) -> str | None:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def only_digits(value: Any) -> str:
    return re.sub(r"\D", "", str(value or ""))


def parse_date(value: Any) -> date | None:
    """Parse YYYY-MM-DD (or a full ISO timestamp) into a date."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None
    if "T" in s:
        s = s.split("T", 1)[0]
    return date.fromisoformat(s)


def parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        # stored as naive UTC
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def parse_number(value: Any, default: float = 0.0) -> float:
    """
    Parse a number from JSON or spreadsheet input.
    Accepts "1.234,56", "1,234.56", "1234,5" and "1234.5": when both separators
    appear, the last one is the decimal mark. Raises ValueError on garbage and
    on NaN/Infinity.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValueError("valor numérico inválido")
    if isinstance(value, (int, float, Decimal)):
        result = float(value)
    else:
        s = str(value).strip().replace("R$", "").replace(" ", "")
        if not s:
            return default
        last_comma, last_dot = s.rfind(","), s.rfind(".")
        if last_comma >= 0 and last_dot >= 0:
            if last_comma > last_dot:
                s = s.replace(".", "").replace(",", ".")
            else:
                s = s.replace(",", "")
        elif last_comma >= 0:
            s = s.replace(",", ".") if s.count(",") == 1 else s.replace(",", "")
        elif s.count(".") > 1:
            # 1.234.567
            s = s.replace(".", "")
        try:
            result = float(Decimal(s))
        except InvalidOperation as e:
            raise ValueError(f"valor numérico inválido: {value}") from e
    if not math.isfinite(result):
        raise ValueError(f"valor numérico inválido: {value}")
    return result


def parse_int(value: Any, default: int = 0) -> int:
    return int(parse_number(value, float(default)))


def iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def money(value: Decimal | float | None) -> float:
    return float(value) if value is not None else 0.0


def client_ip() -> str | None:
    forwarded = (request.headers.get("X-Forwarded-For") or "").split(",")[0].strip()
    return forwarded or request.remote_addr
