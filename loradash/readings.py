import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class Metric(Enum):
    """Closed set of sensor variables, each with its chart color and unit."""

    HUMEDAD = ('humedad', '#00bcd4', '%')
    TEMPERATURA = ('temperatura', '#ff7043', '°C')
    CONDUCTIVIDAD = ('conductividad', '#7e57c2', 'µS/cm')
    PH = ('ph', '#81c784', 'pH')
    NITROGENO = ('nitrogeno', '#ffca28', 'mg/kg')
    FOSFORO = ('fosforo', '#ec407a', 'mg/kg')
    POTASIO = ('potasio', '#29b6f6', 'mg/kg')
    BATERIA = ('bateria', '#8d6e63', 'V')
    CORRIENTE = ('corriente', '#c2185b', 'mA')

    def __init__(self, key, color, unit):
        self.key = key
        self.color = color
        self.unit = unit

    @classmethod
    def from_key(cls, name):
        """Look up a metric by key, case-insensitively (``pH`` and ``ph`` are the same)."""
        if isinstance(name, Metric):
            return name
        key = str(name).strip().lower()
        for metric in cls:
            if metric.key == key:
                return metric
        raise ValueError(f"Unknown metric: {name!r}")


# Epoch numbers above this are taken as milliseconds, below as seconds.
_MILLIS_THRESHOLD = 1e11

# A bare four-digit string is an ISO year; any other plain number is an epoch.
_YEAR_RE = re.compile(r"\d{4}")
_NUMBER_RE = re.compile(r"[+-]?\d+(\.\d*)?")


# --- Time helpers ---
def parse_fecha(value):
    """Parse an ISO-8601 string, datetime or epoch number into an aware UTC datetime.

    Returns None when the value cannot be interpreted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        seconds = value / 1000.0 if abs(value) > _MILLIS_THRESHOLD else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _YEAR_RE.fullmatch(text):
            try:
                return datetime(int(text), 1, 1, tzinfo=timezone.utc)
            except ValueError:
                return None
        if _NUMBER_RE.fullmatch(text):
            return parse_fecha(float(text))
        if text.endswith('Z') or text.endswith('z'):
            text = text[:-1] + '+00:00'
        try:
            return parse_fecha(datetime.fromisoformat(text))
        except ValueError:
            return None
    return None


def format_fecha(dt):
    """Fixed-width UTC ISO string, e.g. ``2024-05-01T10:00:00.000Z``."""
    dt = parse_fecha(dt)
    return f'{dt.year:04d}' + dt.strftime('-%m-%dT%H:%M:%S.') + f'{dt.microsecond // 1000:03d}Z'


def to_millis(value):
    dt = parse_fecha(value)
    if dt is None:
        return None
    return int(round(dt.timestamp() * 1000))


def from_millis(ms):
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def to_float(value):
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def record_value(record, metric):
    """Value of ``metric`` in a stored or pushed record, tolerating ``pH`` casing."""
    metric = Metric.from_key(metric)
    if metric.key in record:
        return to_float(record[metric.key])
    for key, value in record.items():
        if str(key).lower() == metric.key:
            return to_float(value)
    return None


@dataclass(frozen=True)
class SensorReading:
    fecha: datetime
    values: Dict[Metric, Optional[float]] = field(default_factory=dict)
    latitud: Optional[float] = None
    longitud: Optional[float] = None

    @classmethod
    def from_payload(cls, payload, now=None):
        """Build a reading from a decoded MQTT payload.

        Keys are matched case-insensitively so ``pH`` lands on ``ph``. A missing
        or unreadable ``fecha`` becomes ``now``.
        """
        lowered = {str(k).lower(): v for k, v in payload.items()}
        fecha = parse_fecha(lowered.get('fecha'))
        if fecha is None:
            fecha = parse_fecha(now) if now is not None else datetime.now(timezone.utc)
        values = {metric: to_float(lowered.get(metric.key)) for metric in Metric}
        lat = to_float(lowered.get('latitud'))
        lon = to_float(lowered.get('longitud'))
        if lat is None or lon is None:
            lat = lon = None
        return cls(fecha=fecha, values=values, latitud=lat, longitud=lon)

    @property
    def has_location(self):
        return self.latitud is not None and self.longitud is not None

    def value(self, metric):
        return self.values.get(Metric.from_key(metric))

    def to_document(self, id=None):
        doc = {}
        if id is not None:
            doc['id'] = id
        doc['fecha'] = format_fecha(self.fecha)
        for metric in Metric:
            doc[metric.key] = self.values.get(metric)
        if self.has_location:
            doc['latitud'] = self.latitud
            doc['longitud'] = self.longitud
        return doc
