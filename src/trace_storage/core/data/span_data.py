import re
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

HEX_PATTERN = re.compile(r"^[0-9a-f]+$")


def normalize_hex_id(value: str, field: str, max_length: int = 32) -> str:
    """
    Lower-cases a hex identifier and left-pads it with zeros to 16 or 32 characters.

    Raises ValueError when the value is empty, too long or not hex.
    """
    if value is None or value == "":
        raise ValueError(f"{field} is required")
    value = value.lower()
    if len(value) > max_length:
        raise ValueError(f"{field} should be at most {max_length} hex characters: {value}")
    if not HEX_PATTERN.match(value):
        raise ValueError(f"{field} should be lower-hex encoded with no prefix: {value}")
    width = 16 if len(value) <= 16 else 32
    return value.rjust(width, "0")


class SpanKind(str, Enum):
    CLIENT = "CLIENT"
    SERVER = "SERVER"
    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class Endpoint(BaseModel):
    service_name: Optional[str] = None
    ipv4: Optional[str] = None
    ipv6: Optional[str] = None
    port: Optional[int] = None

    @field_validator('service_name', mode='before')
    @classmethod
    def lower_service_name(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return v or None
        return v


class Annotation(BaseModel):
    timestamp: int
    value: str


class Span(BaseModel):
    """A single timed operation within a trace"""
    trace_id: str
    id: str
    parent_id: Optional[str] = None
    name: Optional[str] = None
    kind: Optional[SpanKind] = None
    # epoch microseconds
    timestamp: Optional[int] = None
    duration: Optional[int] = None
    local_endpoint: Optional[Endpoint] = None
    remote_endpoint: Optional[Endpoint] = None
    annotations: List[Annotation] = Field(default_factory=list)
    tags: Dict[str, str] = Field(default_factory=dict)
    debug: Optional[bool] = None
    shared: Optional[bool] = None

    @field_validator('trace_id', mode='before')
    @classmethod
    def normalize_trace_id(cls, v):
        return normalize_hex_id(v, "trace_id", max_length=32)

    @field_validator('id', mode='before')
    @classmethod
    def normalize_span_id(cls, v):
        return normalize_hex_id(v, "id", max_length=16)

    @field_validator('parent_id', mode='before')
    @classmethod
    def normalize_parent_id(cls, v):
        if v is None or v == "":
            return None
        return normalize_hex_id(v, "parent_id", max_length=16)

    @field_validator('name', mode='before')
    @classmethod
    def lower_name(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return v or None
        return v

    @field_validator('timestamp', 'duration', mode='before')
    @classmethod
    def zero_means_unset(cls, v):
        # 0 is never a valid epoch timestamp or duration here
        if v == 0:
            return None
        return v

    @property
    def local_service_name(self) -> Optional[str]:
        return self.local_endpoint.service_name if self.local_endpoint else None

    @property
    def remote_service_name(self) -> Optional[str]:
        return self.remote_endpoint.service_name if self.remote_endpoint else None
