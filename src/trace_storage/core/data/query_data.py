from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class QueryRequest(BaseModel):
    """
    Read-side input for trace searches.

    Times are epoch milliseconds, durations are microseconds. An empty value in
    ``annotation_query`` matches spans that have the tag key at all, or an annotation
    whose value equals the key.
    """
    end_ts: int = Field(gt=0)
    lookback: int = Field(gt=0)
    service_name: Optional[str] = None
    span_name: Optional[str] = None
    min_duration: Optional[int] = Field(default=None, gt=0)
    max_duration: Optional[int] = None
    annotation_query: Dict[str, str] = Field(default_factory=dict)
    limit: int = Field(default=10, gt=0)

    @field_validator('service_name', 'span_name', mode='before')
    @classmethod
    def lower_names(cls, v):
        if isinstance(v, str):
            v = v.lower()
            return v or None
        return v

    @model_validator(mode='after')
    def check_durations(self) -> 'QueryRequest':
        if self.max_duration is not None:
            if self.min_duration is None:
                raise ValueError("min_duration is required when specifying max_duration")
            if self.max_duration < self.min_duration:
                raise ValueError("max_duration should be >= min_duration")
        return self

    @property
    def start_ts(self) -> int:
        return self.end_ts - self.lookback
