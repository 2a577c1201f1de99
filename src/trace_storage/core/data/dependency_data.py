from pydantic import BaseModel, Field


class DependencyLink(BaseModel):
    """Aggregate of calls from a parent service to a child service"""
    parent: str
    child: str
    call_count: int = Field(default=0, ge=0)
    error_count: int = Field(default=0, ge=0)

    @property
    def pair(self) -> tuple[str, str]:
        return self.parent, self.child
