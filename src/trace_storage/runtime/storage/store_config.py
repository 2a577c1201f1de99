from typing import Any, Optional

from pydantic import BaseModel, Field


class IndexSchema(BaseModel):
    """Global secondary index with its own hash and range keys"""
    name: str
    hash_key: str
    range_key: Optional[str] = None


class TableSchema(BaseModel):
    name: str
    hash_key: str
    range_key: Optional[str] = None
    indexes: list[IndexSchema] = Field(default_factory=list)
    # "S", "N" or "B" per key attribute; keys not listed are strings
    attribute_types: dict[str, str] = Field(default_factory=dict)
    ttl_attribute: Optional[str] = None

    def attribute_type(self, name: str) -> str:
        return self.attribute_types.get(name, "S")

    def key_fields(self, index_name: Optional[str] = None) -> tuple[str, Optional[str]]:
        if index_name is None:
            return self.hash_key, self.range_key
        for index in self.indexes:
            if index.name == index_name:
                return index.hash_key, index.range_key
        raise ValueError(f"Table {self.name} has no index named {index_name}")

    def primary_key(self, item: dict[str, Any]) -> tuple[Any, ...]:
        if self.hash_key not in item:
            raise ValueError(f"Item missing hash key {self.hash_key} for table {self.name}")
        if self.range_key is None:
            return (item[self.hash_key],)
        if self.range_key not in item:
            raise ValueError(f"Item missing range key {self.range_key} for table {self.name}")
        return item[self.hash_key], item[self.range_key]


class StoreConfig(BaseModel):
    """Base configuration class for store implementations"""
    max_batch_size: int = Field(default=25, gt=0)
    additional_config: dict[str, Any] | None = None
