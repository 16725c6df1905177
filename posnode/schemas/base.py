"""
POS Node — Shared pydantic base

The cloud replica and the UI both speak camelCase JSON; Python code keeps
snake_case attribute names.
"""
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    def snapshot(self) -> dict:
        """JSON-safe camelCase dict, as stored in sync queue payloads."""
        return self.model_dump(mode="json", by_alias=True)
