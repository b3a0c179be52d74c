from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Serializes with the camelCase keys shared by the API and the embedded schema cache."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
