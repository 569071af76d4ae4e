from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class JsonModel(BaseModel):
    """Model exchanged as camelCase JSON; accepts field names on input as well."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_dict(self, mode: Literal["json", "python"] = "python") -> dict[str, Any]:
        """Dump without ``None`` values; JSON mode uses the camelCase aliases."""
        return self.model_dump(exclude_none=True, by_alias=mode == "json", mode=mode)


class ImmutableJsonModel(JsonModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)
