from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

ActionResponse = dict[str, str]


class ActionResult(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    @property
    def is_empty(self) -> bool:
        """True when the device returned no output arguments at all."""
        return not self.model_fields_set and not self.model_extra


class TransportInfo(ActionResult):
    current_transport_state: str | None = Field(
        default=None, alias="CurrentTransportState"
    )
    current_transport_status: str | None = Field(
        default=None, alias="CurrentTransportStatus"
    )
    current_speed: str | None = Field(default=None, alias="CurrentSpeed")


class EmptyResponse(ActionResult):
    pass
