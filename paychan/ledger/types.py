"""Types shared between the session and ledger engines."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ChannelStateName = Literal["open", "closed"]


class Payment(BaseModel):
    """A claim against a channel, as posted to a peer's money endpoint.

    `value` is the cumulative amount the channel has paid so far, `price`
    the increment this payment adds on top of the previous claim.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    channel_id: str = Field(min_length=1)
    sender: str = Field(min_length=1)
    receiver: str = Field(min_length=1)
    price: Decimal = Field(ge=0)
    value: Decimal = Field(ge=0)
    channel_value: Decimal = Field(ge=0)
    gateway: str = ""
    meta: str = ""

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


@dataclass
class Channel:
    """A one-way funding relationship from `sender` to `receiver`."""

    channel_id: str
    sender: str
    receiver: str
    gateway: str
    deposit: Decimal
    value: Decimal = Decimal(0)
    state: ChannelStateName = "open"

    @property
    def is_open(self) -> bool:
        return self.state == "open"

    @property
    def remaining(self) -> Decimal:
        return self.deposit - self.value


@dataclass(slots=True)
class ChannelCloseResult:
    """Outcome of closing one channel during teardown."""

    channel_id: str
    ok: bool
    error: str | None = None
