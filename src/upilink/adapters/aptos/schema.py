"""Pydantic models describing the Aptos node REST payloads."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from upilink.domain.model import normalize_address


class AptosBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class ErrorResponse(AptosBaseModel):
    message: str
    error_code: str | None = None
    vm_error_code: int | None = None


class AccountResponse(AptosBaseModel):
    sequence_number: int
    authentication_key: str | None = None


class PendingTransactionResponse(AptosBaseModel):
    hash: str


class TransactionResponse(AptosBaseModel):
    type: str
    hash: str
    success: bool | None = None
    vm_status: str | None = None
    version: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.type == "pending_transaction"


def _from_epoch_seconds(value: object) -> object:
    # Move timestamps are u64 seconds rendered as strings
    if isinstance(value, str) and value.isdigit():
        return datetime.fromtimestamp(int(value), UTC)
    if isinstance(value, int):
        return datetime.fromtimestamp(value, UTC)
    return value


class EscrowPayload(AptosBaseModel):
    """One element of the ``get_merchant_escrows`` view result."""

    upi_id: str
    address: str = Field(validation_alias=AliasChoices("escrow_address", "address"))
    created_at: datetime | None = None

    @field_validator("address", mode="after")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        return normalize_address(value)

    @field_validator("created_at", mode="before")
    @classmethod
    def _created_at(cls, value: object) -> object:
        return _from_epoch_seconds(value)


class MerchantInfoPayload(AptosBaseModel):
    """The ``MerchantInfo`` struct returned by ``get_merchant_info``."""

    merchant_address: str
    business_name: str
    contact_info: str
    registration_timestamp: datetime | None = None
    is_active: bool = True
    kyc_verified: bool = False

    @field_validator("merchant_address", mode="after")
    @classmethod
    def _normalize_address(cls, value: str) -> str:
        return normalize_address(value)

    @field_validator("registration_timestamp", mode="before")
    @classmethod
    def _registered_at(cls, value: object) -> object:
        return _from_epoch_seconds(value)


class _Coin(AptosBaseModel):
    value: int


class _CoinStoreData(AptosBaseModel):
    coin: _Coin


class CoinStoreResource(AptosBaseModel):
    """``0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>`` account resource."""

    data: _CoinStoreData

    @property
    def octas(self) -> int:
        return self.data.coin.value


TRANSFER_FUNCTIONS = frozenset({"0x1::aptos_account::transfer", "0x1::coin::transfer"})

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class _EntryFunction(AptosBaseModel):
    function: str | None = None
    arguments: list[object] = []


class AccountTransactionPayload(AptosBaseModel):
    """One entry of ``GET /accounts/{address}/transactions``."""

    hash: str
    timestamp: datetime
    success: bool = True
    sender: str | None = None
    payload: _EntryFunction | None = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _from_microseconds(cls, value: object) -> object:
        # transaction timestamps are microseconds, unlike Move view timestamps
        if isinstance(value, str) and value.isdigit():
            return _EPOCH + timedelta(microseconds=int(value))
        return value

    @field_validator("sender", mode="after")
    @classmethod
    def _normalize_sender(cls, value: str | None) -> str | None:
        return normalize_address(value) if value else None

    @property
    def function(self) -> str | None:
        return self.payload.function if self.payload else None

    @property
    def amount_octas(self) -> int | None:
        """Transferred amount for coin transfers, ``None`` for every other call."""

        if self.payload is None or self.function not in TRANSFER_FUNCTIONS:
            return None
        arguments = self.payload.arguments
        if len(arguments) < 2 or not str(arguments[1]).isdigit():
            return None
        return int(str(arguments[1]))


ViewResult = TypeAdapter(list[object])
BoolView = TypeAdapter(bool)
AddressView = TypeAdapter(str)
U64View = TypeAdapter(int)
UpiListView = TypeAdapter(list[str])
EscrowListView = TypeAdapter(list[EscrowPayload])
AccountTransactionList = TypeAdapter(list[AccountTransactionPayload])
EncodedSubmission = TypeAdapter(str)
