"""Registry client talking to an Aptos full node over its REST API."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import BaseModel, TypeAdapter, ValidationError

from upilink.adapters.http_resilience import ResilienceConfig, ResilientClient
from upilink.adapters.keys import Ed25519Signer
from upilink.config.errors import ConfigurationError
from upilink.config.registry import default_resilience
from upilink.domain.model import (
    AccountTransaction,
    FailureReason,
    MerchantProfile,
    OperationResult,
    RegistryStats,
    normalize_address,
)
from upilink.domain.ports import (
    MappingNotFoundError,
    RegistryClient,
    RegistryError,
    RegistryUnavailableError,
    RemoteEscrow,
)

from .schema import (
    AccountResponse,
    AccountTransactionList,
    AddressView,
    BoolView,
    CoinStoreResource,
    EncodedSubmission,
    ErrorResponse,
    EscrowListView,
    MerchantInfoPayload,
    PendingTransactionResponse,
    TransactionResponse,
    U64View,
    UpiListView,
    ViewResult,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from upilink.config.registry import RegistryConfig
    from upilink.domain.model import Address

log = getLogger(__name__)

_TRANSIENT_STATUS = frozenset({408, 429})
APTOS_COIN_STORE = "0x1::coin::CoinStore<0x1::aptos_coin::AptosCoin>"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


class AptosAPIError(RegistryError):
    """Raised when the node rejects a request or returns an unexpected payload."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error_code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class _ConfirmationTimeoutError(RuntimeError):
    pass


def _raise_for_status(response: httpx.Response) -> None:
    if response.is_success:
        return
    try:
        error = ErrorResponse.model_validate(response.json())
        message = error.message
        error_code = error.error_code
    except (ValueError, ValidationError):
        message = response.text or response.reason_phrase
        error_code = None
    if response.status_code >= 500 or response.status_code in _TRANSIENT_STATUS:
        raise RegistryUnavailableError(f"Node returned {response.status_code}: {message}")
    raise AptosAPIError(message, status_code=response.status_code, error_code=error_code)


def _json(response: httpx.Response) -> object:
    try:
        return response.json()
    except ValueError as exc:
        message = "Node returned a non-JSON body"
        raise AptosAPIError(message, status_code=response.status_code) from exc


def _parse[T](adapter: TypeAdapter[T], payload: object) -> T:
    try:
        return adapter.validate_python(payload)
    except ValidationError as exc:
        raise AptosAPIError(f"Unexpected node payload: {exc.error_count()} error(s)") from exc


def _parse_model[M: BaseModel](model: type[M], payload: object) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise AptosAPIError(f"Unexpected node payload for {model.__name__}") from exc


@dataclass(slots=True)
class AptosRegistryClient:
    """``RegistryClient`` for the ``upi_registry`` Move module.

    Every port call opens its own resilient HTTP session and runs to completion
    with ``asyncio.run``. Views are POSTed to ``/view``; writes follow
    account lookup, ``encode_submission``, local Ed25519 signing, submission
    and ``wait_by_hash``. Only GET requests are retried by the transport, so a
    transaction is never submitted twice.
    """

    config: RegistryConfig
    signer: Ed25519Signer | None = None
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    clock: Callable[[], datetime] = _utcnow
    poll_interval_seconds: float = 1.0
    resilience: ResilienceConfig = field(init=False)
    node_url: str = field(init=False)
    contract_address: Address = field(init=False)

    def __post_init__(self) -> None:
        if not self.config.node_url or not self.config.contract_address:
            raise ConfigurationError("Aptos registry mode needs a node URL and contract address")
        if self.signer is None:
            if not self.config.private_key:
                raise ConfigurationError("Aptos registry mode needs UPILINK_PRIVATE_KEY")
            self.signer = Ed25519Signer.from_hex(self.config.private_key)
        self.node_url = self.config.node_url.rstrip("/")
        self.contract_address = normalize_address(self.config.contract_address)
        self.resilience = self.config.resilience or default_resilience(self.node_url)

    @property
    def identity(self) -> Address:
        return self._signer.address

    @property
    def _signer(self) -> Ed25519Signer:
        if self.signer is None:
            raise ConfigurationError("Aptos registry client has no signer")
        return self.signer

    # reads ----------------------------------------------------------------------

    def exists(self, upi_id: str) -> bool:
        return self._run(lambda client: self._exists(client, upi_id))

    def owner_of(self, upi_id: str) -> Address:
        async def lookup(client: ResilientClient) -> Address:
            # the owner view aborts for unknown ids, so check existence first
            if not await self._exists(client, upi_id):
                raise MappingNotFoundError(upi_id)
            result = await self._view(client, "get_merchant_by_upi", upi_id)
            return normalize_address(_parse(AddressView, _first(result)))

        return self._run(lookup)

    def list_mappings_of(self, owner: Address) -> list[str]:
        async def fetch(client: ResilientClient) -> list[str]:
            result = await self._view(client, "get_merchant_upis", normalize_address(owner))
            return _parse(UpiListView, _first(result))

        return self._run(fetch)

    def list_escrows_of(self, owner: Address) -> list[RemoteEscrow]:
        async def fetch(client: ResilientClient) -> list[RemoteEscrow]:
            result = await self._view(client, "get_merchant_escrows", normalize_address(owner))
            return [
                RemoteEscrow(address=item.address, upi_id=item.upi_id, created_at=item.created_at)
                for item in _parse(EscrowListView, _first(result))
            ]

        return self._run(fetch)

    def merchant_info(self, address: Address) -> MerchantProfile | None:
        async def lookup(client: ResilientClient) -> MerchantProfile | None:
            try:
                result = await self._view(client, "get_merchant_info", normalize_address(address))
            except AptosAPIError as exc:
                # the view aborts for addresses that never registered
                if exc.status_code == httpx.codes.BAD_REQUEST:
                    return None
                raise
            info = _parse_model(MerchantInfoPayload, _first(result))
            return MerchantProfile(
                address=info.merchant_address,
                business_name=info.business_name,
                contact_info=info.contact_info,
                registered_at=info.registration_timestamp,
                is_active=info.is_active,
                kyc_verified=info.kyc_verified,
            )

        return self._run(lookup)

    def registry_stats(self) -> RegistryStats:
        async def fetch(client: ResilientClient) -> RegistryStats:
            result = await self._view(client, "get_registry_stats")
            if len(result) < 2:
                raise AptosAPIError("get_registry_stats returned fewer than two values")
            return RegistryStats(
                total_merchants=_parse(U64View, result[0]),
                total_mappings=_parse(U64View, result[1]),
            )

        return self._run(fetch)

    def account_balance(self, address: Address) -> int:
        async def fetch(client: ResilientClient) -> int:
            account = normalize_address(address)
            response = await client.get(
                f"{self.node_url}/accounts/{account}/resource/{APTOS_COIN_STORE}"
            )
            # unknown account or no coin store yet
            if response.status_code == httpx.codes.NOT_FOUND:
                return 0
            _raise_for_status(response)
            return _parse_model(CoinStoreResource, _json(response)).octas

        return self._run(fetch)

    def account_transactions(self, address: Address, limit: int) -> list[AccountTransaction]:
        async def fetch(client: ResilientClient) -> list[AccountTransaction]:
            account = normalize_address(address)
            response = await client.get(
                f"{self.node_url}/accounts/{account}/transactions", params={"limit": limit}
            )
            if response.status_code == httpx.codes.NOT_FOUND:
                return []
            _raise_for_status(response)
            payloads = _parse(AccountTransactionList, _json(response))
            # the node lists oldest first
            return [
                AccountTransaction(
                    reference=payload.hash,
                    timestamp=payload.timestamp,
                    success=payload.success,
                    function=payload.function,
                    sender=payload.sender,
                    amount_octas=payload.amount_octas,
                )
                for payload in reversed(payloads)
            ]

        return self._run(fetch)

    # writes ---------------------------------------------------------------------

    def submit_register(self, upi_id: str) -> OperationResult:
        return self._submit("register_upi", upi_id)

    def submit_remove(self, upi_id: str) -> OperationResult:
        return self._submit("remove_upi", upi_id)

    def submit_link_escrow(self, upi_id: str, address: Address) -> OperationResult:
        return self._submit("link_escrow", upi_id, normalize_address(address))

    def submit_register_merchant(self, business_name: str, contact_info: str) -> OperationResult:
        return self._submit("register_merchant", business_name, contact_info)

    # internals ------------------------------------------------------------------

    def _function(self, name: str) -> str:
        return f"{self.contract_address}::{self.config.module_name}::{name}"

    def _run[T](self, operation: Callable[[ResilientClient], Awaitable[T]]) -> T:
        async def runner() -> T:
            async with self.client_factory(self.resilience) as client:
                return await operation(client)

        try:
            return asyncio.run(runner())
        except httpx.TimeoutException as exc:
            raise RegistryUnavailableError("Registry read timed out", timed_out=True) from exc
        except httpx.TransportError as exc:
            raise RegistryUnavailableError(f"Registry unreachable: {exc}") from exc

    async def _exists(self, client: ResilientClient, upi_id: str) -> bool:
        result = await self._view(client, "upi_exists", upi_id)
        return _parse(BoolView, _first(result))

    async def _view(self, client: ResilientClient, name: str, *arguments: str) -> list[object]:
        body = {
            "function": self._function(name),
            "type_arguments": [],
            "arguments": list(arguments),
        }
        response = await client.post(f"{self.node_url}/view", json=body)
        _raise_for_status(response)
        return _parse(ViewResult, _json(response))

    def _submit(self, function: str, *arguments: str) -> OperationResult:
        async def runner() -> OperationResult:
            async with self.client_factory(self.resilience) as client:
                return await self._submit_async(client, function, arguments)

        return asyncio.run(runner())

    async def _submit_async(
        self,
        client: ResilientClient,
        function: str,
        arguments: tuple[str, ...],
    ) -> OperationResult:
        tx_hash = ""
        try:
            request = await self._build_request(client, function, arguments)
            signature = await self._sign(client, request)
            response = await client.post(
                f"{self.node_url}/transactions", json={**request, "signature": signature}
            )
            _raise_for_status(response)
            tx_hash = _parse_model(PendingTransactionResponse, _json(response)).hash
            log.info("Submitted %s for %s: %s", function, arguments[0], tx_hash)

            transaction = await self._wait_for(client, tx_hash)
        except _ConfirmationTimeoutError:
            log.warning("Transaction %s not confirmed in time", tx_hash)
            return OperationResult.failure(
                FailureReason.TIMEOUT, reference=tx_hash, detail="transaction not confirmed in time"
            )
        except httpx.TimeoutException:
            return OperationResult.failure(
                FailureReason.TIMEOUT, reference=tx_hash, detail=f"{function} timed out"
            )
        except httpx.TransportError as exc:
            return OperationResult.failure(
                FailureReason.UNAVAILABLE, reference=tx_hash, detail=str(exc) or type(exc).__name__
            )
        except RegistryUnavailableError as exc:
            reason = FailureReason.TIMEOUT if exc.timed_out else FailureReason.UNAVAILABLE
            return OperationResult.failure(reason, reference=tx_hash, detail=str(exc))
        except AptosAPIError as exc:
            log.warning("Node rejected %s: %s", function, exc)
            return OperationResult.failure(
                FailureReason.REJECTED, reference=tx_hash, detail=str(exc)
            )

        if not transaction.success:
            log.warning("Transaction %s aborted: %s", tx_hash, transaction.vm_status)
            return OperationResult.failure(
                FailureReason.REJECTED, reference=tx_hash, detail=transaction.vm_status
            )
        return OperationResult.success(tx_hash)

    async def _build_request(
        self,
        client: ResilientClient,
        function: str,
        arguments: tuple[str, ...],
    ) -> dict[str, Any]:
        sender = self._signer.address
        response = await client.get(f"{self.node_url}/accounts/{sender}")
        _raise_for_status(response)
        account = _parse_model(AccountResponse, _json(response))

        gas = self.config.gas
        expiration = int(self.clock().timestamp()) + gas.expiration_seconds
        return {
            "sender": sender,
            "sequence_number": str(account.sequence_number),
            "max_gas_amount": str(gas.max_gas_amount),
            "gas_unit_price": str(gas.gas_unit_price),
            "expiration_timestamp_secs": str(expiration),
            "payload": {
                "type": "entry_function_payload",
                "function": self._function(function),
                "type_arguments": [],
                "arguments": list(arguments),
            },
        }

    async def _sign(self, client: ResilientClient, request: dict[str, Any]) -> dict[str, str]:
        response = await client.post(
            f"{self.node_url}/transactions/encode_submission", json=request
        )
        _raise_for_status(response)
        encoded = _parse(EncodedSubmission, _json(response))
        try:
            message = bytes.fromhex(encoded.removeprefix("0x"))
        except ValueError as exc:
            raise AptosAPIError("encode_submission returned non-hex payload") from exc
        return {
            "type": "ed25519_signature",
            "public_key": self._signer.public_key_hex,
            "signature": self._signer.sign(message),
        }

    async def _wait_for(self, client: ResilientClient, tx_hash: str) -> TransactionResponse:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirmation_timeout_seconds
        while True:
            response = await client.get(f"{self.node_url}/transactions/wait_by_hash/{tx_hash}")
            if response.status_code != httpx.codes.NOT_FOUND:
                _raise_for_status(response)
                transaction = _parse_model(TransactionResponse, _json(response))
                if not transaction.is_pending:
                    return transaction
            if loop.time() >= deadline:
                raise _ConfirmationTimeoutError(tx_hash)
            await asyncio.sleep(self.poll_interval_seconds)


def _first(result: list[object]) -> object:
    if not result:
        raise AptosAPIError("View returned no values")
    return result[0]


if TYPE_CHECKING:
    _client_check: RegistryClient = AptosRegistryClient(RegistryConfig(mode="aptos"))
