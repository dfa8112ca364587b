"""
Account session: lifecycle and the deposit / transfer / exit flows.

A session resolves one account at init and gates every chain operation
on being READY. Cached account state is advisory; spend decisions always
re-read UTXOs from the child chain.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, List, Optional, Sequence, Tuple, Type, TypeVar, Union

from web3 import Web3

from .child_chain import ChildChain
from .config import PlasmaSettings, get_settings
from .confirmation import ConfirmationWatcher
from .exceptions import (
    AlreadyInitializingError,
    DepositError,
    ExitError,
    InsufficientFundsError,
    InvalidAddressError,
    InvalidAmountError,
    NoUtxosFoundError,
    NotReadyError,
    PartialExitFailureError,
    SessionInitError,
    TransactionSubmitError,
    UpstreamError,
)
from .logging_utils import OperationType, SessionLogger, mask_sensitive_data
from .models import (
    ETH_SYMBOL,
    UNKNOWN_SYMBOL,
    AccountBalances,
    AccountState,
    ConfiguredAccount,
    CurrencyBalance,
    Utxo,
)
from .ports import ChildChainPort, Receipt, RootChainPort, SigningProviderPort
from .root_chain import RootChain
from .rpc_client import RootChainRPC
from .selection import select_utxos
from .signing import RPCSigningProvider, TypedDataSigner
from .transaction import (
    ETH_CURRENCY,
    create_transaction_body,
    encode_deposit,
    get_typed_data,
    is_eth,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionState(str, Enum):
    """Lifecycle of an account session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"  # Last init failed; init again to recover


def _pick_account(candidates: Sequence[T]) -> T:
    # The first account is the deployer; prefer the manually added second one
    return candidates[1] if len(candidates) > 1 else candidates[0]


class AccountSession:
    """
    Coordinates one account across the root chain and the child chain.

    Usage:
        async with AccountSession.from_settings() as session:
            await session.init()
            print(await session.deposit(10**15))
    """

    def __init__(
        self,
        settings: PlasmaSettings,
        root_chain: RootChainPort,
        child_chain: ChildChainPort,
        signing_provider: SigningProviderPort,
        accounts: Optional[Sequence[Union[ConfiguredAccount, dict]]] = None,
        watcher: Optional[ConfirmationWatcher] = None,
    ):
        self._settings = settings
        self._root_chain = root_chain
        self._child_chain = child_chain
        self._signing_provider = signing_provider
        self._accounts = [
            a if isinstance(a, ConfiguredAccount) else ConfiguredAccount.from_dict(a)
            for a in accounts or []
        ]
        self._watcher = watcher or ConfirmationWatcher(
            root_chain,
            poll_interval_seconds=settings.poll_interval_seconds,
            blocks_to_wait=settings.confirmation_blocks,
            timeout_seconds=settings.confirmation_timeout_seconds,
        )
        self._log = SessionLogger(
            operation_level=settings.operation_level,
            error_level=settings.error_level,
            mask_addresses=settings.mask_addresses,
        )

        self._state = SessionState.UNINITIALIZED
        self._address = ""
        self._signer: Optional[TypedDataSigner] = None
        self._account_state = AccountState()
        self._resources: List[Any] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[PlasmaSettings] = None,
        accounts: Optional[Sequence[Union[ConfiguredAccount, dict]]] = None,
    ) -> "AccountSession":
        """Build a session wired to the default JSON-RPC and watcher clients."""
        settings = settings or get_settings()
        rpc = RootChainRPC(settings.root_rpc_url, timeout_seconds=settings.http_timeout_seconds)
        root_chain = RootChain(
            rpc,
            settings.plasma_contract_address,
            poll_interval_seconds=settings.poll_interval_seconds,
            receipt_timeout_seconds=settings.receipt_timeout_seconds,
            approve_gas=settings.approve_gas,
            approve_gas_price=settings.approve_gas_price,
        )
        child_chain = ChildChain(settings.watcher_url, timeout_seconds=settings.http_timeout_seconds)

        session = cls(settings, root_chain, child_chain, RPCSigningProvider(rpc), accounts=accounts)
        session._resources.extend([child_chain, rpc])
        return session

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def address(self) -> str:
        return self._address

    @property
    def account_state(self) -> AccountState:
        return self._account_state

    @property
    def settings(self) -> PlasmaSettings:
        return self._settings

    @property
    def watcher(self) -> ConfirmationWatcher:
        return self._watcher

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> None:
        """
        Resolve the session account and load its state.

        Raises:
            AlreadyInitializingError: Another init is in flight
            SessionInitError: Account resolution or the initial refresh failed;
                the session is left FAILED
        """
        if self._state == SessionState.INITIALIZING:
            raise AlreadyInitializingError()
        self._state = SessionState.INITIALIZING

        async with self._log.operation_context(OperationType.INIT, self._address) as ctx:
            try:
                address, private_key = await self._resolve_account()
                self._address = address
                self._signer = TypedDataSigner(
                    self._signing_provider,
                    self._child_chain,
                    private_key=private_key,
                    allow_private_key_fallback=self._settings.allow_private_key_signing,
                )
                ctx.address = self._log.display_address(address)
                await self._refresh_state()
            except Exception as e:
                self._state = SessionState.FAILED
                raise SessionInitError(
                    f"Error initializing Plasma chain: {e}", step="init"
                ) from e
            except BaseException:
                self._state = SessionState.FAILED
                raise

            self._state = SessionState.READY

    async def _resolve_account(self) -> Tuple[str, Optional[str]]:
        if self._accounts:
            self._log.log_event(
                "Using configured accounts",
                level="DEBUG",
                accounts=[mask_sensitive_data(asdict(a)) for a in self._accounts],
            )
            account = _pick_account(self._accounts)
            return account.address, account.private_key

        accounts = await self._root_chain.get_accounts()
        if not accounts:
            raise UpstreamError("The root chain provider exposes no accounts", step="get_accounts")
        return _pick_account(accounts), None

    def _require_ready(self, operation: str) -> None:
        if self._state != SessionState.READY:
            raise NotReadyError(operation, self._state.value)

    async def close(self) -> None:
        """Close HTTP clients owned by this session."""
        for resource in self._resources:
            await resource.close()
        self._resources.clear()

    async def __aenter__(self) -> "AccountSession":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _parse_amount(amount: Any) -> int:
        """Parse an amount into a positive integer of base units."""
        if isinstance(amount, bool):
            raise InvalidAmountError(amount)
        try:
            if isinstance(amount, str):
                text = amount.strip()
                value = int(text, 16) if text.lower().startswith("0x") else int(text)
            elif isinstance(amount, (float, Decimal)):
                if amount != int(amount):
                    raise InvalidAmountError(amount)
                value = int(amount)
            else:
                value = int(amount)
        except (TypeError, ValueError, ArithmeticError):
            raise InvalidAmountError(amount) from None

        if value <= 0:
            raise InvalidAmountError(amount, message=f"You must transact more than 0, got {amount!r}")
        return value

    @staticmethod
    async def _step(error_cls: Type[UpstreamError], step: str, awaitable: Awaitable[T], **details: Any) -> T:
        """Await one step of a flow, wrapping failures with the step name."""
        try:
            return await awaitable
        except Exception as e:
            raise error_cls(f"{step} failed: {e}", step=step, details=details) from e

    async def _fetch_and_select(self, amount: int, currency: str) -> List[Utxo]:
        include_fee = not is_eth(currency)
        target = amount + self._settings.transfer_fee if not include_fee else amount
        utxos = await self._child_chain.get_utxos(self._address)
        selected = select_utxos(
            utxos, target, currency, include_fee, fee=self._settings.transfer_fee,
        )
        if selected is None:
            raise InsufficientFundsError(self._address, target, currency)
        return selected

    # =========================================================================
    # Operations
    # =========================================================================

    async def deposit(
        self,
        amount: Any,
        currency: str = ETH_CURRENCY,
        approve_deposit: bool = False,
    ) -> str:
        """
        Deposit funds from the root chain into the child chain.

        Token deposits need an allowance for the plasma contract; with
        ``approve_deposit`` the session approves first and waits for the
        approval to be confirmed.

        Raises:
            NotReadyError: Session is not READY
            InvalidAmountError: Amount is not a positive integer
            DepositError: A deposit step failed (see ``step``)
        """
        self._require_ready("deposit")
        value = self._parse_amount(amount)
        address = self._address

        async with self._log.operation_context(
            OperationType.DEPOSIT, address, amount=str(value), currency=currency,
        ) as ctx:
            deposit_tx = encode_deposit(address, value, currency)
            details = {"address": address, "currency": currency, "amount": str(value)}

            if is_eth(currency):
                logger.info(f"Depositing {value} wei...")
                receipt = await self._step(
                    DepositError, "deposit_eth",
                    self._root_chain.deposit_eth(deposit_tx, value, address), **details,
                )
                unit = ETH_SYMBOL
            else:
                if approve_deposit:
                    approval = await self._step(
                        DepositError, "approve",
                        self._root_chain.approve_token(
                            currency, self._settings.plasma_contract_address, value, address,
                        ),
                        **details,
                    )
                    approval_hash = approval["transactionHash"]
                    logger.info(f"{value} erc20 approved: {approval_hash}. Waiting for confirmation...")
                    await self._step(
                        DepositError, "confirm_approval",
                        self._watcher.confirm(approval_hash), **details,
                    )
                    logger.info(f"... {approval_hash} confirmed.")

                receipt = await self._step(
                    DepositError, "deposit_token",
                    self._root_chain.deposit_token(deposit_tx, address), **details,
                )
                unit = currency

            tx_hash = receipt["transactionHash"]
            ctx.metadata["tx_hash"] = tx_hash
            return (
                f"Successfully deposited {value} {unit} in to the Plasma chain.\n"
                f"View the transaction: {self._settings.root_tx_link(tx_hash)}"
            )

    async def transfer(self, to_address: str, amount: Any, currency: str = ETH_CURRENCY) -> str:
        """
        Pay ``amount`` of ``currency`` to ``to_address`` on the child chain.

        Inputs are selected from a fresh UTXO read. Two concurrent transfers
        can select overlapping inputs; the child chain rejects the second as
        a double spend, so callers should serialize transfers themselves.

        Raises:
            NotReadyError: Session is not READY
            InvalidAmountError: Amount is not a positive integer
            InvalidAddressError: Recipient is not a valid address
            InsufficientFundsError: No set of at most four UTXOs covers the amount
            InsufficientFeeFundsError: No spare native UTXO to pay the fee
            SigningMethodUnsupportedError: Provider cannot sign typed data
            TransactionSubmitError: The child chain rejected the transaction
        """
        self._require_ready("transfer")
        value = self._parse_amount(amount)
        if not isinstance(to_address, str) or not Web3.is_address(to_address):
            raise InvalidAddressError(to_address, field="to_address")
        address = self._address

        async with self._log.operation_context(
            OperationType.TRANSFER, address,
            to_address=to_address, amount=str(value), currency=currency,
        ) as ctx:
            utxos = await self._fetch_and_select(value, currency)
            tx_body = create_transaction_body(
                address, utxos, to_address, value, currency, fee=self._settings.transfer_fee,
            )
            typed_data = get_typed_data(tx_body, self._settings.plasma_contract_address)

            signatures = await self._signer.sign(Web3.to_checksum_address(address), typed_data)
            signed_tx = self._child_chain.build_signed_transaction(typed_data, signatures)

            result = await self._step(
                TransactionSubmitError, "submit_transaction",
                self._child_chain.submit_transaction(signed_tx),
                address=address, currency=currency, amount=str(value),
            )
            ctx.metadata["txhash"] = result.get("txhash")
            return (
                f"Successfully submitted tx on the child chain: {json.dumps(result)}\n"
                f"View the transaction: {self._settings.child_tx_link(result.get('txhash'))}"
            )

    async def select_utxos(self, amount: Any, currency: str = ETH_CURRENCY) -> Optional[List[Utxo]]:
        """Select inputs for a payment from the live UTXO set, or None."""
        self._require_ready("select_utxos")
        value = self._parse_amount(amount)
        utxos = await self._child_chain.get_utxos(self._address)
        return select_utxos(
            utxos, value, currency,
            include_fee=not is_eth(currency), fee=self._settings.transfer_fee,
        )

    async def _exit(self, from_address: str, utxo: Utxo) -> Receipt:
        details = {"address": from_address, "utxo_pos": utxo.utxo_pos}
        exit_data = await self._step(
            ExitError, "get_exit_data", self._child_chain.get_exit_data(utxo), **details,
        )
        return await self._step(
            ExitError, "start_standard_exit",
            self._root_chain.start_standard_exit(
                exit_data.utxo_pos, exit_data.txbytes, exit_data.proof, from_address,
            ),
            **details,
        )

    async def exit_utxo(self, from_address: str, utxo: Utxo) -> Receipt:
        """
        Start a standard exit for one UTXO.

        Returns the root-chain receipt without waiting for confirmations.
        """
        self._require_ready("exit_utxo")
        async with self._log.operation_context(
            OperationType.EXIT, from_address, utxo_pos=utxo.utxo_pos,
        ):
            return await self._exit(from_address, utxo)

    async def _exit_outcome(self, from_address: str, utxo: Utxo) -> Tuple[bool, str]:
        try:
            receipt = await self._exit(from_address, utxo)
        except ExitError as e:
            return False, f"Error exiting the Plasma chain for UTXO {json.dumps(utxo.to_dict())}: {e}"
        return True, (
            f"Exited UTXO from address {from_address} with value {utxo.amount}. "
            f"View the transaction: {self._settings.root_tx_link(receipt['transactionHash'])}"
        )

    async def exit_all_utxos(self, from_address: str) -> str:
        """
        Exit every UTXO of ``from_address`` concurrently.

        Raises:
            NoUtxosFoundError: The address holds no UTXOs
            PartialExitFailureError: At least one exit failed; carries the
                messages of the exits that succeeded
        """
        self._require_ready("exit_all_utxos")
        async with self._log.operation_context(OperationType.EXIT_ALL, from_address) as ctx:
            utxos = await self._child_chain.get_utxos(from_address)
            if not utxos:
                raise NoUtxosFoundError(from_address)

            outcomes = await asyncio.gather(
                *(self._exit_outcome(from_address, utxo) for utxo in utxos)
            )
            messages = [text for ok, text in outcomes if ok]
            errors = [text for ok, text in outcomes if not ok]
            ctx.metadata.update(succeeded=len(messages), failed=len(errors))

            if errors:
                raise PartialExitFailureError(from_address, messages, errors)
            return "\n".join(messages)

    async def _symbol_for(self, balance: CurrencyBalance) -> CurrencyBalance:
        if is_eth(balance.currency):
            return replace(balance, symbol=ETH_SYMBOL)
        try:
            symbol = await self._root_chain.token_symbol(balance.currency)
        except Exception as e:
            logger.debug(f"Symbol lookup failed for {balance.currency}: {e}")
            symbol = UNKNOWN_SYMBOL
        return replace(balance, symbol=symbol)

    async def _fetch_balances(self) -> AccountBalances:
        root_balance = await self._root_chain.get_balance(self._address)
        child_balances = await self._child_chain.get_balance(self._address)
        decorated = await asyncio.gather(*(self._symbol_for(b) for b in child_balances))
        return AccountBalances(root_balance=root_balance, child_balances=list(decorated))

    async def balances(self) -> AccountBalances:
        """Root-chain native balance plus child-chain balances with symbols."""
        self._require_ready("balances")
        async with self._log.operation_context(OperationType.BALANCES, self._address):
            return await self._fetch_balances()

    async def _refresh_state(self) -> AccountState:
        balances = await self._fetch_balances()
        transactions = await self._child_chain.get_transactions(self._address)
        utxos = await self._child_chain.get_utxos(self._address)

        state = self._account_state
        state.account.address = self._address
        state.account.root_balance = balances.root_balance
        state.account.child_balances = balances.child_balances
        state.transactions = transactions
        state.utxos = utxos
        state.touch()
        return state

    async def update_state(self) -> AccountState:
        """Refresh cached balances, transaction history and UTXOs."""
        self._require_ready("update_state")
        async with self._log.operation_context(OperationType.STATE_REFRESH, self._address):
            return await self._refresh_state()
