"""Leverage engine — one short-term-loan-funded pass per leverage or deleverage.

A pass borrows the loan asset from the pool, converts it through the venue,
moves the owner's position inside the pool callback and leaves the engine
holding exactly loan plus premium for the pool to pull back. Everything runs
inside ``host.atomic()``: if any step raises, no effect of the pass remains.
"""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from enum import Enum

from ..codec import decode_operation, encode_operation
from ..errors import (
    AssetMismatch,
    InvalidAddress,
    InvalidAmount,
    InvalidLoanAmount,
    LeverageError,
    SwapFailed,
    Unauthorized,
    UnknownAction,
)
from ..interfaces.asset_book import AssetBook, TransactionalHost
from ..interfaces.lending_pool import LendingPool
from ..interfaces.venue import ConversionVenue
from ..models import (
    Action,
    DeleverageRequest,
    LeverageRequest,
    OperationReceipt,
    PendingOperation,
)
from ..operator import OperatorRecord, is_null_address

logger = logging.getLogger(__name__)


class EngineState(Enum):
    IDLE = "idle"
    LOAN_REQUESTED = "loan_requested"
    EXECUTING = "executing"
    SETTLING = "settling"


@dataclass
class _Pass:
    """Bookkeeping for the pass in flight."""

    operation: PendingOperation
    baseline: dict[str, int]
    premium: int = 0
    swapped_in: int = 0
    swapped_out: int = 0
    supplied: int = 0
    borrowed: int = 0
    repaid: int = 0
    withdrawn: int = 0
    swept: list[tuple[str, int]] = field(default_factory=list)


def _rejected(error: LeverageError) -> LeverageError:
    logger.warning("Rejected: %s", error)
    return error


class LeverageEngine:
    """Callback-driven state machine: IDLE -> LOAN_REQUESTED -> EXECUTING -> SETTLING."""

    def __init__(
        self,
        address: str,
        pool: LendingPool,
        venue: ConversionVenue,
        assets: AssetBook,
        host: TransactionalHost,
        operator: OperatorRecord,
    ) -> None:
        if is_null_address(address):
            raise InvalidAddress("Engine address cannot be empty or zero")
        self._address = address
        self._pool = pool
        self._venue = venue
        self._assets = assets
        self._host = host
        self._operator = operator
        self._state = EngineState.IDLE
        self._pass: _Pass | None = None

    @property
    def address(self) -> str:
        return self._address

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def operator(self) -> str:
        return self._operator.operator

    def _transition(self, state: EngineState) -> None:
        logger.debug("Engine %s: %s -> %s", self._address, self._state.value, state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def execute_leverage(self, sender: str, request: LeverageRequest) -> OperationReceipt:
        """Add collateral and lever the owner's position up in one atomic pass.

        Raises:
            Unauthorized: ``sender`` is not the position owner.
            InvalidAmount: zero amounts, or an instruction that does not fit
                the asset pair. Checked before any external call.
        """
        self._check_request(sender, request)
        if request.new_collateral_amount <= 0 or request.loan_amount <= 0:
            raise _rejected(InvalidAmount("Collateral to add and loan amount must be positive"))
        return await self._run(Action.LEVERAGE, request, request.borrow_asset, request.loan_amount)

    async def execute_deleverage(
        self, sender: str, request: DeleverageRequest
    ) -> OperationReceipt:
        """Repay part of the owner's debt with a collateral loan in one atomic pass."""
        self._check_request(sender, request)
        if request.loan_amount <= 0 or request.repay_amount <= 0 or request.withdraw_amount <= 0:
            raise _rejected(InvalidAmount("Loan, repay and withdraw amounts must be positive"))
        if request.withdraw_amount < request.loan_amount:
            raise _rejected(
                InvalidAmount(
                    f"Withdrawal {request.withdraw_amount} cannot cover loan {request.loan_amount}"
                )
            )
        return await self._run(
            Action.DELEVERAGE, request, request.collateral_asset, request.loan_amount
        )

    def _check_request(self, sender: str, request: LeverageRequest | DeleverageRequest) -> None:
        if is_null_address(request.position_owner):
            raise _rejected(InvalidAddress("Position owner cannot be empty or zero"))
        if sender != request.position_owner:
            raise _rejected(
                Unauthorized(f"{sender} cannot act for position owner {request.position_owner}")
            )
        same_asset = request.borrow_asset == request.collateral_asset
        if same_asset == bool(request.conversion_instruction):
            raise _rejected(
                InvalidAmount(
                    "Conversion instruction must be given exactly when the assets differ"
                )
            )

    async def _run(
        self,
        action: Action,
        request: LeverageRequest | DeleverageRequest,
        loan_asset: str,
        loan_amount: int,
    ) -> OperationReceipt:
        self._require_idle()
        async with self._host.atomic():
            operation = PendingOperation(
                action=action,
                owner=request.position_owner,
                request=request,
                token=secrets.token_hex(16),
            )
            current = _Pass(
                operation=operation,
                baseline={
                    asset: self._assets.balance_of(asset, self._address)
                    for asset in (request.collateral_asset, request.borrow_asset)
                },
            )
            self._pass = current
            try:
                if isinstance(request, LeverageRequest):
                    self._assets.transfer_from(
                        request.collateral_asset,
                        self._address,
                        request.position_owner,
                        self._address,
                        request.new_collateral_amount,
                    )
                self._transition(EngineState.LOAN_REQUESTED)
                await self._pool.request_short_term_loan(
                    self._address,
                    self,
                    [loan_asset],
                    [loan_amount],
                    encode_operation(operation),
                )
                if self._state is not EngineState.SETTLING:
                    raise InvalidLoanAmount("Pool returned without delivering the loan")
                receipt = self._receipt(current, loan_asset, loan_amount)
            except Exception:
                logger.warning(
                    "%s pass for %s failed; all effects rolled back",
                    action.value, request.position_owner,
                )
                raise
            finally:
                self._pass = None
                self._transition(EngineState.IDLE)

        logger.info(
            "%s pass for %s done: loan %d %s, premium %d, supplied %d, borrowed %d, "
            "repaid %d, withdrawn %d",
            action.value, receipt.owner, receipt.loan_amount, receipt.loan_asset,
            receipt.premium, receipt.supplied, receipt.borrowed, receipt.repaid,
            receipt.withdrawn,
        )
        return receipt

    def _require_idle(self) -> None:
        if self._state is not EngineState.IDLE:
            raise _rejected(Unauthorized(f"Engine is busy ({self._state.value})"))

    @staticmethod
    def _receipt(current: _Pass, loan_asset: str, loan_amount: int) -> OperationReceipt:
        return OperationReceipt(
            action=current.operation.action,
            owner=current.operation.owner,
            loan_asset=loan_asset,
            loan_amount=loan_amount,
            premium=current.premium,
            swapped_in=current.swapped_in,
            swapped_out=current.swapped_out,
            supplied=current.supplied,
            borrowed=current.borrowed,
            repaid=current.repaid,
            withdrawn=current.withdrawn,
            swept=tuple(current.swept),
        )

    # ------------------------------------------------------------------
    # Loan callback
    # ------------------------------------------------------------------

    async def on_loan_fulfilled(
        self,
        caller: str,
        assets: list[str],
        amounts: list[int],
        premiums: list[int],
        initiator: str,
        payload: bytes,
    ) -> bool:
        """Run the pending operation with the loaned funds.

        Returns True once the engine holds loan plus premium and has approved
        the pool to pull it.
        """
        if caller != self._pool.address:
            raise _rejected(Unauthorized(f"Loan callback from {caller}, not the pool"))
        if initiator != self._address:
            raise _rejected(Unauthorized(f"Loan initiated by {initiator}, not this engine"))
        current = self._pass
        if self._state is not EngineState.LOAN_REQUESTED or current is None:
            raise _rejected(Unauthorized(f"No loan requested (state {self._state.value})"))

        operation = decode_operation(payload)
        expected = current.operation
        token_ok = isinstance(operation.token, str) and secrets.compare_digest(
            operation.token.encode(), expected.token.encode()
        )
        if not token_ok or operation != expected:
            raise _rejected(Unauthorized("Callback payload does not match the pending operation"))

        self._transition(EngineState.EXECUTING)
        request = operation.request
        match operation.action:
            case Action.LEVERAGE:
                loan_asset = request.borrow_asset
            case Action.DELEVERAGE:
                loan_asset = request.collateral_asset
            case _:
                raise UnknownAction(f"Unhandled action {operation.action!r}")

        if len(assets) != 1 or assets[0] != loan_asset:
            raise _rejected(AssetMismatch(f"Loaned {assets}, expected [{loan_asset}]"))
        if len(amounts) != 1 or amounts[0] != request.loan_amount:
            raise _rejected(
                InvalidLoanAmount(f"Loaned {amounts}, expected [{request.loan_amount}]")
            )
        if len(premiums) != 1 or premiums[0] < 0:
            raise _rejected(InvalidLoanAmount(f"Malformed premiums {premiums}"))
        loan, premium = amounts[0], premiums[0]
        current.premium = premium

        match request:
            case LeverageRequest():
                await self._lever_up(current, request, loan, premium)
            case DeleverageRequest():
                await self._lever_down(current, request, loan, premium)
            case _:
                raise UnknownAction(f"Unhandled request {type(request).__name__}")

        self._transition(EngineState.SETTLING)
        self._settle(current, loan_asset, loan + premium)
        return True

    async def _lever_up(
        self, current: _Pass, request: LeverageRequest, loan: int, premium: int
    ) -> None:
        collateral = request.collateral_asset
        if request.borrow_asset != collateral:
            await self._convert(
                current, request.borrow_asset, collateral, loan, request.conversion_instruction
            )

        supply = self._assets.balance_of(collateral, self._address) - current.baseline[collateral]
        self._assets.approve(collateral, self._address, self._pool.address, supply)
        await self._pool.supply(self._address, collateral, supply, request.position_owner)
        current.supplied = supply

        # The owner must have delegated borrowing power on the debt token.
        owed = loan + premium
        await self._pool.borrow(self._address, request.borrow_asset, owed, request.position_owner)
        current.borrowed = owed

    async def _lever_down(
        self, current: _Pass, request: DeleverageRequest, loan: int, premium: int
    ) -> None:
        collateral, debt = request.collateral_asset, request.borrow_asset
        if debt != collateral:
            await self._convert(current, collateral, debt, loan, request.conversion_instruction)

        held = self._assets.balance_of(debt, self._address) - current.baseline[debt]
        repay = min(request.repay_amount, held)
        self._assets.approve(debt, self._address, self._pool.address, repay)
        current.repaid = await self._pool.repay(
            self._address, debt, repay, request.position_owner
        )

        owed = loan + premium
        if request.withdraw_amount < owed:
            raise _rejected(
                InvalidLoanAmount(
                    f"Withdrawal {request.withdraw_amount} cannot settle loan plus premium {owed}"
                )
            )
        # withdraw_amount is a ceiling; only what settles the loan leaves the position.
        receipt_asset = self._pool.receipt_asset(collateral)
        self._assets.transfer_from(
            receipt_asset, self._address, request.position_owner, self._address, owed
        )
        current.withdrawn = await self._pool.withdraw(
            self._address, collateral, owed, self._address
        )

    async def _convert(
        self, current: _Pass, from_asset: str, to_asset: str, amount_in: int, instruction: bytes
    ) -> None:
        venue = self._venue.address
        before = self._assets.balance_of(to_asset, self._address)
        self._assets.approve(from_asset, self._address, venue, amount_in)
        try:
            converted = await self._venue.execute(self._address, instruction)
        except Exception as e:
            raise _rejected(SwapFailed(f"Venue {venue} raised: {e}")) from e
        if not converted:
            raise _rejected(SwapFailed(f"Venue {venue} reported failure"))
        received = self._assets.balance_of(to_asset, self._address) - before
        if received <= 0:
            raise _rejected(SwapFailed(f"Venue {venue} delivered no {to_asset}"))
        self._assets.approve(from_asset, self._address, venue, 0)
        current.swapped_in = amount_in
        current.swapped_out = received

    def _settle(self, current: _Pass, loan_asset: str, owed: int) -> None:
        owner = current.operation.owner
        self._assets.approve(loan_asset, self._address, self._pool.address, owed)
        for asset, baseline in current.baseline.items():
            surplus = self._assets.balance_of(asset, self._address) - baseline
            if asset == loan_asset:
                surplus -= owed
                if surplus < 0:
                    raise _rejected(
                        InvalidLoanAmount(f"Engine is {-surplus} {asset} short of settling")
                    )
            if surplus > 0:
                self._assets.transfer(asset, self._address, owner, surplus)
                current.swept.append((asset, surplus))

    # ------------------------------------------------------------------
    # Operator
    # ------------------------------------------------------------------

    async def recover_asset(self, sender: str, asset: str) -> int:
        """Send the engine's whole balance of ``asset`` to the operator."""
        self._operator.require(sender)
        self._require_idle()
        async with self._host.atomic():
            amount = self._assets.balance_of(asset, self._address)
            if amount:
                self._assets.transfer(asset, self._address, self._operator.operator, amount)
        logger.info("Recovered %d %s to operator %s", amount, asset, self._operator.operator)
        return amount

    def set_operator(self, sender: str, new_operator: str) -> None:
        self._operator.transfer(sender, new_operator)
