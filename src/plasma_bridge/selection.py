"""UTXO selection for child-chain transfers."""
from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from .exceptions import InsufficientFeeFundsError
from .models import Utxo
from .transaction import ETH_CURRENCY, MAX_INPUTS

logger = logging.getLogger(__name__)


def _same_currency(a: str, b: str) -> bool:
    return a.lower() == b.lower()


def select_utxos(
    utxos: Sequence[Utxo],
    amount: int,
    currency: str,
    include_fee: bool,
    fee: int = 0,
    max_inputs: int = MAX_INPUTS,
) -> Optional[List[Utxo]]:
    """
    Choose the UTXOs that fund a transfer.

    Takes the largest ``currency`` outputs first, at most ``max_inputs`` of
    them, stopping as soon as they cover ``amount``. When ``include_fee`` is
    set, the first native-currency output not already selected that holds at
    least ``fee`` is appended to pay the child-chain fee.

    Args:
        utxos: Spendable outputs of the sender
        amount: Amount to cover, in the currency's base unit
        currency: Currency address of the transfer
        include_fee: Whether to append a native-currency fee input
        fee: Minimum amount of the fee input

    Returns:
        The selected outputs, or None if no combination within the input cap
        covers the amount

    Raises:
        InsufficientFeeFundsError: A fee input is required but no free native
            output covers the fee
    """
    target = int(amount)

    # sorted() is stable, so equal amounts keep their original order
    candidates = sorted(
        (u for u in utxos if _same_currency(u.currency, currency)),
        key=lambda u: u.amount,
        reverse=True,
    )

    selected: List[Utxo] = []
    total = 0
    for utxo in candidates[:max_inputs]:
        selected.append(utxo)
        total += utxo.amount
        if total >= target:
            break

    if total < target:
        logger.debug(
            f"No selection covers {target} of {currency}: "
            f"{len(candidates)} candidates, best sum {total}"
        )
        return None

    if include_fee:
        taken = {u.utxo_pos for u in selected}
        fee_utxo = next(
            (
                u for u in utxos
                if _same_currency(u.currency, ETH_CURRENCY)
                and u.utxo_pos not in taken
                and u.amount >= fee
            ),
            None,
        )
        if fee_utxo is None:
            raise InsufficientFeeFundsError(currency=currency, fee_currency=ETH_CURRENCY, fee=fee)
        selected.append(fee_utxo)

    return selected
