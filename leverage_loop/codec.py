"""Callback payload codec — tagged JSON carried through the loan request.

The pool treats the payload as opaque bytes; it is decoded exactly once, at
the callback boundary, and any tag other than the known actions is rejected.
"""
from __future__ import annotations

import json
from typing import Any

from .errors import UnknownAction
from .models import Action, DeleverageRequest, LeverageRequest, PendingOperation

_LEVERAGE_FIELDS = ("position_owner", "collateral_asset", "borrow_asset")
_LEVERAGE_AMOUNTS = ("new_collateral_amount", "loan_amount")
_DELEVERAGE_AMOUNTS = ("loan_amount", "repay_amount", "withdraw_amount")


def _request_body(request: LeverageRequest | DeleverageRequest) -> dict[str, Any]:
    amounts = (
        _LEVERAGE_AMOUNTS if isinstance(request, LeverageRequest) else _DELEVERAGE_AMOUNTS
    )
    body: dict[str, Any] = {name: getattr(request, name) for name in _LEVERAGE_FIELDS}
    # Amounts travel as strings so no JSON consumer rounds them.
    body.update({name: str(getattr(request, name)) for name in amounts})
    body["conversion_instruction"] = request.conversion_instruction.hex()
    return body


def encode_operation(op: PendingOperation) -> bytes:
    """Serialize a pending operation into callback payload bytes."""
    document = {
        "action": op.action.value,
        "owner": op.owner,
        "token": op.token,
        "request": _request_body(op.request),
    }
    return json.dumps(document, sort_keys=True).encode()


def decode_operation(payload: bytes) -> PendingOperation:
    """Parse callback payload bytes.

    Raises:
        UnknownAction: the payload is malformed or its tag is not a known action.
    """
    try:
        document = json.loads(payload.decode())
        tag = document["action"]
        body = document["request"]
        owner = document["owner"]
        token = document["token"]
    except (UnicodeDecodeError, json.JSONDecodeError, KeyError, TypeError) as e:
        raise UnknownAction(f"Malformed callback payload: {e}") from e

    try:
        action = Action(tag)
    except ValueError as e:
        raise UnknownAction(f"Unknown action tag {tag!r}") from e

    try:
        common = {name: body[name] for name in _LEVERAGE_FIELDS}
        instruction = bytes.fromhex(body["conversion_instruction"])
        match action:
            case Action.LEVERAGE:
                request: LeverageRequest | DeleverageRequest = LeverageRequest(
                    **common,
                    **{name: int(body[name]) for name in _LEVERAGE_AMOUNTS},
                    conversion_instruction=instruction,
                )
            case Action.DELEVERAGE:
                request = DeleverageRequest(
                    **common,
                    **{name: int(body[name]) for name in _DELEVERAGE_AMOUNTS},
                    conversion_instruction=instruction,
                )
            case _:
                raise UnknownAction(f"Unhandled action {action!r}")
    except (KeyError, TypeError, ValueError) as e:
        raise UnknownAction(f"Malformed {action.value} payload: {e}") from e

    return PendingOperation(action=action, owner=owner, request=request, token=token)
