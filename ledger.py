from __future__ import annotations

from typing import Iterable

from entities import EntityKind, Transaction, TransactionType
from utils import parse_datetime_maybe


def _kind(value) -> str:
    return str(getattr(value, "value", value) or "")


def _signed_amount(t: Transaction, entity_id: str, kind: str) -> float:
    """Money into the entity is positive, money out is negative; a self-transfer nets to zero."""
    amount = float(t.amount or 0)
    signed = 0.0
    if t.toEntityId == entity_id and _kind(t.toEntityType) == kind:
        signed += amount
    if t.fromEntityId == entity_id and _kind(t.fromEntityType) == kind:
        signed -= amount
    return signed


def _involves(t: Transaction, entity_id: str, kind: str) -> bool:
    return (t.toEntityId == entity_id and _kind(t.toEntityType) == kind) or (
        t.fromEntityId == entity_id and _kind(t.fromEntityType) == kind
    )


def calculate_entity_balance(
    entity_id: str,
    entity_kind: EntityKind | str,
    transactions: Iterable[Transaction],
    opening_balance: float = 0.0,
) -> float:
    kind = _kind(entity_kind)
    balance = float(opening_balance or 0)
    for t in transactions:
        balance += _signed_amount(t, entity_id, kind)
    return balance


def candidate_payment_summary(candidate_id: str, agreed_amount: float, transactions: Iterable[Transaction]) -> dict:
    paid = 0.0
    refunded = 0.0
    kind = EntityKind.CANDIDATE.value
    for t in transactions:
        if t.type == TransactionType.INCOME and t.fromEntityId == candidate_id and _kind(t.fromEntityType) == kind:
            paid += float(t.amount or 0)
        elif t.type == TransactionType.REFUND and t.toEntityId == candidate_id and _kind(t.toEntityType) == kind:
            refunded += float(t.amount or 0)
    net_paid = paid - refunded
    return {
        "paid": paid,
        "refunded": refunded,
        "netPaid": net_paid,
        "balanceDue": float(agreed_amount or 0) - net_paid,
    }


def calculate_candidate_due(candidate_id: str, agreed_amount: float, transactions: Iterable[Transaction]) -> float:
    """agreed - income paid by the candidate + refunds paid back to the candidate."""
    return candidate_payment_summary(candidate_id, agreed_amount, transactions)["balanceDue"]


def _sort_key(t: Transaction):
    dt = parse_datetime_maybe(t.date)
    return (dt is None, dt.timestamp() if dt else 0.0, t.date or "")


def account_statement(
    entity_id: str,
    entity_kind: EntityKind | str,
    transactions: Iterable[Transaction],
    opening_balance: float = 0.0,
) -> dict:
    kind = _kind(entity_kind)
    rows = []
    running = float(opening_balance or 0)
    involved = [t for t in transactions if _involves(t, entity_id, kind)]
    # Stable sort: same-date entries keep their list order.
    for t in sorted(involved, key=_sort_key):
        signed = _signed_amount(t, entity_id, kind)
        running += signed
        rows.append(
            {
                "transactionId": t.id,
                "date": t.date,
                "type": _kind(t.type),
                "description": t.description,
                "amount": signed,
                "balance": running,
                "isLocked": bool(t.isLocked),
            }
        )
    return {
        "entityId": entity_id,
        "entityType": kind,
        "openingBalance": float(opening_balance or 0),
        "closingBalance": running,
        "rows": rows,
    }
