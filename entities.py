"""
Document schemas for every persisted collection.

The same camelCase shapes are used by the local state blob, the Firestore
documents and the backup file. Decoding is lenient about missing optional
fields (defaults are filled, so records written by older releases still load)
and strict about structure: a document without an id, with an unknown enum
value or a non-numeric amount is rejected with a DocumentError.
"""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class Role(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Module(str, Enum):
    CANDIDATES = "candidates"
    FINANCE = "finance"
    USERS = "users"


ALL_MODULES = [m.value for m in Module]


class AccountType(str, Enum):
    BANK = "Bank"
    CASH = "Cash"
    DEBTOR = "Debtor"  # someone owes us
    CREDITOR = "Creditor"  # we owe someone
    EXPENSE = "Expense"
    INCOME = "Income"  # general income not from candidates
    EQUITY = "Equity"


class TransactionType(str, Enum):
    INCOME = "Income"
    EXPENSE = "Expense"
    TRANSFER = "Transfer"
    REFUND = "Refund"


class EntityKind(str, Enum):
    ACCOUNT = "Account"
    CANDIDATE = "Candidate"


class ActivityAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    RESTORE = "RESTORE"
    OTHER = "OTHER"


class ResetStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


DEFAULT_CANDIDATE_STATUSES = ["Training", "Ready for Interview", "Placed", "Discontinued"]


class DocumentError(ValueError):
    def __init__(self, collection: str, message: str, *, doc_id: str = ""):
        self.collection = collection
        self.doc_id = doc_id
        where = f"{collection}[{doc_id}]" if doc_id else collection
        super().__init__(f"{where}: {message}")


def new_id() -> str:
    return uuid.uuid4().hex


class _Document(BaseModel):
    # Unknown keys survive a load/save cycle untouched.
    model_config = ConfigDict(extra="allow", use_enum_values=True, validate_assignment=True)

    id: str

    @field_validator("id", mode="before")
    @classmethod
    def _require_id(cls, v: Any) -> str:
        s = str(v if v is not None else "").strip()
        if not s:
            raise ValueError("missing id")
        return s


class User(_Document):
    name: str = ""
    username: str
    # Plaintext by requirement: administrators can read passwords back.
    password: Optional[str] = None
    isPasswordChanged: Optional[bool] = None
    email: Optional[str] = None
    role: Role = Role.STAFF
    modules: list[str] = []
    authProvider: Optional[str] = None

    @field_validator("username")
    @classmethod
    def _username_not_blank(cls, v: str) -> str:
        if not str(v or "").strip():
            raise ValueError("username is required")
        return v


class Candidate(_Document):
    name: str = ""
    batchId: str = ""
    email: str = ""
    phone: str = ""
    alternatePhone: Optional[str] = None
    address: Optional[str] = None
    referredBy: Optional[str] = None
    agreementText: Optional[str] = None
    agreedAmount: float = 0.0
    status: str = DEFAULT_CANDIDATE_STATUSES[0]
    placedCompany: Optional[str] = None
    packageDetails: Optional[str] = None
    isActive: bool = True
    joinedDate: str = ""
    notes: Optional[str] = None

    @field_validator("isActive", mode="before")
    @classmethod
    def _active_default(cls, v: Any) -> Any:
        return True if v is None else v


class Account(_Document):
    name: str = ""
    type: AccountType
    subType: Optional[str] = None
    isSystem: Optional[bool] = None
    openingBalance: float = 0.0
    description: Optional[str] = None

    @field_validator("openingBalance", mode="before")
    @classmethod
    def _opening_default(cls, v: Any) -> Any:
        return 0.0 if v is None or v == "" else v


class Transaction(_Document):
    date: str = ""
    type: TransactionType
    amount: float
    fromEntityId: str
    fromEntityType: EntityKind
    toEntityId: str
    toEntityType: EntityKind
    description: str = ""
    isLocked: bool = False
    category: Optional[str] = None

    @field_validator("isLocked", mode="before")
    @classmethod
    def _locked_default(cls, v: Any) -> Any:
        return False if v is None else v


class PasswordResetRequest(_Document):
    username: str
    requestDate: str = ""
    status: ResetStatus = ResetStatus.PENDING


class ActivityLog(_Document):
    timestamp: str
    actorId: str = "system"
    actorName: str = "System"
    action: ActivityAction
    entityType: str = ""
    entityId: Optional[str] = None
    description: str = ""


SCHEMAS: dict[str, type[_Document]] = {
    "users": User,
    "candidates": Candidate,
    "accounts": Account,
    "transactions": Transaction,
    "passwordResetRequests": PasswordResetRequest,
    "activityLogs": ActivityLog,
}

# Collection order used by the blob, the backup file and cloud re-uploads.
COLLECTIONS = (
    "users",
    "candidates",
    "accounts",
    "transactions",
    "candidateStatuses",
    "passwordResetRequests",
    "activityLogs",
)


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "__root__")
    msg = str(first.get("msg") or "invalid value")
    return f"{loc}: {msg}" if loc else msg


def decode_document(collection: str, raw: Any):
    schema = SCHEMAS.get(collection)
    if schema is None:
        raise DocumentError(collection, "unknown collection")
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, dict):
        raise DocumentError(collection, f"expected an object, got {type(raw).__name__}")
    try:
        return schema.model_validate(raw)
    except ValidationError as e:
        raise DocumentError(collection, _first_error(e), doc_id=str(raw.get("id") or ""))


def decode_collection(collection: str, raw: Any, *, strict: bool = True) -> tuple[list, list[str]]:
    """
    Decode a list of documents.

    strict=True raises on the first invalid item; strict=False skips invalid
    items and returns their error messages alongside the decoded ones.
    """
    if raw is None:
        return [], []
    if not isinstance(raw, list):
        err = DocumentError(collection, f"expected a list, got {type(raw).__name__}")
        if strict:
            raise err
        return [], [str(err)]

    items = []
    problems: list[str] = []
    for item in raw:
        try:
            items.append(decode_document(collection, item))
        except DocumentError as e:
            if strict:
                raise
            problems.append(str(e))
    return items, problems


def decode_statuses(raw: Any, *, strict: bool = True) -> list[str]:
    if not isinstance(raw, list):
        if strict:
            raise DocumentError("candidateStatuses", f"expected a list, got {type(raw).__name__}")
        return []
    out: list[str] = []
    for v in raw:
        if not isinstance(v, str) or not v.strip():
            if strict:
                raise DocumentError("candidateStatuses", f"invalid status label: {v!r}")
            continue
        if v not in out:
            out.append(v)
    return out


def encode_document(doc: BaseModel) -> dict[str, Any]:
    return doc.model_dump(mode="json", exclude_none=True)


def encode_collection(docs) -> list[dict[str, Any]]:
    return [encode_document(d) for d in docs]
