from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .dates import DATE_RE, INVALID_MONTH, MONTH_RE

USERNAME_PATTERN = r"^[a-zA-Z0-9_-]+$"


def _check_month(value: str) -> str:
    if not MONTH_RE.match(value):
        raise ValueError(INVALID_MONTH)
    return value


def _check_date(value: Optional[str]) -> Optional[str]:
    if value is not None and not DATE_RE.match(value):
        raise ValueError("Invalid date format. Use YYYY-MM-DD")
    return value


def _clean_patterns(value: list[str]) -> list[str]:
    cleaned = [p.strip() for p in value]
    if any(not p for p in cleaned):
        raise ValueError("patterns must not be empty")
    if any(len(p) > 100 for p in cleaned):
        raise ValueError("patterns must be at most 100 characters")
    return cleaned


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"
    all = "all"


class ApiErrorDetail(BaseModel):
    field: str
    message: str


class HealthResponse(BaseModel):
    status: str
    encryption: bool


# auth


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=20, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=1, max_length=200)

    @field_validator("username")
    @classmethod
    def lowercase_username(cls, value: str) -> str:
        return value.lower()


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=20)
    password: str = Field(min_length=1, max_length=200)


class ChangePasswordRequest(BaseModel):
    currentPassword: str = Field(min_length=1)
    newPassword: str = Field(min_length=1, max_length=200)


class ResetRequest(BaseModel):
    username: str = Field(min_length=1, max_length=20)


class ResetPasswordRequest(BaseModel):
    username: str = Field(min_length=1, max_length=20)
    token: str = Field(min_length=1)
    newPassword: str = Field(min_length=1, max_length=200)


class AuthUser(BaseModel):
    id: str
    username: str


class AuthResponse(BaseModel):
    success: bool = True
    token: str
    user: AuthUser


# transactions


class TransactionFilter(BaseModel):
    startDate: Optional[str] = None
    endDate: Optional[str] = None
    accountIds: list[str] = Field(default_factory=list)
    categoryIds: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    searchQuery: Optional[str] = None
    includePending: bool = False
    includeHidden: bool = False
    onlyUncategorized: bool = False
    minAmount: Optional[float] = None
    maxAmount: Optional[float] = None
    exactAmount: Optional[float] = None
    amountTolerance: float = Field(default=0.50, ge=0)
    transactionType: Optional[str] = None

    @field_validator("startDate", "endDate")
    @classmethod
    def validate_dates(cls, value: Optional[str]) -> Optional[str]:
        return _check_date(value)


class TransactionSyncRequest(BaseModel):
    startDate: Optional[str] = None

    @field_validator("startDate")
    @classmethod
    def validate_start(cls, value: Optional[str]) -> Optional[str]:
        return _check_date(value)


class TransactionCategoryUpdate(BaseModel):
    categoryId: str = Field(min_length=1)


class TransactionTagsUpdate(BaseModel):
    tags: list[str]

    @field_validator("tags")
    @classmethod
    def non_empty_tags(cls, value: list[str]) -> list[str]:
        if any(not tag.strip() for tag in value):
            raise ValueError("tags must be non-empty strings")
        return [tag.strip() for tag in value]


class TransactionDescriptionUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionHiddenUpdate(BaseModel):
    isHidden: bool


class TransactionNotesUpdate(BaseModel):
    notes: Optional[str] = Field(default=None, max_length=1000)


class SplitItem(BaseModel):
    amount: float = Field(gt=0)
    categoryId: Optional[str] = None
    description: Optional[str] = Field(default=None, max_length=500)
    tags: list[str] = Field(default_factory=list)


class SplitRequest(BaseModel):
    splits: list[SplitItem] = Field(min_length=2)


# auto-categorization


class RuleCreate(BaseModel):
    description: str = Field(default="", max_length=200)
    patterns: list[str] = Field(min_length=1, max_length=5)
    categoryId: str = Field(min_length=1)
    categoryName: Optional[str] = None
    userDescription: Optional[str] = Field(default=None, max_length=500)
    isActive: bool = True

    @model_validator(mode="before")
    @classmethod
    def legacy_pattern(cls, data: Any) -> Any:
        if isinstance(data, dict) and "patterns" not in data and data.get("pattern"):
            data = {**data, "patterns": [data["pattern"]]}
        return data

    @field_validator("patterns")
    @classmethod
    def clean_patterns(cls, value: list[str]) -> list[str]:
        return _clean_patterns(value)


class RuleUpdate(BaseModel):
    description: Optional[str] = Field(default=None, max_length=200)
    patterns: Optional[list[str]] = Field(default=None, min_length=1, max_length=5)
    categoryId: Optional[str] = Field(default=None, min_length=1)
    categoryName: Optional[str] = None
    userDescription: Optional[str] = Field(default=None, max_length=500)
    isActive: Optional[bool] = None

    @field_validator("patterns")
    @classmethod
    def clean_patterns(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return None if value is None else _clean_patterns(value)


class RuleReorder(BaseModel):
    ruleIds: list[str] = Field(min_length=1)


class ApplyRulesRequest(BaseModel):
    forceRecategorize: bool = False


# categories


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    parentId: Optional[str] = None
    plaidCategory: Optional[str] = None
    isHidden: bool = False
    isSavings: bool = False
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


class CategoryUpdate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    parentId: Optional[str] = None
    plaidCategory: Optional[str] = None
    isHidden: Optional[bool] = None
    isSavings: Optional[bool] = None
    description: Optional[str] = Field(default=None, max_length=500)


class CsvImportRequest(BaseModel):
    csvContent: str = ""


# budgets


class BudgetCreate(BaseModel):
    categoryId: str = Field(min_length=1)
    month: str
    amount: float = Field(gt=0)

    @field_validator("month")
    @classmethod
    def validate_month(cls, value: str) -> str:
        return _check_month(value)


class BudgetCopy(BaseModel):
    fromMonth: str
    toMonth: str

    @field_validator("fromMonth", "toMonth")
    @classmethod
    def validate_months(cls, value: str) -> str:
        return _check_month(value)


class BudgetComparisonRequest(BaseModel):
    actuals: dict[str, float] = Field(default_factory=dict)


class BudgetRolloverRequest(BaseModel):
    categoryId: str = Field(min_length=1)
    fromMonth: str
    toMonth: str
    actualSpent: float

    @field_validator("fromMonth", "toMonth")
    @classmethod
    def validate_months(cls, value: str) -> str:
        return _check_month(value)


class BudgetBatchRequest(BaseModel):
    updates: list[BudgetCreate]


# actuals overrides


class ActualsOverrideUpsert(BaseModel):
    month: str
    totalIncome: float = Field(ge=0)
    totalExpenses: float = Field(ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)

    @field_validator("month")
    @classmethod
    def validate_month(cls, value: str) -> str:
        return _check_month(value)


# accounts / plaid


class ConnectAccountRequest(BaseModel):
    publicToken: str = Field(min_length=1)
    institutionId: str = ""
    institutionName: str = ""


class AccountNicknameUpdate(BaseModel):
    nickname: Optional[str] = Field(default=None, max_length=50)

    @field_validator("nickname")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None
