import time
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Python field name -> wire name, in reporting order
CATEGORIES = {
    "phone_numbers": "phoneNumbers",
    "upi_ids": "upiIds",
    "bank_accounts": "bankAccounts",
    "phishing_links": "phishingLinks",
    "emails": "emails",
    "suspicious_keywords": "suspiciousKeywords",
}

# Categories a reply generator still wants to elicit
HIGH_VALUE_CATEGORIES = ("phone_numbers", "upi_ids", "bank_accounts", "phishing_links", "emails")

COUNTERPART_ALIASES = {"counterpart", "scammer", "fraudster"}


class Sender(str, Enum):
    COUNTERPART = "counterpart"
    OPERATOR = "operator"


class HandlePolicy(str, Enum):
    """Where an unknown, dot-less ``name@handle`` token is filed."""
    UPI = "upi"
    EMAIL = "email"


class SessionState(str, Enum):
    NEW = "NEW"
    ACTIVE = "ACTIVE"
    FLAGGED = "FLAGGED"
    EXPIRED = "EXPIRED"


class RawMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sender: Sender = Sender.OPERATOR
    text: str = ""
    timestamp: Optional[Union[int, str]] = None

    @field_validator("timestamp", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Optional[Union[int, str]]:
        # Epoch ms or ISO text; anything else is dropped, never the turn itself
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float)):
            try:
                return int(value)
            except (ValueError, OverflowError):
                return None
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @field_validator("sender", mode="before")
    @classmethod
    def _normalize_sender(cls, value: Any) -> Sender:
        if isinstance(value, Sender):
            return value
        if isinstance(value, str) and value.strip().lower() in COUNTERPART_ALIASES:
            return Sender.COUNTERPART
        # user / agent / honeypot / anything unknown is never mined
        return Sender.OPERATOR

    @field_validator("text", mode="before")
    @classmethod
    def _text_or_empty(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


def _category(wire: str, name: str):
    return Field(
        default_factory=list,
        validation_alias=AliasChoices(wire, name),
        serialization_alias=wire,
    )


class ExtractionResult(BaseModel):
    """
    Six-category result as produced by one extractor, before cleansing.
    Every field is coerced to a sorted list of unique, trimmed, non-empty strings;
    anything that is not a list becomes an empty one.
    """

    phone_numbers: List[str] = _category("phoneNumbers", "phone_numbers")
    upi_ids: List[str] = _category("upiIds", "upi_ids")
    bank_accounts: List[str] = _category("bankAccounts", "bank_accounts")
    phishing_links: List[str] = _category("phishingLinks", "phishing_links")
    emails: List[str] = _category("emails", "emails")
    suspicious_keywords: List[str] = _category("suspiciousKeywords", "suspicious_keywords")

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_values(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple, set, frozenset)):
            return []
        items = set()
        for item in value:
            if isinstance(item, bool):
                continue
            if isinstance(item, int):
                item = str(item)
            if not isinstance(item, str):
                continue
            item = item.strip()
            if item:
                items.add(item)
        return sorted(items)

    @classmethod
    def empty(cls):
        return cls()

    def values(self, category: str) -> List[str]:
        return list(getattr(self, category))

    def is_empty(self) -> bool:
        return not any(getattr(self, name) for name in CATEGORIES)

    def total(self) -> int:
        return sum(len(getattr(self, name)) for name in CATEGORIES)

    def counts(self) -> Dict[str, int]:
        return {wire: len(getattr(self, name)) for name, wire in CATEGORIES.items()}

    def to_payload(self) -> Dict[str, List[str]]:
        return self.model_dump(by_alias=True)


class IntelligenceRecord(ExtractionResult):
    """Cleansed, validated record. Also the shape of the session accumulator."""

    def missing_categories(self) -> List[str]:
        return [CATEGORIES[name] for name in HIGH_VALUE_CATEGORIES if not getattr(self, name)]

    def has_high_value_intel(self) -> bool:
        return any(getattr(self, name) for name in HIGH_VALUE_CATEGORIES)


class SessionRecord(BaseModel):
    session_id: str
    state: SessionState = SessionState.NEW
    intelligence: IntelligenceRecord = Field(default_factory=IntelligenceRecord)
    turn_count: int = 0
    last_turn_key: Optional[str] = None
    callback_sent: bool = False
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)


# --- HTTP surface ---

class Metadata(BaseModel):
    channel: Optional[str] = "SMS"
    language: Optional[str] = "English"
    locale: Optional[str] = "IN"


class ScammerInput(BaseModel):
    session_id: str = Field(..., validation_alias=AliasChoices("sessionId", "session_id"))
    message: RawMessage
    conversation_history: List[RawMessage] = Field(default=[], validation_alias=AliasChoices("conversationHistory", "conversation_history"))
    metadata: Optional[Metadata] = Field(default_factory=Metadata)


class IntelResponse(BaseModel):
    status: str = "success"
    sessionId: str
    sessionState: SessionState
    totalMessagesExchanged: int
    extractedIntelligence: Dict[str, List[str]]
    missingCategories: List[str] = []


class CallbackPayload(BaseModel):
    sessionId: str
    scamDetected: bool
    totalMessagesExchanged: int
    extractedIntelligence: Dict[str, List[str]]
    engagementMetrics: Dict[str, int]
    agentNotes: str
