"""
Conflict resolution for extracted intelligence.

Candidates carry the span they were found at and the rank of the matcher that
produced them. The reducer accepts candidates in rank order and drops any that
overlap a span already claimed, so a token ends up in exactly one category:

    URL > email > UPI handle > labelled account > long account > 10-digit account > phone

The same validity rules are re-applied by `cleanse` to merged results, whose
entries carry no spans (the external extractor only returns strings).
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from honeyintel.core.config import settings
from honeyintel.core.logging import get_logger
from honeyintel.engine.patterns import (
    ACCOUNT_RE,
    ACCOUNT_SEPARATORS_RE,
    MOBILE_RE,
    PAYMENT_HANDLES,
    PHONE_PREFIX_RE,
    PHONE_SEPARATORS_RE,
)
from honeyintel.models.schemas import CATEGORIES, ExtractionResult, HandlePolicy, IntelligenceRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class Candidate:
    category: str
    value: str
    start: int
    end: int
    rank: int

    def overlaps(self, other: "Candidate") -> bool:
        return self.start < other.end and other.start < self.end


def phone_digits(value: str) -> Optional[str]:
    """Normalized 10-digit mobile number, or None if `value` is not phone-shaped."""
    if not isinstance(value, str):
        return None
    digits = PHONE_SEPARATORS_RE.sub("", value)
    digits = PHONE_PREFIX_RE.sub("", digits, count=1)
    return digits if MOBILE_RE.fullmatch(digits) else None


def account_digits(value: str) -> Optional[str]:
    if not isinstance(value, str):
        return None
    digits = ACCOUNT_SEPARATORS_RE.sub("", value)
    return digits if ACCOUNT_RE.fullmatch(digits) else None


class ConflictResolver:
    def __init__(self, handle_policy: HandlePolicy = HandlePolicy.UPI, payment_handles: Iterable[str] = ()):
        self.handle_policy = HandlePolicy(handle_policy)
        self.payment_handles = PAYMENT_HANDLES | {h.strip().lower().lstrip("@") for h in payment_handles if h}

    def classify_address(self, token: str) -> Optional[str]:
        """Files a name@handle token as a UPI ID or an email."""
        if not isinstance(token, str) or "@" not in token:
            return None
        local, _, domain = token.strip().rpartition("@")
        domain = domain.lower()
        if not local or not domain:
            return None
        if domain in self.payment_handles or domain.split(".")[0] in self.payment_handles:
            return "upi_ids"
        if "." in domain:
            return "emails"
        return "upi_ids" if self.handle_policy is HandlePolicy.UPI else "emails"

    def resolve(self, candidates: Iterable[Candidate], keywords: Sequence[str] = ()) -> IntelligenceRecord:
        accepted: List[Candidate] = []
        for candidate in sorted(candidates, key=lambda c: (c.rank, c.start, c.start - c.end)):
            if any(candidate.overlaps(taken) for taken in accepted):
                continue
            accepted.append(candidate)

        buckets: Dict[str, List[str]] = {name: [] for name in CATEGORIES}
        for candidate in accepted:
            buckets[candidate.category].append(candidate.value)
        buckets["suspicious_keywords"] = list(keywords)
        return self.cleanse(ExtractionResult(**buckets))

    def cleanse(self, result: ExtractionResult, reference_accounts: Iterable[str] = ()) -> IntelligenceRecord:
        """
        Re-applies validity and conflict rules to a (possibly merged) result.
        Invalid entries are dropped; nothing raises.
        """
        bank_accounts = [value for value in result.bank_accounts if account_digits(value)]
        account_numbers = [account_digits(value) for value in bank_accounts]
        account_numbers += [d for d in (account_digits(v) for v in reference_accounts) if d]

        phone_numbers = []
        for value in result.phone_numbers:
            digits = phone_digits(value)
            if digits is None:
                continue
            if any(digits in account for account in account_numbers):
                logger.debug("Dropping phone contained in a bank account", extra={"phone": value})
                continue
            phone_numbers.append(value)

        emails, upi_ids = self._split_addresses(result.emails, result.upi_ids)

        return IntelligenceRecord(
            phone_numbers=phone_numbers,
            upi_ids=upi_ids,
            bank_accounts=bank_accounts,
            phishing_links=result.phishing_links,
            emails=emails,
            suspicious_keywords=result.suspicious_keywords,
        )

    def _split_addresses(self, emails: List[str], upi_ids: List[str]):
        # Whichever list an address arrived in, classification decides where it lands
        buckets: Dict[str, List[str]] = {"emails": [], "upi_ids": []}
        for token in list(emails) + list(upi_ids):
            category = self.classify_address(token)
            if category is None:
                logger.debug("Dropping address without a handle", extra={"address": token})
                continue
            buckets[category].append(token)
        return buckets["emails"], buckets["upi_ids"]

    @classmethod
    def from_settings(cls, config) -> "ConflictResolver":
        return cls(config.UNKNOWN_HANDLE_POLICY, config.EXTRA_PAYMENT_HANDLES)


default_resolver = ConflictResolver.from_settings(settings)
