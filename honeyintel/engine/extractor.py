import re
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Iterator, List, Optional, Tuple

from honeyintel.core.logging import get_logger
from honeyintel.engine import patterns
from honeyintel.engine.resolver import Candidate, ConflictResolver, default_resolver, phone_digits
from honeyintel.models.schemas import IntelligenceRecord

logger = get_logger(__name__)

# Matcher ranks, lowest claims its span first
URL_RANK = 0
EMAIL_RANK = 1
HANDLE_RANK = 2
LABELLED_ACCOUNT_RANK = 3
LONG_ACCOUNT_RANK = 4
SHORT_ACCOUNT_RANK = 5
PHONE_RANK = 6


@dataclass(frozen=True)
class Matcher:
    """One regex producing tagged candidates. `tag` returns the category or None to skip."""
    name: str
    rank: int
    pattern: re.Pattern
    tag: Callable[[Any, str], Optional[str]]
    group: int = 0
    clean: Callable[[str], str] = str.strip

    def scan(self, text: str) -> Iterator[Candidate]:
        for match in self.pattern.finditer(text):
            category = self.tag(match, text)
            if category is None:
                continue
            value = self.clean(match.group(self.group))
            if value:
                yield Candidate(category, value, match.start(self.group), match.end(self.group), self.rank)


def _strip_trailing_punctuation(url: str) -> str:
    return url.strip().rstrip(patterns.TRAILING_PUNCTUATION)


def _constant(category: str, match, text: str) -> str:
    return category


def _address(resolver: ConflictResolver, match, text: str) -> Optional[str]:
    return resolver.classify_address(match.group())


def _long_account(match, text: str) -> Optional[str]:
    # +CC numbers and prefixed mobiles are left to the phone matcher
    if text[match.start() - 1:match.start()] == "+":
        return None
    if patterns.PREFIXED_MOBILE_RE.fullmatch(match.group()):
        return None
    return "bank_accounts"


def _short_account(match, text: str) -> Optional[str]:
    return None if phone_digits(match.group()) else "bank_accounts"


def _phone(match, text: str) -> Optional[str]:
    return "phone_numbers" if phone_digits(match.group()) else None


def build_matchers(resolver: ConflictResolver) -> Tuple[Matcher, ...]:
    address = partial(_address, resolver)
    return (
        Matcher("url", URL_RANK, patterns.SCHEME_URL_RE, partial(_constant, "phishing_links"),
                clean=_strip_trailing_punctuation),
        Matcher("bare_domain", URL_RANK, patterns.BARE_DOMAIN_RE, partial(_constant, "phishing_links"),
                clean=_strip_trailing_punctuation),
        Matcher("email", EMAIL_RANK, patterns.EMAIL_RE, address),
        Matcher("handle", HANDLE_RANK, patterns.HANDLE_RE, address),
        Matcher("labelled_account", LABELLED_ACCOUNT_RANK, patterns.LABELLED_ACCOUNT_RE,
                partial(_constant, "bank_accounts"), group=1),
        Matcher("long_account", LONG_ACCOUNT_RANK, patterns.LONG_DIGIT_RUN_RE, _long_account),
        Matcher("short_account", SHORT_ACCOUNT_RANK, patterns.TEN_DIGIT_RUN_RE, _short_account),
        Matcher("phone", PHONE_RANK, patterns.PHONE_RE, _phone),
    )


def find_keywords(text: str) -> List[str]:
    lowered = text.lower()
    return [keyword for keyword in patterns.SUSPICIOUS_KEYWORDS if keyword in lowered]


class PatternExtractor:
    """
    Deterministic extractor. Runs every matcher over the text once, then lets
    the resolver decide which candidate owns each span.
    """

    def __init__(self, resolver: Optional[ConflictResolver] = None):
        self.resolver = resolver or default_resolver
        self.matchers = build_matchers(self.resolver)

    def candidates(self, text: str) -> List[Candidate]:
        found = []
        for matcher in self.matchers:
            found.extend(matcher.scan(text))
        return found

    def extract(self, text: Any) -> IntelligenceRecord:
        if not isinstance(text, str) or not text.strip():
            return IntelligenceRecord()
        try:
            return self.resolver.resolve(self.candidates(text), find_keywords(text))
        except Exception as e:
            logger.error(f"Pattern extraction error: {e}", exc_info=True)
            return IntelligenceRecord()


default_extractor = PatternExtractor()


def extract_intelligence(text: Any) -> IntelligenceRecord:
    return default_extractor.extract(text)
