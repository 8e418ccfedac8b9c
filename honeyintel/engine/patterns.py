import re

# --- Vocabularies ---

# Payment-system handles. A name@handle token whose handle (or first label of a
# dotted handle) is listed here is always a UPI ID, never an email.
PAYMENT_HANDLES = frozenset({
    "paytm", "ybl", "ibl", "axl", "upi", "apl", "yapl", "rapl",
    "oksbi", "okaxis", "okicici", "okhdfcbank",
    "phonepe", "gpay", "amazonpay", "freecharge", "mobikwik", "airtel",
    "ptyes", "ptaxis", "pthdfc", "ptsbi", "abfspay", "ikwik", "jupiteraxis",
    "waicici", "wahdfcbank", "wasbi", "waaxis", "naviaxis", "pingpay", "slc",
})

SUSPICIOUS_KEYWORDS = (
    "urgent", "immediately", "verify now", "account blocked", "kyc expired",
    "click here", "suspended", "fine", "penalty", "last warning",
    "within 24 hours", "action required", "download", "install",
    "quick support", "anydesk", "team viewer", "teamviewer", "remote access",
    "otp", "share otp", "send otp", "one time password",
    "registration fee", "processing fee", "pay now", "transfer",
    "congratulations", "won", "prize", "lottery", "reward",
    "cashback", "refund", "claim", "activate",
    "police", "cyber cell", "arrest", "legal action", "court",
    "rbi", "reserve bank", "income tax", "government",
)

KNOWN_TLDS = (
    "co.in", "com", "net", "org", "in", "info", "xyz", "online", "site",
    "click", "link", "top", "live", "io", "app", "me", "cc", "tk", "ml",
    "ga", "cf", "gq", "buzz", "club", "win", "shop", "store",
)

TRAILING_PUNCTUATION = ".,;:!?"

# --- URLs ---

SCHEME_URL_RE = re.compile(r"(?:https?|ftp)://[^\s<>\"']+", re.IGNORECASE)

BARE_DOMAIN_RE = re.compile(
    r"(?<![@\w.\-/])(?:www\.)?(?:[a-z0-9\-]+\.)+(?:"
    + "|".join(re.escape(tld) for tld in KNOWN_TLDS)
    + r")(?![@\w\-])(?!\.\w)(?:[/?#][^\s<>\"']*)?",
    re.IGNORECASE,
)

# --- name@handle addresses ---

EMAIL_RE = re.compile(
    r"(?<![\w.%+\-])[A-Za-z0-9._%+\-]+@[A-Za-z0-9\-]+(?:\.[A-Za-z0-9\-]+)*\.[A-Za-z]{2,}(?![\w\-])"
)

HANDLE_RE = re.compile(
    r"(?<![\w.\-])[A-Za-z0-9._\-]{2,}@[A-Za-z](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?(?![\w\-])"
)

# --- Digits ---

ACCOUNT_LABEL = r"(?:a/c|acct|acc|account)(?:\s*(?:no|num|number)\b\.?|\s*#)?(?:\s+is)?\s*[:#.\-]?\s*"

LABELLED_ACCOUNT_RE = re.compile(
    r"\b" + ACCOUNT_LABEL + r"(\d(?:[ \-]?\d){9,17})(?!\d)",
    re.IGNORECASE,
)

LONG_DIGIT_RUN_RE = re.compile(r"(?<!\d)\d{11,18}(?!\d)")

TEN_DIGIT_RUN_RE = re.compile(r"(?<![\d+])\d{10}(?!\d)")

PHONE_RE = re.compile(
    r"(?<![\w+])(?:(?:\+|00)?91[ \-]?|0)?[6-9](?:[ \-]?\d){9}(?!\d)"
)

# --- Normalization ---

PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")
ACCOUNT_SEPARATORS_RE = re.compile(r"[\s\-]")
PHONE_PREFIX_RE = re.compile(r"^(?:\+91|0091|91|0)(?=[6-9]\d{9}$)")
MOBILE_RE = re.compile(r"[6-9]\d{9}")
ACCOUNT_RE = re.compile(r"\d{10,18}")
PREFIXED_MOBILE_RE = re.compile(r"(?:0091|91|0)[6-9]\d{9}")
