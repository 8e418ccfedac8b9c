from honeyintel.engine.extractor import PatternExtractor, extract_intelligence
from honeyintel.engine.resolver import ConflictResolver
from honeyintel.models.schemas import CATEGORIES, HandlePolicy


def test_phone_and_labelled_account():
    result = extract_intelligence("Call +91-9876543210 or use account 1234567890123456")
    assert result.phone_numbers == ["+91-9876543210"]
    assert result.bank_accounts == ["1234567890123456"]
    assert result.upi_ids == []
    assert result.emails == []


def test_upi_and_email_are_classified_apart():
    result = extract_intelligence("Pay to scammer@paytm or mail support@fakebank.com")
    assert result.upi_ids == ["scammer@paytm"]
    assert result.emails == ["support@fakebank.com"]
    # the email's domain is not a link
    assert result.phishing_links == []


def test_unknown_handle_follows_policy():
    text = "send it to scammer.fraud@fakebank"
    assert extract_intelligence(text).upi_ids == ["scammer.fraud@fakebank"]

    as_email = PatternExtractor(ConflictResolver(HandlePolicy.EMAIL)).extract(text)
    assert as_email.emails == ["scammer.fraud@fakebank"]
    assert as_email.upi_ids == []


def test_numeric_upi_is_not_a_phone():
    result = extract_intelligence("GPay 9876543210@ybl now")
    assert result.upi_ids == ["9876543210@ybl"]
    assert result.phone_numbers == []
    assert result.bank_accounts == []


def test_url_keeps_query_and_masks_digits():
    result = extract_intelligence("Visit http://fake-bank.com/verify?acc=12345678901 now")
    assert result.phishing_links == ["http://fake-bank.com/verify?acc=12345678901"]
    assert result.bank_accounts == []


def test_url_trailing_punctuation_is_stripped():
    result = extract_intelligence("Go to https://bit.ly/abc.")
    assert result.phishing_links == ["https://bit.ly/abc"]


def test_bare_domain():
    result = extract_intelligence("login at www.sbi-kyc.xyz today")
    assert result.phishing_links == ["www.sbi-kyc.xyz"]


def test_phone_inside_bank_account_is_dropped():
    result = extract_intelligence("Account number: 9876543210123 and call 9876543210")
    assert result.bank_accounts == ["9876543210123"]
    assert result.phone_numbers == []


def test_country_prefixed_mobile_is_a_phone():
    result = extract_intelligence("whatsapp 919876543210")
    assert result.phone_numbers == ["919876543210"]
    assert result.bank_accounts == []


def test_keywords_case_insensitive():
    result = extract_intelligence("URGENT: your account blocked, share OTP immediately")
    assert result.suspicious_keywords == ["account blocked", "immediately", "otp", "share otp", "urgent"]


def test_duplicates_collapse():
    result = extract_intelligence("pay ab@ybl, again ab@ybl and ab@ybl")
    assert result.upi_ids == ["ab@ybl"]


def test_empty_and_invalid_input():
    for text in (None, "", "   ", 42, ["call 9876543210"]):
        result = extract_intelligence(text)
        assert result.is_empty()
        assert set(result.to_payload()) == set(CATEGORIES.values())


def test_nothing_to_find():
    assert extract_intelligence("hello, how are you today").is_empty()
