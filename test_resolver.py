import pytest
from pydantic import ValidationError

from honeyintel.core.config import Settings
from honeyintel.engine.resolver import Candidate, ConflictResolver, account_digits, phone_digits
from honeyintel.models.schemas import ExtractionResult, HandlePolicy, IntelligenceRecord

resolver = ConflictResolver()


def test_classify_address():
    assert resolver.classify_address("rahul@paytm") == "upi_ids"
    assert resolver.classify_address("rahul@okaxis") == "upi_ids"
    assert resolver.classify_address("rahul@paytm.com") == "upi_ids"
    assert resolver.classify_address("rahul@gmail.com") == "emails"
    assert resolver.classify_address("rahul@fakebank") == "upi_ids"
    assert resolver.classify_address("no-at-sign") is None


def test_classify_address_email_policy_and_extra_handles():
    custom = ConflictResolver(HandlePolicy.EMAIL, payment_handles=["@mybank"])
    assert custom.classify_address("rahul@fakebank") == "emails"
    assert custom.classify_address("rahul@mybank") == "upi_ids"


def test_phone_digits():
    assert phone_digits("+91 98765 43210") == "9876543210"
    assert phone_digits("09876543210") == "9876543210"
    assert phone_digits("(987) 654-3210") == "9876543210"
    assert phone_digits("1234567890") is None
    assert phone_digits("12345") is None
    assert phone_digits(None) is None


def test_account_digits():
    assert account_digits("1234 5678 9012") == "123456789012"
    assert account_digits("123456789") is None
    assert account_digits("12ab567890") is None


def test_resolve_lowest_rank_claims_span():
    candidates = [
        Candidate("phone_numbers", "9876543210", 0, 10, 6),
        Candidate("upi_ids", "9876543210@ybl", 0, 14, 2),
        Candidate("bank_accounts", "11112222333344", 20, 34, 4),
    ]
    result = resolver.resolve(candidates, ["otp"])
    assert result.upi_ids == ["9876543210@ybl"]
    assert result.phone_numbers == []
    assert result.bank_accounts == ["11112222333344"]
    assert result.suspicious_keywords == ["otp"]


def test_cleanse_drops_invalid_entries():
    merged = ExtractionResult(
        phone_numbers=["9876543210", "12345", "+91 98765 43210"],
        bank_accounts=["1111222233334444", "12ab"],
    )
    result = resolver.cleanse(merged)
    assert isinstance(result, IntelligenceRecord)
    assert result.bank_accounts == ["1111222233334444"]
    # formatting is preserved, so both spellings of one number survive
    assert result.phone_numbers == ["+91 98765 43210", "9876543210"]


def test_cleanse_drops_phone_contained_in_account():
    merged = ExtractionResult(phone_numbers=["9876543210"], bank_accounts=["98765432101234"])
    assert resolver.cleanse(merged).phone_numbers == []

    reference = resolver.cleanse(ExtractionResult(phone_numbers=["9876543210"]), ["009876543210"])
    assert reference.phone_numbers == []


def test_cleanse_splits_contested_addresses():
    merged = ExtractionResult(
        emails=["a1@paytm", "b1@site.com"],
        upi_ids=["a1@paytm", "b1@site.com"],
    )
    result = resolver.cleanse(merged)
    assert result.emails == ["b1@site.com"]
    assert result.upi_ids == ["a1@paytm"]


def test_records_are_canonical():
    record = IntelligenceRecord(
        phone_numbers=[" 9876543210 ", "9876543210", ""],
        upi_ids="not-a-list",
        emails=[None, 12, True],
    )
    assert record.phone_numbers == ["9876543210"]
    assert record.upi_ids == []
    assert record.emails == ["12"]


def test_handle_policy_setting_is_validated():
    assert Settings(UNKNOWN_HANDLE_POLICY="email").UNKNOWN_HANDLE_POLICY is HandlePolicy.EMAIL
    with pytest.raises(ValidationError):
        Settings(UNKNOWN_HANDLE_POLICY="bogus")
