import base64
import hashlib
import hmac
from decimal import Decimal

import pytest

from src.exceptions import ValidationError
from src.services.file_service import FileService
from src.utils.formatters import format_rupees, parse_amount
from src.utils.security import payment_signature, verify_payment_signature

# 1x1 transparent PNG
PNG = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


def test_signature_is_hmac_of_order_and_payment():
    expected = hmac.new(b"secret", b"order_1|pay_1", hashlib.sha256).hexdigest()
    assert payment_signature("order_1", "pay_1", "secret") == expected


def test_verify_payment_signature():
    signature = payment_signature("order_1", "pay_1", "secret")
    assert verify_payment_signature("order_1", "pay_1", signature, "secret")
    assert not verify_payment_signature("order_1", "pay_2", signature, "secret")
    assert not verify_payment_signature("order_1", "pay_1", signature, "other")


def test_missing_secret_or_signature_never_verifies():
    assert not verify_payment_signature("order_1", "pay_1", payment_signature("order_1", "pay_1", ""), "")
    assert not verify_payment_signature("order_1", "pay_1", "", "secret")


def test_image_validation(tmp_path):
    files = FileService(tmp_path)
    assert files.validate_image(PNG) == "image/png"
    with pytest.raises(ValidationError):
        files.validate_image(b"")
    with pytest.raises(ValidationError):
        files.validate_image(b"just some text, not a photo")


@pytest.mark.parametrize("text,amount", [("650", "650"), ("₹1,299", "1299"), (" 49.50 ", "49.50")])
def test_parse_amount(text, amount):
    assert str(parse_amount(text)) == amount


@pytest.mark.parametrize("text", ["", "abc", "0", "-5"])
def test_parse_amount_rejects(text):
    with pytest.raises(ValueError):
        parse_amount(text)


def test_format_rupees():
    assert format_rupees(Decimal("1299")) == "₹1,299"
    assert format_rupees(None) == "-"
