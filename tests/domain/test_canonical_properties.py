"""
Hypothesis-based properties of the canonical encoder and the signature chain.

- Encoding is independent of mapping insertion order.
- Any amount written with extra trailing zeros encodes identically.
- A signature over an encoded payload fails once any signed field changes.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from expense_kernel.domain.canonical import CanonicalValue, FieldKind, encode_canonical
from expense_kernel.domain.signing import SignatureEngine

amounts = st.decimals(
    min_value=Decimal("0"),
    max_value=Decimal("999999999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)
titles = st.text(min_size=1, max_size=40)
receipts = st.lists(st.text(max_size=20), max_size=5)
dates = st.dates(min_value=date(2000, 1, 1), max_value=date(2099, 12, 31))
instants = st.datetimes(
    min_value=datetime(2000, 1, 1),
    max_value=datetime(2099, 12, 31),
    timezones=st.just(timezone.utc),
)


def _fields(title, amount, day, items, at):
    return {
        "title": CanonicalValue(FieldKind.STRING, title),
        "description": CanonicalValue(FieldKind.STRING, ""),
        "amount": CanonicalValue(FieldKind.DECIMAL, amount),
        "date": CanonicalValue(FieldKind.DATE, day),
        "receipts": CanonicalValue(FieldKind.STRING_LIST, items),
        "signedAt": CanonicalValue(FieldKind.TIMESTAMP, at),
    }


@given(titles, amounts, dates, receipts, instants, st.randoms())
def test_order_independent(title, amount, day, items, at, rnd):
    fields = _fields(title, amount, day, items, at)
    keys = list(fields)
    rnd.shuffle(keys)
    shuffled = {k: fields[k] for k in keys}
    assert encode_canonical(fields) == encode_canonical(shuffled)


@given(amounts, st.integers(min_value=0, max_value=7))
def test_trailing_zeros_do_not_matter(amount, extra_zeros):
    padded = amount.quantize(Decimal(1).scaleb(-(2 + extra_zeros)))
    a = encode_canonical({"amount": CanonicalValue(FieldKind.DECIMAL, amount)})
    b = encode_canonical({"amount": CanonicalValue(FieldKind.DECIMAL, padded)})
    assert a == b


@settings(max_examples=25, suppress_health_check=[HealthCheck.too_slow])
@given(titles, amounts, dates, receipts, instants)
def test_changed_amount_breaks_signature(title, amount, day, items, at):
    engine = SignatureEngine()
    payload = encode_canonical(_fields(title, amount, day, items, at))
    envelope = engine.generate_and_sign(payload, "ana@example.com", at)
    changed = encode_canonical(_fields(title, amount + Decimal("0.01"), day, items, at))
    assert engine.verify(envelope, payload)
    assert not engine.verify(envelope, changed)
