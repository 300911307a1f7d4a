"""Property-based tests for fingerprint module using Hypothesis.

This test suite verifies that fingerprinting is deterministic and
independent of mapping key order across diverse bodies.
"""

from hypothesis import given
from hypothesis import strategies as st

from request_retry.fingerprint import compute_fingerprint

http_method_strategy = st.sampled_from(["GET", "POST", "PUT", "PATCH", "DELETE"])

path_strategy = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd"), whitelist_characters="/-_"),
    min_size=0,
    max_size=60,
).map(lambda s: "/" + s.strip("/"))

scalar_strategy = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-(10**9), max_value=10**9),
    st.text(max_size=30),
)

body_strategy = st.recursive(
    scalar_strategy,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(min_size=1, max_size=10), children, max_size=4),
    ),
    max_leaves=12,
)


@given(method=http_method_strategy, path=path_strategy, body=body_strategy)
def test_fingerprint_deterministic(method, path, body):
    """Property: same inputs always give the same fingerprint."""
    assert compute_fingerprint(method, path, body) == compute_fingerprint(method, path, body)


@given(method=http_method_strategy, path=path_strategy, body=body_strategy)
def test_fingerprint_is_hex_digest(method, path, body):
    fp = compute_fingerprint(method, path, body)
    assert len(fp) == 64
    assert all(c in "0123456789abcdef" for c in fp)


@given(
    body=st.dictionaries(st.text(min_size=1, max_size=10), scalar_strategy, min_size=1, max_size=8)
)
def test_fingerprint_key_order_independent(body):
    """Property: reversing insertion order of keys does not change the fingerprint."""
    reversed_body = dict(reversed(list(body.items())))
    assert compute_fingerprint("POST", "/x", body) == compute_fingerprint("POST", "/x", reversed_body)


@given(method=http_method_strategy, body=body_strategy)
def test_fingerprint_method_case_normalized(method, body):
    assert compute_fingerprint(method.lower(), "/x", body) == compute_fingerprint(method, "/x", body)
