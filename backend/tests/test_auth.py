import jwt
import pytest

from mock_interview.errors import AuthError

from conftest import SECRET


def test_issued_token_round_trips(verifier):
    assert verifier.verify(verifier.issue("abc")) == "abc"


def test_sub_claim_is_accepted(verifier):
    token = jwt.encode({"sub": "from-sub"}, SECRET, algorithm="HS256")
    assert verifier.verify(token) == "from-sub"


@pytest.mark.parametrize("token", [None, "", "not-a-jwt"])
def test_bad_tokens_are_rejected(verifier, token):
    with pytest.raises(AuthError):
        verifier.verify(token)


def test_wrong_secret_and_expired(verifier):
    forged = jwt.encode({"uid": "x"}, "another-secret-that-is-also-long-enough", algorithm="HS256")
    with pytest.raises(AuthError):
        verifier.verify(forged)
    with pytest.raises(AuthError, match="expired"):
        verifier.verify(verifier.issue("x", ttl_seconds=-10))


def test_optional_verification_means_anonymous(verifier):
    assert verifier.verify_optional(None) is None
    assert verifier.verify_optional("garbage") is None
    assert verifier.verify_optional(verifier.issue("u")) == "u"
