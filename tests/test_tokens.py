from tokens import (
    generate_reset_code,
    generate_reset_token,
    generate_session_token,
    generate_verification_token,
    read_session_token,
)


def test_session_token_round_trip() -> None:
    token = generate_session_token(7, "ana@example.com")
    assert read_session_token(token) == {"userId": 7, "email": "ana@example.com"}


def test_tampered_session_token_is_rejected() -> None:
    token = generate_session_token(7, "ana@example.com")
    tampered = token[:-2] + ("AA" if not token.endswith("AA") else "BB")
    assert read_session_token(tampered) is None
    assert read_session_token("garbage") is None


def test_expired_session_token_is_rejected() -> None:
    token = generate_session_token(7, "ana@example.com")
    assert read_session_token(token, max_age_days=-1) is None


def test_reset_code_is_six_digits() -> None:
    for _ in range(50):
        code = generate_reset_code()
        assert len(code) == 6
        assert code.isdigit()
        assert code[0] != "0"


def test_random_tokens_are_unique() -> None:
    assert generate_reset_token() != generate_reset_token()
    token = generate_verification_token()
    assert len(token) == 48
    assert token.isalnum()
