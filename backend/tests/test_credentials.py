import string

from timestables.services.credentials import (
    TEMP_PASSWORD_ALPHABET, base_username, clean_username, generate_invite_token,
    generate_pin, generate_temp_password, generate_username, hash_password, hash_token,
    verify_password
)


def test_username_takes_first_free_suffix():
    taken = {"sama1", "sama2"}
    assert generate_username("Sam", "Allen", lambda u: u in taken) == "sama3"


def test_username_first_candidate_when_nothing_taken():
    assert generate_username("Sam", "Allen", lambda u: False) == "sama1"


def test_base_username_truncates_and_strips():
    assert base_username("Christopher", "Smith") == "christops"
    assert base_username("Mary-Jane", "O'Neil") == "maryjaneo"
    assert base_username("", "") == "student"
    assert base_username("  ", "Ng") == "n"


def test_username_falls_back_to_timestamp_suffix():
    username = generate_username("Sam", "Allen", lambda u: True)
    assert username.startswith("sama")
    suffix = username[len("sama"):]
    assert len(suffix) == 6
    assert suffix.isdigit()


def test_clean_username():
    assert clean_username("  Sam.Allen!7 ") == "samallen7"


def test_pin_is_four_digits():
    for _ in range(50):
        pin = generate_pin()
        assert len(pin) == 4
        assert all(c in string.digits for c in pin)


def test_temp_password_alphabet():
    for _ in range(20):
        pw = generate_temp_password()
        assert len(pw) == 8
        assert set(pw) <= set(TEMP_PASSWORD_ALPHABET)
    assert not set("01OI") & set(TEMP_PASSWORD_ALPHABET)


def test_hash_and_verify():
    hashed = hash_password("1234")
    assert hashed.startswith("$argon2")
    assert verify_password("1234", hashed) == (True, None)
    assert verify_password("4321", hashed)[0] is False


def test_verify_rejects_missing_values():
    assert verify_password("", hash_password("x")) == (False, None)
    assert verify_password("1234", None) == (False, None)


def test_legacy_plaintext_verifies_once_and_is_upgraded():
    ok, new_hash = verify_password("1234", "1234")
    assert ok is True
    assert new_hash is not None and new_hash.startswith("$argon2")
    assert verify_password("1234", new_hash) == (True, None)


def test_invite_tokens():
    token = generate_invite_token()
    assert len(token) >= 40
    assert token != generate_invite_token()
    assert hash_token(token) == hash_token(token)
    assert len(hash_token(token)) == 64
