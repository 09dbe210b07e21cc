import re
from unittest.mock import patch

from django.test import SimpleTestCase, override_settings

from core.edx_integration.credentials import (
    create_credentials,
    decrypt_password,
    encrypt_password,
    generate_password,
    generate_username,
)

"""
    Tests für die Passwort-Verschlüsselung und die Ableitung der edX-Benutzernamen.
"""


@override_settings(EDX_PASSWORD_SECRET="unit-test-secret")
class PasswordEncryptionTests(SimpleTestCase):
    def test_round_trip(self):
        for plain in ("aB3$xY9!qW2@eR5%", "short", "ü-ñ-日本"):
            self.assertEqual(decrypt_password(encrypt_password(plain)), plain)

    def test_same_password_gets_distinct_ciphertexts(self):
        first = encrypt_password("aB3$xY9!qW2@eR5%")
        second = encrypt_password("aB3$xY9!qW2@eR5%")

        self.assertNotEqual(first, second)
        self.assertNotEqual(first.split(":")[0], second.split(":")[0])

    def test_stored_format_is_iv_and_ciphertext_hex(self):
        encrypted = encrypt_password("aB3$xY9!qW2@eR5%")
        self.assertRegex(encrypted, r"^[0-9a-f]{32}:[0-9a-f]+$")
        # 16 characters plus PKCS7 padding is two AES blocks
        self.assertEqual(len(encrypted.split(":")[1]), 64)

    def test_wrong_secret_does_not_decrypt(self):
        encrypted = encrypt_password("aB3$xY9!qW2@eR5%", secret="one")
        try:
            result = decrypt_password(encrypted, secret="two")
        except ValueError:
            return
        # a wrong key can unpad by chance
        self.assertNotEqual(result, "aB3$xY9!qW2@eR5%")

    def test_malformed_value_raises(self):
        for value in ("", "nocolon", ":abcd", "abcd:"):
            with self.assertRaises(ValueError):
                decrypt_password(value)


@override_settings(EDX_PASSWORD_SECRET="unit-test-secret")
class CredentialGenerationTests(SimpleTestCase):
    def test_password_length_and_alphabet(self):
        password = generate_password()
        self.assertEqual(len(password), 16)
        self.assertRegex(password, r"^[A-Za-z0-9!@#$%]+$")

    def test_create_credentials_encrypts_password(self):
        credentials = create_credentials("Ahmed", "Ali")
        self.assertEqual(decrypt_password(credentials.encrypted_password), credentials.password)

    def test_username_from_names(self):
        username = generate_username("a@example.com", "Ahmed", "Ali")
        self.assertRegex(username, r"^ahmed_ali_[0-9a-z]{4}$")

    def test_username_filters_and_truncates(self):
        username = generate_username("x@example.com", "Abdirahman-Mohamed", "O'Sullivan Hassan Farah")
        base, suffix = username.rsplit("_", 1)
        self.assertLessEqual(len(base), 25)
        self.assertTrue(re.fullmatch(r"[a-z0-9_-]+", base))
        self.assertEqual(len(suffix), 4)

    def test_username_falls_back_to_email(self):
        username = generate_username("Student.One@example.com", "", "")
        self.assertRegex(username, r"^studentone_[0-9a-z]{4}$")

    def test_username_never_empty(self):
        self.assertRegex(generate_username("...@example.com"), r"^user_[0-9a-z]{4}$")

    @patch("core.edx_integration.credentials.random.choice", side_effect=list("x7k2q9m1"))
    def test_same_name_gets_distinct_usernames(self, mock_choice):
        first = generate_username("ahmed1@example.com", "Ahmed", "Ali")
        second = generate_username("ahmed2@example.com", "Ahmed", "Ali")

        self.assertEqual(first, "ahmed_ali_x7k2")
        self.assertEqual(second, "ahmed_ali_q9m1")

    def test_usernames_for_one_name_vary(self):
        usernames = {generate_username("ahmed@example.com", "Ahmed", "Ali") for _ in range(20)}
        self.assertGreater(len(usernames), 1)
