import unittest

from timedchess.core.errors import Unauthorized
from timedchess.core.security import (
    authorize,
    decrypt_identity,
    encrypt_identity,
    identities_match,
    verify_check_string,
)


class IdentityProofTests(unittest.TestCase):
    def test_encrypted_identity_decrypts(self) -> None:
        proof = encrypt_identity("alice")
        self.assertNotIn("alice", proof)
        self.assertEqual(decrypt_identity(proof), "alice")

    def test_each_proof_is_unique(self) -> None:
        self.assertNotEqual(encrypt_identity("alice"), encrypt_identity("alice"))

    def test_garbage_never_decrypts(self) -> None:
        for proof in ("", "   ", "abc", "a.b.c.d.e", None, 42):
            with self.subTest(proof=proof):
                self.assertIsNone(decrypt_identity(proof))

    def test_tampered_proof_is_rejected(self) -> None:
        proof = encrypt_identity("alice")
        header, key, iv, ciphertext, tag = proof.split(".")
        flipped = ("A" if tag[0] != "A" else "B") + tag[1:]
        self.assertIsNone(decrypt_identity(".".join((header, key, iv, ciphertext, flipped))))

    def test_authorize_returns_matching_identity(self) -> None:
        self.assertEqual(authorize(encrypt_identity("bob"), ("alice", "bob")), "bob")

    def test_authorize_rejects_outsiders(self) -> None:
        with self.assertRaises(Unauthorized) as ctx:
            authorize(encrypt_identity("carol"), ("alice", "bob"), "not player")
        self.assertEqual(ctx.exception.message, "not player")
        with self.assertRaises(Unauthorized):
            authorize("garbage", ("alice", None))

    def test_empty_identities_never_match(self) -> None:
        self.assertFalse(identities_match("", ""))
        self.assertFalse(identities_match(None, "alice"))
        self.assertTrue(identities_match("alice", "alice"))

    def test_check_string_verification(self) -> None:
        self.assertTrue(verify_check_string("nonce", encrypt_identity("nonce")))
        self.assertFalse(verify_check_string("nonce", encrypt_identity("other")))


if __name__ == "__main__":
    unittest.main()
