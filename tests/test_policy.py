"""
Access policy tests: gating, secret resolution, redaction and the
tagged dict form used by the service and the state store.
"""

import unittest

from proven import (
    PerCodeSecretPolicy,
    PublicPolicy,
    Unauthorized,
    WhitelistPolicy,
    check_allowed,
    code_hash,
    policy_from_dict,
    policy_to_dict,
    redact_for,
    resolve_secret,
    to_hex,
)

from fakes import OWNER, STRANGER

H1 = code_hash("one")
H2 = code_hash("two")


class TestCheckAllowed(unittest.TestCase):

    def test_public_allows_anything(self):
        check_allowed(PublicPolicy(), H1)

    def test_whitelist_allows_listed_only(self):
        policy = WhitelistPolicy(allowed_code_hashes=frozenset({H1}))
        check_allowed(policy, H1)
        with self.assertRaises(Unauthorized):
            check_allowed(policy, H2)

    def test_empty_whitelist_blocks_everything(self):
        with self.assertRaises(Unauthorized):
            check_allowed(WhitelistPolicy(secret="s"), H1)

    def test_per_code_secret_allows_anything(self):
        check_allowed(PerCodeSecretPolicy({H1: "a"}), H2)

    def test_unknown_variant(self):
        with self.assertRaises(TypeError):
            check_allowed(object(), H1)


class TestResolveSecret(unittest.TestCase):

    def test_public_resolves_empty(self):
        self.assertEqual(resolve_secret(PublicPolicy(), H1), "")

    def test_whitelist_shared_secret(self):
        policy = WhitelistPolicy(secret='{"k":1}', allowed_code_hashes=frozenset({H1}))
        self.assertEqual(resolve_secret(policy, H1), '{"k":1}')

    def test_per_code_secret_lookup(self):
        policy = PerCodeSecretPolicy({H1: "a"})
        self.assertEqual(resolve_secret(policy, H1), "a")
        self.assertEqual(resolve_secret(policy, H2), "")

    def test_explicit_secret_wins_for_every_variant(self):
        for policy in (PublicPolicy(), WhitelistPolicy(secret="shared"), PerCodeSecretPolicy({H1: "a"})):
            self.assertEqual(resolve_secret(policy, H1, "explicit"), "explicit")
            # An explicit empty string is still explicit
            self.assertEqual(resolve_secret(policy, H1, ""), "")


class TestRedaction(unittest.TestCase):

    def test_owner_sees_everything(self):
        policy = WhitelistPolicy(secret="s", allowed_code_hashes=frozenset({H1}))
        self.assertIs(redact_for(policy, OWNER, OWNER), policy)

    def test_stranger_sees_blank_whitelist_secret(self):
        policy = WhitelistPolicy(secret="s", allowed_code_hashes=frozenset({H1}))
        seen = redact_for(policy, STRANGER, OWNER)
        self.assertEqual(seen.secret, "")
        self.assertEqual(seen.allowed_code_hashes, frozenset({H1}))
        # The stored policy is untouched
        self.assertEqual(policy.secret, "s")

    def test_stranger_sees_no_per_code_secrets(self):
        seen = redact_for(PerCodeSecretPolicy({H1: "a"}), STRANGER, OWNER)
        self.assertEqual(dict(seen.secrets), {})

    def test_public_unchanged(self):
        self.assertEqual(redact_for(PublicPolicy(), STRANGER, OWNER), PublicPolicy())


class TestPolicyValues(unittest.TestCase):

    def test_variants_are_immutable(self):
        policy = WhitelistPolicy(secret="s")
        with self.assertRaises(AttributeError):
            policy.secret = "other"
        pcs = PerCodeSecretPolicy({H1: "a"})
        with self.assertRaises(TypeError):
            pcs.secrets[H2] = "b"

    def test_with_helpers_return_new_values(self):
        policy = WhitelistPolicy()
        updated = policy.with_allowed(H1).with_secret("s")
        self.assertEqual(policy, WhitelistPolicy())
        self.assertEqual(updated, WhitelistPolicy(secret="s", allowed_code_hashes=frozenset({H1})))
        self.assertEqual(PerCodeSecretPolicy().with_secret(H1, "a"), PerCodeSecretPolicy({H1: "a"}))

    def test_per_code_secret_is_hashable(self):
        self.assertEqual(hash(PerCodeSecretPolicy({H1: "a"})), hash(PerCodeSecretPolicy({H1: "a"})))


class TestPolicySerialization(unittest.TestCase):

    def test_to_dict(self):
        self.assertEqual(policy_to_dict(PublicPolicy()), {"type": "public"})
        d = policy_to_dict(WhitelistPolicy(secret="s", allowed_code_hashes=frozenset({H2, H1})))
        self.assertEqual(d["type"], "whitelist")
        self.assertEqual(d["secret"], "s")
        self.assertEqual(d["allowed_code_hashes"], sorted([to_hex(H1), to_hex(H2)]))
        self.assertEqual(
            policy_to_dict(PerCodeSecretPolicy({H1: "a"})),
            {"type": "per_code_secret", "secrets": {to_hex(H1): "a"}},
        )

    def test_from_dict(self):
        for policy in (
            PublicPolicy(),
            WhitelistPolicy(secret="s", allowed_code_hashes=frozenset({H1, H2})),
            PerCodeSecretPolicy({H1: "a", H2: ""}),
        ):
            self.assertEqual(policy_from_dict(policy_to_dict(policy)), policy)

    def test_from_dict_rejects_unknown_type(self):
        with self.assertRaises(ValueError):
            policy_from_dict({"type": "everyone"})

    def test_from_dict_rejects_bad_hash(self):
        with self.assertRaises(ValueError):
            policy_from_dict({"type": "whitelist", "allowed_code_hashes": ["0x1234"]})
        with self.assertRaises(ValueError):
            policy_from_dict({"type": "per_code_secret", "secrets": {to_hex(H1): 5}})


if __name__ == "__main__":
    unittest.main(verbosity=2)
