# -*- coding: utf-8 -*-

from __future__ import annotations

import unittest

from fastapi import HTTPException

from nutriapp.identity.models import DirectoryError, UpdateResult, UpdateStatus
from nutriapp.identity.resolver import IdentityResolver
from nutriapp.identity.security import create_access_token, decode_token
from nutriapp.identity.storage import ProfileStore

from support import Harness


class _BrokenMergeProfiles(ProfileStore):
    def merge_into(self, destination_id, source_id, overrides=None):
        raise RuntimeError("profile store unavailable")

    def merge_write(self, identity_id, fields):
        raise RuntimeError("profile store unavailable")


class TestIdentityResolver(unittest.TestCase):
    def setUp(self) -> None:
        self.h = Harness()
        self.directory = self.h.directory
        self.profiles = self.h.profiles
        self.resolver = self.h.resolver

    def tearDown(self) -> None:
        self.h.cleanup()

    def _guest(self, profile=None) -> str:
        guest = self.directory.create_identity(None, verified=False)
        if profile is not None:
            self.profiles.put(guest.id, profile)
        return guest.id

    def test_guest_with_unclaimed_email_keeps_guest_id(self) -> None:
        guest_id = self._guest({"isAnonymous": True, "goals": {"target": "lose"}})

        result = self.resolver.resolve("a@x.com", guest_id)

        self.assertEqual(result.identity_id, guest_id)
        identity = self.directory.get_identity(guest_id)
        self.assertEqual(identity.email, "a@x.com")
        self.assertTrue(identity.email_verified)
        self.assertFalse(identity.is_anonymous)
        profile = self.profiles.get(guest_id)
        self.assertEqual(profile["email"], "a@x.com")
        self.assertTrue(profile["emailVerified"])
        self.assertFalse(profile["isAnonymous"])
        self.assertEqual(profile["goals"], {"target": "lose"})

    def test_guest_with_claimed_email_merges_into_owner(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        self.profiles.put(owner.id, {"displayName": "Owner", "goals": {"target": "gain"}})
        guest_id = self._guest({
            "displayName": "Guest",
            "goals": {"target": "lose"},
            "diet": {"type": "vegan"},
            "isAnonymous": True,
        })

        result = self.resolver.resolve("a@x.com", guest_id)

        self.assertEqual(result.identity_id, owner.id)
        merged = self.profiles.get(owner.id)
        self.assertEqual(merged["displayName"], "Owner")
        self.assertEqual(merged["goals"], {"target": "gain"})
        self.assertEqual(merged["diet"], {"type": "vegan"})
        self.assertFalse(merged["isAnonymous"])
        self.assertTrue(merged["emailVerified"])
        self.assertEqual(merged["email"], "a@x.com")
        self.assertIsNone(self.profiles.get(guest_id))
        # The guest identity is not upgraded.
        self.assertTrue(self.directory.get_identity(guest_id).is_anonymous)

    def test_guest_data_fills_placeholders_of_identity_created_by_sign_in(self) -> None:
        owner_id = self.resolver.resolve("a@x.com").identity_id
        guest_id = self._guest({
            "isAnonymous": True,
            "onboardingCompleted": True,
            "profile": {"name": "Ann", "weight": 70},
            "goals": {"target": "lose"},
        })
        self.h.clock.advance(120)

        result = self.resolver.resolve("a@x.com", guest_id)

        self.assertEqual(result.identity_id, owner_id)
        merged = self.profiles.get(owner_id)
        self.assertEqual(merged["profile"], {"name": "Ann", "weight": 70})
        self.assertEqual(merged["goals"], {"target": "lose"})
        self.assertTrue(merged["onboardingCompleted"])
        self.assertFalse(merged["isAnonymous"])
        self.assertEqual(merged["diet"], {})
        self.assertIsNone(self.profiles.get(guest_id))

    def test_permanent_identity_named_as_guest_is_left_alone(self) -> None:
        victim = self.resolver.resolve("victim@x.com")
        self.profiles.merge_write(victim.identity_id, {"profile": {"name": "Vic"}})

        with self.assertLogs("nutriapp.identity.resolver", level="WARNING"):
            result = self.resolver.resolve("attacker@x.com", victim.identity_id)

        self.assertNotEqual(result.identity_id, victim.identity_id)
        payload = decode_token(result.token, "test-secret", now=self.h.clock)
        self.assertNotEqual(payload["sub"], victim.identity_id)
        self.assertEqual(self.directory.get_identity(victim.identity_id).email, "victim@x.com")
        self.assertEqual(self.directory.find_identity_by_email("victim@x.com").id, victim.identity_id)
        self.assertEqual(self.directory.find_identity_by_email("attacker@x.com").id, result.identity_id)
        self.assertEqual(self.profiles.get(victim.identity_id)["email"], "victim@x.com")
        self.assertEqual(self.profiles.get(victim.identity_id)["profile"], {"name": "Vic"})

    def test_permanent_identity_named_as_guest_signs_in_to_existing_owner(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        other = self.directory.create_identity("b@x.com", verified=True)

        result = self.resolver.resolve("a@x.com", other.id)

        self.assertEqual(result.identity_id, owner.id)
        self.assertEqual(self.directory.get_identity(other.id).email, "b@x.com")

    def test_merge_failure_is_not_fatal(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        guest_id = self._guest({"diet": {"type": "vegan"}})
        resolver = IdentityResolver(self.directory, _BrokenMergeProfiles(self.h.db.path), now=self.h.clock)

        with self.assertLogs("nutriapp.identity.resolver", level="ERROR"):
            result = resolver.resolve("a@x.com", guest_id)

        self.assertEqual(result.identity_id, owner.id)
        self.assertTrue(result.token)
        self.assertEqual(self.profiles.get(guest_id), {"diet": {"type": "vegan"}})

    def test_missing_guest_falls_back_to_existing_identity(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        result = self.resolver.resolve("a@x.com", "guest-that-was-deleted")
        self.assertEqual(result.identity_id, owner.id)

    def test_missing_guest_and_unknown_email_creates_identity(self) -> None:
        result = self.resolver.resolve("new@x.com", "guest-that-was-deleted")
        self.assertNotEqual(result.identity_id, "guest-that-was-deleted")
        identity = self.directory.get_identity(result.identity_id)
        self.assertEqual(identity.email, "new@x.com")
        self.assertTrue(identity.email_verified)

    def test_direct_sign_in_with_unseen_email_creates_identity(self) -> None:
        result = self.resolver.resolve("new@x.com")

        identity = self.directory.find_identity_by_email("new@x.com")
        self.assertIsNotNone(identity)
        self.assertEqual(result.identity_id, identity.id)
        self.assertFalse(identity.is_anonymous)
        self.assertTrue(identity.email_verified)
        profile = self.profiles.get(identity.id)
        self.assertFalse(profile["onboardingCompleted"])
        self.assertFalse(profile["isAnonymous"])
        self.assertEqual(profile["email"], "new@x.com")

    def test_direct_sign_in_with_known_email_returns_existing(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        self.profiles.put(owner.id, {"displayName": "Owner"})

        result = self.resolver.resolve("a@x.com")

        self.assertEqual(result.identity_id, owner.id)
        self.assertEqual(self.profiles.get(owner.id)["displayName"], "Owner")

    def test_token_is_bound_to_durable_identity(self) -> None:
        result = self.resolver.resolve("a@x.com")
        payload = decode_token(result.token, "test-secret", now=self.h.clock)
        self.assertEqual(payload["sub"], result.identity_id)
        self.assertEqual(payload["email"], "a@x.com")
        self.assertFalse(payload["anon"])

    def test_unexpected_directory_error_propagates(self) -> None:
        guest_id = self._guest()

        def failing_update(identity_id, *, email, verified):
            raise DirectoryError("disk I/O error")

        self.directory.update_identity = failing_update
        with self.assertRaises(DirectoryError):
            self.resolver.resolve("a@x.com", guest_id)

    def test_email_taken_without_owner_is_an_error(self) -> None:
        guest_id = self._guest()
        self.directory.update_identity = lambda identity_id, *, email, verified: UpdateResult(UpdateStatus.email_taken)
        with self.assertRaises(DirectoryError):
            self.resolver.resolve("a@x.com", guest_id)


class TestIdentityDirectory(unittest.TestCase):
    def setUp(self) -> None:
        self.h = Harness()
        self.directory = self.h.directory

    def tearDown(self) -> None:
        self.h.cleanup()

    def test_update_reports_not_found(self) -> None:
        result = self.directory.update_identity("missing", email="a@x.com", verified=True)
        self.assertIs(result.status, UpdateStatus.not_found)

    def test_update_reports_email_taken(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        guest = self.directory.create_identity(None, verified=False)
        result = self.directory.update_identity(guest.id, email="A@x.com", verified=True)
        self.assertIs(result.status, UpdateStatus.email_taken)
        self.assertEqual(result.conflicting_id, owner.id)

    def test_update_own_email_again_is_allowed(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=False)
        result = self.directory.update_identity(owner.id, email="a@x.com", verified=True)
        self.assertIs(result.status, UpdateStatus.updated)
        self.assertTrue(result.identity.email_verified)

    def test_update_refuses_permanent_identity_with_other_email(self) -> None:
        owner = self.directory.create_identity("a@x.com", verified=True)
        result = self.directory.update_identity(owner.id, email="b@x.com", verified=True)
        self.assertIs(result.status, UpdateStatus.not_anonymous)
        self.assertIsNone(result.identity)
        self.assertEqual(self.directory.get_identity(owner.id).email, "a@x.com")
        self.assertIsNone(self.directory.find_identity_by_email("b@x.com"))

    def test_guest_identities_have_no_email(self) -> None:
        guest = self.directory.create_identity(None, verified=False)
        self.assertTrue(guest.is_anonymous)
        self.assertIsNone(guest.email)

    def test_token_for_unknown_identity(self) -> None:
        with self.assertRaises(DirectoryError):
            self.directory.issue_session_token("missing")


class TestSessionTokens(unittest.TestCase):
    def _token(self, secret: str = "test-secret") -> str:
        return create_access_token(identity_id="id-1", email="a@x.com", is_anonymous=False, secret=secret, ttl_days=30)

    def test_round_trip(self) -> None:
        payload = decode_token(self._token(), "test-secret")
        self.assertEqual(payload["sub"], "id-1")
        self.assertEqual(payload["exp"] - payload["iat"], 30 * 24 * 3600)

    def test_rejects_other_secret_and_tampering(self) -> None:
        token = self._token()
        header, body, signature = token.split(".")
        forged = create_access_token(identity_id="id-2", email=None, is_anonymous=True, secret="x", ttl_days=30)
        for bad in (
            self._token(secret="other"),
            f"{header}.{forged.split('.')[1]}.{signature}",
            f"{header}.{body}",
            "not.a.token",
        ):
            with self.assertRaises(HTTPException) as ctx:
                decode_token(bad, "test-secret")
            self.assertEqual(ctx.exception.status_code, 401)


if __name__ == "__main__":
    unittest.main()
