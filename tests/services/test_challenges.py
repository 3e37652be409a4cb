"""Tests for the proof-of-ownership challenge authority."""

from __future__ import annotations

import threading

import pytest

from inproto.core.errors import AuthError
from inproto.services import identity
from inproto.services.challenges import ChallengeAuthority, ChallengeStore

TOKEN_HEX_LENGTH = 32


def test_issue_returns_random_hex_token(authority: ChallengeAuthority, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    first = authority.issue_challenge(pubkey)
    second = authority.issue_challenge(pubkey)

    assert len(first.token) == TOKEN_HEX_LENGTH
    int(first.token, 16)
    assert first.token != second.token
    assert len(authority.store) == 2


def test_issue_reports_time_in_milliseconds(authority: ChallengeAuthority, clock, alice: str) -> None:
    issued = authority.issue_challenge(identity.public_key_of(alice))
    assert issued.issued_at_ms == int(clock.now * 1000)


def test_challenge_is_single_use(authority: ChallengeAuthority, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    assert authority.consume_challenge(pubkey, token) is True
    assert authority.consume_challenge(pubkey, token) is False


def test_challenge_belongs_to_issued_pubkey(authority: ChallengeAuthority, alice: str, bob: str) -> None:
    token = authority.issue_challenge(identity.public_key_of(alice)).token

    assert authority.consume_challenge(identity.public_key_of(bob), token) is False
    # A failed attempt leaves the token usable by its owner.
    assert authority.consume_challenge(identity.public_key_of(alice), token) is True


def test_challenge_expires_after_ttl(authority: ChallengeAuthority, clock, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    clock.advance(300)
    assert authority.consume_challenge(pubkey, token) is False
    assert len(authority.store) == 0


def test_challenge_valid_just_before_expiry(authority: ChallengeAuthority, clock, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    clock.advance(299.9)
    assert authority.consume_challenge(pubkey, token) is True


def test_unknown_token_is_rejected(authority: ChallengeAuthority, alice: str) -> None:
    assert authority.consume_challenge(identity.public_key_of(alice), "0" * 32) is False


def test_issue_prunes_expired_tokens(authority: ChallengeAuthority, clock, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    authority.issue_challenge(pubkey)
    clock.advance(301)
    authority.issue_challenge(pubkey)
    assert len(authority.store) == 1


def test_verify_proof(authority: ChallengeAuthority, alice: str, bob: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    assert authority.verify_proof(pubkey, identity.sign(token, alice), token) is True
    assert authority.verify_proof(pubkey, identity.sign(token, bob), token) is False
    assert authority.verify_proof(pubkey, identity.sign("other", alice), token) is False
    assert authority.verify_proof(pubkey, "garbage", token) is False
    assert authority.verify_proof(pubkey, identity.sign(token, alice), "") is False


def test_authenticate_consumes_on_success(authority: ChallengeAuthority, alice: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    authority.authenticate(pubkey, identity.sign(token, alice), token)
    with pytest.raises(AuthError, match="invalid challenge"):
        authority.authenticate(pubkey, identity.sign(token, alice), token)


def test_bad_signature_leaves_challenge_available(authority: ChallengeAuthority, alice: str, bob: str) -> None:
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token

    with pytest.raises(AuthError, match="invalid signature"):
        authority.authenticate(pubkey, identity.sign(token, bob), token)
    authority.authenticate(pubkey, identity.sign(token, alice), token)


def test_concurrent_consumers_only_one_wins(alice: str) -> None:
    authority = ChallengeAuthority(ChallengeStore(), ttl_seconds=300)
    pubkey = identity.public_key_of(alice)
    token = authority.issue_challenge(pubkey).token
    results: list[bool] = []
    barrier = threading.Barrier(8)

    def consume() -> None:
        barrier.wait()
        results.append(authority.consume_challenge(pubkey, token))

    threads = [threading.Thread(target=consume) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
