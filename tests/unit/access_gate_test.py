"""Tests for the access gate."""

from plnstage.domain.models import AccessDecision, AccessListEntry, AccessListKind
from plnstage.domain.services import AccessGate


def _list(state, kind, uuid):
    with state as s:
        s.add_access_entry(AccessListEntry(uuid=uuid, kind=kind, comment="test"))


def test_empty_token_is_denied(state):
    gate = AccessGate(state, default_accepting=True)

    assert gate.check(None) == AccessDecision.DENY
    assert gate.check("   ") == AccessDecision.DENY


def test_allow_list_wins_over_deny_list(state):
    _list(state, AccessListKind.ALLOW, "P1")
    _list(state, AccessListKind.DENY, "P1")

    assert AccessGate(state, default_accepting=False).check("P1") == AccessDecision.ALLOW


def test_deny_list_wins_over_default(state):
    _list(state, AccessListKind.DENY, "P1")

    assert AccessGate(state, default_accepting=True).check("P1") == AccessDecision.DENY


def test_unlisted_token_uses_default(state):
    assert AccessGate(state, default_accepting=True).check("P2") == AccessDecision.ALLOW
    assert AccessGate(state, default_accepting=False).check("P2") == AccessDecision.DENY


def test_tokens_are_case_insensitive(state):
    _list(state, AccessListKind.ALLOW, "ABC-DEF")
    gate = AccessGate(state, default_accepting=False)

    assert gate.check("abc-def") == AccessDecision.ALLOW
    assert gate.is_listed(" abc-def ")
    assert not gate.is_listed("other")
