"""Tests for the in-process ban list."""

import pytest

from hostbot.core.errors import ValidationError
from hostbot.services.bans import BanList, parse_tg_id


def test_ban_and_unban():
    bans = BanList()

    assert bans.ban("42")
    assert not bans.ban(42)
    assert bans.is_banned(42)
    assert len(bans) == 1

    assert bans.unban(" 42 ")
    assert not bans.unban(42)
    assert not bans.is_banned(42)


def test_protected_id_cannot_be_banned():
    bans = BanList(protected={1000})

    with pytest.raises(ValidationError):
        bans.ban(1000)
    assert not bans.is_banned(1000)


@pytest.mark.parametrize("raw", ["", None, "abc", "-5", "12 34"])
def test_bad_ids(raw):
    with pytest.raises(ValidationError):
        parse_tg_id(raw)


def test_snapshot_is_sorted():
    bans = BanList()
    for tg_id in (30, 10, 20):
        bans.ban(tg_id)
    assert bans.snapshot() == [10, 20, 30]
