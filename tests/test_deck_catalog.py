import importlib
import random
from collections import Counter

import pytest

from app.engine.catalog import (
    ActionKind,
    Role,
    action_spec,
    blocker_roles,
    deck_size,
    exchange_draw_count,
    parse_action,
    parse_role,
)
from app.engine.deck import Deck
from app.engine.errors import LogicFault


def test_base_deck_has_three_of_each_role():
    deck = Deck.build(use_inquisitor=False, rng=random.Random(1))
    assert len(deck) == deck_size() == 15
    counts = Counter(deck.cards)
    assert set(counts) == {Role.DUKE, Role.ASSASSIN, Role.CAPTAIN, Role.AMBASSADOR, Role.CONTESSA}
    assert set(counts.values()) == {3}


def test_inquisitor_deck_replaces_ambassador():
    deck = Deck.build(use_inquisitor=True, rng=random.Random(1))
    assert Role.AMBASSADOR not in deck.cards
    assert Counter(deck.cards)[Role.INQUISITOR] == 3


def test_shuffle_is_reproducible_with_a_seed():
    a = Deck.build(False, rng=random.Random(42))
    b = Deck.build(False, rng=random.Random(42))
    assert a.cards == b.cards


def test_draw_takes_top_and_put_back_keeps_multiset():
    deck = Deck(cards=[Role.DUKE, Role.CAPTAIN], rng=random.Random(3))
    assert deck.draw() == Role.CAPTAIN
    deck.put_back(Role.CAPTAIN)
    assert sorted(deck.cards) == sorted([Role.DUKE, Role.CAPTAIN])

    assert len(deck.draw_many(2)) == 2
    with pytest.raises(LogicFault):
        deck.draw()


def test_action_table_variants():
    assert action_spec(ActionKind.EXAMINE, use_inquisitor=False) is None
    examine = action_spec(ActionKind.EXAMINE, use_inquisitor=True)
    assert examine.claim == Role.INQUISITOR and examine.needs_target

    assert action_spec(ActionKind.EXCHANGE, False).claim == Role.AMBASSADOR
    assert action_spec(ActionKind.EXCHANGE, True).claim == Role.INQUISITOR
    assert exchange_draw_count(False) == 2
    assert exchange_draw_count(True) == 1

    coup = action_spec(ActionKind.COUP, False)
    assert coup.cost == 7 and not coup.challengeable and not coup.blockable
    assert not action_spec(ActionKind.INCOME, False).challengeable


def test_blocker_roles():
    assert blocker_roles(ActionKind.FOREIGN_AID, False) == (Role.DUKE,)
    assert blocker_roles(ActionKind.ASSASSINATE, True) == (Role.CONTESSA,)
    assert blocker_roles(ActionKind.STEAL, False) == (Role.CAPTAIN, Role.AMBASSADOR)
    assert blocker_roles(ActionKind.STEAL, True) == (Role.CAPTAIN, Role.INQUISITOR)
    assert blocker_roles(ActionKind.TAX, False) == ()


def test_parse_helpers_accept_client_spellings():
    assert parse_action("foreignAid") == ActionKind.FOREIGN_AID
    assert parse_action("foreign-aid") == ActionKind.FOREIGN_AID
    assert parse_action(" TAX ") == ActionKind.TAX
    assert parse_action("bribe") is None
    assert parse_role("contessa") == Role.CONTESSA
    assert parse_role("Jester") is None


def test_parse_helpers_reject_non_text():
    assert parse_action(None) is None
    assert parse_action(3) is None
    assert parse_role(5) is None
    assert parse_role({"role": "Duke"}) is None


@pytest.mark.parametrize("name", ["catalog", "errors", "deck", "aliases"])
def test_engine_modules_carry_the_engine_header(name):
    module = importlib.import_module(f"app.engine.{name}")
    header = module.__doc__.strip().splitlines()
    assert header[0] == f"Engine: {name}.py"
    assert "Rôle:" in header and "Notes:" in header
