"""
Read-side contract tests: seeding, point reads and the query flavours.
"""

import pytest

from carledger.contract import SAMPLE_CARS, QueryOptions, resolve_creator
from carledger.errors import CorruptHistory, EmptyField, InvalidKey, NotFound
from carledger.identity import Caller


def _keys(results):
    return [r.key for r in results]


# =============================================================================
# SEEDING
# =============================================================================

class TestInitLedger:

    def test_seeds_ten_cars(self, contract, admin):
        keys = contract.init_ledger(admin)
        assert keys == [f"CAR{i}" for i in range(10)]

        car = contract.get("CAR0", include_cert_owner=True)
        assert (car.owner, car.make, car.model, car.color) == ("Tomoko", "Toyota", "Prius", "blue")
        assert car.cert_owner == admin.identity

    def test_seeding_publishes_no_events(self, contract, bus, admin):
        contract.init_ledger(admin)
        assert bus.history == []

    def test_seeded_cars_share_one_transaction(self, contract, store, admin):
        contract.init_ledger(admin)
        tx_ids = set()
        for i in range(len(SAMPLE_CARS)):
            with store.get_history_for_key(f"CAR{i}") as history:
                tx_ids.add(next(history).tx_id)
        assert len(tx_ids) == 1


# =============================================================================
# POINT READS
# =============================================================================

class TestPointReads:

    def test_exists(self, contract, alice):
        assert contract.exists("CAR1") is False
        contract.create("CAR1", "Toyota", "Prius", "blue", "Alice", alice)
        assert contract.exists("CAR1") is True

    def test_exists_validates_key(self, contract):
        with pytest.raises(InvalidKey):
            contract.exists("car1")

    def test_round_trip(self, contract, alice):
        contract.create("CAR1", "Toyota", "Prius", "blue", "Alice", alice)

        stripped = contract.get("CAR1")
        assert (stripped.owner, stripped.make, stripped.model, stripped.color) == ("Alice", "Toyota", "Prius", "blue")
        assert stripped.cert_owner is None
        assert "certOwner" not in stripped.to_dict()

        full = contract.get("CAR1", include_cert_owner=True)
        assert full.cert_owner == alice.identity

    def test_get_missing(self, contract):
        with pytest.raises(NotFound, match="The car CAR1 does not exist."):
            contract.get("CAR1")

    def test_get_corrupt(self, contract, store):
        store.put_state("CAR1", b"[1, 2]")
        with pytest.raises(CorruptHistory):
            contract.get("CAR1")


# =============================================================================
# QUERIES
# =============================================================================

@pytest.fixture
def fleet(contract, alice, bob):
    contract.create("CAR1", "Toyota", "Prius", "blue", "Alice", alice)
    contract.create("CAR2", "Ford", "Mustang", "red", "Bob", alice)
    contract.create("CAR3", "Tesla", "S", "black", "Bob", bob)
    contract.create("CAR12", "Fiat", "Punto", "violet", "Alice", bob)
    return contract


class TestQueryByOwner:

    def test_matches_owner_name(self, fleet):
        results = fleet.query_by_owner("Bob")
        assert _keys(results) == ["CAR2", "CAR3"]
        assert all(r.car.cert_owner is None for r in results)

    def test_output_all(self, fleet, alice):
        results = fleet.query_by_owner("Bob", output_all=True)
        assert results[0].car.cert_owner == alice.identity

    def test_empty_owner(self, fleet):
        with pytest.raises(EmptyField) as exc_info:
            fleet.query_by_owner("")
        assert exc_info.value.field == "carOwner"


class TestQueryAll:

    def test_no_options_scans_every_key(self, fleet, store, alice):
        store.put_state("TRUCK1", b'{"owner": "X", "make": "M", "model": "N", "color": "C"}')
        results = fleet.query_all(alice)
        assert _keys(results) == ["CAR1", "CAR12", "CAR2", "CAR3"]
        assert all(r.car.cert_owner is None for r in results)
        assert store.open_iterators == 0

    def test_output_all_only(self, fleet, alice):
        results = fleet.query_all(alice, QueryOptions(output_all=True))
        assert len(results) == 4
        assert all(r.car.cert_owner for r in results)

    def test_by_owner(self, fleet, alice):
        assert _keys(fleet.query_all(alice, QueryOptions(by_owner="Alice"))) == ["CAR1", "CAR12"]

    def test_by_creator_true(self, fleet, alice):
        assert _keys(fleet.query_all(alice, QueryOptions(by_creator="true"))) == ["CAR1", "CAR2"]

    def test_by_creator_identity(self, fleet, alice, bob):
        results = fleet.query_all(alice, QueryOptions(by_creator=bob.identity, output_all=True))
        assert _keys(results) == ["CAR12", "CAR3"]

    def test_by_creator_name(self, fleet, alice):
        assert _keys(fleet.query_all(alice, QueryOptions(by_creator="Bob"))) == ["CAR12", "CAR3"]

    def test_by_owner_and_creator(self, fleet, alice):
        options = QueryOptions(by_owner="Bob", by_creator="true")
        assert _keys(fleet.query_all(alice, options)) == ["CAR2"]

    def test_legacy_records_excluded_from_selector_queries(self, fleet, store, alice):
        store.put_state("CAR7", b'{"owner": "Alice", "make": "M", "model": "N", "color": "C"}')
        assert "CAR7" in _keys(fleet.query_all(alice))
        assert "CAR7" not in _keys(fleet.query_all(alice, QueryOptions(by_owner="Alice")))


class TestFindMine:

    def test_cars_held_by_caller(self, fleet, alice, bob):
        assert _keys(fleet.find_mine(alice)) == ["CAR1", "CAR2"]
        assert _keys(fleet.find_mine(bob)) == ["CAR12", "CAR3"]

    def test_custody_moves_on_confirm(self, fleet, alice, bob):
        fleet.confirm_transfer("CAR2", bob)
        assert _keys(fleet.find_mine(alice)) == ["CAR1"]
        assert _keys(fleet.find_mine(bob, output_all=True)) == ["CAR12", "CAR2", "CAR3"]


# =============================================================================
# OPTIONS
# =============================================================================

class TestQueryOptions:

    def test_from_transient(self):
        options = QueryOptions.from_transient({
            "QueryOutput": b"all",
            "QueryByOwner": "Bob",
            "QueryByCreator": b"true",
        })
        assert options == QueryOptions(output_all=True, by_owner="Bob", by_creator="true")
        assert not options.is_empty

    def test_empty_transient(self):
        assert QueryOptions.from_transient({}).is_empty

    def test_output_other_than_all(self):
        assert QueryOptions.from_transient({"QueryOutput": "some"}).output_all is False

    def test_present_but_empty_owner_is_an_option(self):
        options = QueryOptions.from_transient({"QueryByOwner": ""})
        assert options.by_owner == ""
        assert not options.is_empty


class TestResolveCreator:

    def test_true_is_caller(self, alice):
        assert resolve_creator("true", alice) == alice.identity

    def test_identity_verbatim(self, alice):
        assert resolve_creator("x509::/CN=Other::/CN=ca", alice) == "x509::/CN=Other::/CN=ca"

    def test_name_swaps_cn(self, alice, bob):
        assert resolve_creator("Bob", alice) == bob.identity

    def test_caller_without_name(self):
        nameless = Caller(identity="x509::/O=Org1::/CN=ca")
        assert resolve_creator("Bob", nameless) == "x509::/O=Org1::/CN=ca"
