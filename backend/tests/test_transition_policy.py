# Overview: Pytest coverage for the static seal transition table.

"""
Transition Policy Tests

The policy is pure data plus predicates, so no database fixtures are needed.
"""

import pytest

from sellomaster.services import transition_policy as policy
from sellomaster.services.transition_policy import (
    ENTRADA_INVENTARIO, ASIGNADO, ENTREGADO, INSTALADO, NO_INSTALADO,
    SALIDA_FABRICA, DESTRUIDO, UnknownStatusError,
)


EXPECTED_EDGES = {
    (ENTRADA_INVENTARIO, ASIGNADO),
    (ENTRADA_INVENTARIO, DESTRUIDO),
    (ASIGNADO, ENTREGADO),
    (ASIGNADO, ENTRADA_INVENTARIO),
    (ASIGNADO, DESTRUIDO),
    (ENTREGADO, INSTALADO),
    (ENTREGADO, NO_INSTALADO),
    (ENTREGADO, DESTRUIDO),
    (INSTALADO, SALIDA_FABRICA),
    (INSTALADO, DESTRUIDO),
    (NO_INSTALADO, DESTRUIDO),
    (NO_INSTALADO, ENTRADA_INVENTARIO),
}


class TestTransitionTable:
    """The allowed edges are exactly the documented ones."""

    def test_every_pair_matches_table(self):
        for from_status in policy.STATUSES:
            for to_status in policy.STATUSES:
                expected = (from_status, to_status) in EXPECTED_EDGES
                assert policy.is_transition_allowed(from_status, to_status) is expected, (from_status, to_status)

    def test_no_self_transitions(self):
        for status in policy.STATUSES:
            assert not policy.is_transition_allowed(status, status)

    def test_terminal_statuses_have_no_exits(self):
        for status in (SALIDA_FABRICA, DESTRUIDO):
            assert policy.is_terminal(status)
            assert policy.allowed_next(status) == frozenset()

    def test_destruction_reachable_from_every_non_terminal(self):
        for status in policy.STATUSES:
            if not policy.is_terminal(status):
                assert policy.is_transition_allowed(status, DESTRUIDO)

    def test_only_back_edges_are_inventory_resets(self):
        order = {status: index for index, status in enumerate(policy.STATUSES)}
        back_edges = {
            (a, b) for a, b in EXPECTED_EDGES
            if b != DESTRUIDO and order[b] < order[a]
        }
        assert back_edges == {(ASIGNADO, ENTRADA_INVENTARIO), (NO_INSTALADO, ENTRADA_INVENTARIO)}

    def test_unknown_statuses_are_never_allowed(self):
        assert not policy.is_transition_allowed("PERDIDO", ASIGNADO)
        assert not policy.is_transition_allowed(ENTRADA_INVENTARIO, "PERDIDO")
        assert not policy.is_transition_allowed(None, ENTRADA_INVENTARIO)


class TestRequiredFields:
    """Each target status declares the operational fields it needs."""

    @pytest.mark.parametrize("status,fields", [
        (ENTRADA_INVENTARIO, set()),
        (ASIGNADO, {"assignedTo"}),
        (ENTREGADO, {"assignedTo"}),
        (INSTALADO, {"vehiclePlate", "containerId"}),
        (NO_INSTALADO, {"deliveredTo"}),
        (SALIDA_FABRICA, {"destination"}),
        (DESTRUIDO, {"observations"}),
    ])
    def test_required_fields(self, status, fields):
        assert policy.required_fields(status) == fields

    def test_unknown_status_raises(self):
        with pytest.raises(UnknownStatusError):
            policy.required_fields("PERDIDO")
        with pytest.raises(ValueError):
            policy.validate_status("")

    def test_missing_fields_treats_blank_as_missing(self):
        assert policy.missing_fields(INSTALADO, {"vehiclePlate": "   "}) == ["containerId", "vehiclePlate"]
        assert policy.missing_fields(INSTALADO, {"vehiclePlate": "ABC123", "containerId": "C-1"}) == []
        assert policy.missing_fields(ENTRADA_INVENTARIO, None) == []

    def test_aliases_map_to_canonical_names(self):
        assert policy.canonical_field_name("requester") == "assignedTo"
        assert policy.canonical_field_name("trailerContainer") == "containerId"
        assert policy.canonical_field_name("deliveredSub") == "deliveredTo"
        assert policy.canonical_field_name("assignedTo") == "assignedTo"
        assert policy.canonical_field_name("colour") is None


class TestDescribe:
    def test_describe_lists_every_status_in_display_order(self):
        table = policy.describe()
        assert [row["status"] for row in table] == list(policy.STATUSES)

        installed = next(row for row in table if row["status"] == INSTALADO)
        assert installed["next"] == [SALIDA_FABRICA, DESTRUIDO]
        assert installed["requiredFields"] == ["containerId", "vehiclePlate"]
        assert installed["terminal"] is False
