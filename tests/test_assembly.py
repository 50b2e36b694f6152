import logging

import numpy as np
import pytest

from molloci import AssemblyGen, operator_matches, operator_products, parse_operator_expression, select_assembly_id

from conftest import ASSEMBLY_GEN, ROT_Z_180, SHIFT_X_50


def test_parse_groups_and_ranges():
    assert parse_operator_expression("(X0)(1-5)") == [["X0"], ["1", "2", "3", "4", "5"]]
    assert parse_operator_expression("(1,10,23)(61,62,69-71)") == [
        ["1", "10", "23"],
        ["61", "62", "69", "70", "71"],
    ]


def test_parse_without_parentheses():
    assert parse_operator_expression("1") == [["1"]]
    assert parse_operator_expression("1,2") == [["1", "2"]]
    assert parse_operator_expression("") == []


def test_parse_swapped_range():
    assert parse_operator_expression("(3-1)") == [["1", "2", "3"]]


def test_compound_oper_id_right_to_left():
    groups = parse_operator_expression("(X0)(1-5)")
    assert operator_matches(groups, "2xX0")
    assert not operator_matches(groups, "X0x2")
    assert not operator_matches(groups, "2x5")
    assert operator_matches([["5"], ["2"]], "2x5")
    assert not operator_matches([["2"], ["5"]], "2x5")


def test_missing_oper_id_means_identity():
    assert operator_matches([["1", "2"]], None)
    assert not operator_matches([["X0"]], None)


def test_extra_tokens_fail():
    assert not operator_matches([["1"]], "1x1")


def test_select_first_matching_assembly():
    assert select_assembly_id(ASSEMBLY_GEN, [("1", "A")]) == "1"
    assert select_assembly_id(ASSEMBLY_GEN, [("2", "A")]) == "2"
    assert select_assembly_id(ASSEMBLY_GEN, [("2", "A"), ("1", "C")]) == "2"
    assert select_assembly_id(ASSEMBLY_GEN, [("2xX0", "B")]) == "3"


def test_select_falls_back_without_table(caplog):
    with caplog.at_level(logging.WARNING, logger="molloci.assembly"):
        assert select_assembly_id(None, [("2", "A")]) == "1"
    assert "No assembly generation table" in caplog.text


def test_select_falls_back_without_match(caplog):
    rows = [AssemblyGen("7", "(1,2)", "A")]
    with caplog.at_level(logging.WARNING, logger="molloci.assembly"):
        assert select_assembly_id(rows, [("3", "A")]) == "1"
    assert "matches" in caplog.text


def test_operator_products_expression_order():
    table = {"X0": np.asarray(SHIFT_X_50), "1": np.eye(4), "2": np.asarray(ROT_Z_180)}
    products = operator_products(parse_operator_expression("(X0)(1-2)"), table)
    assert [ids for ids, _ in products] == [("X0", "1"), ("X0", "2")]
    np.testing.assert_allclose(products[1][1], table["X0"] @ table["2"])


def test_operator_products_unknown_id():
    with pytest.raises(KeyError):
        operator_products([["9"]], {"1": np.eye(4)})
