import numpy as np
import pytest

from molloci import (
    AllAtoms,
    AtomGroups,
    Merge,
    Nothing,
    Range,
    SelectionError,
    SeqRange,
    Target,
    range_to_expression,
    range_to_test,
    target_to_expression,
    targets_to_expression,
)
from molloci.expression import AtomProperty, EntityClass, Eq, Not, Or, evaluate


def selected(structure, query):
    """{label_asym_id: sorted label_seq_ids} of the evaluated query."""
    out = {}
    for unit, idx in evaluate(query, structure).items():
        seq = unit.atom_property("label_seq_id")[idx]
        out.setdefault(unit.chain.label_asym_id, set()).update(int(s) for s in seq)
    return {k: sorted(v) for k, v in out.items()}


def test_chain_only_target_selects_that_chain(structure):
    sel = evaluate(target_to_expression(Target(label_asym_id="B")), structure)
    units = [u.chain.label_asym_id for u, _ in sel.items()]
    assert units == ["B"]
    assert sel.natoms() == 6


def test_auth_seq_id_takes_precedence(structure):
    q = target_to_expression(Target(label_asym_id="A", auth_seq_id=105, label_seq_id=9))
    assert selected(structure, q) == {"A": [5]}
    assert "auth_seq_id" in q.symbolic()
    assert "label_seq_id" not in q.symbolic()


def test_label_seq_id_and_comp_id(structure):
    assert selected(structure, target_to_expression(Target(label_asym_id="A", label_seq_id=3))) == {"A": [3]}
    q = target_to_expression(Target(label_asym_id="A", label_seq_id=3, label_comp_id="GLY"))
    assert evaluate(q, structure).is_empty


def test_seq_range_target(structure):
    q = target_to_expression(Target(label_asym_id="A", label_seq_range=SeqRange(4, 6)))
    assert selected(structure, q) == {"A": [4, 5, 6]}
    q = target_to_expression(Target(label_asym_id="A", label_seq_range=SeqRange(7)))
    assert selected(structure, q) == {"A": [7]}


def test_comp_id_alone_spans_chains(structure):
    q = target_to_expression(Target(label_comp_id="HOH"))
    sel = evaluate(q, structure)
    assert [u.chain.label_asym_id for u, _ in sel.items()] == ["D"]
    assert sel.natoms() == 2


def test_auth_asym_id_target(structure):
    sel = evaluate(target_to_expression(Target(auth_asym_id="X")), structure)
    assert [u.chain.label_asym_id for u, _ in sel.items()] == ["B"]


def test_empty_target_selects_everything(structure):
    q = target_to_expression(Target())
    assert isinstance(q, AllAtoms)
    assert evaluate(q, structure).natoms() == structure.natoms()


def test_targets_merge_is_a_union(structure):
    q = targets_to_expression(
        [Target(label_asym_id="A", label_seq_id=1), Target(label_asym_id="A", label_seq_id=2), Target(label_asym_id="B")]
    )
    assert isinstance(q, Merge)
    assert selected(structure, q) == {"A": [1, 2], "B": [1, 2, 3]}


def test_empty_target_list_selects_nothing(structure):
    q = targets_to_expression([])
    assert isinstance(q, Nothing)
    assert evaluate(q, structure).is_empty


def test_empty_target_inside_list_selects_everything(structure):
    q = targets_to_expression([Target(label_asym_id="B"), Target()])
    assert evaluate(q, structure).natoms() == structure.natoms()


def test_range_to_test_with_and_without_residues(structure):
    assert selected(structure, range_to_test("A", [2, 3])) == {"A": [2, 3]}
    whole = evaluate(range_to_test("A", []), structure)
    assert whole.natoms() == 36
    assert range_to_test("A", []).residue_test is None


def test_range_to_expression(structure):
    q = range_to_expression(Range("A", SeqRange(11, 9)))
    assert selected(structure, q) == {"A": [9, 10, 11]}


def test_operator_name_restricts_units(model):
    from molloci import Structure

    s = Structure.from_assembly(model, "2")
    sel = evaluate(range_to_test("A", [1], operator_name="ASM_2"), s)
    assert [u.operator.name for u, _ in sel.items()] == ["ASM_2"]
    q = target_to_expression(Target(label_asym_id="A", operator_name="ASM_1"))
    assert [u.operator.name for u, _ in evaluate(q, s).items()] == ["ASM_1"]


@pytest.mark.parametrize(
    "kind, chains",
    [
        ("polymer", ["A", "B"]),
        ("ligand", ["C"]),
        ("ion", ["E"]),
        ("branched", ["G"]),
        ("lipid", ["F"]),
        ("water", ["D"]),
    ],
)
def test_entity_classes(structure, kind, chains):
    sel = evaluate(AtomGroups(residue_test=EntityClass(kind)), structure)
    assert [u.chain.label_asym_id for u, _ in sel.items()] == chains


def test_logic_nodes(structure):
    is_a = Eq(AtomProperty("label_asym_id"), "A")
    is_b = Eq(AtomProperty("label_asym_id"), "B")
    sel = evaluate(AtomGroups(chain_test=Or(is_a, is_b)), structure)
    assert sel.natoms() == 42
    sel = evaluate(AtomGroups(chain_test=Not(is_a)), structure)
    assert sel.natoms() == structure.natoms() - 36


def test_atom_test(structure):
    q = AtomGroups(
        chain_test=Eq(AtomProperty("label_asym_id"), "A"),
        atom_test=Eq(AtomProperty("label_atom_id"), "CA"),
    )
    sel = evaluate(q, structure)
    unit, idx = next(sel.items())
    assert len(idx) == 12
    assert set(unit.atom_property("label_atom_id")[idx]) == {"CA"}


def test_unknown_property_rejected():
    with pytest.raises(SelectionError):
        AtomProperty("b_factor")
    with pytest.raises(SelectionError):
        EntityClass("protein")


def test_union_structure_keeps_selected_atoms(structure):
    sub = evaluate(range_to_test("A", [1, 2]), structure).union_structure()
    assert len(sub) == 1
    assert sub.natoms() == 6
    np.testing.assert_array_equal(sub.units[0].elements, np.arange(6))
    assert sub.label == structure.label


def test_empty_structure(empty_structure):
    assert evaluate(target_to_expression(Target(label_asym_id="A")), empty_structure).is_empty
    assert evaluate(AllAtoms(), empty_structure).is_empty


def test_unresolved_struct_oper_id_rejected():
    with pytest.raises(SelectionError, match="normalize"):
        target_to_expression(Target(struct_oper_id="2"))
    with pytest.raises(SelectionError):
        targets_to_expression([Target(label_asym_id="A"), Target(label_asym_id="A", struct_oper_id="1")])
