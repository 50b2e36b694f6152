import pytest

from molloci import (
    Range,
    RepresentationKind,
    SelectionError,
    SeqRange,
    Target,
    create_chain_selection_expression,
    create_glygen_selection_expressions,
    create_selection_expressions,
    format_range_label,
)
from molloci.expression import evaluate


def test_default_taxonomy_six_buckets_in_order():
    exprs = create_selection_expressions("1ABC")
    assert [e.label for e in exprs] == [
        "1ABC - Polymers",
        "1ABC - Ligands",
        "1ABC - Ions",
        "1ABC - Carbohydrates",
        "1ABC - Lipids",
        "1ABC - Waters",
    ]
    assert [e.type for e in exprs] == [
        RepresentationKind.CARTOON,
        RepresentationKind.BALL_AND_STICK,
        RepresentationKind.BALL_AND_STICK,
        RepresentationKind.CARBOHYDRATE,
        RepresentationKind.BALL_AND_STICK,
        RepresentationKind.BALL_AND_STICK,
    ]
    assert not any(e.is_hidden for e in exprs)


def test_default_taxonomy_partitions_fixture(structure):
    chains = []
    for e in create_selection_expressions("1ABC"):
        chains.append([u.chain.label_asym_id for u, _ in evaluate(e.expression, structure).items()])
    assert chains == [["A", "B"], ["C"], ["E"], ["G"], ["F"], ["D"]]


def test_range_label():
    assert format_range_label("1ABC", "A", [5, 6, 7, 8, 9]) == "1ABC.A:5-9"
    assert format_range_label("1ABC", "A", [5]) == "1ABC.A:5"
    assert format_range_label("1ABC", "A", []) == "1ABC.A"
    assert format_range_label("1ABC", None, []) == "1ABC"


def test_range_bucket(structure):
    (e,) = create_selection_expressions("1ABC", Range("A", SeqRange(5, 9)))
    assert e.label == "1ABC.A:5-9"
    assert e.type is RepresentationKind.CARTOON
    assert e.tag == "polymer"
    assert evaluate(e.expression, structure).natoms() == 15

    (single,) = create_selection_expressions("1ABC", Range("A", SeqRange(5, 5)))
    assert single.label == "1ABC.A:5"


def test_targets_bucket(structure):
    targets = [Target(label_asym_id="A", label_seq_id=1), Target(label_asym_id="C")]
    (e,) = create_selection_expressions("1ABC", targets)
    assert e.label == "1ABC"
    assert e.type is RepresentationKind.BALL_AND_STICK
    assert evaluate(e.expression, structure).natoms() == 3 + 2


@pytest.mark.parametrize("bad", [Target(label_asym_id="A"), "A", 42, [Range("A")]])
def test_malformed_selection_rejected(bad):
    with pytest.raises(SelectionError):
        create_selection_expressions("1ABC", bad)


def test_glygen(structure):
    exprs = create_glygen_selection_expressions(
        Target(label_asym_id="A"), [Target(label_asym_id="G"), Target(label_asym_id="C")], "1ABC"
    )
    assert [e.label for e in exprs[:2]] == ["Chain A", "Glycosylation"]
    assert exprs[1].type is RepresentationKind.CARBOHYDRATE
    glyco = [u.chain.label_asym_id for u, _ in evaluate(exprs[1].expression, structure).items()]
    assert glyco == ["C", "G"]
    assert len(exprs) == 8
    assert all(e.alpha == pytest.approx(0.21) for e in exprs[2:])
    assert exprs[0].alpha is None


def test_glygen_requires_focus_chain():
    with pytest.raises(SelectionError):
        create_glygen_selection_expressions(Target(), [], "1ABC")


def test_chain_bucket_by_author_chain(structure):
    e = create_chain_selection_expression("X", color=0xFF0000)
    assert e.label == "Chain X"
    assert e.color == 0xFF0000
    assert [u.chain.label_asym_id for u, _ in evaluate(e.expression, structure).items()] == ["B"]
