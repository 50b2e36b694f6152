import pytest

from molloci import (
    AlignmentPreset,
    ChainPreset,
    DensityPreset,
    FeaturePreset,
    FlexibleSelection,
    GlyGenPreset,
    MotifPreset,
    ResidueColor,
    SelectionError,
    SeqRange,
    StandardPreset,
    SymmetryPreset,
    Target,
    ValidationPreset,
    ViewerConfig,
    ViewerContext,
    apply_preset,
)
from molloci.presets import _PresetBase


@pytest.fixture
def ctx():
    return ViewerContext()


def test_standard_uses_model_or_assembly(ctx, model):
    res = apply_preset(ctx, model, StandardPreset())
    assert len(res.structure) == 7
    assert len(res.representations) == 6
    for empty in ("", "0"):
        assert len(apply_preset(ctx, model, StandardPreset(assembly_id=empty)).structure) == 7
    res = apply_preset(ctx, model, StandardPreset(assembly_id="2"))
    assert {u.operator.name for u in res.structure} == {"ASM_1", "ASM_2"}
    assert ctx.model_for(model.id) is model


def test_model_index_picks_from_trajectory(ctx, model):
    with pytest.raises(SelectionError):
        apply_preset(ctx, [model], StandardPreset(model_index=1))
    assert apply_preset(ctx, [model], StandardPreset(model_index=0)).structure.model is model


def test_validation_symmetry_density(ctx, model):
    assert apply_preset(ctx, model, ValidationPreset()).theme == "geometry-quality"
    assert apply_preset(ctx, model, SymmetryPreset(symmetry_index=1)).theme == "assembly-symmetry:1"
    res = apply_preset(ctx, model, DensityPreset())
    assert res.volume_streaming


def test_feature_focuses_first_residue(ctx, model):
    res = apply_preset(
        ctx, model, FeaturePreset(target=Target(label_asym_id="A", label_seq_range=SeqRange(3, 6)))
    )
    assert res.focus.size == 3
    assert {a.label_seq_id for _, a in res.focus.iter_locations()} == {3}


def test_feature_chain_only_focuses_chain(ctx, model):
    res = apply_preset(ctx, model, FeaturePreset(target=Target(label_asym_id="B")))
    assert res.focus.size == 6


def test_feature_extend_to_chain(ctx, model):
    t = Target(label_asym_id="A", label_seq_id=4, extend_to_chain=True)
    res = apply_preset(ctx, model, FeaturePreset(target=t))
    assert res.focus.size == 36


def test_feature_falls_back_to_model(ctx, model):
    res = apply_preset(
        ctx, model, FeaturePreset(assembly_id="2", target=Target(label_asym_id="B", label_seq_id=2))
    )
    assert res.focus.size == 2
    assert res.focus.elements[0].unit.operator.name == "1_555"


def test_alignment_builds_flexible_structure(ctx, model):
    preset = AlignmentPreset(
        selections=[FlexibleSelection.create("A", 1, 4), FlexibleSelection.create("A", 8, 10)],
        colors=[ResidueColor("A", 0xFF0000, SeqRange(1, 2))],
    )
    res = apply_preset(ctx, model, preset)
    assert len(res.structure.chain_groups()) == 1
    assert [e.label for e in res.representations] == ["1ABC.A:1-4", "1ABC.A:8-10"]
    assert res.theme == "superpose"
    assert dict(res.colors["A"]) == {1: 0xFF0000, 2: 0xFF0000}


def test_motif(ctx, model):
    targets = [Target(label_asym_id="A", label_seq_id=1), Target(label_asym_id="B", label_seq_id=1)]
    res = apply_preset(ctx, model, MotifPreset(targets=targets))
    assert res.structure.natoms() == 5
    assert res.focus.size == 5
    assert res.representations[0].label == "1ABC"


def test_motif_too_large(model):
    ctx = ViewerContext(ViewerConfig(max_motif_size=2))
    targets = [Target(label_asym_id="A", label_seq_id=i) for i in range(1, 4)]
    with pytest.raises(SelectionError):
        apply_preset(ctx, model, MotifPreset(targets=targets))


def test_glygen_and_chain(ctx, model):
    res = apply_preset(
        ctx, model, GlyGenPreset(focus=Target(label_asym_id="A"), glycosylation=[Target(label_asym_id="G")])
    )
    assert res.representations[1].label == "Glycosylation"
    res = apply_preset(ctx, model, ChainPreset(auth_asym_id="X"))
    assert [e.label for e in res.representations] == ["Chain X"]
    assert res.theme == "sequence-id"


def test_unknown_variant_rejected(ctx, model):
    class UnknownPreset(_PresetBase):
        pass

    with pytest.raises(TypeError):
        apply_preset(ctx, model, UnknownPreset())


def test_motif_in_assembly_picks_symmetry_copy(ctx, model):
    targets = [
        Target(label_asym_id="A", label_seq_id=1, struct_oper_id="2"),
        Target(label_asym_id="A", label_seq_id=3, struct_oper_id="2"),
    ]
    res = apply_preset(ctx, model, MotifPreset(assembly_id="2", targets=targets))
    assert [u.operator.name for u in res.structure] == ["ASM_2", "ASM_2"]
    assert res.structure.natoms() == 6
    assert "ASM_2" in res.representations[0].expression.symbolic()


def test_validation_carries_clash_flag(ctx, model):
    res = apply_preset(ctx, model, ValidationPreset())
    assert res.show_clashes
    assert dict(res.colors) == {}
    assert not apply_preset(ctx, model, ValidationPreset(show_clashes=False)).show_clashes
