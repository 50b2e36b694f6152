"""
Preset application: pick the structure, the representation buckets, the color
theme and the focus for one model.

Presets form a closed set of dataclasses; `apply_preset` has one handler per
variant.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import NoReturn, Optional, Union

from .config import ViewerContext
from .flexible_structure import EMPTY_COLORS, ColorLookup, build_flexible_structure, build_substructure
from .loci import Loci, resolve_target, target_to_loci
from .molecule_data import Model, SelectionError, Structure
from .selection_expressions import (
    SelectionExpression,
    create_chain_selection_expression,
    create_glygen_selection_expressions,
    create_selection_expressions,
)
from .target import FlexibleSelection, Range, ResidueColor, Target, normalize_target

logger = logging.getLogger(__name__)

# --- Preset variants ---------------------------------------------------------


@dataclass(frozen=True, kw_only=True)
class _PresetBase:
    assembly_id: Optional[str] = None  # None, "" or "0": deposited model
    model_index: int = 0


@dataclass(frozen=True, kw_only=True)
class StandardPreset(_PresetBase):
    pass


@dataclass(frozen=True, kw_only=True)
class ValidationPreset(_PresetBase):
    color_theme: str = "geometry-quality"
    show_clashes: bool = True


@dataclass(frozen=True, kw_only=True)
class SymmetryPreset(_PresetBase):
    symmetry_index: int = 0


@dataclass(frozen=True, kw_only=True)
class FeaturePreset(_PresetBase):
    target: Target


@dataclass(frozen=True, kw_only=True)
class DensityPreset(_PresetBase):
    pass


@dataclass(frozen=True, kw_only=True)
class AlignmentPreset(_PresetBase):
    selections: Sequence[FlexibleSelection] = ()
    colors: Sequence[ResidueColor] = ()


@dataclass(frozen=True, kw_only=True)
class MotifPreset(_PresetBase):
    targets: Sequence[Target] = ()


@dataclass(frozen=True, kw_only=True)
class GlyGenPreset(_PresetBase):
    focus: Target
    glycosylation: Sequence[Target] = ()


@dataclass(frozen=True, kw_only=True)
class ChainPreset(_PresetBase):
    auth_asym_id: str
    color: Optional[int] = None


Preset = Union[
    StandardPreset,
    ValidationPreset,
    SymmetryPreset,
    FeaturePreset,
    DensityPreset,
    AlignmentPreset,
    MotifPreset,
    GlyGenPreset,
    ChainPreset,
]


@dataclass
class PresetResult:
    structure: Structure
    representations: list[SelectionExpression] = field(default_factory=list)
    theme: Optional[str] = None
    focus: Optional[Loci] = None
    colors: ColorLookup = field(default_factory=lambda: EMPTY_COLORS)
    volume_streaming: bool = False
    show_clashes: bool = False


# --- Dispatch ----------------------------------------------------------------


def _assert_never(value: NoReturn) -> NoReturn:
    raise TypeError(f"Unhandled preset: {value!r}")


def apply_preset(
    ctx: ViewerContext,
    models: Union[Model, Sequence[Model]],
    preset: Preset,
) -> PresetResult:
    """
    Apply `preset` to one model of `models`.

    Parameters
    ----------
    ctx
        Session context; the chosen model is registered with it.
    models
        A single model or the models of a trajectory; `preset.model_index`
        selects one of them.
    preset
        One of the preset variants.
    """
    model = _pick_model(models, preset.model_index)
    ctx.register(model)
    assembly_id = _assembly_id(preset)
    structure = _root_structure(model, assembly_id)
    label = model.entry_id

    match preset:
        case StandardPreset():
            return PresetResult(structure, create_selection_expressions(label))
        case ValidationPreset():
            return _apply_validation(structure, label, preset)
        case SymmetryPreset():
            return PresetResult(
                structure,
                create_selection_expressions(label),
                theme=f"assembly-symmetry:{preset.symmetry_index}",
            )
        case FeaturePreset():
            return _apply_feature(model, structure, label, assembly_id, preset)
        case DensityPreset():
            return PresetResult(structure, create_selection_expressions(label), volume_streaming=True)
        case AlignmentPreset():
            return _apply_alignment(structure, label, preset)
        case MotifPreset():
            return _apply_motif(ctx, structure, label, preset)
        case GlyGenPreset():
            return PresetResult(
                structure,
                create_glygen_selection_expressions(preset.focus, preset.glycosylation, label),
            )
        case ChainPreset():
            return PresetResult(
                structure,
                [create_chain_selection_expression(preset.auth_asym_id, preset.color)],
                theme="sequence-id" if preset.color is None else "uniform",
            )
        case _:
            _assert_never(preset)


def _pick_model(models: Union[Model, Sequence[Model]], index: int) -> Model:
    if isinstance(models, Model):
        models = [models]
    if not 0 <= index < len(models):
        raise SelectionError(f"Model index {index} out of range for {len(models)} models")
    return models[index]


def _assembly_id(preset: Preset) -> Optional[str]:
    if preset.assembly_id in (None, "", "0"):
        return None
    return preset.assembly_id


def _root_structure(model: Model, assembly_id: Optional[str]) -> Structure:
    if assembly_id is None:
        return Structure.from_model(model)
    return Structure.from_assembly(model, assembly_id)


# --- Handlers ----------------------------------------------------------------


def _apply_validation(structure: Structure, label: str, preset: ValidationPreset) -> PresetResult:
    return PresetResult(
        structure,
        create_selection_expressions(label),
        theme=preset.color_theme,
        show_clashes=preset.show_clashes,
    )


def _apply_feature(
    model: Model,
    structure: Structure,
    label: str,
    assembly_id: Optional[str],
    preset: FeaturePreset,
) -> PresetResult:
    target = preset.target
    loci = resolve_target(target, model, assembly_id)
    if target.extend_to_chain:
        focus = loci.extend_to_whole_chains()
    elif target.is_chain_only:
        focus = loci
    else:
        focus = loci.first_residue()
    if focus.is_empty:
        logger.warning("Feature target %s matched nothing in %s", target, label)
    return PresetResult(structure, create_selection_expressions(label), focus=focus)


def _apply_alignment(structure: Structure, label: str, preset: AlignmentPreset) -> PresetResult:
    flexible = build_flexible_structure(structure, preset.selections, preset.colors)
    reprs: list[SelectionExpression] = []
    seen: set[Range] = set()
    for sel in preset.selections:
        if not sel.label_asym_id:
            continue
        rng = Range(sel.label_asym_id, sel.label_seq_range)
        if rng in seen:
            continue
        seen.add(rng)
        reprs.extend(create_selection_expressions(label, rng))
    if not reprs:
        reprs = create_selection_expressions(label)
    theme = "superpose" if flexible.colors else None
    return PresetResult(flexible.structure, reprs, theme=theme, colors=flexible.colors)


def _apply_motif(ctx: ViewerContext, structure: Structure, label: str, preset: MotifPreset) -> PresetResult:
    if len(preset.targets) > ctx.config.max_motif_size:
        raise SelectionError(
            f"Motif has {len(preset.targets)} residues, at most {ctx.config.max_motif_size} are supported"
        )
    targets = [normalize_target(t, structure) for t in preset.targets]
    motif = build_substructure(structure, targets)
    reprs = create_selection_expressions(label, targets)
    focus = target_to_loci(Target(), motif)
    return PresetResult(motif, reprs, focus=focus)
