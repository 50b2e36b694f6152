"""
Composite structures out of independently selected and transformed pieces.

Each `FlexibleSelection` is resolved against the base structure to a
single-unit sub-structure and moved by its own rigid transform. Pieces that
share a label_asym_id form one chain group, so downstream consumers treat
them as one multi-part chain. Groups appear in first-seen order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from types import MappingProxyType
from typing import NamedTuple, Optional

import numpy as np

from .expression import evaluate, range_to_test
from .molecule_data import Structure, StructureBuilder, Unit
from .target import FlexibleSelection, ResidueColor, Target

logger = logging.getLogger(__name__)

ColorLookup = Mapping[str, Mapping[int, int]]

EMPTY_COLORS: ColorLookup = MappingProxyType({})


class FlexibleStructure(NamedTuple):
    structure: Structure
    colors: ColorLookup


def build_flexible_structure(
    base: Structure,
    selections: Sequence[FlexibleSelection],
    colors: Optional[Sequence[ResidueColor]] = None,
) -> FlexibleStructure:
    if not selections:
        return FlexibleStructure(base, build_color_lookup(base, colors or ()))

    blocks: dict[str, list[Unit]] = {}
    for sel in selections:
        if not sel.label_asym_id:
            continue
        group = blocks.setdefault(sel.label_asym_id, [])
        residues = sel.label_seq_range.residues() if sel.label_seq_range else []
        unit = _select_unit(base, sel.label_asym_id, residues)
        if unit is None:
            continue
        if sel.matrix is not None:
            unit = unit.transformed(sel.matrix)
        group.append(unit)

    structure = _assemble(base, blocks.values(), always_group=False)
    return FlexibleStructure(structure, build_color_lookup(structure, colors or ()))


def build_substructure(base: Structure, residues: Sequence[Target]) -> Structure:
    """
    One unit per residue, with every chain wrapped in a chain group.

    Used to show a structural motif: `residues` carry label_asym_id and
    label_seq_id, and optionally an operator_name.
    """
    if not residues:
        return base

    blocks: dict[str, list[Unit]] = {}
    for t in residues:
        if t.label_asym_id is None or t.label_seq_id is None:
            raise ValueError(f"Motif residue needs label_asym_id and label_seq_id: {t}")
        group = blocks.setdefault(t.label_asym_id, [])
        unit = _select_unit(base, t.label_asym_id, [t.label_seq_id], t.operator_name)
        if unit is not None:
            group.append(unit)
    return _assemble(base, blocks.values(), always_group=True)


def _select_unit(
    base: Structure,
    label_asym_id: str,
    residues: Sequence[int],
    operator_name: Optional[str] = None,
) -> Optional[Unit]:
    sel = evaluate(range_to_test(label_asym_id, residues, operator_name), base)
    sub = sel.union_structure()
    if sub.is_empty:
        logger.warning(
            "Selection %s:%s matched nothing in '%s'; skipped",
            label_asym_id,
            _span(residues),
            base.label,
        )
        return None
    if len(sub.units) > 1:
        logger.warning(
            "Selection %s:%s spans %d units in '%s'; keeping the first",
            label_asym_id,
            _span(residues),
            len(sub.units),
            base.label,
        )
    return sub.units[0]


def _assemble(base: Structure, blocks: Iterable[list[Unit]], always_group: bool) -> Structure:
    builder = StructureBuilder(label=base.label, model=base.model)
    for units in blocks:
        if not units:
            continue
        if len(units) == 1 and not always_group:
            builder.add_unit(units[0])
            continue
        builder.begin_chain_group()
        for u in units:
            builder.add_unit(u)
        builder.end_chain_group()
    return builder.get_structure()


def _span(residues: Sequence[int]) -> str:
    if not residues:
        return "*"
    if len(residues) == 1:
        return str(residues[0])
    return f"{residues[0]}-{residues[-1]}"


# --- Colors ------------------------------------------------------------------


def build_color_lookup(structure: Structure, colors: Iterable[ResidueColor]) -> ColorLookup:
    """
    Per-chain, per-residue override colors; later entries overwrite earlier ones.

    An entry without a residue range colors every residue of that chain that
    is present in `structure`.
    """
    lookup: dict[str, dict[int, int]] = {}
    for c in colors:
        chain = lookup.setdefault(c.label_asym_id, {})
        if c.label_seq_range is not None:
            seq_ids = c.label_seq_range.residues()
        else:
            seq_ids = _chain_seq_ids(structure, c.label_asym_id)
        for seq_id in seq_ids:
            chain[seq_id] = c.color
    return MappingProxyType({k: MappingProxyType(v) for k, v in lookup.items()})


def _chain_seq_ids(structure: Structure, label_asym_id: str) -> list[int]:
    seen: set[int] = set()
    for u in structure.units:
        if u.chain.label_asym_id != label_asym_id:
            continue
        seen.update(int(s) for s in np.unique(u.atom_property("label_seq_id")))
    return sorted(seen)


def color_of(lookup: ColorLookup, label_asym_id: str, label_seq_id: int, default: int) -> int:
    return lookup.get(label_asym_id, {}).get(label_seq_id, default)
