"""Resolve targets against structures into per-unit element selections (Loci)."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from .expression import QueryContext, StructureSelection, evaluate, target_to_expression
from .molecule_data import Atom, Model, Structure, Unit
from .target import Target, join_operators, normalize_target

logger = logging.getLogger(__name__)

__all__ = [
    "Loci",
    "LociElement",
    "QueryContext",
    "StructureSelection",
    "evaluate",
    "loci_to_targets",
    "resolve_target",
    "target_to_loci",
    "to_loci_with_source_units",
]


@dataclass(eq=False)
class LociElement:
    unit: Unit
    indices: np.ndarray  # sorted positions within `unit`

    def __repr__(self) -> str:
        return f"<loci element unit {self.unit.id} ({len(self.indices)} atoms)>"


@dataclass(eq=False)
class Loci:
    structure: Structure
    elements: list[LociElement] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"<Loci '{self.structure.label}': {len(self.elements)} units, {self.size} atoms>"

    @property
    def is_empty(self) -> bool:
        return self.size == 0

    @property
    def size(self) -> int:
        return sum(len(e.indices) for e in self.elements)

    def iter_locations(self) -> Iterator[tuple[Unit, Atom]]:
        for e in self.elements:
            for i in e.indices:
                yield e.unit, e.unit.atom(int(i))

    def first_residue(self) -> Loci:
        """Loci over every atom of the residue holding the first selected atom."""
        for e in self.elements:
            if not len(e.indices):
                continue
            res_index = e.unit.atom_property("residue_index")
            first = res_index[e.indices[0]]
            idx = np.flatnonzero(res_index == first)
            return Loci(self.structure, [LociElement(e.unit, idx)])
        return Loci(self.structure)

    def extend_to_whole_chains(self) -> Loci:
        elements = [
            LociElement(e.unit, np.arange(e.unit.natoms()))
            for e in self.elements
            if len(e.indices)
        ]
        return Loci(self.structure, elements)

    def to_structure(self) -> Structure:
        units = [e.unit.subset(e.indices) for e in self.elements if len(e.indices)]
        return Structure.union_of(units, label=self.structure.label, model=self.structure.model)


def to_loci_with_source_units(selection: StructureSelection) -> Loci:
    """Loci whose elements reference units of the queried structure."""
    elements = [LociElement(u, idx) for u, idx in selection.items()]
    return Loci(selection.structure, elements)


def target_to_loci(target: Target, structure: Structure) -> Loci:
    if structure.is_empty:
        return Loci(structure)
    query = target_to_expression(target)
    logger.debug("Resolving %s against '%s'", query.symbolic(), structure.label)
    return to_loci_with_source_units(evaluate(query, structure))


def loci_to_targets(loci: Loci) -> list[Target]:
    """One target per distinct (chain, residue, operator) location, in loci order."""
    keys = set()
    targets: list[Target] = []
    for unit, atom in loci.iter_locations():
        struct_oper_id = join_operators(unit.operator.oper_list_ids)
        key = (
            atom.label_asym_id,
            atom.auth_asym_id,
            atom.label_seq_id,
            atom.auth_seq_id,
            atom.label_comp_id,
            struct_oper_id,
        )
        if key in keys:
            continue
        keys.add(key)
        targets.append(
            Target(
                label_asym_id=atom.label_asym_id,
                auth_asym_id=atom.auth_asym_id,
                label_seq_id=atom.label_seq_id,
                auth_seq_id=atom.auth_seq_id,
                label_comp_id=atom.label_comp_id,
                struct_oper_id=struct_oper_id,
            )
        )
    return targets


def resolve_target(target: Target, model: Model, assembly_id: Optional[str] = None) -> Loci:
    """
    Resolve `target` against assembly `assembly_id` of `model` (deposited model if None).

    If the assembly yields nothing, resolution is retried once against the
    deposited model.
    """
    if assembly_id is None:
        structure = Structure.from_model(model)
        return target_to_loci(normalize_target(target, structure), structure)

    structure = Structure.from_assembly(model, assembly_id)
    loci = target_to_loci(normalize_target(target, structure), structure)
    if not loci.is_empty:
        return loci

    logger.info(
        "Target %s matched nothing in assembly '%s' of %s; retrying on the model",
        target,
        assembly_id,
        model.entry_id,
    )
    structure = Structure.from_model(model)
    return target_to_loci(normalize_target(target, structure), structure)
