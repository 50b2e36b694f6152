from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

import numpy as np

from .alignment import MotifSelection, ResidueIdentifier
from .config import ViewerConfig
from .loci import Loci
from .target import join_operators

BACKBONE_ATOMS = ("CA", "C4'")


class MotifValidationError(ValueError):
    """A set of motif residues cannot be used as a structural motif query."""


@dataclass(frozen=True)
class MotifResidue:
    """One motif position with the operator context it was picked in."""

    entry_id: str
    label_asym_id: str
    label_seq_id: int
    struct_oper_id: str = "1"
    label_comp_id: str = ""
    assembly_id: Optional[str] = None  # None: deposited model
    coords: np.ndarray = field(default_factory=lambda: np.zeros(3), compare=False, repr=False)

    def identifier(self) -> ResidueIdentifier:
        return ResidueIdentifier(self.label_asym_id, self.label_seq_id, self.struct_oper_id)

    def describe(self) -> str:
        return f"{self.label_seq_id} | {self.label_asym_id} | {self.struct_oper_id}"


@dataclass(frozen=True)
class Exchange:
    """Residue types allowed in place of the motif residue."""

    residue: MotifResidue
    allowed: tuple[str, ...]

    def to_wire(self) -> dict[str, Any]:
        return {"residue_id": self.residue.identifier().to_wire(), "allowed": list(self.allowed)}


def extract_motif_residues(selections: Sequence[Loci], limit: Optional[int] = None) -> list[MotifResidue]:
    """
    One motif residue per selection, using its first selected unit.

    The backbone position (CA or C4') of each residue provides its
    coordinates; residues without one are rejected.
    """
    out: list[MotifResidue] = []
    n = len(selections) if limit is None else min(limit, len(selections))
    for loci in selections[:n]:
        if not loci.elements:
            raise MotifValidationError("Empty selection cannot be a motif residue")
        el = loci.elements[0]
        unit = el.unit
        names = unit.atom_property("label_atom_id")[el.indices]
        hits = np.flatnonzero(np.isin(names, BACKBONE_ATOMS))
        if not len(hits):
            raise MotifValidationError("No CA or C4' atom for selected residue")
        pos = int(el.indices[hits[0]])
        atom = unit.atom(pos)
        op = unit.operator
        entry_id = loci.structure.model.entry_id if loci.structure.model else loci.structure.label
        out.append(
            MotifResidue(
                entry_id=entry_id,
                label_asym_id=atom.label_asym_id,
                label_seq_id=atom.label_seq_id,
                struct_oper_id=join_operators(op.oper_list_ids),
                label_comp_id=atom.label_comp_id,
                assembly_id=op.assembly_id,
                coords=np.array(unit.coords[pos], dtype=float),
            )
        )
    return out


def validate_motif(
    residues: Sequence[MotifResidue],
    config: Optional[ViewerConfig] = None,
    exchanges: Sequence[Exchange] = (),
) -> None:
    """Raise MotifValidationError unless `residues` form a usable motif."""
    config = config if config is not None else ViewerConfig()

    if len(residues) < config.min_motif_size:
        raise MotifValidationError(
            f"Motifs need at least {config.min_motif_size} residues, got {len(residues)}"
        )
    if len({r.entry_id for r in residues}) > 1:
        raise MotifValidationError("Motifs can only be extracted from a single model")
    if len({r.assembly_id for r in residues}) > 1:
        raise MotifValidationError("All motif residues must come from the same assembly")
    if len(residues) > config.max_motif_size:
        raise MotifValidationError(f"Maximum motif size is {config.max_motif_size} residues")
    if any(r.label_seq_id == 0 for r in residues):
        raise MotifValidationError("Selections may only contain polymeric entities")
    for ex in exchanges:
        if len(ex.allowed) > config.max_exchanges:
            raise MotifValidationError(
                f"Maximum number of exchanges per position is {config.max_exchanges}; "
                f"residue {ex.residue.describe()} has {len(ex.allowed)}"
            )
    _check_extent(residues, config.max_motif_extent_angstrom())


def _check_extent(residues: Sequence[MotifResidue], max_extent: float) -> None:
    xyz = np.array([r.coords for r in residues], dtype=float).reshape(-1, 3)
    d2 = np.sum((xyz[:, None, :] - xyz[None, :, :]) ** 2, axis=-1)
    np.fill_diagonal(d2, np.inf)
    isolated = np.flatnonzero(d2.min(axis=1) >= max_extent**2)
    if len(isolated):
        r = residues[int(isolated[0])]
        raise MotifValidationError(
            f"Residue {r.describe()} needs to be less than {max_extent:g} Å from another residue"
        )


def to_motif_selection(residues: Sequence[MotifResidue]) -> MotifSelection:
    if not residues:
        raise MotifValidationError("Empty motif")
    return MotifSelection(
        entry_id=residues[0].entry_id,
        residue_ids=tuple(r.identifier() for r in residues),
    )
