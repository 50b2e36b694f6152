from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field, fields, replace
from typing import Optional

import numpy as np

from .molecule_data import MatrixLike, SelectionError, Structure, as_transform

IDENTITY_OPERATOR_NAME = "1_555"

# --- Requests ----------------------------------------------------------------


@dataclass(frozen=True)
class SeqRange:
    beg: int
    end: Optional[int] = None  # defaults to beg

    def residues(self) -> list[int]:
        return to_range(self.beg, self.end)


@dataclass(frozen=True)
class Range:
    """Contiguous residue span on one chain (whole chain without a seq range)."""

    label_asym_id: str
    label_seq_range: Optional[SeqRange] = None

    def residues(self) -> list[int]:
        return self.label_seq_range.residues() if self.label_seq_range else []


@dataclass(frozen=True)
class Target:
    """
    Residue/chain identifier using biological ids.

    auth_seq_id takes precedence over label_seq_id, which takes precedence
    over label_seq_range.

    struct_oper_id is the strucmotif/BioJava operator id ('1', 'Px42', '2x5');
    operator_name is the operator name used by units ('1_555', 'ASM_2').
    Use `normalize_target` to convert the former into the latter.

    extend_to_chain widens a residue match to its whole chain when focusing.
    """

    auth_seq_id: Optional[int] = None
    label_seq_id: Optional[int] = None
    label_seq_range: Optional[SeqRange] = None
    label_comp_id: Optional[str] = None
    label_asym_id: Optional[str] = None
    auth_asym_id: Optional[str] = None
    struct_oper_id: Optional[str] = None
    operator_name: Optional[str] = None
    model_id: Optional[str] = None
    model_num: Optional[int] = None
    extend_to_chain: bool = False

    @property
    def is_empty(self) -> bool:
        """True if no field that takes part in selection is set."""
        return all(
            getattr(self, f.name) is None
            for f in fields(self)
            if f.name not in ("model_id", "model_num", "extend_to_chain")
        )

    @property
    def is_chain_only(self) -> bool:
        return (
            self.label_asym_id is not None
            and self.auth_seq_id is None
            and self.label_seq_id is None
            and self.label_seq_range is None
            and self.label_comp_id is None
        )


@dataclass(frozen=True)
class FlexibleSelection:
    """One entry of an alignment request: a chain span plus an optional transform."""

    label_asym_id: Optional[str]
    label_seq_range: Optional[SeqRange] = None
    matrix: Optional[np.ndarray] = field(default=None, compare=False)

    def __post_init__(self):
        if self.matrix is not None:
            object.__setattr__(self, "matrix", as_transform(self.matrix))

    @classmethod
    def create(
        cls,
        label_asym_id: str,
        beg: Optional[int] = None,
        end: Optional[int] = None,
        matrix: Optional[MatrixLike] = None,
    ) -> FlexibleSelection:
        seq = SeqRange(beg, end) if beg is not None else None
        return cls(label_asym_id=label_asym_id, label_seq_range=seq, matrix=matrix)


@dataclass(frozen=True)
class ResidueColor:
    """Override color for a residue span; no span colors the whole chain."""

    label_asym_id: str
    color: int  # 0xRRGGBB
    label_seq_range: Optional[SeqRange] = None


# --- Helpers -----------------------------------------------------------------


def to_range(start: int, end: Optional[int] = None) -> list[int]:
    """Inclusive list of residue numbers; swapped bounds are normalized."""
    if end is None:
        return [start]
    lo, hi = (start, end) if start <= end else (end, start)
    return list(range(lo, hi + 1))


def join_operators(oper_list_ids: Sequence[str]) -> str:
    """
    Compound struct_oper_id for a unit's operator list.

    '1' is assumed to be the identity. Products are written right-to-left:
    ['X0', '2'] -> '2xX0'.
    """
    if not oper_list_ids:
        return "1"
    if len(oper_list_ids) > 1:
        return f"{oper_list_ids[1]}x{oper_list_ids[0]}"
    return oper_list_ids[0]


def normalize_target(
    target: Target,
    structure: Structure,
    operator_name: Optional[str] = None,
) -> Target:
    """
    Replace `struct_oper_id` by the matching unit operator name.

    Overrides any pre-existing operator_name. Targets without struct_oper_id
    keep their operator_name or receive `operator_name`.
    """
    if target.struct_oper_id:
        oper = _to_operator_name(structure, target.struct_oper_id)
        return replace(target, struct_oper_id=None, operator_name=oper)
    if target.operator_name:
        return target
    return replace(target, operator_name=operator_name)


def _to_operator_name(structure: Structure, struct_oper_id: str) -> str:
    assembly_defined = False
    for u in structure.units:
        op = u.operator
        if op.assembly_id is None:
            continue
        assembly_defined = True
        if struct_oper_id == join_operators(op.oper_list_ids):
            return op.name
    if assembly_defined:
        raise SelectionError(
            f"Assemblies exist, but no matching operator expression found: '{struct_oper_id}'"
        )
    return IDENTITY_OPERATOR_NAME
