from __future__ import annotations

import enum
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Optional, Union

from .expression import (
    AtomGroups,
    AtomProperty,
    EntityClass,
    Eq,
    Query,
    SetHas,
    range_to_test,
    targets_to_expression,
)
from .molecule_data import SelectionError
from .target import Range, Target

GLYGEN_ALPHA = 0.21


class RepresentationKind(str, enum.Enum):
    CARTOON = "cartoon"
    BALL_AND_STICK = "ball-and-stick"
    CARBOHYDRATE = "carbohydrate"


@dataclass(frozen=True)
class SelectionExpression:
    """A named, typed selection bucket consumed once to build a representation."""

    tag: str
    type: RepresentationKind
    label: str
    expression: Query
    is_hidden: bool = False
    color: Optional[int] = None
    alpha: Optional[float] = None


# (category label, tag, representation, entity class), in display order
_TAXONOMY = (
    ("Polymers", "polymer", RepresentationKind.CARTOON, "polymer"),
    ("Ligands", "ligand", RepresentationKind.BALL_AND_STICK, "ligand"),
    ("Ions", "ion", RepresentationKind.BALL_AND_STICK, "ion"),
    ("Carbohydrates", "branched-snfg-3d", RepresentationKind.CARBOHYDRATE, "branched"),
    ("Lipids", "lipid", RepresentationKind.BALL_AND_STICK, "lipid"),
    ("Waters", "water", RepresentationKind.BALL_AND_STICK, "water"),
)


def format_range_label(base: str, label_asym_id: Optional[str], residues: Sequence[int]) -> str:
    """
    "1ABC" + chain "A" + residues 5..9 -> "1ABC.A:5-9".

    The trailing "-last" is only written for more than one residue.
    """
    label = base
    if label_asym_id:
        label += f".{label_asym_id}"
    if len(residues) > 0:
        label += f":{residues[0]}"
    if len(residues) > 1:
        label += f"-{residues[-1]}"
    return label


def create_selection_expressions(
    label_base: str,
    selection: Union[Range, Sequence[Target], None] = None,
) -> list[SelectionExpression]:
    """
    Selection buckets for a structure.

    Parameters
    ----------
    label_base
        Prefix of every bucket label, usually the entry id.
    selection
        None for the default six-category taxonomy, a `Range` for one
        cartoon bucket over that span, or a sequence of `Target` for one
        ball-and-stick bucket covering all of them.
    """
    if selection is None:
        return [
            SelectionExpression(
                tag=tag,
                type=kind,
                label=f"{label_base} - {category}",
                expression=AtomGroups(residue_test=EntityClass(cls)),
            )
            for category, tag, kind, cls in _TAXONOMY
        ]

    if isinstance(selection, Range):
        residues = selection.residues()
        return [
            SelectionExpression(
                tag="polymer",
                type=RepresentationKind.CARTOON,
                label=format_range_label(label_base, selection.label_asym_id, residues),
                expression=range_to_test(selection.label_asym_id, residues),
            )
        ]

    if (
        isinstance(selection, Sequence)
        and not isinstance(selection, (str, bytes))
        and all(isinstance(t, Target) for t in selection)
    ):
        return [
            SelectionExpression(
                tag="polymer",
                type=RepresentationKind.BALL_AND_STICK,
                label=label_base,
                expression=targets_to_expression(selection),
            )
        ]

    raise SelectionError(f"Unable to handle selection: {selection!r}")


def create_glygen_selection_expressions(
    focus: Target,
    glycosylation: Sequence[Target],
    label: str,
) -> list[SelectionExpression]:
    """Focus chain as cartoon, glycosylation chains as carbohydrates, the rest faded."""
    if focus.label_asym_id is None:
        raise SelectionError("GlyGen focus target requires label_asym_id")
    glyco_chains = frozenset(t.label_asym_id for t in glycosylation if t.label_asym_id is not None)
    head = [
        SelectionExpression(
            tag="polymer",
            type=RepresentationKind.CARTOON,
            label=f"Chain {focus.label_asym_id}",
            expression=AtomGroups(
                chain_test=Eq(AtomProperty("label_asym_id"), focus.label_asym_id)
            ),
        ),
        SelectionExpression(
            tag="carbohydrate",
            type=RepresentationKind.CARBOHYDRATE,
            label="Glycosylation",
            expression=AtomGroups(chain_test=SetHas(glyco_chains, AtomProperty("label_asym_id"))),
        ),
    ]
    return head + [replace(e, alpha=GLYGEN_ALPHA) for e in create_selection_expressions(label)]


def create_chain_selection_expression(auth_asym_id: str, color: Optional[int] = None) -> SelectionExpression:
    label = f"Chain {auth_asym_id}"
    return SelectionExpression(
        tag=label,
        type=RepresentationKind.CARTOON,
        label=label,
        expression=AtomGroups(chain_test=Eq(AtomProperty("auth_asym_id"), auth_asym_id)),
        color=color,
    )
