"""
Boolean query algebra over atom, residue and chain properties.

Two kinds of nodes:

  * Tests (`AtomProperty`, `Const`, `Eq`, `SetHas`, `InSeqRange`, `And`, `Or`,
    `Not`, `EntityClass`) are evaluated per unit into a boolean mask over the
    unit's atoms.
  * Queries (`AtomGroups`, `AllAtoms`, `Nothing`, `Merge`) are evaluated
    against a `QueryContext` into a `StructureSelection`.

Targets and ranges compile into queries:

  residue-test  auth_seq_id | label_seq_id | label_seq_range, AND label_comp_id
  chain-test    label_asym_id AND auth_asym_id AND operator_name
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import numpy as np

from .molecule_data import (
    ION_COMP_IDS,
    LIPID_COMP_IDS,
    SACCHARIDE_COMP_IDS,
    SelectionError,
    Structure,
    Unit,
)
from .target import Range, Target

ATOM_PROPERTIES = (
    "label_asym_id",
    "auth_asym_id",
    "label_seq_id",
    "auth_seq_id",
    "label_comp_id",
    "label_atom_id",
    "entity_id",
    "entity_type",
    "operator_name",
)

ENTITY_CLASSES = ("polymer", "ligand", "ion", "branched", "lipid", "water")


# --- Tests -------------------------------------------------------------------


class Test:
    """Base test node; `mask` returns one boolean per atom of the unit."""

    def mask(self, unit: Unit) -> np.ndarray:
        raise NotImplementedError

    def symbolic(self) -> str:
        raise NotImplementedError


class Value:
    """Base value node used as an operand of comparisons."""

    def values(self, unit: Unit) -> Any:
        raise NotImplementedError

    def symbolic(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class AtomProperty(Value):
    name: str

    def __post_init__(self):
        if self.name not in ATOM_PROPERTIES:
            raise SelectionError(f"Unknown atom property '{self.name}'")

    def values(self, unit: Unit) -> np.ndarray:
        return unit.atom_property(self.name)

    def symbolic(self) -> str:
        return self.name


@dataclass(frozen=True)
class Const(Value):
    value: Union[int, str]

    def values(self, unit: Unit) -> Union[int, str]:
        return self.value

    def symbolic(self) -> str:
        return repr(self.value)


def _operand(v: Any) -> Value:
    return v if isinstance(v, Value) else Const(v)


def _broadcast(m: Any, unit: Unit) -> np.ndarray:
    return np.broadcast_to(np.asarray(m, dtype=bool), (unit.natoms(),))


@dataclass(frozen=True)
class Eq(Test):
    left: Value
    right: Value

    def __init__(self, left: Any, right: Any):
        object.__setattr__(self, "left", _operand(left))
        object.__setattr__(self, "right", _operand(right))

    def mask(self, unit: Unit) -> np.ndarray:
        return _broadcast(self.left.values(unit) == self.right.values(unit), unit)

    def symbolic(self) -> str:
        return f"{self.left.symbolic()} == {self.right.symbolic()}"


@dataclass(frozen=True)
class SetHas(Test):
    values: frozenset
    prop: AtomProperty

    def mask(self, unit: Unit) -> np.ndarray:
        if not self.values:
            return np.zeros(unit.natoms(), dtype=bool)
        return np.isin(self.prop.values(unit), list(self.values))

    def symbolic(self) -> str:
        shown = ", ".join(repr(v) for v in sorted(self.values, key=str))
        return f"{self.prop.symbolic()} in {{{shown}}}"


@dataclass(frozen=True)
class InSeqRange(Test):
    """label_seq_id within [beg, end] (inclusive)."""

    beg: int
    end: int

    def mask(self, unit: Unit) -> np.ndarray:
        seq = unit.atom_property("label_seq_id")
        lo, hi = min(self.beg, self.end), max(self.beg, self.end)
        return (seq >= lo) & (seq <= hi)

    def symbolic(self) -> str:
        return f"label_seq_id in [{self.beg}, {self.end}]"


@dataclass(frozen=True)
class And(Test):
    args: tuple[Test, ...]

    def __init__(self, *args: Test):
        object.__setattr__(self, "args", tuple(args))

    def mask(self, unit: Unit) -> np.ndarray:
        m = np.ones(unit.natoms(), dtype=bool)
        for a in self.args:
            if not m.any():
                break
            m &= a.mask(unit)
        return m

    def symbolic(self) -> str:
        return " & ".join(f"({a.symbolic()})" for a in self.args)


@dataclass(frozen=True)
class Or(Test):
    args: tuple[Test, ...]

    def __init__(self, *args: Test):
        object.__setattr__(self, "args", tuple(args))

    def mask(self, unit: Unit) -> np.ndarray:
        m = np.zeros(unit.natoms(), dtype=bool)
        for a in self.args:
            m |= a.mask(unit)
        return m

    def symbolic(self) -> str:
        return " | ".join(f"({a.symbolic()})" for a in self.args)


@dataclass(frozen=True)
class Not(Test):
    arg: Test

    def mask(self, unit: Unit) -> np.ndarray:
        return ~self.arg.mask(unit)

    def symbolic(self) -> str:
        return f"~({self.arg.symbolic()})"


@dataclass(frozen=True)
class EntityClass(Test):
    """
    Structural class of the atoms' residues.

    polymer/water/branched follow the entity type; ions, lipids and
    saccharides among non-polymers are recognised by component id, and every
    other non-polymer is a ligand.
    """

    kind: str

    def __post_init__(self):
        if self.kind not in ENTITY_CLASSES:
            raise SelectionError(f"Unknown entity class '{self.kind}'")

    def mask(self, unit: Unit) -> np.ndarray:
        etype = unit.chain.entity_type
        n = unit.natoms()
        if self.kind in ("polymer", "water"):
            return np.full(n, etype == self.kind, dtype=bool)
        if etype == "branched":
            return np.full(n, self.kind == "branched", dtype=bool)
        if etype != "non-polymer":
            return np.zeros(n, dtype=bool)

        comps = unit.atom_property("label_comp_id")
        ion = np.isin(comps, list(ION_COMP_IDS))
        lipid = np.isin(comps, list(LIPID_COMP_IDS))
        sugar = np.isin(comps, list(SACCHARIDE_COMP_IDS))
        if self.kind == "ion":
            return ion
        if self.kind == "lipid":
            return lipid
        if self.kind == "branched":
            return sugar
        return ~(ion | lipid | sugar)

    def symbolic(self) -> str:
        return f"is-{self.kind}"


# --- Runtime -----------------------------------------------------------------


@dataclass
class StructureSelection:
    """Selected atom positions per unit id of `structure` (sorted, unique)."""

    structure: Structure
    indices: dict[int, np.ndarray] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not any(len(v) for v in self.indices.values())

    def natoms(self) -> int:
        return sum(len(v) for v in self.indices.values())

    def items(self) -> Iterator[tuple[Unit, np.ndarray]]:
        """(unit, indices) pairs in the unit order of the structure."""
        for u in self.structure.units:
            idx = self.indices.get(u.id)
            if idx is not None and len(idx):
                yield u, idx

    def merge(self, other: StructureSelection) -> StructureSelection:
        out = dict(self.indices)
        for uid, idx in other.indices.items():
            out[uid] = np.union1d(out[uid], idx) if uid in out else idx
        return StructureSelection(self.structure, out)

    def union_structure(self) -> Structure:
        """Sub-structure holding only the selected atoms; unit ids are kept."""
        units = [u.subset(idx) for u, idx in self.items()]
        return Structure.union_of(units, label=self.structure.label, model=self.structure.model)


@dataclass
class QueryContext:
    structure: Structure


# --- Queries -----------------------------------------------------------------


class Query:
    def evaluate(self, ctx: QueryContext) -> StructureSelection:
        raise NotImplementedError

    def symbolic(self) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class AtomGroups(Query):
    chain_test: Optional[Test] = None
    residue_test: Optional[Test] = None
    atom_test: Optional[Test] = None

    def evaluate(self, ctx: QueryContext) -> StructureSelection:
        out: dict[int, np.ndarray] = {}
        for u in ctx.structure.units:
            if u.natoms() == 0:
                continue
            m = np.ones(u.natoms(), dtype=bool)
            for t in (self.chain_test, self.residue_test, self.atom_test):
                if t is None:
                    continue
                m &= t.mask(u)
                if not m.any():
                    break
            idx = np.flatnonzero(m)
            if len(idx):
                out[u.id] = idx
        return StructureSelection(ctx.structure, out)

    def symbolic(self) -> str:
        parts = []
        for key, t in (
            ("chain-test", self.chain_test),
            ("residue-test", self.residue_test),
            ("atom-test", self.atom_test),
        ):
            if t is not None:
                parts.append(f"{key}: {t.symbolic()}")
        return "atom-groups{" + "; ".join(parts) + "}"


@dataclass(frozen=True)
class AllAtoms(Query):
    def evaluate(self, ctx: QueryContext) -> StructureSelection:
        out = {u.id: np.arange(u.natoms()) for u in ctx.structure.units if u.natoms()}
        return StructureSelection(ctx.structure, out)

    def symbolic(self) -> str:
        return "all"


@dataclass(frozen=True)
class Nothing(Query):
    def evaluate(self, ctx: QueryContext) -> StructureSelection:
        return StructureSelection(ctx.structure)

    def symbolic(self) -> str:
        return "empty"


@dataclass(frozen=True)
class Merge(Query):
    """Union of independently evaluated queries."""

    queries: tuple[Query, ...]

    def evaluate(self, ctx: QueryContext) -> StructureSelection:
        sel = StructureSelection(ctx.structure)
        for q in self.queries:
            sel = sel.merge(q.evaluate(ctx))
        return sel

    def symbolic(self) -> str:
        return "merge[" + ", ".join(q.symbolic() for q in self.queries) + "]"


def evaluate(query: Query, structure: Structure) -> StructureSelection:
    return query.evaluate(QueryContext(structure))


# --- Compilers ---------------------------------------------------------------


def _combine(tests: Sequence[Test]) -> Optional[Test]:
    if not tests:
        return None
    if len(tests) == 1:
        return tests[0]
    return And(*tests)


def target_to_expression(target: Target) -> Query:
    """
    Compile a single target.

    A target with no selecting field compiles to `AllAtoms`. A
    ``struct_oper_id`` must first be resolved to an operator name with
    `normalize_target`.
    """
    if target.struct_oper_id is not None:
        raise SelectionError(
            f"Unresolved struct_oper_id '{target.struct_oper_id}'; normalize the target first"
        )
    residue_tests: list[Test] = []
    chain_tests: list[Test] = []

    if target.auth_seq_id is not None:
        residue_tests.append(Eq(target.auth_seq_id, AtomProperty("auth_seq_id")))
    elif target.label_seq_id is not None:
        residue_tests.append(Eq(target.label_seq_id, AtomProperty("label_seq_id")))
    elif target.label_seq_range is not None:
        r = target.label_seq_range
        residue_tests.append(InSeqRange(r.beg, r.end if r.end is not None else r.beg))
    if target.label_comp_id is not None:
        residue_tests.append(Eq(target.label_comp_id, AtomProperty("label_comp_id")))

    if target.label_asym_id is not None:
        chain_tests.append(Eq(target.label_asym_id, AtomProperty("label_asym_id")))
    if target.auth_asym_id is not None:
        chain_tests.append(Eq(target.auth_asym_id, AtomProperty("auth_asym_id")))
    if target.operator_name is not None:
        chain_tests.append(Eq(target.operator_name, AtomProperty("operator_name")))

    if not residue_tests and not chain_tests:
        return AllAtoms()
    return AtomGroups(chain_test=_combine(chain_tests), residue_test=_combine(residue_tests))


def targets_to_expression(targets: Iterable[Target]) -> Query:
    """
    Compile several targets into a union; each target selects independently.

    An empty collection compiles to `Nothing`.
    """
    queries = tuple(target_to_expression(t) for t in targets)
    if not queries:
        return Nothing()
    if len(queries) == 1:
        return queries[0]
    return Merge(queries)


def range_to_test(
    label_asym_id: str,
    residues: Sequence[int],
    operator_name: Optional[str] = None,
) -> AtomGroups:
    """Chain test plus an optional residue-set test (empty `residues`: whole chain)."""
    chain_tests: list[Test] = [Eq(AtomProperty("label_asym_id"), label_asym_id)]
    if operator_name:
        chain_tests.append(Eq(operator_name, AtomProperty("operator_name")))
    residue_test = (
        SetHas(frozenset(int(r) for r in residues), AtomProperty("label_seq_id"))
        if len(residues) > 0
        else None
    )
    return AtomGroups(chain_test=_combine(chain_tests), residue_test=residue_test)


def range_to_expression(rng: Range) -> AtomGroups:
    return range_to_test(rng.label_asym_id, rng.residues())
