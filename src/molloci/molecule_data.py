from __future__ import annotations

import uuid
from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Union

import mdtraj as md
import numpy as np
from openmm.app import Topology, element

from .assembly import AssemblyGen, operator_products, parse_operator_expression

MatrixLike = Union[np.ndarray, Sequence[float], Sequence[Sequence[float]]]


class SelectionError(ValueError):
    """Raised when a selection request is malformed or cannot be resolved."""


# --- Residue classes ---------------------------------------------------------

WATER_COMP_IDS: set[str] = {"HOH", "DOD", "WAT", "H2O", "TIP3", "SPC"}

ION_COMP_IDS: set[str] = {
    "NA",
    "K",
    "LI",
    "CL",
    "BR",
    "IOD",
    "F",
    "MG",
    "CA",
    "ZN",
    "MN",
    "FE",
    "FE2",
    "CU",
    "CU1",
    "CO",
    "NI",
    "CD",
    "HG",
    "SR",
    "BA",
    "CS",
    "RB",
    "SOD",
    "POT",
    "CLA",
}

SACCHARIDE_COMP_IDS: set[str] = {
    "NAG",
    "NDG",
    "MAN",
    "BMA",
    "GAL",
    "GLA",
    "GLC",
    "BGC",
    "FUC",
    "FUL",
    "SIA",
    "XYP",
    "XYS",
    "A2G",
    "NGA",
}

LIPID_COMP_IDS: set[str] = {
    "OLA",
    "OLC",
    "OLB",
    "PLM",
    "MYR",
    "STE",
    "CLR",
    "CHL",
    "LDA",
    "LMT",
    "PCW",
    "PEE",
    "PEF",
    "POV",
    "POPC",
    "POPE",
    "DPPC",
    "CDL",
    "LHG",
}

ENTITY_TYPES = ("polymer", "non-polymer", "branched", "water")


# --- Data containers ---------------------------------------------------------


@dataclass(frozen=True)
class Atom:
    serial: int
    name: str  # label_atom_id, e.g. "CA"
    element: str  # type_symbol, e.g. "C"
    label_comp_id: str  # e.g. "ALA"
    label_asym_id: str
    auth_asym_id: str
    label_seq_id: int  # 0 for non-polymers
    auth_seq_id: int
    entity_id: str
    x: float
    y: float
    z: float

    def __repr__(self) -> str:
        return (
            f"<atom {self.name} {self.label_comp_id} {self.label_seq_id} "
            f"{self.label_asym_id} [auth {self.auth_asym_id} {self.auth_seq_id}]>"
        )


@dataclass
class Residue:
    label_comp_id: str
    label_seq_id: int
    auth_seq_id: int
    atoms: list[Atom] = field(default_factory=list)

    def __repr__(self) -> str:
        return f"<residue {self.label_comp_id} {self.label_seq_id} [auth {self.auth_seq_id}]>"


@dataclass
class Chain:
    label_asym_id: str
    auth_asym_id: str
    entity_id: str
    entity_type: str = "polymer"
    residues: list[Residue] = field(default_factory=list)
    atoms: list[Atom] = field(default_factory=list)

    _property_cache: dict[str, np.ndarray] = field(default_factory=dict, repr=False, compare=False)

    def __repr__(self) -> str:
        return (
            f"<chain {self.label_asym_id} [auth {self.auth_asym_id}] "
            f"entity {self.entity_id} ({self.entity_type})>"
        )

    def natoms(self) -> int:
        return len(self.atoms)

    def nresidues(self) -> int:
        return len(self.residues)

    def atom_property(self, name: str) -> np.ndarray:
        """Per-atom property array (cached), in chain atom order."""
        arr = self._property_cache.get(name)
        if arr is not None:
            return arr

        if name == "residue_index":
            arr = np.fromiter(
                (ri for ri, r in enumerate(self.residues) for _ in r.atoms),
                dtype=np.int64,
                count=len(self.atoms),
            )
        elif name in ("label_seq_id", "auth_seq_id", "serial"):
            arr = np.array([getattr(a, name) for a in self.atoms], dtype=np.int64)
        elif name in ("label_atom_id", "label_comp_id", "element"):
            attr = "name" if name == "label_atom_id" else name
            arr = np.array([getattr(a, attr) for a in self.atoms], dtype=object)
        elif name == "coords":
            arr = np.array([(a.x, a.y, a.z) for a in self.atoms], dtype=float).reshape(-1, 3)
        else:
            raise SelectionError(f"Unknown atom property '{name}'")

        self._property_cache[name] = arr
        return arr


@dataclass(frozen=True)
class SymmetryOperator:
    """
    A (possibly composed) rigid operator applied to a chain instance.

    name            Mol*-style operator name: '1_555' for identity, 'ASM_<n>'
                    for assembly operators.
    oper_list_ids   pdbx_struct_oper_list ids in expression order; empty for
                    the deposited model.
    """

    name: str = "1_555"
    matrix: np.ndarray = field(default_factory=lambda: np.eye(4), compare=False)
    assembly_id: Optional[str] = None
    oper_list_ids: tuple[str, ...] = ()

    @property
    def is_identity(self) -> bool:
        return bool(np.allclose(self.matrix, np.eye(4)))

    def compose(self, matrix: np.ndarray) -> SymmetryOperator:
        """Return the operator that applies this one first, then `matrix`."""
        return replace(self, matrix=np.asarray(matrix, dtype=float) @ self.matrix)


@dataclass(eq=False)
class Unit:
    """One chain instance under one operator; `elements` index `chain.atoms`."""

    id: int
    chain: Chain
    elements: np.ndarray
    operator: SymmetryOperator
    coords: np.ndarray  # (n, 3) Å, operator applied
    invariant_id: int = 0
    chain_group_id: int = -1

    def __repr__(self) -> str:
        return (
            f"<unit {self.id} {self.chain.label_asym_id} {self.operator.name} "
            f"({len(self.elements)} atoms, group {self.chain_group_id})>"
        )

    def natoms(self) -> int:
        return len(self.elements)

    def atom(self, index: int) -> Atom:
        """Atom at position `index` within this unit."""
        return self.chain.atoms[int(self.elements[index])]

    def atom_property(self, name: str) -> np.ndarray:
        n = len(self.elements)
        if name == "label_asym_id":
            return np.full(n, self.chain.label_asym_id, dtype=object)
        if name == "auth_asym_id":
            return np.full(n, self.chain.auth_asym_id, dtype=object)
        if name == "entity_id":
            return np.full(n, self.chain.entity_id, dtype=object)
        if name == "entity_type":
            return np.full(n, self.chain.entity_type, dtype=object)
        if name == "operator_name":
            return np.full(n, self.operator.name, dtype=object)
        return self.chain.atom_property(name)[self.elements]

    def subset(self, indices: np.ndarray) -> Unit:
        """New unit restricted to positions `indices` of this unit."""
        idx = np.asarray(indices, dtype=np.int64)
        return replace(self, elements=self.elements[idx], coords=self.coords[idx])

    def transformed(self, matrix: np.ndarray) -> Unit:
        m = np.asarray(matrix, dtype=float)
        coords = self.coords @ m[:3, :3].T + m[:3, 3]
        return replace(self, coords=coords, operator=self.operator.compose(m))


@dataclass(eq=False)
class Model:
    entry_id: str
    model_num: int = 1
    chains: dict[str, Chain] = field(default_factory=dict)  # label_asym_id -> Chain
    assembly_gen: Optional[list[AssemblyGen]] = None
    oper_list: dict[str, np.ndarray] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __repr__(self) -> str:
        return f"<model {self.entry_id} #{self.model_num}: {self.nchains()} chains, {self.natoms()} atoms>"

    def iter_chains(self) -> Iterator[Chain]:
        return iter(self.chains.values())

    def nchains(self) -> int:
        return len(self.chains)

    def natoms(self) -> int:
        return sum(c.natoms() for c in self.chains.values())

    def assembly_ids(self) -> list[str]:
        if not self.assembly_gen:
            return []
        seen: list[str] = []
        for row in self.assembly_gen:
            if row.assembly_id not in seen:
                seen.append(row.assembly_id)
        return seen

    @classmethod
    def from_atom_site(
        cls,
        rows: Iterable[Mapping[str, Any]],
        entry_id: str,
        *,
        model_num: int = 1,
        entities: Optional[Mapping[str, str]] = None,
        assembly_gen: Optional[Iterable[AssemblyGen]] = None,
        oper_list: Optional[Mapping[str, MatrixLike]] = None,
    ) -> Model:
        """
        Build a model from ``atom_site``-shaped rows (mmCIF item names).

        Chains are keyed by label_asym_id in first-seen order. `entities` maps
        entity id -> entity type; without it the type is inferred per chain.
        Rows whose ``pdbx_PDB_model_num`` differs from `model_num` are skipped.
        """
        m = cls(entry_id=entry_id, model_num=model_num)
        if assembly_gen is not None:
            m.assembly_gen = list(assembly_gen)
        if oper_list:
            m.oper_list = {str(k): as_transform(v) for k, v in oper_list.items()}

        for serial, row in enumerate(rows, start=1):
            num = _cif_int(row.get("pdbx_PDB_model_num"), default=model_num)
            if num != model_num:
                continue
            atom = _atom_from_row(row, serial)
            ch = m.chains.get(atom.label_asym_id)
            if ch is None:
                ch = Chain(
                    label_asym_id=atom.label_asym_id,
                    auth_asym_id=atom.auth_asym_id,
                    entity_id=atom.entity_id,
                )
                m.chains[atom.label_asym_id] = ch
            key = (atom.label_comp_id, atom.label_seq_id, atom.auth_seq_id)
            if not ch.residues or _res_key(ch.residues[-1]) != key:
                ch.residues.append(Residue(*key))
            ch.residues[-1].atoms.append(atom)
            ch.atoms.append(atom)

        for ch in m.chains.values():
            if entities and ch.entity_id in entities:
                ch.entity_type = entities[ch.entity_id]
            else:
                ch.entity_type = _infer_entity_type(ch)
            if ch.entity_type not in ENTITY_TYPES:
                raise ValueError(f"Unknown entity type '{ch.entity_type}' for chain {ch.label_asym_id}")
        return m


@dataclass(eq=False)
class Structure:
    units: list[Unit] = field(default_factory=list)
    label: str = ""
    model: Optional[Model] = None

    _unit_index: Optional[dict[int, Unit]] = field(default=None, repr=False, compare=False)

    def __iter__(self) -> Iterator[Unit]:
        return iter(self.units)

    def __len__(self) -> int:
        return len(self.units)

    def __repr__(self) -> str:
        return f"<Structure '{self.label}': {len(self.units)} units, {self.natoms()} atoms>"

    @property
    def is_empty(self) -> bool:
        return self.natoms() == 0

    def natoms(self) -> int:
        return sum(u.natoms() for u in self.units)

    def unit_by_id(self, unit_id: int) -> Unit:
        if self._unit_index is None:
            self._unit_index = {u.id: u for u in self.units}
        return self._unit_index[unit_id]

    def has_assembly_operators(self) -> bool:
        return any(u.operator.assembly_id is not None for u in self.units)

    def chain_groups(self) -> list[list[Unit]]:
        """Units grouped by chain_group_id, in order of first appearance."""
        groups: dict[int, list[Unit]] = {}
        for u in self.units:
            groups.setdefault(u.chain_group_id, []).append(u)
        return list(groups.values())

    # ---- construction ----

    @classmethod
    def from_model(cls, model: Model, label: Optional[str] = None) -> Structure:
        """Deposited coordinates: one identity unit per chain."""
        units = []
        for i, ch in enumerate(model.iter_chains()):
            elements = np.arange(ch.natoms(), dtype=np.int64)
            units.append(
                Unit(
                    id=i,
                    chain=ch,
                    elements=elements,
                    operator=SymmetryOperator(),
                    coords=ch.atom_property("coords").copy(),
                    invariant_id=i,
                    chain_group_id=i,
                )
            )
        return cls(units=units, label=label if label is not None else model.entry_id, model=model)

    @classmethod
    def from_assembly(cls, model: Model, assembly_id: str, label: Optional[str] = None) -> Structure:
        """
        Expand `model` into assembly `assembly_id`.

        Operators are named ASM_1, ASM_2, ... in generation order; each chain
        listed by a generation row is instantiated once per operator product.
        """
        rows = [g for g in (model.assembly_gen or []) if g.assembly_id == assembly_id]
        if not rows:
            raise SelectionError(f"Assembly '{assembly_id}' not found in {model.entry_id}")

        invariant = {ch.label_asym_id: i for i, ch in enumerate(model.iter_chains())}
        units: list[Unit] = []
        oper_index = 0
        for row in rows:
            asym_ids = set(row.asym_ids())
            groups = parse_operator_expression(row.oper_expression)
            try:
                products = operator_products(groups, model.oper_list)
            except KeyError as e:
                raise SelectionError(f"Assembly '{assembly_id}': {e.args[0]}") from e
            for ids, matrix in products:
                oper_index += 1
                op = SymmetryOperator(
                    name=f"ASM_{oper_index}",
                    matrix=matrix,
                    assembly_id=assembly_id,
                    oper_list_ids=ids,
                )
                for ch in model.iter_chains():
                    if ch.label_asym_id not in asym_ids:
                        continue
                    coords = ch.atom_property("coords")
                    uid = len(units)
                    units.append(
                        Unit(
                            id=uid,
                            chain=ch,
                            elements=np.arange(ch.natoms(), dtype=np.int64),
                            operator=op,
                            coords=coords @ matrix[:3, :3].T + matrix[:3, 3],
                            invariant_id=invariant[ch.label_asym_id],
                            chain_group_id=uid,
                        )
                    )
        return cls(units=units, label=label if label is not None else model.entry_id, model=model)

    @classmethod
    def union_of(cls, units: Iterable[Unit], label: str = "", model: Optional[Model] = None) -> Structure:
        """Structure over existing units; ids and chain groups are kept as given."""
        return cls(units=list(units), label=label, model=model)

    def summarize(self, max_units: int = 20) -> str:
        return summarize_structure(self, max_units=max_units)

    def transform(self, matrix: MatrixLike) -> Structure:
        """New structure with every unit moved by the rigid transform `matrix`."""
        m = as_transform(matrix)
        return Structure(
            units=[u.transformed(m) for u in self.units], label=self.label, model=self.model
        )

    # ---- export ----

    def topology(self) -> Topology:
        """OpenMM topology; every chain group becomes one OpenMM chain."""
        top = Topology()
        for group in self.chain_groups():
            chain = top.addChain(group[0].chain.label_asym_id)
            for u in group:
                res_index = u.atom_property("residue_index")
                res = None
                last = None
                for pos, ri in enumerate(res_index):
                    a = u.atom(pos)
                    if ri != last:
                        residue = u.chain.residues[int(ri)]
                        res = top.addResidue(
                            residue.label_comp_id, chain, id=str(residue.auth_seq_id)
                        )
                        last = ri
                    sym = (a.element or "").strip()
                    sym = sym[:1].upper() + sym[1:].lower()
                    try:
                        el = element.Element.getBySymbol(sym)
                    except KeyError:
                        el = element.carbon
                    top.addAtom(a.name, el, res)
        return top

    def coords(self) -> np.ndarray:
        if not self.units:
            return np.zeros((0, 3), dtype=float)
        return np.concatenate([u.coords for u in self.units], axis=0)

    def mdtraj_trajectory(self) -> md.Trajectory:
        """Single-frame MDTraj trajectory (coordinates converted Å -> nm)."""
        top = md.Topology.from_openmm(self.topology())
        xyz = (self.coords() / 10.0).astype(np.float32).reshape(1, -1, 3)
        return md.Trajectory(xyz=xyz, topology=top)


class StructureBuilder:
    """
    Assemble a structure unit by unit.

    Units added between `begin_chain_group` and `end_chain_group` share one
    chain group id and are treated as a single chain by consumers; units added
    outside a bracket each get their own group.
    """

    def __init__(self, label: str = "", model: Optional[Model] = None):
        self.label = label
        self.model = model
        self._units: list[Unit] = []
        self._next_group = 0
        self._open_group: Optional[int] = None

    def begin_chain_group(self) -> None:
        if self._open_group is not None:
            raise RuntimeError("Chain group already open")
        self._open_group = self._next_group
        self._next_group += 1

    def end_chain_group(self) -> None:
        if self._open_group is None:
            raise RuntimeError("No chain group open")
        self._open_group = None

    def add_unit(self, unit: Unit) -> Unit:
        if self._open_group is not None:
            group = self._open_group
        else:
            group = self._next_group
            self._next_group += 1
        new = replace(unit, id=len(self._units), chain_group_id=group)
        self._units.append(new)
        return new

    def get_structure(self) -> Structure:
        if self._open_group is not None:
            raise RuntimeError("Chain group was not closed")
        return Structure(units=list(self._units), label=self.label, model=self.model)


# --- Transforms --------------------------------------------------------------


def as_transform(matrix: MatrixLike, atol: float = 1e-4) -> np.ndarray:
    """
    Normalize a rigid transform into a row-major 4x4 array (x' = M @ [x, 1]).

    Accepts a 4x4 array or a flat sequence of 16 numbers in column-major
    order, the layout used by the alignment service and by Mol* ``Mat4``.
    """
    m = np.asarray(matrix, dtype=float)
    if m.shape == (16,):
        m = m.reshape(4, 4).T
    elif m.shape == (3, 4):
        m = np.vstack([m, (0.0, 0.0, 0.0, 1.0)])
    if m.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4 or 16 values, got shape {m.shape}")
    if not np.allclose(m[3], (0.0, 0.0, 0.0, 1.0), atol=atol):
        raise ValueError("Transform last row must be (0, 0, 0, 1)")
    rot = m[:3, :3]
    if not np.allclose(rot @ rot.T, np.eye(3), atol=atol):
        raise ValueError("Transform rotation block is not orthonormal")
    return m


# --- atom_site utilities -----------------------------------------------------


def _cif_str(v: Any, default: str = "") -> str:
    if v is None:
        return default
    s = str(v).strip()
    return default if s in ("", ".", "?") else s


def _cif_int(v: Any, default: int = 0) -> int:
    s = _cif_str(v)
    if not s:
        return default
    try:
        return int(s)
    except ValueError:
        raise ValueError(f"Expected integer in field '{v}'") from None


def _cif_float(v: Any) -> float:
    s = _cif_str(v)
    try:
        return float(s)
    except ValueError:
        raise ValueError(f"Expected float in field '{v}'") from None


def _atom_from_row(row: Mapping[str, Any], serial: int) -> Atom:
    label_asym_id = _cif_str(row.get("label_asym_id"))
    if not label_asym_id:
        raise ValueError(f"atom_site row {serial} has no label_asym_id")
    label_seq_id = _cif_int(row.get("label_seq_id"))
    name = _cif_str(row.get("label_atom_id"))
    return Atom(
        serial=_cif_int(row.get("id"), default=serial),
        name=name,
        element=_cif_str(row.get("type_symbol"), default=name[:1]),
        label_comp_id=_cif_str(row.get("label_comp_id")),
        label_asym_id=label_asym_id,
        auth_asym_id=_cif_str(row.get("auth_asym_id"), default=label_asym_id),
        label_seq_id=label_seq_id,
        auth_seq_id=_cif_int(row.get("auth_seq_id"), default=label_seq_id),
        entity_id=_cif_str(row.get("label_entity_id"), default="1"),
        x=_cif_float(row.get("Cartn_x")),
        y=_cif_float(row.get("Cartn_y")),
        z=_cif_float(row.get("Cartn_z")),
    )


def _res_key(r: Residue) -> tuple[str, int, int]:
    return (r.label_comp_id, r.label_seq_id, r.auth_seq_id)


def _infer_entity_type(ch: Chain) -> str:
    comps = {r.label_comp_id for r in ch.residues}
    if comps and comps <= WATER_COMP_IDS:
        return "water"
    if any(r.label_seq_id > 0 for r in ch.residues):
        return "polymer"
    if comps and comps <= SACCHARIDE_COMP_IDS and len(ch.residues) > 1:
        return "branched"
    return "non-polymer"


# --- summaries ---------------------------------------------------------------


def summarize_structure(structure: Structure, max_units: int = 20) -> str:
    """Human-readable multi-line summary of units and chain groups."""
    groups = structure.chain_groups()
    lines = [
        f"Structure '{structure.label}': {len(groups)} chain groups, "
        f"{len(structure.units)} units, {structure.natoms()} atoms"
    ]
    for gi, group in enumerate(groups):
        lines.append(f"\nChain group {gi}:")
        for u in group[:max_units]:
            seq = u.atom_property("label_seq_id")
            span = f"{int(seq.min())}-{int(seq.max())}" if len(seq) else "-"
            lines.append(
                f"  Unit {u.id}: {u.chain.label_asym_id} "
                f"[auth {u.chain.auth_asym_id}] {u.operator.name} "
                f"residues {span}, {u.natoms()} atoms"
            )
        if len(group) > max_units:
            lines.append(f"  ... ({len(group) - max_units} more units)")
    return "\n".join(lines)
