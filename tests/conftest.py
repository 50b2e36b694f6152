import numpy as np
import pytest

from molloci import AssemblyGen, Model, Structure

ROT_Z_180 = [
    [-1.0, 0.0, 0.0, 0.0],
    [0.0, -1.0, 0.0, 0.0],
    [0.0, 0.0, 1.0, 0.0],
    [0.0, 0.0, 0.0, 1.0],
]
SHIFT_X_50 = [
    [1.0, 0.0, 0.0, 50.0],
    [0.0, 1.0, 0.0, 0.0],
    [0.0, 0.0, 1.0, 0.0],
    [0.0, 0.0, 0.0, 1.0],
]


def _rows(asym, auth_asym, entity, residues, atoms, origin):
    """residues: (comp, label_seq_id or '.', auth_seq_id); one row per atom name."""
    out = []
    for ri, (comp, seq, auth_seq) in enumerate(residues):
        for ai, (name, el) in enumerate(atoms):
            out.append(
                {
                    "group_PDB": "ATOM" if seq != "." else "HETATM",
                    "type_symbol": el,
                    "label_atom_id": name,
                    "label_comp_id": comp,
                    "label_asym_id": asym,
                    "label_entity_id": entity,
                    "label_seq_id": seq,
                    "Cartn_x": origin[0] + 3.8 * ri + 0.5 * ai,
                    "Cartn_y": origin[1],
                    "Cartn_z": origin[2],
                    "auth_seq_id": auth_seq,
                    "auth_asym_id": auth_asym,
                    "pdbx_PDB_model_num": 1,
                }
            )
    return out


def atom_site_rows():
    rows = []
    # A: 12-residue polymer, auth numbering offset by 100
    rows += _rows(
        "A", "A", "1",
        [("ALA", i, i + 100) for i in range(1, 13)],
        [("N", "N"), ("CA", "C"), ("C", "C")],
        (0.0, 0.0, 0.0),
    )
    # B: 3-residue polymer with a different author chain id
    rows += _rows(
        "B", "X", "2",
        [("GLY", i, i) for i in range(1, 4)],
        [("N", "N"), ("CA", "C")],
        (0.0, 10.0, 0.0),
    )
    rows += _rows("C", "A", "3", [("HEM", ".", 201)], [("FE", "FE"), ("C1", "C")], (5.0, 5.0, 0.0))
    rows += _rows("D", "A", "4", [("HOH", ".", 301), ("HOH", ".", 302)], [("O", "O")], (20.0, 0.0, 0.0))
    rows += _rows("E", "A", "5", [("NA", ".", 401)], [("NA", "NA")], (25.0, 0.0, 0.0))
    rows += _rows("F", "A", "6", [("OLA", ".", 501)], [("C1", "C"), ("C2", "C")], (30.0, 0.0, 0.0))
    rows += _rows("G", "A", "7", [("NAG", ".", 601)], [("C1", "C"), ("O1", "O")], (35.0, 0.0, 0.0))
    return rows


ASSEMBLY_GEN = [
    AssemblyGen("1", "1", "A,B,C,D,E,F,G"),
    AssemblyGen("2", "(1,2)", "A,C"),
    AssemblyGen("3", "(X0)(1-2)", "B"),
]


@pytest.fixture
def model():
    return Model.from_atom_site(
        atom_site_rows(),
        "1ABC",
        assembly_gen=ASSEMBLY_GEN,
        oper_list={"1": np.eye(4), "2": ROT_Z_180, "X0": SHIFT_X_50},
    )


@pytest.fixture
def structure(model):
    return Structure.from_model(model)


@pytest.fixture
def empty_structure():
    return Structure(label="empty")
