"""Operator expressions and assembly-of-interest detection.

Assembly generation rows (``pdbx_struct_assembly_gen``) pair a list of chains
with a compact operator expression such as ``"(1,10,23)(61,62,69-88)"``. Each
parenthesised group lists operator ids; consecutive groups form products.
"""

from __future__ import annotations

import itertools
import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

DEFAULT_ASSEMBLY_ID = "1"
IDENTITY_OPER_ID = "1"

_RANGE = re.compile(r"^(\d+)-(\d+)$")


@dataclass(frozen=True)
class AssemblyGen:
    """One ``pdbx_struct_assembly_gen`` row."""

    assembly_id: str
    oper_expression: str
    asym_id_list: str  # comma-separated label_asym_ids, e.g. "A,B,C"

    def asym_ids(self) -> list[str]:
        return [a.strip() for a in self.asym_id_list.split(",") if a.strip()]


# --- Parsing -----------------------------------------------------------------


def parse_operator_expression(expr: str) -> list[list[str]]:
    """
    Parse an operator expression into groups of operator ids.

    ``"(X0)(1-5)"`` -> ``[["X0"], ["1", "2", "3", "4", "5"]]``. An expression
    without parentheses (``"1,2"``) is a single group. Numeric dash ranges are
    expanded; every other token is kept literally.
    """
    groups: list[list[str]] = []
    for factor in re.split(r"[()]", expr or ""):
        factor = factor.strip()
        if not factor:
            continue
        group: list[str] = []
        for term in factor.split(","):
            term = term.strip()
            if not term:
                continue
            m = _RANGE.match(term)
            if m:
                lo, hi = int(m.group(1)), int(m.group(2))
                if lo > hi:
                    lo, hi = hi, lo
                group.extend(str(i) for i in range(lo, hi + 1))
            else:
                group.append(term)
        groups.append(group)
    return groups


def split_struct_oper_id(struct_oper_id: Optional[str]) -> list[str]:
    """
    Split a compound ``struct_oper_id`` ("2x5") into tokens in expression order.

    Compound ids are written right-to-left, so "2x5" means operator "5" from
    the first group followed by "2" from the second.
    """
    tokens = (struct_oper_id or IDENTITY_OPER_ID).split("x")
    return list(reversed(tokens))


def operator_matches(groups: Sequence[Sequence[str]], struct_oper_id: Optional[str]) -> bool:
    """Return True if every token of `struct_oper_id` is a member of its group."""
    tokens = split_struct_oper_id(struct_oper_id)
    if len(tokens) > len(groups):
        return False
    return all(tok in groups[i] for i, tok in enumerate(tokens))


# --- Assembly selection ------------------------------------------------------


def select_assembly_id(
    assembly_gen: Optional[Iterable[AssemblyGen]],
    required: Sequence[tuple[Optional[str], str]],
    default: str = DEFAULT_ASSEMBLY_ID,
) -> str:
    """
    Return the first assembly whose generation row covers every required pair.

    `required` holds ``(struct_oper_id, label_asym_id)`` pairs. A row accepts
    a pair when the operator tokens match its expression and the chain id
    occurs in its chain-id list. Rows are scanned in table order.

    Predicted or computed models often carry no generation table; in that case,
    and when nothing matches, `default` is returned.
    """
    if assembly_gen is None:
        logger.warning("No assembly generation table; using assembly '%s'", default)
        return default

    rows = list(assembly_gen)
    for row in rows:
        groups = parse_operator_expression(row.oper_expression)
        if all(
            operator_matches(groups, oper_id) and chain_id in row.asym_id_list
            for oper_id, chain_id in required
        ):
            logger.debug("Assembly '%s' matches %d required pairs", row.assembly_id, len(required))
            return row.assembly_id

    logger.warning(
        "No assembly among %d generation rows matches %s; using assembly '%s'",
        len(rows),
        list(required),
        default,
    )
    return default


# --- Operator products -------------------------------------------------------


def operator_products(
    groups: Sequence[Sequence[str]],
    oper_table: Mapping[str, np.ndarray],
) -> list[tuple[tuple[str, ...], np.ndarray]]:
    """
    Expand parsed groups into (oper_list_ids, 4x4 matrix) products.

    Products follow expression order: for ``(A)(B)`` the matrix is ``A @ B``,
    i.e. B is applied first. Unknown operator ids raise KeyError.
    """
    if not groups:
        return [((), np.eye(4))]

    out: list[tuple[tuple[str, ...], np.ndarray]] = []
    for combo in itertools.product(*groups):
        m = np.eye(4)
        for oper_id in combo:
            if oper_id not in oper_table:
                raise KeyError(f"Operator '{oper_id}' is not in the operator table")
            m = m @ np.asarray(oper_table[oper_id], dtype=float)
        out.append((tuple(combo), m))
    return out
