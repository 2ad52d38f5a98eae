"""Products, residuals and printers for almost block diagonal (ABD) and
bordered almost block diagonal (BABD) matrices.

Blocks are given as NumPy arrays indexed ``[row, column]``.
"""

from __future__ import annotations

import enum
from typing import Iterable, Optional, Sequence, TextIO

import numpy as np

__all__ = [
    "MatrixType",
    "abd_mv",
    "abd_residue",
    "abd_print",
    "babd_mv",
    "babd_residue",
    "babd_print",
    "out_matrix_check",
    "out_matrix",
    "out_maple",
]


class MatrixType(enum.Enum):
    """Which part of a matrix is meaningful when it is printed."""

    FULL = 0
    UPPER_TRIANGULAR = 1
    LOWER_TRIANGULAR = 2


def _as_matrix(a, name: str) -> np.ndarray:
    arr = np.asarray(a, dtype=float)
    if arr.ndim != 2:
        raise ValueError(f"{name} must be a 2-D array, got shape {arr.shape}")
    return arr


def _as_vector(v, length: int, name: str) -> np.ndarray:
    arr = np.asarray(v, dtype=float)
    if arr.ndim != 1 or arr.shape[0] != length:
        raise ValueError(f"{name} must be a vector of length {length}, got shape {arr.shape}")
    return arr


def _fmt_num(value: float) -> str:
    """Shortest round-trip text of a number, integers without a trailing '.0'."""
    text = repr(float(value))
    if text.endswith(".0"):
        text = text[:-2]
    return text


def _abd_blocks(blocks) -> np.ndarray:
    arr = np.asarray(blocks, dtype=float)
    if arr.ndim != 3:
        if arr.size == 0:
            raise ValueError(
                "cannot infer the block size from an empty block list; "
                "pass an array of shape (0, n, 2*n)"
            )
        raise ValueError(f"blocks must have shape (nblock, n, 2*n), got {arr.shape}")
    if arr.shape[2] != 2 * arr.shape[1]:
        raise ValueError(f"blocks must have shape (nblock, n, 2*n), got {arr.shape}")
    return arr


def _babd_blocks(blocks, n: int) -> np.ndarray:
    arr = np.asarray(blocks, dtype=float)
    if arr.size == 0:
        return arr.reshape(0, n, 2 * n)
    if arr.ndim != 3 or arr.shape[1:] != (n, 2 * n):
        raise ValueError(f"blocks must have shape (nblock, {n}, {2 * n}), got {arr.shape}")
    return arr


def _write_rows(stream: TextIO, mat: np.ndarray) -> None:
    for row in mat:
        stream.write(" ".join(f"{_fmt_num(v):>8}" for v in row))
        stream.write("\n")


# ---------------------------------------------------------------------------
# ABD matrices
# ---------------------------------------------------------------------------


def abd_mv(block0, blocks, block_n, x, alpha=1.0, y=None, beta=0.0) -> np.ndarray:
    """Return ``alpha*A@x + beta*y`` for the ABD matrix ``A``.

    ``block0`` is the top block (row0 x col0), ``blocks`` the internal blocks
    of shape (nblock, n, 2n) and ``block_n`` the bottom block (rowN x colN).
    When ``y`` is None it is taken as zero.
    """
    top = _as_matrix(block0, "block0")
    bottom = _as_matrix(block_n, "block_n")
    blks = _abd_blocks(blocks)
    row0, col0 = top.shape
    num_block, dim, _ = blks.shape
    row_n, col_n = bottom.shape
    offset = col0 - dim
    if offset < 0:
        raise ValueError("block0 must have at least as many columns as the block size")

    nrows = row0 + num_block * dim + row_n
    ncols = max(col0, offset + num_block * dim + col_n)
    xv = _as_vector(x, ncols, "x")

    if y is None:
        out = np.zeros(nrows)
    else:
        out = beta * _as_vector(y, nrows, "y")

    out[:row0] += alpha * (top @ xv[:col0])
    for k, blk in enumerate(blks):
        r = row0 + k * dim
        c = offset + k * dim
        out[r:r + dim] += alpha * (blk @ xv[c:c + 2 * dim])
    r = row0 + num_block * dim
    c = offset + num_block * dim
    out[r:] += alpha * (bottom @ xv[c:c + col_n])
    return out


def abd_residue(block0, blocks, block_n, b, x) -> np.ndarray:
    """Return the residual ``b - A@x`` for the ABD matrix ``A``."""
    return abd_mv(block0, blocks, block_n, x, alpha=-1.0, y=b, beta=1.0)


def abd_print(stream: TextIO, block0, blocks, block_n) -> None:
    """Write every block of an ABD matrix to ``stream``."""
    top = _as_matrix(block0, "block0")
    bottom = _as_matrix(block_n, "block_n")
    blks = _abd_blocks(blocks)
    stream.write("Block 0\n")
    _write_rows(stream, top)
    for k, blk in enumerate(blks, start=1):
        stream.write(f"Block {k}\n")
        _write_rows(stream, blk)
    stream.write("Block N\n")
    _write_rows(stream, bottom)


# ---------------------------------------------------------------------------
# BABD matrices
# ---------------------------------------------------------------------------


def _babd_parts(blocks, h0, hn, hq):
    h0m = _as_matrix(h0, "h0")
    nq, n = h0m.shape
    q = nq - n
    if q < 0:
        raise ValueError("h0 must have at least as many rows as columns")
    hnm = _as_matrix(hn, "hn")
    if hnm.shape != (nq, n):
        raise ValueError(f"hn must have shape {(nq, n)}, got {hnm.shape}")
    if hq is None:
        hqm = np.zeros((nq, 0))
    else:
        hqm = np.asarray(hq, dtype=float)
        if hqm.size == 0:
            hqm = hqm.reshape(nq, 0)
        if hqm.ndim != 2 or hqm.shape != (nq, q):
            raise ValueError(f"hq must have shape {(nq, q)}, got {hqm.shape}")
    blks = _babd_blocks(blocks, n)
    return blks, h0m, hnm, hqm, n, q


def babd_mv(blocks, h0, hn, hq, x, alpha=1.0, y=None, beta=0.0) -> np.ndarray:
    """Return ``alpha*A@x + beta*y`` for the BABD matrix ``A``.

    ``blocks`` has shape (nblock, n, 2n); ``h0`` and ``hn`` are (n+q) x n and
    ``hq`` is (n+q) x q (None when q is zero). When ``y`` is None it is
    taken as zero.
    """
    blks, h0m, hnm, hqm, n, q = _babd_parts(blocks, h0, hn, hq)
    nblk = blks.shape[0]
    size = nblk * n + n + q
    xv = _as_vector(x, size, "x")

    if y is None:
        out = np.zeros(size)
    else:
        out = beta * _as_vector(y, size, "y")

    for k, blk in enumerate(blks):
        out[k * n:(k + 1) * n] += alpha * (blk @ xv[k * n:k * n + 2 * n])
    last = nblk * n
    out[last:] += alpha * (
        h0m @ xv[:n] + hnm @ xv[last:last + n] + hqm @ xv[last + n:]
    )
    return out


def babd_residue(blocks, h0, hn, hq, b, x) -> np.ndarray:
    """Return the residual ``b - A@x`` for the BABD matrix ``A``."""
    return babd_mv(blocks, h0, hn, hq, x, alpha=-1.0, y=b, beta=1.0)


def babd_print(stream: TextIO, blocks, h0, hn, hq) -> None:
    """Write every block of a BABD matrix to ``stream``."""
    blks, h0m, hnm, hqm, _, q = _babd_parts(blocks, h0, hn, hq)
    for k, blk in enumerate(blks, start=1):
        stream.write(f"Block {k}\n")
        _write_rows(stream, blk)
    stream.write("Block H0\n")
    _write_rows(stream, h0m)
    stream.write("Block HN\n")
    _write_rows(stream, hnm)
    if q > 0:
        stream.write("Block Hq\n")
        _write_rows(stream, hqm)


# ---------------------------------------------------------------------------
# Generic matrix printers
# ---------------------------------------------------------------------------


def out_matrix_check(matrix_type: MatrixType, i: int, j: int) -> bool:
    """Tell whether entry (i, j) belongs to the part of the matrix shown."""
    return (
        matrix_type is MatrixType.FULL
        or (matrix_type is MatrixType.LOWER_TRIANGULAR and i >= j)
        or (matrix_type is MatrixType.UPPER_TRIANGULAR and i <= j)
    )


def out_matrix(
    matrix_type: MatrixType,
    a,
    stream: TextIO,
    prec: int = 4,
    rperm: Optional[Sequence[int]] = None,
    cperm: Optional[Sequence[int]] = None,
) -> None:
    """Write matrix ``a`` to ``stream`` with ``prec`` significant digits.

    ``rperm`` and ``cperm`` are optional 1-based row and column permutations;
    entries outside the part selected by ``matrix_type`` are left blank.
    """
    mat = _as_matrix(a, "a")
    nr, nc = mat.shape
    width = prec + 6
    rows: Iterable[int] = range(nr) if rperm is None else (p - 1 for p in rperm[:nr])
    cols = list(range(nc)) if cperm is None else [p - 1 for p in cperm[:nc]]
    for i, ii in enumerate(rows):
        cells = []
        for j, jj in enumerate(cols):
            if out_matrix_check(matrix_type, i, j):
                cells.append(f"{mat[ii, jj]:>{width}.{prec}g}")
            else:
                cells.append(" " * width)
        stream.write(" ".join(cells))
        stream.write("\n")


def out_maple(a, stream: TextIO) -> None:
    """Write matrix ``a`` to ``stream`` as a column-wise Maple matrix literal."""
    mat = _as_matrix(a, "a")
    nc = mat.shape[1]
    stream.write("<")
    for j in range(nc):
        stream.write("<")
        stream.write(",".join(f"{_fmt_num(v):>20}" for v in mat[:, j]))
        stream.write(">|\n" if j < nc - 1 else ">>;\n")