"""Storage, products and sparse views of a bordered block bidiagonal matrix.

The matrix layout is::

      n   n   n                              n  qx  nx
    +---+---+---+----.................-----+---+---+---+
    | D | E |   |                          |   |   | B |  n
    +---+---+---+                     -----+---+---+---+
    |   | D | E |                          |   |   | B |  n
    :                                                  :
    :                                  | D | E |   | B |  n
    +---+---+---................---+---+---+---+---+---+
    |H0 | 0 |                          | 0 |HN | Hq| Hp|  n+qr
    +---+---+---................---+---+---+---+---+---+
    | C | C |                      | C | C | C | Cq| F |  nr
    +---+---+---................---+---+---+---+---+---+

There are ``nblock`` rows of ``D``/``E``/``B`` blocks and ``nblock+1``
``C`` blocks. ``H`` holds ``H0 | HN | Hq | Hp`` side by side.
"""

from __future__ import annotations

import copy as _copy
from typing import Iterator, Optional, TextIO, Tuple

import numpy as np

__all__ = ["BorderedMatrix"]


def _fmt(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


class BorderedMatrix:
    """A bordered block bidiagonal matrix kept block by block.

    The blocks are exposed as NumPy arrays: ``D[k, i, j]``, ``E[k, i, j]``,
    ``B[k, i, j]``, ``C[k, i, j]``, ``Cq[i, j]``, ``F[i, j]`` and ``H[i, j]``.
    """

    def __init__(self) -> None:
        self.allocate(0, 0, 0, 0, 0, 0)

    # ------------------------------------------------------------------
    # allocation and sizes
    # ------------------------------------------------------------------

    def allocate(self, nblock: int, n: int, qr: int, qx: int, nr: int, nx: int) -> None:
        """Set the dimensions and reset every block to zero."""
        dims = {"nblock": nblock, "n": n, "qr": qr, "qx": qx, "nr": nr, "nx": nx}
        for name, value in dims.items():
            if int(value) != value or value < 0:
                raise ValueError(f"{name} must be a non-negative integer, got {value!r}")
        self.number_of_blocks = int(nblock)
        self.block_size = int(n)
        self.qr = int(qr)
        self.qx = int(qx)
        self.nr = int(nr)
        self.nx = int(nx)
        nb, n = self.number_of_blocks, self.block_size
        self.D = np.zeros((nb, n, n))
        self.E = np.zeros((nb, n, n))
        self.B = np.zeros((nb, n, self.nx))
        self.C = np.zeros((nb + 1, self.nr, n))
        self.Cq = np.zeros((self.nr, self.qx))
        self.F = np.zeros((self.nr, self.nx))
        self.H = np.zeros((n + self.qr, 2 * n + self.qx + self.nx))

    def copy(self) -> "BorderedMatrix":
        """Return an independent copy of this matrix."""
        return _copy.deepcopy(self)

    def nrows(self) -> int:
        """Number of rows of the linear system."""
        return self.block_size * (self.number_of_blocks + 1) + self.qr + self.nr

    def ncols(self) -> int:
        """Number of columns of the linear system."""
        return self.block_size * (self.number_of_blocks + 1) + self.qx + self.nx

    def fill_zero(self) -> None:
        """Set every block to zero."""
        for arr in (self.B, self.C, self.Cq, self.D, self.E, self.F, self.H):
            arr.fill(0.0)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _block(value, shape: Tuple[int, int], name: str) -> np.ndarray:
        if value is None:
            if 0 in shape:
                return np.zeros(shape)
            raise ValueError(f"{name} is required with shape {shape}")
        arr = np.asarray(value, dtype=float)
        if arr.size == 0 and 0 in shape:
            return np.zeros(shape)
        if arr.shape != shape:
            raise ValueError(f"{name} must have shape {shape}, got {arr.shape}")
        return arr

    def _check_nbl(self, nbl: int, limit: int, name: str) -> None:
        if not 0 <= nbl < limit:
            raise IndexError(f"{name} block index {nbl} out of range [0, {limit})")

    # ------------------------------------------------------------------
    # B
    # ------------------------------------------------------------------

    def load_B(self, nbl: int, block) -> None:
        """Set the border block ``B`` of block row ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks, "B")
        self.B[nbl] = self._block(block, self.B.shape[1:], "B")

    def add_to_B(self, nbl: int, block) -> None:
        """Add to the border block ``B`` of block row ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks, "B")
        self.B[nbl] += self._block(block, self.B.shape[1:], "B")

    # ------------------------------------------------------------------
    # C
    # ------------------------------------------------------------------

    def load_C(self, nbl: int, block) -> None:
        """Set the bottom border block ``C`` of block column ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks + 1, "C")
        self.C[nbl] = self._block(block, self.C.shape[1:], "C")

    def add_to_C(self, nbl: int, block) -> None:
        """Add to the bottom border block ``C`` of block column ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks + 1, "C")
        self.C[nbl] += self._block(block, self.C.shape[1:], "C")

    def add_to_C2(self, nbl: int, block) -> None:
        """Add an ``nr x 2n`` block to ``C[nbl]`` and ``C[nbl+1]``."""
        self._check_nbl(nbl, self.number_of_blocks, "C2")
        n = self.block_size
        arr = self._block(block, (self.nr, 2 * n), "C2")
        self.C[nbl] += arr[:, :n]
        self.C[nbl + 1] += arr[:, n:]

    def add_to_C2F(self, nbl: int, block) -> None:
        """Add an ``nr x (2n+nx)`` block to ``C[nbl]``, ``C[nbl+1]`` and ``F``."""
        self._check_nbl(nbl, self.number_of_blocks, "C2F")
        n = self.block_size
        arr = self._block(block, (self.nr, 2 * n + self.nx), "C2F")
        self.C[nbl] += arr[:, :n]
        self.C[nbl + 1] += arr[:, n:2 * n]
        self.F += arr[:, 2 * n:]

    # ------------------------------------------------------------------
    # D and E
    # ------------------------------------------------------------------

    def load_D(self, nbl: int, block) -> None:
        """Set the diagonal block ``D`` of block row ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks, "D")
        self.D[nbl] = self._block(block, self.D.shape[1:], "D")

    def load_E(self, nbl: int, block) -> None:
        """Set the upper block ``E`` of block row ``nbl``."""
        self._check_nbl(nbl, self.number_of_blocks, "E")
        self.E[nbl] = self._block(block, self.E.shape[1:], "E")

    def load_DE(self, nbl: int, block) -> None:
        """Set ``D`` and ``E`` of block row ``nbl`` from one ``n x 2n`` block."""
        self._check_nbl(nbl, self.number_of_blocks, "DE")
        n = self.block_size
        arr = self._block(block, (n, 2 * n), "DE")
        self.D[nbl] = arr[:, :n]
        self.E[nbl] = arr[:, n:]

    def load_DEB(self, nbl: int, block) -> None:
        """Set ``D``, ``E`` and ``B`` of block row ``nbl`` from one ``n x (2n+nx)`` block."""
        self._check_nbl(nbl, self.number_of_blocks, "DEB")
        n = self.block_size
        arr = self._block(block, (n, 2 * n + self.nx), "DEB")
        self.D[nbl] = arr[:, :n]
        self.E[nbl] = arr[:, n:2 * n]
        self.B[nbl] = arr[:, 2 * n:]

    # ------------------------------------------------------------------
    # F and Cq
    # ------------------------------------------------------------------

    def load_F(self, block) -> None:
        """Set the corner block ``F``."""
        self.F[...] = self._block(block, self.F.shape, "F")

    def add_to_F(self, block) -> None:
        """Add to the corner block ``F``."""
        self.F += self._block(block, self.F.shape, "F")

    def load_Cq(self, block) -> None:
        """Set the block ``Cq``."""
        self.Cq[...] = self._block(block, self.Cq.shape, "Cq")

    def load_CqF(self, block) -> None:
        """Set ``Cq`` and ``F`` from one ``nr x (qx+nx)`` block."""
        arr = self._block(block, (self.nr, self.qx + self.nx), "CqF")
        self.Cq[...] = arr[:, :self.qx]
        self.F[...] = arr[:, self.qx:]

    # ------------------------------------------------------------------
    # bottom rows
    # ------------------------------------------------------------------

    def load_bottom(self, h0, hn=None, hq=None, hp=None) -> None:
        """Set the boundary rows ``H0 | HN | Hq | Hp``.

        With ``hn`` omitted, ``h0`` is taken as the whole ``(n+qr) x (2n+qx+nx)``
        block.
        """
        if hn is None and hq is None and hp is None:
            self.H[...] = self._block(h0, self.H.shape, "H")
            return
        n, rows = self.block_size, self.block_size + self.qr
        self.H[:, :n] = self._block(h0, (rows, n), "H0")
        self.H[:, n:2 * n] = self._block(hn, (rows, n), "HN")
        self.H[:, 2 * n:2 * n + self.qx] = self._block(hq, (rows, self.qx), "Hq")
        self.H[:, 2 * n + self.qx:] = self._block(hp, (rows, self.nx), "Hp")

    def load_bottom2(self, c0, cn=None, cq=None, f=None) -> None:
        """Set the border rows ``C0 | CN | Cq | F``.

        With ``cn`` omitted, ``c0`` is taken as the whole ``nr x (2n+qx+nx)``
        block.
        """
        n, nr, nb = self.block_size, self.nr, self.number_of_blocks
        if cn is None and cq is None and f is None:
            arr = self._block(c0, (nr, 2 * n + self.qx + self.nx), "bottom2")
            c0, cn = arr[:, :n], arr[:, n:2 * n]
            cq, f = arr[:, 2 * n:2 * n + self.qx], arr[:, 2 * n + self.qx:]
        self.C[0] = self._block(c0, (nr, n), "C0")
        self.C[nb] = self._block(cn, (nr, n), "CN")
        self.Cq[...] = self._block(cq, (nr, self.qx), "Cq")
        self.F[...] = self._block(f, (nr, self.nx), "F")

    # ------------------------------------------------------------------
    # dense view and products
    # ------------------------------------------------------------------

    def _blocks(self) -> Iterator[Tuple[np.ndarray, int, int]]:
        """Yield every stored block with the row and column of its corner."""
        n, nb = self.block_size, self.number_of_blocks
        col_b = (nb + 1) * n + self.qx
        for k in range(nb):
            yield self.D[k], k * n, k * n
            yield self.E[k], k * n, (k + 1) * n
            yield self.B[k], k * n, col_b
        row_h = nb * n
        yield self.H[:, :n], row_h, 0
        yield self.H[:, n:2 * n], row_h, nb * n
        yield self.H[:, 2 * n:], row_h, (nb + 1) * n
        row_c = row_h + n + self.qr
        for k in range(nb + 1):
            yield self.C[k], row_c, k * n
        yield self.Cq, row_c, (nb + 1) * n
        yield self.F, row_c, col_b

    def to_dense(self) -> np.ndarray:
        """Return the whole matrix as a dense array."""
        mat = np.zeros((self.nrows(), self.ncols()))
        for blk, r, c in self._blocks():
            rows, cols = blk.shape
            mat[r:r + rows, c:c + cols] += blk
        return mat

    def mv(self, x) -> np.ndarray:
        """Return the product ``M @ x``."""
        n, nb = self.block_size, self.number_of_blocks
        xv = np.asarray(x, dtype=float)
        if xv.shape != (self.ncols(),):
            raise ValueError(f"x must be a vector of length {self.ncols()}, got shape {xv.shape}")
        xs = xv[:(nb + 1) * n].reshape(nb + 1, n)
        xq = xv[(nb + 1) * n:(nb + 1) * n + self.qx]
        xb = xv[(nb + 1) * n + self.qx:]
        top = (
            np.einsum("kij,kj->ki", self.D, xs[:-1])
            + np.einsum("kij,kj->ki", self.E, xs[1:])
            + np.einsum("kij,j->ki", self.B, xb)
        )
        mid = (
            self.H[:, :n] @ xs[0]
            + self.H[:, n:2 * n] @ xs[nb]
            + self.H[:, 2 * n:2 * n + self.qx] @ xq
            + self.H[:, 2 * n + self.qx:] @ xb
        )
        bottom = np.einsum("kij,kj->i", self.C, xs) + self.Cq @ xq + self.F @ xb
        return np.concatenate([top.reshape(-1), mid, bottom])

    def add_mv(self, x, res, alpha: float = 1.0) -> np.ndarray:
        """Return ``res + alpha * M @ x``."""
        rv = np.asarray(res, dtype=float)
        if rv.shape != (self.nrows(),):
            raise ValueError(f"res must be a vector of length {self.nrows()}, got shape {rv.shape}")
        return rv + alpha * self.mv(x)

    # ------------------------------------------------------------------
    # sparse view
    # ------------------------------------------------------------------

    def sparse_nnz(self) -> int:
        """Number of entries stored in the block structure."""
        nb, n = self.number_of_blocks, self.block_size
        nr, nx, qr, qx = self.nr, self.nx, self.qr, self.qx
        return n * nb * (2 * n + nx + nr) + nr * (n + qx + nx) + (n + qr) * (2 * n + qx + nx)

    def sparse_pattern(self, offs: int = 0) -> Tuple[np.ndarray, np.ndarray]:
        """Return row and column indices of every stored entry, shifted by ``offs``."""
        rows, cols = [], []
        for blk, r, c in self._blocks():
            ii, jj = np.meshgrid(
                np.arange(blk.shape[0]) + r, np.arange(blk.shape[1]) + c, indexing="ij"
            )
            rows.append(ii.ravel())
            cols.append(jj.ravel())
        return (
            np.concatenate(rows).astype(int) + offs,
            np.concatenate(cols).astype(int) + offs,
        )

    def sparse_values(self) -> np.ndarray:
        """Return the stored entries in the order of :meth:`sparse_pattern`."""
        return np.concatenate([blk.ravel() for blk, _, _ in self._blocks()])

    def _locate(self, i: int, j: int) -> Optional[Tuple[np.ndarray, tuple]]:
        n, nb = self.block_size, self.number_of_blocks
        row_h = nb * n
        row_c = row_h + n + self.qr
        col_q = (nb + 1) * n
        col_b = col_q + self.qx
        if i < 0 or j < 0 or i >= self.nrows() or j >= self.ncols():
            return None
        if i < row_h:
            k, ii = divmod(i, n)
            if k * n <= j < (k + 1) * n:
                return self.D, (k, ii, j - k * n)
            if (k + 1) * n <= j < (k + 2) * n:
                return self.E, (k, ii, j - (k + 1) * n)
            if j >= col_b:
                return self.B, (k, ii, j - col_b)
            return None
        if i < row_c:
            ii = i - row_h
            if j < n:
                return self.H, (ii, j)
            if row_h <= j < col_q:
                return self.H, (ii, n + j - row_h)
            if j >= col_q:
                return self.H, (ii, 2 * n + j - col_q)
            return None
        ii = i - row_c
        if j < col_q:
            k, jj = divmod(j, n)
            return self.C, (k, ii, jj)
        if j < col_b:
            return self.Cq, (ii, j - col_q)
        return self.F, (ii, j - col_b)

    def sparse_load(self, values, rows, r_offs: int, cols, c_offs: int) -> None:
        """Reset the matrix and load it from coordinate triplets.

        Repeated coordinates are summed. An entry outside the block
        structure raises :class:`ValueError`.
        """
        vals = np.asarray(values, dtype=float).ravel()
        ri = np.asarray(rows, dtype=int).ravel() - r_offs
        ci = np.asarray(cols, dtype=int).ravel() - c_offs
        if not (vals.shape == ri.shape == ci.shape):
            raise ValueError("values, rows and cols must have the same length")
        self.fill_zero()
        for v, i, j in zip(vals, ri, ci):
            where = self._locate(int(i), int(j))
            if where is None:
                raise ValueError(
                    f"entry ({int(i) + r_offs}, {int(j) + c_offs}) lies outside the block structure"
                )
            arr, idx = where
            arr[idx] += v

    # ------------------------------------------------------------------
    # output
    # ------------------------------------------------------------------

    def print_matlab_script(self, stream: TextIO) -> None:
        """Write a MATLAB script that builds the matrix as a sparse ``A``."""
        rows, cols = self.sparse_pattern(offs=1)
        vals = self.sparse_values()
        stream.write(f"Nr = {self.nrows()};\n")
        stream.write(f"Nc = {self.ncols()};\n")
        stream.write("I = [" + " ".join(str(int(v)) for v in rows) + "];\n")
        stream.write("J = [" + " ".join(str(int(v)) for v in cols) + "];\n")
        stream.write("V = [" + " ".join(_fmt(v) for v in vals) + "];\n")
        stream.write("A = sparse( I, J, V, Nr, Nc );\n")