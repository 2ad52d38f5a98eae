"""Cyclic reduction solver for bordered block bidiagonal linear systems.

The matrix structure is the one of :class:`~blockcr.bordered_matrix.BorderedMatrix`.
Pairs of consecutive block rows are combined level by level, and each
combination eliminates the block of unknowns they share. Every elimination
factors the stacked ``2n x n`` column block with LU, QR or QR with column
pivoting. The reduced system on the first and last block of unknowns,
together with the boundary rows and the border, forms the *last block*. It
is solved with one of several dense methods.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from .bordered_matrix import BorderedMatrix

__all__ = [
    "BorderedChoice",
    "LastChoice",
    "LastChoice2",
    "FactorizationError",
    "BorderedCR",
    "choice_to_string",
]


class BorderedChoice(enum.Enum):
    """Factorization used to eliminate the internal blocks."""

    LU = 0
    QR = 1
    QRP = 2


class LastChoice(enum.Enum):
    """Factorization used for the last (reduced) block."""

    LU = 0
    LUPQ = 1
    QR = 2
    QRP = 3
    SVD = 4
    LSS = 5
    LSY = 6
    PINV = 7


class LastChoice2(enum.Enum):
    """Fallback solver for the last block when the first choice fails."""

    NONE = 0
    SVD = 1
    LSS = 2
    LSY = 3
    PINV = 4


class FactorizationError(Exception):
    """Raised when the matrix cannot be factorized or is not factorized yet."""


_CHOICE_NAMES = {
    BorderedChoice.LU: "CyclicReduction+LU",
    BorderedChoice.QR: "CyclicReduction+QR",
    BorderedChoice.QRP: "CyclicReduction+QRP",
}


def choice_to_string(choice: Union[BorderedChoice, LastChoice, LastChoice2]) -> str:
    """Return a readable name for any of the solver choices."""
    if isinstance(choice, BorderedChoice):
        return _CHOICE_NAMES[choice]
    if isinstance(choice, (LastChoice, LastChoice2)):
        return f"LastBlock {choice.name}"
    raise TypeError(f"not a solver choice: {choice!r}")


# ---------------------------------------------------------------------------
# dense factorizations: each returns (T, U) with T @ A == [U; 0]
# ---------------------------------------------------------------------------


class _Singular(Exception):
    pass


def _tolerance(a: np.ndarray) -> float:
    return float(np.finfo(float).eps * max(a.shape) * np.abs(a).max(initial=0.0))


def _lu_transform(a: np.ndarray, full_pivot: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    m, n = a.shape
    if m < n:
        raise _Singular(f"matrix {m}x{n} has fewer rows than columns")
    tol = _tolerance(a)
    work = np.hstack([np.array(a, dtype=float), np.eye(m)])
    perm = np.arange(n)
    for j in range(n):
        if full_pivot:
            sub = np.abs(work[j:, j:n])
            i, q = np.unravel_index(int(np.argmax(sub)), sub.shape)
            p, q = j + int(i), j + int(q)
            if q != j:
                work[:, [j, q]] = work[:, [q, j]]
                perm[[j, q]] = perm[[q, j]]
        else:
            p = j + int(np.argmax(np.abs(work[j:, j])))
        if abs(work[p, j]) <= tol:
            raise _Singular(f"zero pivot at step {j}")
        if p != j:
            work[[j, p]] = work[[p, j]]
        factors = work[j + 1:, j] / work[j, j]
        work[j + 1:] -= np.outer(factors, work[j])
    u = np.empty((n, n))
    u[:, perm] = work[:n, :n]
    return work[:, n:], u


def _qr_transform(a: np.ndarray, pivot: bool = False) -> Tuple[np.ndarray, np.ndarray]:
    m, n = a.shape
    if m < n:
        raise _Singular(f"matrix {m}x{n} has fewer rows than columns")
    tol = _tolerance(a)
    r = np.array(a, dtype=float)
    t = np.eye(m)
    perm = np.arange(n)
    for j in range(n):
        if pivot:
            norms = np.linalg.norm(r[j:, j:], axis=0)
            q = j + int(np.argmax(norms))
            if q != j:
                r[:, [j, q]] = r[:, [q, j]]
                perm[[j, q]] = perm[[q, j]]
        v = r[j:, j].copy()
        norm = float(np.linalg.norm(v))
        if norm <= tol:
            raise _Singular(f"rank deficient at step {j}")
        alpha = -norm if v[0] >= 0 else norm
        v[0] -= alpha
        v /= np.linalg.norm(v)
        r[j:] -= 2.0 * np.outer(v, v @ r[j:])
        t[j:] -= 2.0 * np.outer(v, v @ t[j:])
    u = np.empty((n, n))
    u[:, perm] = r[:n]
    return t, u


def _factor_pair(choice: BorderedChoice, a: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    if choice is BorderedChoice.LU:
        return _lu_transform(a)
    if choice is BorderedChoice.QR:
        return _qr_transform(a)
    return _qr_transform(a, pivot=True)


@dataclass
class _LastBlock:
    t: Optional[np.ndarray] = None
    u: Optional[np.ndarray] = None
    pinv: Optional[np.ndarray] = None

    def solve(self, g: np.ndarray) -> np.ndarray:
        if self.pinv is not None:
            return self.pinv @ g
        return np.linalg.solve(self.u, self.t @ g)

    def t_solve(self, g: np.ndarray) -> np.ndarray:
        if self.pinv is not None:
            return self.pinv.T @ g
        return self.t.T @ np.linalg.solve(self.u.T, g)


def _factor_last(choice: Union[LastChoice, LastChoice2], mat: np.ndarray) -> _LastBlock:
    if choice.name in ("SVD", "LSS", "LSY", "PINV"):
        return _LastBlock(pinv=np.linalg.pinv(mat))
    rows, cols = mat.shape
    if rows != cols:
        raise _Singular(f"last block is {rows}x{cols}, not square")
    if choice is LastChoice.LU:
        t, u = _lu_transform(mat)
    elif choice is LastChoice.LUPQ:
        t, u = _lu_transform(mat, full_pivot=True)
    elif choice is LastChoice.QR:
        t, u = _qr_transform(mat)
    else:
        t, u = _qr_transform(mat, pivot=True)
    return _LastBlock(t=t, u=u)


@dataclass
class _Step:
    id1: int
    id2: int
    new_id: int
    a: int
    b: int
    c: int
    t: np.ndarray
    u: np.ndarray
    dt: np.ndarray
    et: np.ndarray
    bt: np.ndarray
    w: np.ndarray


@dataclass
class _Factorization:
    steps: List[_Step]
    final_id: Optional[int]
    last: _LastBlock
    used_fallback: bool


def _parse(enum_cls, choice, what: str, names: str):
    if isinstance(choice, enum_cls):
        return choice
    if isinstance(choice, str) and choice in enum_cls.__members__:
        return enum_cls[choice]
    raise ValueError(
        f"BorderedCR.{what}( choice='{choice}' )\n"
        f"unknown/unsupported factorization type ({names})"
    )


class BorderedCR(BorderedMatrix):
    """Bordered block bidiagonal matrix with a cyclic reduction solver."""

    def __init__(self) -> None:
        self.selected = BorderedChoice.LU
        self.last_selected = LastChoice.LU
        self.last_selected2 = LastChoice2.NONE
        self.last_error = "no error"
        self._factorization: Optional[_Factorization] = None
        super().__init__()

    def allocate(self, nblock: int, n: int, qr: int, qx: int, nr: int, nx: int) -> None:
        """Set the dimensions, reset every block and drop any factorization."""
        super().allocate(nblock, n, qr, qx, nr, nx)
        self._factorization = None

    def dup(self) -> "BorderedCR":
        """Return an independent copy, factorization and settings included."""
        return self.copy()

    # ------------------------------------------------------------------
    # choices
    # ------------------------------------------------------------------

    def select(self, choice) -> None:
        """Select the internal block factorization ('LU', 'QR', 'QRP')."""
        self.selected = _parse(BorderedChoice, choice, "select", "'LU','QR','QRP'")

    def select_last(self, choice) -> None:
        """Select the last block factorization."""
        self.last_selected = _parse(
            LastChoice, choice, "select_last",
            "'LU','LUPQ','QR','QRP','SVD','LSS','LSY','PINV'",
        )

    def select_last2(self, choice) -> None:
        """Select the fallback last block solver."""
        self.last_selected2 = _parse(
            LastChoice2, choice, "select_last2", "'NONE','SVD','LSS','LSY','PINV'"
        )

    def info_algo(self) -> str:
        """Describe the selected algorithms."""
        return "{} and {} and {}".format(
            choice_to_string(self.selected),
            choice_to_string(self.last_selected),
            choice_to_string(self.last_selected2),
        )

    def info(self, indent: str = "") -> str:
        """Describe the matrix and the solver settings."""
        lines = [
            "BorderedCR",
            f"Algorithm: {self.info_algo()}",
            f"Nr x Nc   = {self.nrows()} x {self.ncols()}",
            f"nblock    = {self.number_of_blocks}",
            f"n         = {self.block_size}",
            f"qr        = {self.qr}",
            f"qx        = {self.qx}",
            f"nr        = {self.nr}",
            f"nx        = {self.nx}",
            f"factorized: {'yes' if self._factorization is not None else 'no'}",
        ]
        return "\n".join(indent + line for line in lines)

    # ------------------------------------------------------------------
    # factorization
    # ------------------------------------------------------------------

    def _fail(self, message: str) -> None:
        self.last_error = message
        self._factorization = None
        raise FactorizationError(message)

    def factorize(self) -> None:
        """Factorize the matrix; raise :class:`FactorizationError` on failure."""
        n, nb = self.block_size, self.number_of_blocks
        nx = self.nx
        C = self.C.copy()
        F = self.F.copy()
        eqs = [(k, k, k + 1, self.D[k].copy(), self.E[k].copy(), self.B[k].copy())
               for k in range(nb)]
        steps: List[_Step] = []
        next_id = nb
        zero = np.zeros((n, n))
        while len(eqs) > 1:
            reduced = []
            for first, second in zip(eqs[0::2], eqs[1::2]):
                id1, a, b, d1, e1, b1 = first
                id2, _, c, d2, e2, b2 = second
                try:
                    t, u = _factor_pair(self.selected, np.vstack([e1, d2]))
                except _Singular as exc:
                    self._fail(f"elimination of block {b} failed: {exc}")
                rest = t @ np.vstack([np.hstack([d1, zero, b1]), np.hstack([zero, e2, b2])])
                top, bottom = rest[:n], rest[n:]
                dt, et, bt = top[:, :n], top[:, n:2 * n], top[:, 2 * n:]
                w = np.linalg.solve(u.T, C[b].T).T
                C[a] -= w @ dt
                C[c] -= w @ et
                F -= w @ bt
                C[b] = 0.0
                steps.append(_Step(id1, id2, next_id, a, b, c, t, u, dt, et, bt, w))
                reduced.append((next_id, a, c, bottom[:, :n], bottom[:, n:2 * n], bottom[:, 2 * n:]))
                next_id += 1
            if len(eqs) % 2:
                reduced.append(eqs[-1])
            eqs = reduced

        hq = self.H[:, 2 * n:2 * n + self.qx]
        hp = self.H[:, 2 * n + self.qx:]
        if nb:
            final_id, _, _, d, e, b = eqs[0]
            zq = np.zeros((n, self.qx))
            last = np.vstack([
                np.hstack([d, e, zq, b]),
                np.hstack([self.H[:, :n], self.H[:, n:2 * n], hq, hp]),
                np.hstack([C[0], C[nb], self.Cq, F]),
            ])
        else:
            final_id = None
            last = np.vstack([
                np.hstack([self.H[:, :n] + self.H[:, n:2 * n], hq, hp]),
                np.hstack([C[0], self.Cq, F]),
            ])
        assert last.shape[1] == (2 * n if nb else n) + self.qx + nx

        used_fallback = False
        try:
            block = _factor_last(self.last_selected, last)
        except _Singular as exc:
            if self.last_selected2 is LastChoice2.NONE:
                self._fail(f"last block factorization failed: {exc}")
            block = _factor_last(self.last_selected2, last)
            used_fallback = True
        self._factorization = _Factorization(steps, final_id, block, used_fallback)
        self.last_error = "no error"

    def _require(self) -> _Factorization:
        if self._factorization is None:
            raise FactorizationError("matrix is not factorized")
        return self._factorization

    @staticmethod
    def _as_rhs(rhs, length: int) -> Tuple[np.ndarray, bool]:
        arr = np.asarray(rhs, dtype=float)
        if arr.ndim == 1 and arr.shape[0] == length:
            return arr[:, None], True
        if arr.ndim == 2 and arr.shape[0] == length:
            return arr, False
        raise ValueError(f"right-hand side must have {length} rows, got shape {arr.shape}")

    # ------------------------------------------------------------------
    # solves
    # ------------------------------------------------------------------

    def solve(self, rhs) -> np.ndarray:
        """Solve ``M @ x = rhs`` for one vector or for the columns of a matrix."""
        fact = self._require()
        f, single = self._as_rhs(rhs, self.nrows())
        n, nb, qx = self.block_size, self.number_of_blocks, self.qx
        k = f.shape[1]
        row_h = nb * n
        row_c = row_h + n + self.qr
        vals = [f[i * n:(i + 1) * n] for i in range(nb)]
        border = f[row_c:].copy()
        tops = []
        for s in fact.steps:
            v = s.t @ np.vstack([vals[s.id1], vals[s.id2]])
            tops.append(v[:n])
            vals.append(v[n:])
            border -= s.w @ v[:n]
        parts = [vals[fact.final_id]] if nb else []
        y = fact.last.solve(np.vstack(parts + [f[row_h:row_c], border]))

        x = np.zeros((self.ncols(), k))
        nodes = x[:(nb + 1) * n].reshape(nb + 1, n, k)
        off = 0
        nodes[0] = y[:n]
        off = n
        if nb:
            nodes[nb] = y[n:2 * n]
            off = 2 * n
        x[(nb + 1) * n:] = y[off:]
        xb = x[(nb + 1) * n + qx:]
        for s, top in zip(reversed(fact.steps), reversed(tops)):
            nodes[s.b] = np.linalg.solve(
                s.u, top - s.dt @ nodes[s.a] - s.et @ nodes[s.c] - s.bt @ xb
            )
        return x[:, 0] if single else x

    def t_solve(self, rhs) -> np.ndarray:
        """Solve ``M.T @ y = rhs`` for one vector or for the columns of a matrix."""
        fact = self._require()
        c, single = self._as_rhs(rhs, self.ncols())
        n, nb, qx = self.block_size, self.number_of_blocks, self.qx
        k = c.shape[1]
        nodes_c = c[:(nb + 1) * n].reshape(nb + 1, n, k)
        cq = c[(nb + 1) * n:(nb + 1) * n + qx]
        cb = c[(nb + 1) * n + qx:]
        acc = np.zeros_like(nodes_c)
        acc_b = np.zeros_like(cb)
        zs = []
        for s in fact.steps:
            z = np.linalg.solve(s.u.T, nodes_c[s.b] - acc[s.b])
            zs.append(z)
            acc[s.a] += s.dt.T @ z
            acc[s.c] += s.et.T @ z
            acc_b += s.bt.T @ z
        if nb:
            g = np.vstack([nodes_c[0] - acc[0], nodes_c[nb] - acc[nb], cq, cb - acc_b])
        else:
            g = np.vstack([nodes_c[0], cq, cb])
        z_last = fact.last.t_solve(g)

        vals: List[Optional[np.ndarray]] = [None] * (nb + len(fact.steps))
        off = 0
        if nb:
            vals[fact.final_id] = z_last[:n]
            off = n
        h = z_last[off:off + n + self.qr]
        border = z_last[off + n + self.qr:]
        for s, z in zip(reversed(fact.steps), reversed(zs)):
            u = s.t.T @ np.vstack([z - s.w.T @ border, vals[s.new_id]])
            vals[s.id1] = u[:n]
            vals[s.id2] = u[n:]
        y = np.vstack(vals[:nb] + [h, border])
        return y[:, 0] if single else y