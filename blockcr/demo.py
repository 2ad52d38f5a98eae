"""Worked examples and a random self-check for the cyclic reduction solver.

Running :func:`main` solves three small systems whose solutions are known:
a bordered almost block diagonal system with and without border, and a small
overdetermined system. It then checks a large random, diagonally dominant
system.
"""

from __future__ import annotations

import argparse
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .bordered import BorderedCR, FactorizationError

__all__ = ["fill_matrix", "check_random_system", "main"]

_TOLERANCE = 1e-8
_RESIDUAL_TOLERANCE = 1e-6


def _uniform(rng: np.random.Generator, low: float, high: float, shape) -> np.ndarray:
    return low + (high - low) * rng.random(shape)


def fill_matrix(
    bcr: BorderedCR,
    nblock: int,
    n: int,
    nr: int,
    nx: int,
    qr: int,
    qx: int,
    rng: np.random.Generator,
) -> None:
    """Allocate ``bcr`` and fill it with a random, diagonally dominant matrix."""
    bcr.allocate(nblock, n, qr, qx, nr, nx)
    bcr.fill_zero()
    diag = 1.01 * n

    bcr.H[...] = _uniform(rng, -1.0, 0.0, bcr.H.shape)
    ncol_h = bcr.H.shape[1]
    for i in range(min(n + qr, ncol_h - n)):
        bcr.H[i, i + n] += diag

    bcr.D[...] = _uniform(rng, -1.0, 0.0, bcr.D.shape)
    bcr.E[...] = _uniform(rng, -1.0, 0.0, bcr.E.shape)
    bcr.D += diag * np.eye(n)
    bcr.B[...] = _uniform(rng, -0.1, 0.1, bcr.B.shape)
    bcr.C[:nblock] = _uniform(rng, -0.1, 0.1, (nblock, nr, n))

    bcr.F[...] = _uniform(rng, -0.1, 0.1, bcr.F.shape)
    bcr.Cq[...] = _uniform(rng, -0.1, 0.1, bcr.Cq.shape)
    for i in range(min(nr, nx)):
        bcr.F[i, i] += diag

    bcr.C[nblock] = 1.0


def check_random_system(
    nblock: int = 10000,
    n: int = 8,
    nr: int = 1,
    nx: int = 1,
    qr: int = 4,
    qx: int = 4,
    seed: int = 2,
) -> Dict[str, float]:
    """Solve a random system with a known solution and report the errors.

    The returned dictionary holds the infinity norm and the mean absolute
    value of the error for a single right-hand side (``err_inf``,
    ``err_mean``) and for two right-hand sides solved together (``err2_inf``,
    ``err2_mean``), and the 2-, 1- and infinity norms of the residual
    (``res_2``, ``res_1``, ``res_inf``).
    Raises :class:`FactorizationError` when the matrix cannot be factorized.
    """
    bcr = BorderedCR()
    fill_matrix(bcr, nblock, n, nr, nx, qr, qx, np.random.default_rng(seed))
    bcr.select("LU")
    bcr.select_last("LU")

    ncols = bcr.ncols()
    xref = 1.0 + (np.arange(ncols) % 100)
    rhs = bcr.mv(xref)
    saved = bcr.dup()

    bcr.factorize()

    x = bcr.solve(rhs)
    err = np.abs(xref - x)

    x2 = bcr.solve(np.column_stack([rhs, rhs]))
    err2 = np.abs(xref[:, None] - x2)

    resid = saved.add_mv(x, -rhs)
    return {
        "err_inf": float(err.max(initial=0.0)),
        "err_mean": float(err.mean()) if err.size else 0.0,
        "err2_inf": float(err2.max(initial=0.0)),
        "err2_mean": float(err2.mean()) if err2.size else 0.0,
        "res_2": float(np.linalg.norm(resid)),
        "res_1": float(np.abs(resid).sum()),
        "res_inf": float(np.abs(resid).max(initial=0.0)),
    }


# ---------------------------------------------------------------------------
# fixed examples
# ---------------------------------------------------------------------------

_DE = [[10.0, 2.0, 2.0, 3.0],
       [2.0, 40.0, 1.0, -1.0]]
_H0 = [[0.0, 1.0], [1.0, 0.0], [1.0, 2.0]]
_HN = [[20.0, 2.0], [0.0, -10.0], [2.0, 2.0]]
_HQ = [[1.0], [1.0], [30.0]]


def _babd_example(bordered: bool) -> Tuple[BorderedCR, np.ndarray, np.ndarray]:
    """A 7x7 BABD system, optionally with one bordering row and column."""
    bcr = BorderedCR()
    if bordered:
        bcr.allocate(2, 2, 1, 1, 1, 1)
    else:
        bcr.allocate(2, 2, 1, 1, 0, 0)
    for k in range(2):
        bcr.load_DE(k, _DE)
    if bordered:
        for k in range(2):
            bcr.load_B(k, np.ones((2, 1)))
            bcr.load_C(k, [[1.0, -1.0]])
        bcr.load_C(2, [[1.0, -1.0]])
        bcr.load_Cq([[1.0]])
        bcr.load_F([[-1.0]])
        bcr.load_bottom(_H0, _HN, _HQ, np.ones((3, 1)))
        rhs = np.array([32, 81, 66, 165, 121, -52, 237, 4], dtype=float)
        expected = np.array([1, 2, 3, 4, 5, 6, 7, 0], dtype=float)
    else:
        bcr.load_bottom(_H0, _HN, _HQ, None)
        rhs = np.array([32, 81, 66, 165, 121, -52, 237], dtype=float)
        expected = np.arange(1, 8, dtype=float)
    bcr.select("LU")
    bcr.select_last("LU")
    return bcr, rhs, expected


def _overdetermined_example() -> Tuple[BorderedCR, np.ndarray, np.ndarray]:
    """A consistent 7x6 system solved with QRP and a pseudo-inverse last block."""
    bcr = BorderedCR()
    bcr.allocate(2, 2, 1, 0, 0, 0)
    bcr.load_D(0, [[1.0, 2.0], [3.0, 3.0]])
    bcr.load_E(0, [[4.0, 2.0], [3.0, 3.0]])
    bcr.load_D(1, [[4.0, 0.0], [3.0, 3.0]])
    bcr.load_E(1, [[0.0, 1.0], [-1.0, 3.0]])
    bcr.load_bottom([[1.0, 1.0, 2.0, -1.0],
                     [1.0, 0.0, 1.0, 1.0],
                     [0.0, -1.0, -3.0, -1.0]])
    bcr.select("QRP")
    bcr.select_last("PINV")
    expected = np.arange(1, bcr.ncols() + 1, dtype=float)
    return bcr, bcr.mv(expected), expected


def _fmt(value: float) -> str:
    return f"{round(float(value), 6) + 0.0:f}"


def _run_example(title: str, bcr: BorderedCR, rhs: np.ndarray, expected: np.ndarray) -> bool:
    print(title)
    for i, v in enumerate(rhs):
        print(f"rhs[{i}] = {_fmt(v)}")
    bcr.factorize()
    x = bcr.solve(rhs)
    for i, v in enumerate(x):
        print(f"x[{i}] = {_fmt(v)}")
    err = float(np.abs(x - expected).max(initial=0.0))
    print(f"Check |err|_inf = {err:.5g}\n")
    return err < _TOLERANCE


def _non_negative(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text!r}") from None
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be non-negative: {value}")
    return value


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="blockcr-demo",
        description="Solve example bordered block systems and check a random one.",
    )
    parser.add_argument("--nblock", type=_non_negative, default=10000)
    parser.add_argument("--n", type=_non_negative, default=8)
    parser.add_argument("--nr", type=_non_negative, default=1)
    parser.add_argument("--nx", type=_non_negative, default=1)
    parser.add_argument("--qr", type=_non_negative, default=4)
    parser.add_argument("--qx", type=_non_negative, default=4)
    parser.add_argument("--seed", type=_non_negative, default=2)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the examples and the random check; return 0 when all pass."""
    args = _parser().parse_args(argv)
    results: List[bool] = []
    try:
        results.append(_run_example("BABD example", *_babd_example(False)))
        results.append(_run_example("Bordered BABD example", *_babd_example(True)))
        results.append(_run_example("Overdetermined example", *_overdetermined_example()))

        print(
            f"Random system: nblock = {args.nblock} n = {args.n} nr = {args.nr} "
            f"nx = {args.nx} qr = {args.qr} qx = {args.qx}"
        )
        report = check_random_system(
            args.nblock, args.n, args.nr, args.nx, args.qr, args.qx, args.seed
        )
    except FactorizationError as exc:
        print(f"Error: {exc}")
        return 1

    for key, value in report.items():
        print(f"{key:<9} = {value:.5g}")
    results.append(all(report[k] < _TOLERANCE for k in ("err_inf", "err_mean", "err2_inf", "err2_mean")))
    results.append(all(report[k] < _RESIDUAL_TOLERANCE for k in ("res_2", "res_1", "res_inf")))

    if all(results):
        print("All done!")
        return 0
    print("test failed!")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())