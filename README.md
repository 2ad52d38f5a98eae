# blockcr

`blockcr` solves large, sparse, bordered block bidiagonal linear systems by
cyclic reduction. Systems of this kind arise when boundary value problems are
discretised by multiple shooting or collocation.

The matrix has this block layout:

```
 D E                  B
   D E                B
       ...            B
           D E        B
 H0 0 ...  0 HN Hq Hp
 C  C ...  C  C Cq F
```

There are `nblock` rows of square `n x n` blocks `D` and `E`, and `n + qr`
boundary rows `H = H0 | HN | Hq | Hp`. The border has `nr` rows (`C`, `Cq`,
`F`) and `nx` columns (`B`, `Hp`, `F`). There are `qx` extra columns
(`Hq`, `Cq`). The system has `nrows() = n*(nblock+1) + qr + nr` rows and
`ncols() = n*(nblock+1) + qx + nx` columns.

## Install

```
pip install .
```

The only dependency is NumPy.

## Use

```python
import numpy as np
from blockcr.bordered import BorderedCR

bcr = BorderedCR()
bcr.allocate(nblock=2, n=2, qr=1, qx=1, nr=0, nx=0)   # every block starts at zero
for k in range(2):
    bcr.load_DE(k, [[10, 2, 2, 3],
                    [2, 40, 1, -1]])
bcr.load_bottom([[0, 1], [1, 0], [1, 2]],        # H0
                [[20, 2], [0, -10], [2, 2]],     # HN
                [[1], [1], [30]],                # Hq
                None)                            # Hp (nx == 0)

bcr.select("LU")          # block elimination: "LU", "QR" or "QRP"
bcr.select_last("LU")     # last block: LU, LUPQ, QR, QRP, SVD, LSS, LSY, PINV
bcr.factorize()

x = bcr.solve([32, 81, 66, 165, 121, -52, 237])   # -> [1, 2, 3, 4, 5, 6, 7]
print(bcr.info())
```

`solve` and `t_solve` each accept a vector, or a 2-D array with one column
per right-hand side. `t_solve` solves with the transposed matrix.
`select_last2` chooses a fallback for the last block: `"NONE"`, `"SVD"`,
`"LSS"`, `"LSY"` or `"PINV"`. The fallback is used when the first choice
finds the last block singular or not square. Both selectors also accept the
members of `BorderedChoice`, `LastChoice` and `LastChoice2`.
`choice_to_string` and `info_algo()` describe the current selection.

`factorize` raises `FactorizationError` when a block cannot be eliminated or
the last block cannot be factored. The message is also kept in `last_error`.
`solve` and `t_solve` raise the same error when no factorization exists.
`dup()` returns an independent copy, including any factorization.

### The matrix on its own

`blockcr.bordered_matrix.BorderedMatrix` holds the blocks as NumPy arrays:
`D`, `E`, `B`, `C` (with `nblock + 1` blocks), `Cq`, `F` and `H`. You can
write to them directly or through the loaders:

- `load_B`, `add_to_B`, `load_C`, `add_to_C`, `add_to_C2`, `add_to_C2F`
- `load_D`, `load_E`, `load_DE`, `load_DEB`
- `load_F`, `add_to_F`, `load_Cq`, `load_CqF`
- `load_bottom`, `load_bottom2`

It also provides:

- `mv(x)` and `add_mv(x, res, alpha)` for matrix-vector products
- `to_dense()` for the full dense matrix
- `sparse_nnz()`, `sparse_pattern(offs)`, `sparse_values()` and
  `sparse_load(values, rows, r_offs, cols, c_offs)` for coordinate triplets
- `print_matlab_script(stream)`, which writes a MATLAB script that builds
  the matrix as a sparse `A`

`BorderedCR` is a subclass of `BorderedMatrix`.

### ABD and BABD helpers

`blockcr.aux` works on almost block diagonal (ABD) and bordered almost block
diagonal (BABD) matrices given as separate blocks:

- `abd_mv` and `babd_mv` compute products
- `abd_residue` and `babd_residue` compute residuals
- `abd_print` and `babd_print` print the blocks
- `out_matrix` prints a full or triangular matrix, with optional
  permutations; `out_matrix_check` is its test for which entries to show
- `out_maple` prints a Maple matrix literal

## Demo

```
blockcr-demo
```

The demo first solves three small systems with known solutions:

- a BABD system
- the same system with one bordering row and column
- an overdetermined system, solved with QRP and a pseudo-inverse last block

It then builds a random, diagonally dominant system and solves it for one
right-hand side and for two at once. It prints the errors against the known
solution and the residual norms. The exit status is 0 when every check
passes.

These options set the size of the random system and the random seed:
`--nblock` (default 10000), `--n` (8), `--nr` (1), `--nx` (1), `--qr` (4),
`--qx` (4) and `--seed` (2).

## What it does not do

- Factorization and solves run in a single thread. There is no thread pool
  or parallel block elimination.
- There is no C-callable interface and no registry of matrices by id. Use
  the Python classes directly.