import io

import numpy as np
import pytest

from blockcr.aux import (
    MatrixType,
    abd_mv,
    abd_print,
    abd_residue,
    babd_mv,
    babd_print,
    babd_residue,
    out_maple,
    out_matrix,
    out_matrix_check,
)


def _abd_problem(rng, row0=2, dim=3, col00=1, num=4, colnn=2):
    col0 = dim + col00
    row_n = (dim - row0) + (col00 + colnn)
    col_n = dim + colnn
    top = rng.uniform(-1, 1, (row0, col0))
    blocks = rng.uniform(-1, 1, (num, dim, 2 * dim))
    bottom = rng.uniform(-1, 1, (row_n, col_n))
    return top, blocks, bottom


def _abd_dense(top, blocks, bottom):
    row0, col0 = top.shape
    num, dim, _ = blocks.shape
    row_n, col_n = bottom.shape
    offset = col0 - dim
    nrows = row0 + num * dim + row_n
    ncols = offset + num * dim + col_n
    dense = np.zeros((nrows, ncols))
    dense[:row0, :col0] = top
    for k in range(num):
        r, c = row0 + k * dim, offset + k * dim
        dense[r:r + dim, c:c + 2 * dim] = blocks[k]
    r, c = row0 + num * dim, offset + num * dim
    dense[r:, c:c + col_n] = bottom
    return dense


def _babd_problem(rng, nblk=3, n=2, q=1):
    blocks = rng.uniform(-1, 1, (nblk, n, 2 * n))
    h0 = rng.uniform(-1, 1, (n + q, n))
    hn = rng.uniform(-1, 1, (n + q, n))
    hq = rng.uniform(-1, 1, (n + q, q))
    return blocks, h0, hn, hq


def _babd_dense(blocks, h0, hn, hq):
    nblk, n, _ = blocks.shape
    q = h0.shape[0] - n
    size = nblk * n + n + q
    dense = np.zeros((size, size))
    for k in range(nblk):
        dense[k * n:(k + 1) * n, k * n:k * n + 2 * n] = blocks[k]
    last = nblk * n
    dense[last:, :n] += h0
    dense[last:, last:last + n] += hn
    dense[last:, last + n:] += hq
    return dense


def test_abd_mv_matches_dense_product():
    rng = np.random.default_rng(1)
    top, blocks, bottom = _abd_problem(rng)
    dense = _abd_dense(top, blocks, bottom)
    assert dense.shape[0] == dense.shape[1]
    x = rng.uniform(-1, 1, dense.shape[1])
    y = rng.uniform(-1, 1, dense.shape[0])
    got = abd_mv(top, blocks, bottom, x, alpha=2.0, y=y, beta=-0.5)
    np.testing.assert_allclose(got, 2.0 * dense @ x - 0.5 * y)


def test_abd_mv_without_y_is_plain_product():
    rng = np.random.default_rng(2)
    top, blocks, bottom = _abd_problem(rng)
    x = rng.uniform(-1, 1, _abd_dense(top, blocks, bottom).shape[1])
    np.testing.assert_allclose(
        abd_mv(top, blocks, bottom, x), _abd_dense(top, blocks, bottom) @ x
    )


def test_abd_residue_of_exact_rhs_is_zero():
    rng = np.random.default_rng(3)
    top, blocks, bottom = _abd_problem(rng)
    x = np.arange(1.0, _abd_dense(top, blocks, bottom).shape[1] + 1)
    b = abd_mv(top, blocks, bottom, x)
    np.testing.assert_allclose(abd_residue(top, blocks, bottom, b, x), 0.0, atol=1e-12)


def test_abd_mv_accepts_empty_typed_block_list():
    rng = np.random.default_rng(4)
    top, _, bottom = _abd_problem(rng, num=0)
    blocks = np.zeros((0, 3, 6))
    dense = _abd_dense(top, blocks, bottom)
    x = rng.uniform(-1, 1, dense.shape[1])
    np.testing.assert_allclose(abd_mv(top, blocks, bottom, x), dense @ x)


def test_abd_mv_rejects_untyped_empty_blocks():
    with pytest.raises(ValueError):
        abd_mv(np.ones((1, 2)), [], np.ones((1, 2)), np.ones(2))


def test_abd_mv_rejects_wrong_x_length():
    rng = np.random.default_rng(5)
    top, blocks, bottom = _abd_problem(rng)
    with pytest.raises(ValueError):
        abd_mv(top, blocks, bottom, np.ones(3))


def test_abd_print_layout():
    top = np.array([[1.0, 2.5], [0.0, -1.0]])
    blocks = np.ones((2, 1, 2))
    bottom = np.array([[4.0, 5.0]])
    buf = io.StringIO()
    abd_print(buf, top, blocks, bottom)
    lines = buf.getvalue().splitlines()
    assert lines[0] == "Block 0"
    assert lines[1] == f"{'1':>8} {'2.5':>8}"
    assert lines[3] == "Block 1"
    assert lines[5] == "Block 2"
    assert lines[7] == "Block N"
    assert len(lines) == 1 + 2 + 2 * (1 + 1) + 1 + 1


def test_babd_mv_matches_dense_product():
    rng = np.random.default_rng(6)
    blocks, h0, hn, hq = _babd_problem(rng)
    dense = _babd_dense(blocks, h0, hn, hq)
    x = rng.uniform(-1, 1, dense.shape[1])
    y = rng.uniform(-1, 1, dense.shape[0])
    got = babd_mv(blocks, h0, hn, hq, x, alpha=-1.5, y=y, beta=3.0)
    np.testing.assert_allclose(got, -1.5 * dense @ x + 3.0 * y)


def test_babd_mv_source_example():
    # matrix and right-hand side from the bordered interface demo
    blocks = np.array(
        [[[10, 2, 2, 3], [2, 40, 1, -1]], [[10, 2, 2, 3], [2, 40, 1, -1]]], dtype=float
    )
    h0 = np.array([[0, 1], [1, 0], [1, 2]], dtype=float)
    hn = np.array([[20, 2], [0, -10], [2, 2]], dtype=float)
    hq = np.array([[1], [1], [30]], dtype=float)
    x = np.arange(1.0, 8.0)
    np.testing.assert_allclose(
        babd_mv(blocks, h0, hn, hq, x), [32, 81, 66, 165, 121, -52, 237]
    )
    np.testing.assert_allclose(
        babd_mv(blocks, h0, hn, hq, np.ones(7)), [17, 42, 17, 42, 24, -8, 37]
    )


def test_babd_residue_zero_and_no_q():
    rng = np.random.default_rng(7)
    blocks, h0, hn, _ = _babd_problem(rng, q=0)
    x = rng.uniform(-1, 1, blocks.shape[0] * 2 + 2)
    b = babd_mv(blocks, h0, hn, None, x)
    np.testing.assert_allclose(babd_residue(blocks, h0, hn, None, b, x), 0.0, atol=1e-12)


def test_babd_mv_rejects_bad_hn_shape():
    rng = np.random.default_rng(8)
    blocks, h0, _, hq = _babd_problem(rng)
    with pytest.raises(ValueError):
        babd_mv(blocks, h0, np.ones((2, 2)), hq, np.ones(9))


def test_babd_print_sections():
    rng = np.random.default_rng(9)
    blocks, h0, hn, hq = _babd_problem(rng, nblk=2, n=2, q=1)
    buf = io.StringIO()
    babd_print(buf, blocks, h0, hn, hq)
    lines = buf.getvalue().splitlines()
    assert [ln for ln in lines if ln.startswith("Block")] == [
        "Block 1", "Block 2", "Block H0", "Block HN", "Block Hq"
    ]

    buf = io.StringIO()
    babd_print(buf, blocks, h0[:2], hn[:2], None)
    assert "Block Hq" not in buf.getvalue()


@pytest.mark.parametrize(
    "mt,i,j,expected",
    [
        (MatrixType.FULL, 0, 3, True),
        (MatrixType.LOWER_TRIANGULAR, 2, 1, True),
        (MatrixType.LOWER_TRIANGULAR, 1, 2, False),
        (MatrixType.UPPER_TRIANGULAR, 1, 2, True),
        (MatrixType.UPPER_TRIANGULAR, 2, 1, False),
        (MatrixType.UPPER_TRIANGULAR, 1, 1, True),
    ],
)
def test_out_matrix_check(mt, i, j, expected):
    assert out_matrix_check(mt, i, j) is expected


def test_out_matrix_single_value():
    buf = io.StringIO()
    out_matrix(MatrixType.FULL, np.array([[1.0]]), buf)
    assert buf.getvalue() == "         1\n"


def test_out_matrix_lower_blanks_and_permutation():
    a = np.array([[1.0, 2.0], [3.0, 4.0]])
    buf = io.StringIO()
    out_matrix(MatrixType.LOWER_TRIANGULAR, a, buf, prec=4)
    lines = buf.getvalue().splitlines()
    assert lines[0].split() == ["1"]
    assert lines[1].split() == ["3", "4"]
    assert all(len(ln) == 21 for ln in lines)

    buf = io.StringIO()
    out_matrix(MatrixType.FULL, a, buf, rperm=[2, 1], cperm=[2, 1])
    assert [ln.split() for ln in buf.getvalue().splitlines()] == [["4", "3"], ["2", "1"]]


def test_out_maple_structure():
    a = np.array([[1.0, 2.0], [3.0, 4.0]])
    buf = io.StringIO()
    out_maple(a, buf)
    text = buf.getvalue()
    assert text.startswith("<<")
    assert text.endswith(">>;\n")
    first, second = text.splitlines()
    assert first.endswith(">|")
    assert [float(v) for v in first[2:-2].split(",")] == [1.0, 3.0]
    assert [float(v) for v in second[1:-3].split(",")] == [2.0, 4.0]