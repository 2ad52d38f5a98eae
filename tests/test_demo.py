import numpy as np
import pytest

from blockcr.bordered import BorderedCR, FactorizationError
from blockcr.demo import check_random_system, fill_matrix, main


def _filled(seed=0, nblock=4, n=3, nr=1, nx=1, qr=4, qx=4):
    bcr = BorderedCR()
    fill_matrix(bcr, nblock, n, nr, nx, qr, qx, np.random.default_rng(seed))
    return bcr


def test_fill_matrix_dimensions():
    bcr = _filled(nblock=4, n=3, nr=1, nx=1, qr=4, qx=4)
    assert bcr.nrows() == 5 * 3 + 4 + 1
    assert bcr.ncols() == 5 * 3 + 4 + 1
    assert bcr.D.shape == (4, 3, 3)
    assert bcr.C.shape == (5, 1, 3)
    assert bcr.H.shape == (7, 11)


def test_fill_matrix_ranges_and_last_border_block():
    nblock, n, nr, nx, qr, qx = 4, 3, 1, 1, 4, 4
    bcr = _filled(nblock=nblock, n=n, nr=nr, nx=nx, qr=qr, qx=qx)
    dense = bcr.to_dense()
    assert dense.shape == (n * (nblock + 1) + qr + nr, n * (nblock + 1) + qx + nx)

    x = np.zeros(bcr.ncols())
    x[n * nblock : n * (nblock + 1)] = 1.0
    y = bcr.mv(x)
    np.testing.assert_allclose(y[-nr:], np.full(nr, float(n)))

    border_b = dense[: n * nblock, -nx:]
    assert np.all(np.abs(border_b) <= 0.1)
    border_c = dense[-nr:, : n * nblock]
    assert np.all(np.abs(border_c) <= 0.1)
    cq = dense[-nr:, n * (nblock + 1) : n * (nblock + 1) + qx]
    assert np.all(np.abs(cq) <= 0.1)
    e_block = dense[:n, n : 2 * n]
    assert np.all((e_block >= -1.0) & (e_block <= 0.0))


def test_fill_matrix_diagonal_dominance():
    n = 3
    bcr = _filled(n=n)
    diag = 1.01 * n
    for k in range(bcr.number_of_blocks):
        assert np.all(np.diag(bcr.D[k]) >= diag - 1.0)
    for i in range(n + bcr.qr):
        assert bcr.H[i, i + n] >= diag - 1.0
    assert bcr.F[0, 0] >= diag - 0.1


def test_fill_matrix_is_deterministic_for_a_seed():
    a = _filled(seed=5)
    b = _filled(seed=5)
    np.testing.assert_array_equal(a.to_dense(), b.to_dense())
    c = _filled(seed=6)
    assert not np.array_equal(a.to_dense(), c.to_dense())


def test_fill_matrix_with_more_rows_than_boundary_columns():
    bcr = BorderedCR()
    fill_matrix(bcr, 2, 2, 0, 0, 3, 0, np.random.default_rng(1))
    assert bcr.H.shape == (5, 4)
    assert bcr.H[0, 2] > 1.0
    assert np.all(bcr.H[2:] <= 0.0)


@pytest.mark.parametrize("nblock", [1, 2, 5, 8])
def test_check_random_system_recovers_solution(nblock):
    report = check_random_system(nblock, 3, 1, 1, 2, 2, seed=2)
    assert report["err_inf"] < 1e-8
    assert report["err_mean"] < 1e-8
    assert report["err2_inf"] < 1e-8
    assert report["res_inf"] < 1e-6
    assert report["res_1"] >= report["res_inf"]


def test_check_random_system_source_shape_small():
    report = check_random_system(30, 8, 1, 1, 4, 4, seed=2)
    assert report["err_inf"] < 1e-8
    assert report["res_2"] < 1e-6


def test_check_random_system_non_square_last_block_fails_with_lu():
    with pytest.raises(FactorizationError):
        check_random_system(3, 2, 0, 0, 2, 1, seed=2)


def test_main_solves_examples(capsys):
    assert main(["--nblock", "12", "--n", "3", "--qr", "2", "--qx", "2"]) == 0
    out = capsys.readouterr().out
    assert "x[6] = 7.000000" in out
    assert "x[7] = 0.000000" in out
    assert "x[5] = 6.000000" in out
    assert "All done!" in out


def test_main_rejects_negative_size():
    with pytest.raises(SystemExit):
        main(["--n", "-1"])


def test_main_reports_factorization_failure(capsys):
    assert main(["--nblock", "3", "--n", "2", "--nr", "0", "--nx", "0", "--qr", "2", "--qx", "1"]) == 1
    assert "Error:" in capsys.readouterr().out