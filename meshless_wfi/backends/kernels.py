"""
Cell contraction kernels: weight/basis pair integrals at quadrature points.

For every related pair (i, j) of a cell (local_basis[i, j] >= 0):

  b_w[i, j]            = sum_q c_q b_j w_i
  b_dw[i, j, d]        = sum_q c_q b_j dw_i/dx_d
  db_w[i, j, d]        = sum_q c_q db_j/dx_d w_i
  db_dw[i, j, d1, d2]  = sum_q c_q db_j/dx_d1 dw_i/dx_d2

Unrelated pairs are left at zero.  Both kernels give identical results
within round-off.
"""
import numpy as np
from numba import njit


@njit(cache=True)
def pair_integrals_jit(quad_weights, w_val, w_grad, b_val, b_grad, local_basis):
    """Numba pair contraction (explicit loops, compiled once)."""
    nq = w_val.shape[0]
    nw = w_val.shape[1]
    nb = b_val.shape[1]
    dim = w_grad.shape[2]

    b_w = np.zeros((nw, nb))
    b_dw = np.zeros((nw, nb, dim))
    db_w = np.zeros((nw, nb, dim))
    db_dw = np.zeros((nw, nb, dim, dim))

    for i in range(nw):
        for j in range(nb):
            if local_basis[i, j] < 0:
                continue
            for q in range(nq):
                c = quad_weights[q]
                b = b_val[q, j]
                w = w_val[q, i]
                b_w[i, j] += c * b * w
                for d1 in range(dim):
                    b_dw[i, j, d1] += c * b * w_grad[q, i, d1]
                    db_w[i, j, d1] += c * b_grad[q, j, d1] * w
                    for d2 in range(dim):
                        db_dw[i, j, d1, d2] += c * b_grad[q, j, d1] * w_grad[q, i, d2]

    return b_w, b_dw, db_w, db_dw


def pair_integrals_numpy(quad_weights, w_val, w_grad, b_val, b_grad, local_basis):
    """Vectorized pair contraction with numpy.einsum."""
    mask = (local_basis >= 0).astype(np.float64)
    b_w = np.einsum('q,qj,qi->ij', quad_weights, b_val, w_val) * mask
    b_dw = np.einsum('q,qj,qid->ijd', quad_weights, b_val, w_grad) * mask[:, :, None]
    db_w = np.einsum('q,qjd,qi->ijd', quad_weights, b_grad, w_val) * mask[:, :, None]
    db_dw = (np.einsum('q,qja,qib->ijab', quad_weights, b_grad, w_grad)
             * mask[:, :, None, None])
    return b_w, b_dw, db_w, db_dw


def weight_integrals(quad_weights, w_val, w_grad):
    """iv_w [nw] and iv_dw [nw, D] contributions of one cell."""
    return quad_weights @ w_val, np.einsum('q,qid->id', quad_weights, w_grad)


def get_pair_kernel(use_numba: bool):
    return pair_integrals_jit if use_numba else pair_integrals_numpy
