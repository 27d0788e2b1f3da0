"""
QR decomposition and least-squares solves.

Used by the logistic IRLS kernel (each iteration is a weighted least
squares problem) and by the design checks that need a numerical rank.
"""

from dataclasses import dataclass
from typing import Literal, Any
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_triangular

from pycure.core.exceptions import SingularMatrixError


@dataclass(frozen=True)
class QRResult:
    """
    Result of QR decomposition.

    Attributes:
        Q: Orthogonal matrix (n x k where k = min(n, p) for reduced mode)
        R: Upper triangular matrix (k x p)
        rank: Numerical rank determined from R diagonal
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    rank: int


def qr_cpu(
    X: NDArray[np.floating[Any]],
    mode: Literal['reduced', 'complete'] = 'reduced'
) -> QRResult:
    """
    QR decomposition using LAPACK (via NumPy).

    Args:
        X: Matrix to decompose (n x p)
        mode: 'reduced' for economy QR, 'complete' for full QR

    Returns:
        QRResult with Q, R, and numerical rank
    """
    Q, R = np.linalg.qr(X, mode=mode)

    # Rank from the R diagonal, relative to its largest entry
    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and np.max(diag_R) > 0:
        tol = max(X.shape) * np.finfo(X.dtype).eps * np.max(diag_R)
        rank = int(np.sum(diag_R > tol))
    else:
        rank = 0

    return QRResult(Q=Q, R=R, rank=rank)


def qr_solve_cpu(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
    matrix_name: str = 'X',
) -> tuple[NDArray[np.floating[Any]], QRResult]:
    """
    Solve least squares via QR decomposition.

    Solves min_β ||y - Xβ||² as β = R⁻¹ Q'y.

    Args:
        X: Design matrix (n x p), must have n >= p
        y: Response vector (n,)
        matrix_name: Name used in the error raised for rank deficiency

    Returns:
        (β, QRResult)

    Raises:
        SingularMatrixError: If X is rank-deficient
    """
    n, p = X.shape
    if n < p:
        raise SingularMatrixError(
            f"{matrix_name} has fewer rows ({n}) than columns ({p})",
            matrix_name=matrix_name,
            rank=n,
            expected_rank=p,
        )

    qr_result = qr_cpu(X, mode='reduced')

    if qr_result.rank < p:
        raise SingularMatrixError(
            f"{matrix_name} is rank-deficient: rank={qr_result.rank}, expected={p}. "
            f"This indicates perfect multicollinearity or a constant column.",
            matrix_name=matrix_name,
            rank=qr_result.rank,
            expected_rank=p,
        )

    Qty = qr_result.Q.T @ y
    beta = solve_triangular(qr_result.R[:p, :p], Qty[:p], lower=False)

    return beta, qr_result
