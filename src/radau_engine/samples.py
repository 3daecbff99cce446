# radau_engine/src/radau_engine/samples.py
"""Reference problems for tests and demonstrations.

Each factory returns a :class:`SampleProblem` bundling the :class:`ODEProblem`,
the initial condition, a suggested end point and (when known) the analytic
solution.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import bmat, csr_matrix, diags

from .matrix_ops import build_laplacian_tridiag, kron_sum
from .problem import ODEProblem

ExactSolution = Callable[[float], NDArray[np.floating]]

_NPOINT_ERROR_MSG = "npoint must be >= 3; got {npoint}"


@dataclass(slots=True, frozen=True)
class SampleProblem:
    """Problem plus initial condition and optional analytic solution.

    Attributes:
        problem: The system.
        x0: Initial independent variable.
        y0: Initial state.
        x_end: Suggested final independent variable.
        exact: Analytic solution ``x -> y(x)``, if known.
    """

    problem: ODEProblem
    x0: float
    y0: NDArray[np.floating]
    x_end: float
    exact: ExactSolution | None = None


def exponential_decay(lam: float = 50.0, *, x_end: float = 1.0) -> SampleProblem:
    """``y' = -lam y``, ``y(0) = 1`` with constant Jacobian ``[[-lam]]``."""

    def rhs(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        return -lam * y

    problem = ODEProblem(rhs=rhs, n=1, jacobian=np.array([[-lam]]), name="exponential_decay")
    return SampleProblem(
        problem=problem,
        x0=0.0,
        y0=np.array([1.0]),
        x_end=x_end,
        exact=lambda x: np.array([np.exp(-lam * x)]),
    )


def van_der_pol(mu: float = 1000.0, *, x_end: float = 2.0) -> SampleProblem:
    """Van der Pol oscillator ``y0'' = mu (1 - y0^2) y0' - y0`` (stiff for large mu)."""

    def rhs(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.array([y[1], mu * (1.0 - y[0] ** 2) * y[1] - y[0]])

    def jac(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.array(
            [
                [0.0, 1.0],
                [-2.0 * mu * y[0] * y[1] - 1.0, mu * (1.0 - y[0] ** 2)],
            ]
        )

    problem = ODEProblem(rhs=rhs, n=2, jacobian=jac, name="van_der_pol")
    return SampleProblem(problem=problem, x0=0.0, y0=np.array([2.0, 0.0]), x_end=x_end)


def robertson(*, x_end: float = 40.0) -> SampleProblem:
    """Robertson's chemical kinetics problem (classic stiff benchmark)."""

    def rhs(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        r1 = 0.04 * y[0]
        r2 = 1.0e4 * y[1] * y[2]
        r3 = 3.0e7 * y[1] ** 2
        return np.array([-r1 + r2, r1 - r2 - r3, r3])

    def jac(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.array(
            [
                [-0.04, 1.0e4 * y[2], 1.0e4 * y[1]],
                [0.04, -1.0e4 * y[2] - 6.0e7 * y[1], -1.0e4 * y[1]],
                [0.0, 6.0e7 * y[1], 0.0],
            ]
        )

    problem = ODEProblem(rhs=rhs, n=3, jacobian=jac, name="robertson")
    return SampleProblem(problem=problem, x0=0.0, y0=np.array([1.0, 0.0, 0.0]), x_end=x_end)


def index1_dae(*, x_end: float = 3.0) -> SampleProblem:
    """Index-1 DAE with singular mass matrix ``diag(1, 0)``.

    ``y0' = y1 - y0``, ``0 = y1 - sin(x)``, ``y0(0) = -1/2``; exact solution
    ``y0 = (sin x - cos x) / 2``, ``y1 = sin x``.
    """

    def rhs(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        return np.array([y[1] - y[0], y[1] - np.sin(x)])

    jac = np.array([[-1.0, 1.0], [0.0, 1.0]])
    mass = np.diag([1.0, 0.0])

    def exact(x: float) -> NDArray[np.floating]:
        return np.array([0.5 * (np.sin(x) - np.cos(x)), np.sin(x)])

    problem = ODEProblem(rhs=rhs, n=2, jacobian=jac, mass=mass, name="index1_dae")
    return SampleProblem(problem=problem, x0=0.0, y0=exact(0.0), x_end=x_end, exact=exact)


def brusselator_pde(
    alpha: float = 2e-3,
    npoint: int = 21,
    *,
    x_end: float = 11.5,
) -> SampleProblem:
    """2-D Brusselator reaction-diffusion system on the unit square.

    ``u' = 1 + u^2 v - 4.4 u + alpha Δu``, ``v' = 3.4 u - u^2 v + alpha Δv`` with
    zero-flux boundaries, ``u(x, y, 0) = 0.5 + y`` and ``v(x, y, 0) = 1 + 5 x``.
    The state is ``[u, v]`` flattened row-major over an ``npoint x npoint`` grid;
    the Jacobian is returned as a CSR matrix.

    Raises:
        ValueError: If npoint < 3.
    """
    if npoint < 3:
        raise ValueError(_NPOINT_ERROR_MSG.format(npoint=npoint))

    m = npoint * npoint
    dx = 1.0 / (npoint - 1)
    lap_1d = build_laplacian_tridiag(npoint, dx, alpha, bc="neumann")
    lap = csr_matrix(kron_sum([lap_1d, lap_1d]))

    grid = np.linspace(0.0, 1.0, npoint)
    gy, gx = np.meshgrid(grid, grid, indexing="ij")
    u0 = (0.5 + gy).ravel()
    v0 = (1.0 + 5.0 * gx).ravel()

    def rhs(x: float, y: NDArray[np.floating]) -> NDArray[np.floating]:
        u = y[:m]
        v = y[m:]
        uuv = u * u * v
        du = 1.0 + uuv - 4.4 * u + lap @ u
        dv = 3.4 * u - uuv + lap @ v
        return np.concatenate([du, dv])

    def jac(x: float, y: NDArray[np.floating]) -> csr_matrix:
        u = y[:m]
        v = y[m:]
        uv2 = 2.0 * u * v
        uu = u * u
        blocks = [
            [lap + diags(uv2 - 4.4), diags(uu)],
            [diags(3.4 - uv2), lap - diags(uu)],
        ]
        return csr_matrix(bmat(blocks, format="csr"))

    problem = ODEProblem(rhs=rhs, n=2 * m, jacobian=jac, name="brusselator_pde")
    return SampleProblem(
        problem=problem,
        x0=0.0,
        y0=np.concatenate([u0, v0]),
        x_end=x_end,
    )
