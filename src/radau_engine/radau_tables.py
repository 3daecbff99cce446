"""Radau IIA (3 stages, order 5) coefficients.

The 3-stage collocation system ``(I - h A ⊗ J) Z = ...`` is decoupled by the
similarity transform ``T^{-1} A^{-1} T = diag(mu_real, [[alpha, -beta], [beta, alpha]])``
into one real system ``(mu_real / h) M - J`` and one complex system
``(mu_complex / h) M - J`` of the problem's own dimension.
"""

from __future__ import annotations

import numpy as np

S6 = 6**0.5

# Collocation nodes (fractions of h).
C = np.array([(4 - S6) / 10, (4 + S6) / 10, 1.0])

# Embedded error-estimate weights applied to the stage increments.
E = np.array([-13 - 7 * S6, -13 + 7 * S6, -1]) / 3

# Eigenvalues of A^{-1}: one real and a complex conjugate pair.
MU_REAL = 3 + 3 ** (2 / 3) - 3 ** (1 / 3)
MU_COMPLEX = 3 + 0.5 * (3 ** (1 / 3) - 3 ** (2 / 3)) - 0.5j * (3 ** (5 / 6) + 3 ** (7 / 6))

# Transformation matrices to and from the eigenbasis of A^{-1}.
T = np.array(
    [
        [0.09443876248897524, -0.14125529502095421, 0.03002919410514742],
        [0.25021312296533332, 0.20412935229379994, -0.38294211275726192],
        [1.0, 1.0, 0.0],
    ]
)
TI = np.array(
    [
        [4.17871859155190428, 0.32768282076106237, 0.52337644549944951],
        [-4.17871859155190428, -0.32768282076106237, 0.47662355450055044],
        [0.50287263494578682, -2.57192694985560522, 0.59603920482822492],
    ]
)
TI_REAL = TI[0]
TI_COMPLEX = TI[1] + 1j * TI[2]

# Dense output: y(x_old + s h) = y_old + (Z^T P) @ [s, s^2, s^3].
P = np.array(
    [
        [13 / 3 + 7 * S6 / 3, -23 / 3 - 22 * S6 / 3, 10 / 3 + 5 * S6],
        [13 / 3 - 7 * S6 / 3, -23 / 3 + 22 * S6 / 3, 10 / 3 - 5 * S6],
        [1 / 3, -8 / 3, 10 / 3],
    ]
)

ORDER = 5
ERROR_ORDER = 3
NUM_STAGES = 3
