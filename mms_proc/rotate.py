# mms_proc/rotate.py
# ------------------------------------------------------------
# Frame rotation primitives
# ------------------------------------------------------------
# • RotationSpec  : one fixed 3×3 matrix, or a time-indexed stack
# • rotate_field  : apply a RotationSpec to an (N, 4) field series
# • rotation_z    : rotation(s) about z (despin)
# • bcs_to_smpa / smpa_to_bcs : matrices built from the spin axis
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .records import with_magnitude
from .times import step_index, to_datetime64_ns

_X_BCS = np.array([1.0, 0.0, 0.0])


@dataclass(frozen=True, eq=False)
class RotationSpec:
    """
    matrix : (3, 3) fixed rotation, or (M, 3, 3)
    epoch  : (M,) start time of each matrix.  Without it, an (M, 3, 3)
             stack is applied sample-by-sample and M must equal N.
    """
    matrix: np.ndarray
    epoch: Optional[np.ndarray] = None

    def __post_init__(self):
        m = np.array(self.matrix, dtype=float, copy=True)
        if m.shape[-2:] != (3, 3) or m.ndim not in (2, 3):
            raise ValueError(f'rotation must be (3, 3) or (M, 3, 3), got {m.shape}')
        m.setflags(write=False)
        object.__setattr__(self, 'matrix', m)
        if self.epoch is not None:
            if m.ndim != 3:
                raise ValueError('a fixed rotation takes no epoch')
            t = to_datetime64_ns(self.epoch)
            if len(t) != len(m):
                raise ValueError(f'{len(m)} matrices but {len(t)} epochs')
            object.__setattr__(self, 'epoch', t)

    @classmethod
    def identity(cls) -> 'RotationSpec':
        return cls(np.eye(3))

    @property
    def is_fixed(self) -> bool:
        return self.matrix.ndim == 2

    def inverse(self) -> 'RotationSpec':
        return RotationSpec(np.swapaxes(self.matrix, -1, -2), self.epoch)

    def matrices_for(self, n: int, epoch: Optional[np.ndarray] = None) -> np.ndarray:
        """Per-sample (n, 3, 3) matrices."""
        if self.is_fixed:
            return np.broadcast_to(self.matrix, (n, 3, 3))
        if self.epoch is None:
            if len(self.matrix) != n:
                raise ValueError(
                    f'rotation sequence has {len(self.matrix)} matrices for {n} samples')
            return self.matrix
        if epoch is None:
            raise ValueError('time-indexed rotation needs the field epoch')
        if len(self.matrix) == 0:
            raise ValueError('time-indexed rotation is empty')
        idx = np.clip(step_index(self.epoch, epoch), 0, None)
        return self.matrix[idx]


def rotate_field(spec: RotationSpec,
                 field: np.ndarray,
                 epoch: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Rotate an (N, 3|4) field series; returns (N, 4) with |B| recomputed.
    *epoch* is only needed for time-indexed specs.
    """
    b = np.asarray(field, dtype=float)
    if b.ndim != 2 or b.shape[1] < 3:
        raise ValueError(f'field must be (N, 3) or (N, 4), got {b.shape}')
    if epoch is not None and len(epoch) != len(b):
        raise ValueError('epoch and field lengths differ')

    if spec.is_fixed:
        vec = b[:, :3] @ spec.matrix.T
    else:
        mats = spec.matrices_for(len(b), epoch)
        vec = np.einsum('nij,nj->ni', mats, b[:, :3])
    return with_magnitude(vec)


# ------------------------------------------------------------------
# Matrix builders
# ------------------------------------------------------------------
def rotation_z(angle_deg) -> np.ndarray:
    """Right-handed rotation(s) about z; scalar → (3, 3), array → (N, 3, 3)."""
    a = np.deg2rad(np.asarray(angle_deg, dtype=float))
    c, s = np.cos(a), np.sin(a)
    zero, one = np.zeros_like(a), np.ones_like(a)
    R = np.stack([np.stack([c, -s, zero], axis=-1),
                  np.stack([s,  c, zero], axis=-1),
                  np.stack([zero, zero, one], axis=-1)], axis=-2)
    return R


def bcs_to_smpa(mpa: np.ndarray) -> np.ndarray:
    """
    BCS → SMPA matrices, one per spin-axis estimate.
    Rows: x = y × z,  y = z × x̂_bcs (normalised),  z = mpa / |mpa|.
    """
    m = np.atleast_2d(np.asarray(mpa, dtype=float))
    norm = np.linalg.norm(m, axis=1, keepdims=True)
    if np.any(norm == 0) or not np.isfinite(m).all():
        raise ValueError('spin-axis estimate must be finite and non-zero')
    z = m / norm
    y = np.cross(z, _X_BCS)
    y_norm = np.linalg.norm(y, axis=1, keepdims=True)
    if np.any(y_norm < 1e-8):
        raise ValueError('spin axis parallel to BCS x – SMPA undefined')
    y = y / y_norm
    x = np.cross(y, z)
    return np.stack([x, y, z], axis=1)


def smpa_to_bcs(mpa: np.ndarray) -> np.ndarray:
    """Inverse (transpose) of :func:`bcs_to_smpa`."""
    return np.swapaxes(bcs_to_smpa(mpa), -1, -2)
