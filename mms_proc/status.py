# mms_proc/status.py
# ------------------------------------------------------------
# Status codes, messages and exceptions shared by the FGM
# builders and the EDI classification engine
# ------------------------------------------------------------
# • StatusCode   : closed, graded enumeration (success < 100)
# • Status       : code + message + optional payload
# • Exceptions   : fatal conditions of the level builders
# • FrameSkippedWarning : degraded-but-valid output
# ------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional


class StatusCode(IntEnum):
    """Outcome codes of a single EDI classification attempt."""
    OK = 0
    SMT_OK = 1

    # estimator soft failures
    TOO_FEW_BEAMS = 101
    SMT_ONE_SIDED = 102
    SMT_NO_TOF_CONTRAST = 103
    SMT_BAD_TOF = 104

    # engine hard failure
    PARALLELISM_FAILED = 201

    @property
    def is_success(self) -> bool:
        return self.value < 100

    @property
    def is_hard_failure(self) -> bool:
        return self.value >= 200


DEFAULT_STATUS_MESSAGES: Dict[int, str] = {
    StatusCode.OK: 'Success',
    StatusCode.SMT_OK: 'SMT: drift step resolved from time-of-flight',
    StatusCode.TOO_FEW_BEAMS: 'Too few triangulation-eligible beams',
    StatusCode.SMT_ONE_SIDED: 'SMT: beams fired in one direction only',
    StatusCode.SMT_NO_TOF_CONTRAST: 'SMT: no time-of-flight contrast between towards and away beams',
    StatusCode.SMT_BAD_TOF: 'SMT: non-finite time-of-flight values',
    StatusCode.PARALLELISM_FAILED: 'Parallelism test failed',
}


def status_message(code: StatusCode | int,
                   messages: Optional[Mapping[int, str]] = None) -> str:
    """Human-readable message for *code* (raises ValueError if unknown)."""
    code = StatusCode(code)
    table = DEFAULT_STATUS_MESSAGES if messages is None else messages
    try:
        return table[code]
    except KeyError:
        raise ValueError(f'no status message registered for {code!r}') from None


@dataclass(frozen=True)
class Status:
    """Tagged status: one code, its message, and whatever the producer attaches."""
    code: StatusCode
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        # coerce raw ints, rejecting anything outside the enumeration
        object.__setattr__(self, 'code', StatusCode(self.code))

    @classmethod
    def from_code(cls, code: StatusCode | int,
                  messages: Optional[Mapping[int, str]] = None,
                  **payload) -> 'Status':
        return cls(StatusCode(code), status_message(code, messages), dict(payload))

    @property
    def ok(self) -> bool:
        return self.code.is_success


# ------------------------------------------------------------------
# Exceptions
# ------------------------------------------------------------------
class ProcessingError(Exception):
    """Base class for fatal level-processing failures."""


class CalibrationError(ProcessingError):
    """No calibration interval covers part of the requested data."""


class DespinInputMissing(ProcessingError):
    """Neither attitude nor sun-pulse data were supplied."""


class InertialRotationNotImplemented(ProcessingError, NotImplementedError):
    """DMPA → inertial/GSE rotation for the attitude path does not exist yet."""


class RecordSchemaError(ProcessingError, ValueError):
    """An InstrumentRecord violates its length or lineage rules."""


class FrameSkippedWarning(UserWarning):
    """A requested output frame could not be produced; output is still valid."""
