# mms_proc/__init__.py
"""
MMS FGM / EDI Level Processing Toolkit

Turns fluxgate-magnetometer L1A telemetry into calibrated L1B and
despun L2 field products, and classifies EDI beam sets with the
SMT time-of-flight method.

Features:
- Two-range (hi / lo) calibration → OMB, with spin-axis (MPA) series
- OMB → SMPA → BCS rotations, per-frame output selection
- Attitude or sun-pulse despin → DMPA (GSE gap reported, never faked)
- EDI parallelism test + SMT estimator with status-coded outcomes
- Export of products into the PySPEDAS tplot store
"""

__version__ = "1.0.0"
__author__ = "MMS-MP Development Team"
__email__ = "contact@example.com"
__license__ = "MIT"

# Core modules
from . import status
from . import config
from . import times
from . import records
from . import calibration
from . import rotate
from . import despin
from . import fg_l1b
from . import fg_l2
from . import edi_methods
from . import edi
from . import tplot

# Make key functions easily accessible
from .config import ProcessingConfig, default_config
from .status import (Status, StatusCode, status_message, ProcessingError,
                     CalibrationError, DespinInputMissing,
                     InertialRotationNotImplemented, RecordSchemaError,
                     FrameSkippedWarning)
from .records import CoordFrame, InstrumentRecord, RawRecord, RecordBuilder
from .calibration import CalibrationTable, apply_calibration
from .rotate import RotationSpec, rotate_field
from .despin import AttitudeData, SunPulseData, resolve_despin, select_despin_strategy
from .fg_l1b import fg_l1b as build_l1b
from .fg_l2 import fg_l2 as build_l2, fg_process
from .edi_methods import Beams, BeamSet, BeamPartition
from .edi import edi_classify, EdiResult, EdiState

__all__ = [
    # Version info
    "__version__",
    "__author__",
    "__email__",
    "__license__",

    # Modules
    "status",
    "config",
    "times",
    "records",
    "calibration",
    "rotate",
    "despin",
    "fg_l1b",
    "fg_l2",
    "edi_methods",
    "edi",
    "tplot",

    # Key objects / functions
    "ProcessingConfig",
    "default_config",
    "Status",
    "StatusCode",
    "status_message",
    "ProcessingError",
    "CalibrationError",
    "DespinInputMissing",
    "InertialRotationNotImplemented",
    "RecordSchemaError",
    "FrameSkippedWarning",
    "CoordFrame",
    "InstrumentRecord",
    "RawRecord",
    "RecordBuilder",
    "CalibrationTable",
    "apply_calibration",
    "RotationSpec",
    "rotate_field",
    "AttitudeData",
    "SunPulseData",
    "resolve_despin",
    "select_despin_strategy",
    "build_l1b",
    "build_l2",
    "fg_process",
    "Beams",
    "BeamSet",
    "BeamPartition",
    "edi_classify",
    "EdiResult",
    "EdiState",
]
