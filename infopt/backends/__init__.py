"""
Backend implementations.

Backends translate the finite algebra of a discretized model:
- CasADi: symbolic residuals for numerical optimization
"""

from infopt.backends.base import Backend
from infopt.backends.casadi import CasadiBackend

__all__ = ["Backend", "CasadiBackend"]
