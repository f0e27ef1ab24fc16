"""
Oracle implementations for detecting database bugs.
"""

from .base_oracle import BaseOracle, SelectTarget, TargetProvider
from .composite_oracle import CompositeOracle
from .norec_oracle import NoRECOracle
from .tlp_oracle import TLPWhereOracle

__all__ = [
    'BaseOracle',
    'CompositeOracle',
    'NoRECOracle',
    'SelectTarget',
    'TargetProvider',
    'TLPWhereOracle',
]

# Oracle registry, keyed by the names accepted on the command line
ORACLE_REGISTRY = {
    'TLP_WHERE': TLPWhereOracle,
    'NOREC': NoRECOracle,
}
