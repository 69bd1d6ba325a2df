"""
SCC Libraries

Security policy ordering and ceiling validation.
"""

from .priority import PolicyPriorityList, SecurityPolicyService, order_by_restrictiveness, restriction_points
from .validator import PolicyCeilingValidator, scc_use_rule

__all__ = [
    'PolicyPriorityList',
    'SecurityPolicyService',
    'order_by_restrictiveness',
    'restriction_points',
    'PolicyCeilingValidator',
    'scc_use_rule',
]
