"""
Audits implemented as crawl hooks.
"""

from .csp import CspValidationHooks, CspPolicyBuilder

__all__ = ['CspValidationHooks', 'CspPolicyBuilder']
