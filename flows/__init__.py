# ==== PREFECT FLOWS PACKAGE ==== #

"""
Prefect flows for ManagerOS.

- tolerance_check_flow: scheduled evaluation of every organization's
  enabled tolerance rules
"""

from .tolerance_check_flow import tolerance_check_flow

__all__ = [
    "tolerance_check_flow"
]
