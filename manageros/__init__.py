# ==== MANAGEROS PACKAGE ==== #

"""
ManagerOS tolerance rules service.

Organization-configured tolerance rules are evaluated against people,
one-on-one, initiative and feedback campaign data, producing exceptions
that managers can review, acknowledge, ignore or resolve.
"""

__version__ = "0.1.0"
