# ==== BUSINESS LOGIC PACKAGE ==== #

"""
Business logic package for domain vocabulary and policies.

This package contains the tolerance rule and exception enumerations,
domain errors and the default tolerance policy templates.
"""
