# ==== SERVICES PACKAGE ==== #

"""
Services package for tolerance rule business logic.

This package contains the rule registry, rule store, evaluator, exception
lifecycle and statistics services used by the API, the CLI and the
scheduled flow.
"""
