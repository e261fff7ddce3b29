"""Per rule type check modules used by the tolerance evaluator."""
