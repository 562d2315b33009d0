"""Role catalog, policy matrices, permission contexts and the decision evaluator."""
