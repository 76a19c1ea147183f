"""Client for the ResourceSwap contract: preflight checks, submission and revert diagnosis."""
