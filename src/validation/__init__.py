"""Export-readiness validation.

Four independent checks (pricing configuration coverage, minimum
quantities, travel distance, vehicle travel rates) merged into one ranked
issue list, plus the cost adjustments their calculated values seed.

Pure functions of their inputs: nothing here performs I/O or raises on a
business-rule violation.
"""
