"""Clinical decision rules for the mother-child health (MCH-CS) program.

This package contains the rule logic and domain models, isolated from
record storage and dictionary lookups so it can be tested in isolation.
"""
