# MIT License
# Copyright (c) 2025 Hashborn

"""
stakehub: liquid-staking hub accounting engine.

Bonds native stake into a receipt token, unbonds it in batches, and steers
delegations toward validators by proof-of-work mining power.
"""

__version__ = "0.1.0"
