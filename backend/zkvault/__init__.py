"""
zkVault — privacy-preserving, over-collateralized stable-value vault.

Depositors lock a fixed unit of collateral behind a commitment and later
borrow ZkUSD against it, or redeem it, by proving in zero knowledge that
they own one of the commitments in the accumulator.
"""

__version__ = "0.1.0"
