"""Fixed-point and sentinel constants shared across the package."""

WAD = 10**18  # 1.0 in 18-decimal fixed point (ratios, prices, leverage)
MAX_BPS = 10_000  # 100.00%

# Saturated leverage and "unbounded" withdraw limit
MAX_UINT256 = 2**256 - 1

# Smallest non-zero leverage buffer accepted by the parameter validator (0.01x)
MIN_LEVERAGE_BUFFER = 10**16
