"""Seed prices and per-symbol parameters for the price simulator."""

# Starting prices for symbols the simulator recognizes. Anything else is
# reported as an invalid symbol unless the simulator allows unknown symbols.
SEED_PRICES: dict[str, float] = {
    # Crypto pairs
    "BTCUSD": 42000.00,
    "ETHUSD": 2500.00,
    "SOLUSD": 100.00,
    "BNBUSD": 310.00,
    "XRPUSD": 0.62,
    "ADAUSD": 0.55,
    "DOGEUSD": 0.085,
    "BTCUSDT": 42000.00,
    "ETHUSDT": 2500.00,
    # Stocks
    "AAPL": 190.00,
    "GOOGL": 175.00,
    "MSFT": 420.00,
    "AMZN": 185.00,
    "TSLA": 250.00,
    "NVDA": 800.00,
    "META": 500.00,
    "JPM": 195.00,
    "V": 280.00,
    "NFLX": 600.00,
}

# Per-symbol GBM parameters
# sigma: annualized volatility (higher = more price movement)
# mu: annualized drift / expected return
SYMBOL_PARAMS: dict[str, dict[str, float]] = {
    "BTCUSD": {"sigma": 0.60, "mu": 0.10},
    "ETHUSD": {"sigma": 0.75, "mu": 0.10},
    "SOLUSD": {"sigma": 0.95, "mu": 0.10},
    "BNBUSD": {"sigma": 0.70, "mu": 0.08},
    "XRPUSD": {"sigma": 0.85, "mu": 0.05},
    "ADAUSD": {"sigma": 0.85, "mu": 0.05},
    "DOGEUSD": {"sigma": 1.10, "mu": 0.05},  # Meme coin, very noisy
    "BTCUSDT": {"sigma": 0.60, "mu": 0.10},
    "ETHUSDT": {"sigma": 0.75, "mu": 0.10},
    "AAPL": {"sigma": 0.22, "mu": 0.05},
    "GOOGL": {"sigma": 0.25, "mu": 0.05},
    "MSFT": {"sigma": 0.20, "mu": 0.05},
    "AMZN": {"sigma": 0.28, "mu": 0.05},
    "TSLA": {"sigma": 0.50, "mu": 0.03},
    "NVDA": {"sigma": 0.40, "mu": 0.08},
    "META": {"sigma": 0.30, "mu": 0.05},
    "JPM": {"sigma": 0.18, "mu": 0.04},
    "V": {"sigma": 0.17, "mu": 0.04},
    "NFLX": {"sigma": 0.35, "mu": 0.05},
}

# Default parameters for symbols not listed above (allow_unknown mode)
DEFAULT_PARAMS: dict[str, float] = {"sigma": 0.50, "mu": 0.05}

# Symbols in the same group move together
CORRELATION_GROUPS: dict[str, set[str]] = {
    "crypto": {"BTCUSD", "ETHUSD", "SOLUSD", "BNBUSD", "XRPUSD", "ADAUSD", "BTCUSDT", "ETHUSDT"},
    "tech": {"AAPL", "GOOGL", "MSFT", "AMZN", "META", "NVDA", "NFLX"},
    "finance": {"JPM", "V"},
}

# Correlation coefficients
INTRA_CRYPTO_CORR = 0.7
INTRA_TECH_CORR = 0.6
INTRA_FINANCE_CORR = 0.5
CROSS_GROUP_CORR = 0.3
MAVERICK_CORR = 0.3  # DOGEUSD and TSLA do their own thing
MAVERICKS: set[str] = {"DOGEUSD", "TSLA"}
