# Detection engines: extrema, RANSAC trend lines, patterns, divergences, MACD crossovers
