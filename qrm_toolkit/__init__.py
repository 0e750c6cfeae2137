"""
QRM Toolkit - Quantitative risk management calculations.

A teaching toolkit of independent financial-risk calculations: Value at Risk
(historical, parametric, Monte Carlo), Expected Shortfall, factor models
(CAPM, Fama-French, PCA), mean-variance portfolio optimization, risk
budgeting, and Monte Carlo portfolio and stress simulation.
"""

__version__ = "1.0.0"
