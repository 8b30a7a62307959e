"""
cartcast
========

Next-step forecasting of one series in a multivariate time-series table
with a lag-feature regression tree.

Modules:
    - dataset: Cell coercion and the TabularDataset
    - data_loader: Configuration, CSV/XLSX ingestion and validation
    - features: Lag and cyclic-time feature assembly
    - cart: Regression tree training, prediction and persistence
    - evaluation: In-sample fit metrics
    - forecaster: Train/predict lifecycle
    - charts: Series charts
"""

__version__ = "1.0.0"
__author__ = "Predictive Analytics Team"
