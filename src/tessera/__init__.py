"""
Tessera: typed operation graphs for data processing and model training.

A graph of registered entry points is built, compiled once, bound to
external inputs and executed. Macro nodes (cross-validation, one-vs-rest,
train/test evaluation) expand an embedded graph template per data
partition and aggregate the results.
"""

__version__ = "0.4.0"
