"""Share chain data model, coinbase transactions, transaction storage and block indexes."""

__version__ = "0.1.0"