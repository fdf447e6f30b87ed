"""mdBook preprocessor embedding ownership and runtime visualisations of Rust code."""

__version__ = "0.3.5"