"""Task marketplace lifecycle service: bids, escrow, completion and ratings."""

__version__ = "0.1.0"
