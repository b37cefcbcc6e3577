"""TimeCapsule API: time-locked capsules with attached media."""

__version__ = "1.0.0"
