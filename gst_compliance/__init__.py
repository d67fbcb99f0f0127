"""GST tax-compliance and government-filing engine."""

__version__ = "0.1.0"
