"""Academic-year scoped enrollment and tuition engine for a school back-office."""

__version__ = "1.0.0"
