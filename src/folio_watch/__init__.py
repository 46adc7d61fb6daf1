"""folio-watch: cached market quotes and periodic portfolio revaluation."""

__version__ = "0.1.0"
