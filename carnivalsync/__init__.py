"""carnivalsync — external carnival ingestion and ownership reconciliation."""

__version__ = "0.1.0"
