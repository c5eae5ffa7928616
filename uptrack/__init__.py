"""uptrack — service uptime probing, daily rollups and hybrid status reads."""

__version__ = "0.1.0"
