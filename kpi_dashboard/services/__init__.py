"""Domain services operating on an ``AsyncSession``."""
