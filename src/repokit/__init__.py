"""Generic SQLAlchemy repositories with composable query criteria."""

__version__ = "0.1.0"
