"""flashlever: keeps a lending position at a target leverage with flash borrows."""

__version__ = "0.1.0"
