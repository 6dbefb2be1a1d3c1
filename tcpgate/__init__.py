"""TCP gateway server with a length-prefixed binary protocol, a worker pool and a load tester."""

__version__ = "0.1.0"

__all__ = ["__version__"]