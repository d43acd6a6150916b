"""Chain-side modules for a SwingSet controller: chain types, SwingSet types, virtual bank and virtual IBC."""

__version__ = "0.1.0"